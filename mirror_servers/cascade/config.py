from __future__ import annotations

import os
import re
from dataclasses import dataclass, field

DEFAULT_PORTS: list[int] = [9000, 9001, 9002, 9003]


def normalize_ports(raw: object) -> list[int]:
    """Coerce a port list (ints, numeric strings) into valid TCP ports, order-preserving."""
    if not isinstance(raw, (list, tuple, set)):
        return []
    ports: list[int] = []
    for item in raw:
        try:
            port = int(item)
        except Exception:
            continue
        if port < 1 or port > 65535:
            continue
        if port not in ports:
            ports.append(port)
    return ports


def parse_ports(raw: str | None) -> list[int]:
    """Parse `9000,9001` / `9000-9003` / mixed lists."""
    text = (raw or "").strip()
    if not text:
        return []
    items: list[int] = []
    for chunk in text.split(","):
        part = chunk.strip()
        if not part:
            continue
        m = re.match(r"^(\d+)\s*-\s*(\d+)$", part)
        if m:
            lo = int(m.group(1))
            hi = int(m.group(2))
            if lo > hi:
                lo, hi = hi, lo
            # Guard against absurd ranges from typos.
            if hi - lo > 256:
                hi = lo + 256
            items.extend(range(lo, hi + 1))
            continue
        if part.isdigit():
            items.append(int(part))
    return normalize_ports(items)


def _env_float(name: str, default: float, *, lo: float = 0.0) -> float:
    try:
        value = float(os.environ.get(name) or default)
    except Exception:
        value = default
    return max(lo, value)


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name) or default)
    except Exception:
        return default


@dataclass
class MirrorConfig:
    ports: list[int] = field(default_factory=lambda: list(DEFAULT_PORTS))
    host: str = "127.0.0.1"
    discovery_interval: float = 10.0
    poll_interval: float = 3.0
    http_timeout: float = 2.0
    call_timeout: float = 10.0
    connect_timeout: float = 5.0
    context_settle: float = 0.5
    gateway_host: str = "127.0.0.1"
    gateway_port: int = 9420
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> MirrorConfig:
        ports = parse_ports(os.environ.get("CASCADE_PORTS")) or list(DEFAULT_PORTS)
        host = (os.environ.get("CASCADE_HOST") or "127.0.0.1").strip() or "127.0.0.1"
        gateway_host = (os.environ.get("CASCADE_GATEWAY_HOST") or "127.0.0.1").strip() or "127.0.0.1"
        gateway_port = _env_int("CASCADE_GATEWAY_PORT", 9420)
        if gateway_port < 1 or gateway_port > 65535:
            gateway_port = 9420
        level = (os.environ.get("CASCADE_LOG_LEVEL") or "INFO").strip().upper() or "INFO"
        return cls(
            ports=ports,
            host=host,
            discovery_interval=_env_float("CASCADE_DISCOVERY_INTERVAL", 10.0, lo=0.5),
            poll_interval=_env_float("CASCADE_POLL_INTERVAL", 3.0, lo=0.2),
            http_timeout=_env_float("CASCADE_HTTP_TIMEOUT", 2.0, lo=0.1),
            call_timeout=_env_float("CASCADE_CALL_TIMEOUT", 10.0, lo=0.1),
            connect_timeout=_env_float("CASCADE_CONNECT_TIMEOUT", 5.0, lo=0.1),
            context_settle=_env_float("CASCADE_CONTEXT_SETTLE", 0.5),
            gateway_host=gateway_host,
            gateway_port=gateway_port,
            log_level=level,
        )
