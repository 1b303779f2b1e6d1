from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any

from .http_client import HttpClientError, http_get_json

logger = logging.getLogger("cascade.mirror.discovery")

FetchJson = Callable[[str, float], Any]


@dataclass(frozen=True)
class TargetDescriptor:
    port: int
    ws_url: str
    title: str = ""
    url: str = ""
    target_id: str = ""


def is_workbench_target(target: dict[str, Any]) -> bool:
    url = target.get("url")
    title = target.get("title")
    return (isinstance(url, str) and "workbench.html" in url) or (isinstance(title, str) and "workbench" in title)


def _default_fetch(url: str, timeout: float) -> Any:
    return http_get_json(url, timeout=timeout)


def list_port_targets(port: int, *, host: str = "127.0.0.1", timeout: float = 2.0, fetch: FetchJson | None = None) -> list[TargetDescriptor]:
    """Workbench targets on one DevTools port; any failure degrades to []."""
    fetcher = fetch or _default_fetch
    try:
        raw = fetcher(f"http://{host}:{int(port)}/json/list", timeout)
    except HttpClientError as exc:
        logger.debug("port_unreachable port=%s err=%s", port, exc)
        return []
    except Exception as exc:  # noqa: BLE001
        logger.info("port_query_failed port=%s err=%s", port, exc)
        return []
    if not isinstance(raw, list):
        return []

    out: list[TargetDescriptor] = []
    for t in raw:
        if not isinstance(t, dict) or not is_workbench_target(t):
            continue
        ws_url = t.get("webSocketDebuggerUrl")
        if not isinstance(ws_url, str) or not ws_url:
            # Already attached by another debugger client.
            continue
        out.append(
            TargetDescriptor(
                port=int(port),
                ws_url=ws_url,
                title=str(t.get("title") or ""),
                url=str(t.get("url") or ""),
                target_id=str(t.get("id") or ""),
            )
        )
    return out


def discover_targets(
    ports: list[int],
    *,
    host: str = "127.0.0.1",
    timeout: float = 2.0,
    fetch: FetchJson | None = None,
) -> list[TargetDescriptor]:
    """Query every port concurrently; results keep the configured port order."""
    if not ports:
        return []
    with ThreadPoolExecutor(max_workers=min(16, len(ports)), thread_name_prefix="cascade-discovery") as pool:
        futures = [pool.submit(list_port_targets, p, host=host, timeout=timeout, fetch=fetch) for p in ports]
        results: list[TargetDescriptor] = []
        for fut in futures:
            results.extend(fut.result())
    return results


__all__ = ["TargetDescriptor", "discover_targets", "is_workbench_target", "list_port_targets"]
