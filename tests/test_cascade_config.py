from __future__ import annotations

import pytest

from mirror_servers.cascade.config import DEFAULT_PORTS, MirrorConfig, normalize_ports, parse_ports


def test_parse_ports_supports_lists_and_ranges() -> None:
    assert parse_ports("9000,9002") == [9000, 9002]
    assert parse_ports("9000-9003") == [9000, 9001, 9002, 9003]
    assert parse_ports("9003-9001, 9010") == [9001, 9002, 9003, 9010]
    assert parse_ports("") == []
    assert parse_ports("abc, 0, 70000, 9000, 9000") == [9000]


def test_normalize_ports_filters_invalid_values() -> None:
    assert normalize_ports([9000, "9001", "x", 0, 65536, 65535, 9000]) == [9000, 9001, 65535]
    assert normalize_ports("9000") == []


def test_config_from_env_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "CASCADE_PORTS",
        "CASCADE_HOST",
        "CASCADE_POLL_INTERVAL",
        "CASCADE_DISCOVERY_INTERVAL",
        "CASCADE_GATEWAY_PORT",
        "CASCADE_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    cfg = MirrorConfig.from_env()
    assert cfg.ports == DEFAULT_PORTS
    assert cfg.host == "127.0.0.1"
    assert cfg.poll_interval == 3.0
    assert cfg.discovery_interval == 10.0
    assert cfg.gateway_port == 9420
    assert cfg.log_level == "INFO"


def test_config_from_env_overrides_and_fallbacks(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CASCADE_PORTS", "9100-9101")
    monkeypatch.setenv("CASCADE_POLL_INTERVAL", "1.5")
    monkeypatch.setenv("CASCADE_DISCOVERY_INTERVAL", "nope")
    monkeypatch.setenv("CASCADE_GATEWAY_PORT", "99999")
    monkeypatch.setenv("CASCADE_LOG_LEVEL", "debug")
    cfg = MirrorConfig.from_env()
    assert cfg.ports == [9100, 9101]
    assert cfg.poll_interval == 1.5
    assert cfg.discovery_interval == 10.0
    assert cfg.gateway_port == 9420
    assert cfg.log_level == "DEBUG"


def test_config_from_env_invalid_ports_fall_back_to_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CASCADE_PORTS", "0,abc")
    assert MirrorConfig.from_env().ports == DEFAULT_PORTS
