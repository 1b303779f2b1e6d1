from __future__ import annotations

import time
from typing import Any

from cascade_fakes import FakeBrowserFarm

from mirror_servers.cascade.discovery import discover_targets, is_workbench_target, list_port_targets
from mirror_servers.cascade.http_client import HttpClientError


def test_is_workbench_target() -> None:
    assert is_workbench_target({"url": "vscode-file://vscode-app/workbench.html", "title": "x"})
    assert is_workbench_target({"url": "about:blank", "title": "Cursor workbench"})
    assert not is_workbench_target({"url": "https://example.com", "title": "Example"})
    assert not is_workbench_target({"url": None, "title": 3})


def test_list_port_targets_filters_and_requires_ws_url() -> None:
    def _fetch(url: str, timeout: float) -> Any:
        assert url == "http://127.0.0.1:9000/json/list"
        assert timeout == 1.5
        return [
            {"id": "1", "title": "repo - workbench", "url": "x/workbench.html", "webSocketDebuggerUrl": "ws://a/1"},
            {"id": "2", "title": "repo - workbench", "url": "x/workbench.html"},
            {"id": "3", "title": "DevTools", "url": "devtools://devtools", "webSocketDebuggerUrl": "ws://a/3"},
            "junk",
        ]

    targets = list_port_targets(9000, timeout=1.5, fetch=_fetch)
    assert [t.ws_url for t in targets] == ["ws://a/1"]
    assert targets[0].port == 9000
    assert targets[0].target_id == "1"


def test_list_port_targets_degrades_to_empty() -> None:
    def _refused(url: str, timeout: float) -> Any:
        raise HttpClientError("connection refused")

    def _weird(url: str, timeout: float) -> Any:
        return {"not": "a list"}

    def _crash(url: str, timeout: float) -> Any:
        raise ValueError("boom")

    assert list_port_targets(9000, fetch=_refused) == []
    assert list_port_targets(9000, fetch=_weird) == []
    assert list_port_targets(9000, fetch=_crash) == []


def test_discover_targets_isolates_ports_and_keeps_order() -> None:
    farm = FakeBrowserFarm()
    farm.add_window(9002, "C")
    farm.add_window(9000, "A")
    farm.add_window(9000, "B")
    farm.unreachable = {9001}
    targets = discover_targets([9000, 9001, 9002], fetch=farm.fetch)
    assert [t.port for t in targets] == [9000, 9000, 9002]
    assert [t.target_id for t in targets] == ["A", "B", "C"]
    assert discover_targets([], fetch=farm.fetch) == []


def test_discover_targets_queries_ports_concurrently() -> None:
    def _slow(url: str, timeout: float) -> Any:
        time.sleep(0.3)
        return []

    started = time.monotonic()
    assert discover_targets([9000, 9001, 9002, 9003], timeout=0.5, fetch=_slow) == []
    # Bounded by one port's latency, not the sum over ports.
    assert time.monotonic() - started < 0.9
