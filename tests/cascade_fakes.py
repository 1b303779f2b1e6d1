"""In-memory stand-ins for CDP transports, sessions and DevTools endpoints."""

from __future__ import annotations

import json
import queue
import threading
from collections.abc import Callable
from typing import Any
from urllib.parse import urlparse

from mirror_servers.cascade.errors import SessionClosedError, StaleContextError, TransportUnreachable
from mirror_servers.cascade.http_client import HttpClientError
from mirror_servers.cascade.probes import FOCUS_EDITOR_PROBE, STYLESHEET_DUMP_PROBE
from mirror_servers.cascade.shapes import ChatShape, ShapeRegistry
from mirror_servers.cascade.shapes.base import candidates
from mirror_servers.cascade.titles import pick_title


class FakeTransport:
    """websocket-client lookalike: `recv()` drains frames pushed by the test."""

    def __init__(self, responder: Callable[[dict[str, Any]], dict[str, Any] | None] | None = None) -> None:
        self.sent: list[dict[str, Any]] = []
        self.timeout: float | None = None
        self.closed = False
        self._inbox: queue.Queue[str] = queue.Queue()
        self._responder = responder

    def settimeout(self, timeout: float | None) -> None:
        self.timeout = timeout

    def send(self, payload: str) -> None:
        if self.closed:
            raise OSError("socket is already closed")
        msg = json.loads(payload)
        self.sent.append(msg)
        if self._responder is not None:
            reply = self._responder(msg)
            if reply is not None:
                self.push({"id": msg["id"], **reply})

    def push(self, frame: dict[str, Any]) -> None:
        self._inbox.put(json.dumps(frame))

    def hang_up(self) -> None:
        self._inbox.put("")

    def recv(self) -> str:
        try:
            return self._inbox.get(timeout=self.timeout or 0.05)
        except queue.Empty:
            raise TimeoutError("timed out") from None

    def close(self) -> None:
        self.closed = True
        self._inbox.put("")


class StubShape(ChatShape):
    """Shape whose probes are marker strings, so fake pages can answer them."""

    def __init__(self, name: str = "stub", fallback_title: str = "Stub Chat") -> None:
        self.name = name
        self.fallback_title = fallback_title
        self.meta_script = f"/*{name}-meta*/"
        self.snap_script = f"/*{name}-snapshot*/"

    def metadata_probe(self) -> str:
        return self.meta_script

    def infer_title(self, value: dict[str, Any]) -> str:
        return pick_title(candidates(value, "explicitTitle")) or self.fallback_title

    def snapshot_probe(self, *, root_element_id: str | None, root_selector: str | None) -> str:  # noqa: ARG002
        return self.snap_script


class FakePage:
    """Scripted page contents for one target, answering StubShape probes."""

    def __init__(
        self,
        *,
        shape: str = "stub",
        title: str = "Fix the login redirect",
        html: str | None = '<div id="root">hello</div>',
        chat_context: int | None = 1,
        active: bool = False,
    ) -> None:
        self.shape = shape
        self.title = title
        self.html = html
        self.chat_context = chat_context
        self.active = active
        self.snapshot_titles: list[str] = []
        self.stale_contexts: set[int] = set()
        self.inject_result: Any = {"ok": True, "via": "button"}
        self.focus_result: Any = {"focused": True, "mac": False}
        self.injected: list[str] = []

    def evaluate(self, expression: str, context_id: int | None) -> Any:
        if context_id in self.stale_contexts:
            raise StaleContextError("Cannot find context with specified id")
        if expression.startswith("/*") and expression.endswith("-meta*/"):
            if expression != f"/*{self.shape}-meta*/":
                return {"found": False}
            if self.chat_context is not None and context_id != self.chat_context:
                return {"found": False}
            return {"found": True, "rootElementId": "root", "explicitTitle": self.title, "isActive": self.active}
        if expression == f"/*{self.shape}-snapshot*/":
            if self.html is None:
                return {"error": "root not found"}
            return {
                "html": self.html,
                "bodyBg": "rgb(24, 24, 24)",
                "bodyColor": "rgb(230, 230, 230)",
                "titleCandidates": list(self.snapshot_titles),
            }
        if expression == STYLESHEET_DUMP_PROBE:
            return {
                "rules": [{"kind": "style", "selector": "body", "body": "color: red;", "text": "body { color: red; }"}],
                "skipped": 0,
            }
        if expression == FOCUS_EDITOR_PROBE:
            return self.focus_result
        self.injected.append(expression)
        return self.inject_result


class FakeSession:
    """ProtocolSession lookalike backed by a FakePage."""

    def __init__(self, ws_url: str, page: FakePage | None = None, *, contexts: list[int] | None = None) -> None:
        self.ws_url = ws_url
        self.page = page or FakePage()
        self.probe_lock = threading.RLock()
        self.root_context_id: int | None = None
        self._contexts = list(contexts if contexts is not None else [1])
        self.closed = False
        self.evaluations: list[tuple[str, int | None]] = []
        self.calls: list[tuple[str, dict[str, Any] | None]] = []

    @property
    def is_open(self) -> bool:
        return not self.closed

    def context_ids(self) -> list[int]:
        return list(self._contexts)

    def evaluate(self, expression: str, *, context_id: int | None = None, timeout: float | None = None) -> Any:  # noqa: ARG002
        if self.closed:
            raise SessionClosedError(f"session closed: {self.ws_url}")
        self.evaluations.append((expression, context_id))
        return self.page.evaluate(expression, context_id)

    def call(self, method: str, params: dict[str, Any] | None = None, *, timeout: float | None = None) -> dict[str, Any]:  # noqa: ARG002
        if self.closed:
            raise SessionClosedError(f"session closed: {self.ws_url}")
        self.calls.append((method, params))
        return {}

    def close(self) -> None:
        self.closed = True


class FakeBrowserFarm:
    """Several workbench processes: per-port `/json/list` plus connectable pages."""

    def __init__(self) -> None:
        self.targets: dict[int, list[dict[str, Any]]] = {}
        self.pages: dict[str, FakePage] = {}
        self.sessions: list[FakeSession] = []
        self.unreachable: set[int] = set()

    def add_window(self, port: int, name: str, page: FakePage | None = None) -> str:
        ws_url = f"ws://127.0.0.1:{port}/devtools/page/{name}"
        self.targets.setdefault(port, []).append(
            {
                "id": name,
                "type": "page",
                "title": f"{name} - workbench",
                "url": "vscode-file://vscode-app/out/vs/code/electron-sandbox/workbench/workbench.html",
                "webSocketDebuggerUrl": ws_url,
            }
        )
        self.pages[ws_url] = page or FakePage()
        return ws_url

    def remove_window(self, ws_url: str) -> None:
        for port, items in self.targets.items():
            self.targets[port] = [t for t in items if t.get("webSocketDebuggerUrl") != ws_url]

    def fetch(self, url: str, timeout: float) -> Any:  # noqa: ARG002
        port = int(urlparse(url).port or 0)
        if port in self.unreachable or port not in self.targets:
            raise HttpClientError(f"connection refused: {port}")
        return list(self.targets[port])

    def connect(self, ws_url: str) -> FakeSession:
        page = self.pages.get(ws_url)
        if page is None:
            raise TransportUnreachable(f"connect failed: {ws_url}")
        session = FakeSession(ws_url, page)
        self.sessions.append(session)
        return session

    def live_sessions(self) -> list[FakeSession]:
        return [s for s in self.sessions if not s.closed]


def stub_shapes(*names: str) -> ShapeRegistry:
    return ShapeRegistry([StubShape(n) for n in (names or ("stub",))])
