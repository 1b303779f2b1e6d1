"""Protocol session: one CDP websocket per target.

A background reader thread owns `recv()` and routes every inbound frame:
- `{id, result}` / `{id, error}` resolve the pending future registered by `call()`
- `{method, params}` events maintain the execution context list

Pending calls are bounded: each waits at most `call_timeout` and is removed from
the pending table either way; closing the transport fails whatever is still pending.
"""

from __future__ import annotations

import itertools
import json
import logging
import socket
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from contextlib import suppress
from typing import Any, Protocol

import websocket

from .errors import ProtocolError, SessionClosedError, StaleContextError, TransportUnreachable

logger = logging.getLogger("cascade.mirror.cdp_session")

_STALE_CONTEXT_MARKERS = (
    "cannot find context",
    "cannot find default execution context",
    "execution context was destroyed",
    "context with specified id",
)


class Transport(Protocol):
    def send(self, payload: str) -> Any: ...

    def recv(self) -> Any: ...

    def settimeout(self, timeout: float | None) -> None: ...

    def close(self) -> None: ...


def _is_timeout(exc: BaseException) -> bool:
    if isinstance(exc, (TimeoutError, socket.timeout, websocket.WebSocketTimeoutException)):
        return True
    return "timed out" in str(exc).lower()


def _looks_stale(message: str) -> bool:
    low = (message or "").lower()
    return any(marker in low for marker in _STALE_CONTEXT_MARKERS)


class ProtocolSession:
    """Correlated CDP calls plus passive execution-context tracking for one target."""

    def __init__(
        self,
        ws_url: str,
        transport: Transport,
        *,
        call_timeout: float = 10.0,
        recv_poll: float = 0.5,
    ) -> None:
        self.ws_url = ws_url
        self.call_timeout = float(call_timeout)
        self._transport = transport
        self._recv_poll = float(recv_poll)

        self._lock = threading.Lock()
        self._send_lock = threading.Lock()
        # One in-page probe roundtrip at a time per session.
        self.probe_lock = threading.RLock()

        self._ids = itertools.count(1)
        self._pending: dict[int, Future] = {}
        self._contexts: list[dict[str, Any]] = []
        self.root_context_id: int | None = None

        self._event_sink: Callable[[dict[str, Any]], None] | None = None
        self._stop = threading.Event()
        self._closed = False
        self._thread = threading.Thread(target=self._run, name="cascade-cdp-reader", daemon=True)

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    @classmethod
    def connect(
        cls,
        ws_url: str,
        *,
        connect_timeout: float = 5.0,
        call_timeout: float = 10.0,
        settle: float = 0.5,
    ) -> ProtocolSession:
        """Open the websocket, enable Runtime notifications and let contexts arrive."""
        try:
            transport = websocket.create_connection(ws_url, timeout=connect_timeout, suppress_origin=True)
        except Exception as exc:  # noqa: BLE001
            raise TransportUnreachable(f"connect failed: {ws_url}: {exc}") from exc

        session = cls(ws_url, transport, call_timeout=call_timeout)
        session.start()
        try:
            session.call("Runtime.enable", {})
        except Exception:
            session.close()
            raise
        if settle > 0:
            time.sleep(settle)
        return session

    def start(self) -> None:
        if self._thread.is_alive():
            return
        with suppress(Exception):
            self._transport.settimeout(self._recv_poll)
        self._thread.start()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._stop.set()

        # Prefer shutting the raw socket: websocket-client close() can block on its locks.
        sock = getattr(self._transport, "sock", None)
        if sock is not None:
            with suppress(Exception):
                sock.shutdown(socket.SHUT_RDWR)
        with suppress(Exception):
            self._transport.close()
        self._fail_pending(SessionClosedError(f"session closed: {self.ws_url}"))

    @property
    def is_open(self) -> bool:
        with self._lock:
            closed = self._closed
        return not closed and self._thread.is_alive()

    def set_event_sink(self, sink: Callable[[dict[str, Any]], None] | None) -> None:
        """Attach a best-effort callback for every unsolicited CDP event."""
        self._event_sink = sink

    # ─────────────────────────────────────────────────────────────────────────
    # Calls
    # ─────────────────────────────────────────────────────────────────────────

    def call(self, method: str, params: dict[str, Any] | None = None, *, timeout: float | None = None) -> dict[str, Any]:
        if not isinstance(method, str) or not method.strip():
            raise ProtocolError("CDP method is required")

        fut: Future = Future()
        with self._lock:
            if self._closed:
                raise SessionClosedError(f"session closed: {self.ws_url}")
            msg_id = next(self._ids)
            self._pending[msg_id] = fut

        msg = {"id": msg_id, "method": method, "params": params or {}}
        try:
            try:
                with self._send_lock:
                    self._transport.send(json.dumps(msg))
            except Exception as exc:  # noqa: BLE001
                raise TransportUnreachable(f"CDP send failed: method={method}: {exc}") from exc

            wait = self.call_timeout if timeout is None else float(timeout)
            try:
                result = fut.result(timeout=max(0.05, wait))
            except FutureTimeoutError as exc:
                raise ProtocolError(f"CDP response timed out: method={method}") from exc
            return result if isinstance(result, dict) else {}
        finally:
            with self._lock:
                self._pending.pop(msg_id, None)

    def evaluate(
        self,
        expression: str,
        *,
        context_id: int | None = None,
        timeout: float | None = None,
    ) -> Any:
        """Run `Runtime.evaluate` and return the by-value result (undefined/null -> None)."""
        params: dict[str, Any] = {
            "expression": expression,
            "returnByValue": True,
            "awaitPromise": True,
        }
        if context_id is not None:
            params["contextId"] = int(context_id)

        try:
            res = self.call("Runtime.evaluate", params, timeout=timeout)
        except StaleContextError:
            raise
        except ProtocolError as exc:
            if _looks_stale(str(exc)):
                raise StaleContextError(str(exc), details=exc.details) from exc
            raise

        details = res.get("exceptionDetails")
        if isinstance(details, dict):
            exc_obj = details.get("exception") if isinstance(details.get("exception"), dict) else {}
            text = exc_obj.get("description") or details.get("text") or "evaluation failed"
            raise ProtocolError(f"evaluation threw: {str(text)[:300]}", details=details)

        result = res.get("result")
        if not isinstance(result, dict):
            raise ProtocolError("malformed Runtime.evaluate response")
        if result.get("type") == "undefined" or result.get("subtype") == "null":
            return None
        return result.get("value")

    # ─────────────────────────────────────────────────────────────────────────
    # Contexts
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def contexts(self) -> list[dict[str, Any]]:
        with self._lock:
            return list(self._contexts)

    def context_ids(self) -> list[int]:
        out: list[int] = []
        for ctx in self.contexts:
            cid = ctx.get("id")
            if isinstance(cid, int):
                out.append(cid)
        return out

    # ─────────────────────────────────────────────────────────────────────────
    # Reader
    # ─────────────────────────────────────────────────────────────────────────

    def _run(self) -> None:
        reason = "stopped"
        try:
            while not self._stop.is_set():
                try:
                    raw = self._transport.recv()
                except Exception as exc:  # noqa: BLE001
                    if _is_timeout(exc):
                        continue
                    reason = str(exc) or type(exc).__name__
                    break
                if raw is None or raw == "":
                    reason = "transport closed"
                    break
                self._dispatch(raw)
        finally:
            if not self._stop.is_set():
                logger.info("cdp_session_lost url=%s reason=%s", self.ws_url, reason)
            with self._lock:
                self._closed = True
            self._stop.set()
            self._fail_pending(SessionClosedError(f"transport lost: {reason}"))

    def _dispatch(self, raw: Any) -> None:
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            return
        if not isinstance(data, dict):
            return

        msg_id = data.get("id")
        if isinstance(msg_id, int):
            with self._lock:
                fut = self._pending.get(msg_id)
            if fut is None or fut.done():
                return
            err = data.get("error")
            with suppress(Exception):
                if err is not None:
                    message = err.get("message") if isinstance(err, dict) else str(err)
                    details = err if isinstance(err, dict) else {"error": err}
                    fut.set_exception(ProtocolError(str(message or "CDP error"), details=details))
                else:
                    fut.set_result(data.get("result") if isinstance(data.get("result"), dict) else {})
            return

        method = data.get("method")
        if not isinstance(method, str):
            return
        params = data.get("params") if isinstance(data.get("params"), dict) else {}
        self._on_event(method, params)

        sink = self._event_sink
        if sink is not None:
            with suppress(Exception):
                sink(data)

    def _on_event(self, method: str, params: dict[str, Any]) -> None:
        if method == "Runtime.executionContextCreated":
            ctx = params.get("context")
            if isinstance(ctx, dict) and isinstance(ctx.get("id"), int):
                with self._lock:
                    self._contexts = [c for c in self._contexts if c.get("id") != ctx["id"]]
                    self._contexts.append(ctx)
        elif method == "Runtime.executionContextDestroyed":
            cid = params.get("executionContextId")
            with self._lock:
                self._contexts = [c for c in self._contexts if c.get("id") != cid]
                if self.root_context_id == cid:
                    self.root_context_id = None
        elif method == "Runtime.executionContextsCleared":
            with self._lock:
                self._contexts = []
                self.root_context_id = None

    def _fail_pending(self, exc: BaseException) -> None:
        with self._lock:
            pending = list(self._pending.items())
            self._pending.clear()
        for _msg_id, fut in pending:
            with suppress(Exception):
                if not fut.done():
                    fut.set_exception(exc)


__all__ = ["ProtocolSession", "Transport"]
