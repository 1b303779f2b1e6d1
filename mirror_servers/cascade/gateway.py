from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
import threading
import time
from typing import Any

import websockets
from websockets.datastructures import Headers as WsHeaders
from websockets.http11 import Response as WsResponse

from .engine import CascadeEngine
from .errors import CascadeError
from .probes import PROBE_VERSION

logger = logging.getLogger("cascade.mirror.gateway")

WELL_KNOWN_PATH = "/.well-known/cascade-mirror"
GATEWAY_PROTOCOL_VERSION = 1


def _now_ms() -> int:
    return int(time.time() * 1000)


class MirrorGateway:
    """Local WebSocket gateway that mirrors engine events to viewer clients.

    Design goals:
    - Sync lifecycle API (start/stop/status) for main.py and tests.
    - Async server internally (runs in a dedicated daemon thread).
    - Engine calls block on CDP, so RPCs are dispatched via `asyncio.to_thread`.
    - Events are pushed at-most-once; a client that fell behind asks for the list.
    """

    def __init__(self, engine: CascadeEngine, *, host: str | None = None, port: int | None = None) -> None:
        self.engine = engine
        cfg = engine.config
        self.host = (host or cfg.gateway_host or "127.0.0.1").strip() or "127.0.0.1"
        self.port = int(cfg.gateway_port if port is None else port)
        self._configured_port = int(self.port)
        self._server_started_at_ms = _now_ms()

        self._lock = threading.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._stop = threading.Event()

        # NOTE: typed as Any to avoid coupling to a websockets server class across versions.
        self._server: Any | None = None
        self._bind_error: str | None = None
        self._clients: dict[int, Any] = {}

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    def start(self, *, wait_timeout: float = 5.0) -> None:
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop.clear()
        with self._lock:
            self._bind_error = None

        t = threading.Thread(target=self._run_thread, name="cascade-mirror-gateway", daemon=True)
        self._thread = t
        t.start()

        # Wait for the server to actually bind (not just for the thread to start).
        deadline = time.time() + max(0.05, float(wait_timeout))
        while time.time() < deadline:
            with self._lock:
                server = self._server
                bind_error = self._bind_error
            if server is not None:
                return
            if bind_error or not t.is_alive():
                break
            time.sleep(0.05)

        with self._lock:
            bind_error = self._bind_error
            server = self._server
        if server is not None:
            return
        self.stop()
        if bind_error:
            raise RuntimeError(f"Mirror gateway bind failed on {self.host}:{self.port}: {bind_error}")
        raise RuntimeError(f"Mirror gateway failed to start on {self.host}:{self.port}")

    def stop(self, *, timeout: float = 2.0) -> None:
        self._stop.set()
        t = self._thread
        if t is not None:
            t.join(timeout=timeout)
        self._thread = None

    def status(self) -> dict[str, Any]:
        with self._lock:
            listening = self._server is not None
            clients = len(self._clients)
            bind_error = self._bind_error
        return {
            "listening": bool(listening),
            "host": self.host,
            "port": self.port,
            "configuredPort": self._configured_port,
            "clients": clients,
            **({"bindError": bind_error} if bind_error else {}),
            "serverStartedAtMs": int(self._server_started_at_ms),
            "probeVersion": PROBE_VERSION,
        }

    def url(self) -> str:
        return f"ws://{self.host}:{self.port}"

    # ─────────────────────────────────────────────────────────────────────────
    # RPC
    # ─────────────────────────────────────────────────────────────────────────

    def dispatch(self, method: str, params: dict[str, Any]) -> Any:
        """Blocking RPC dispatch onto the engine."""
        m = str(method or "").strip()
        if not m:
            raise CascadeError("rpc: missing method")

        engine = self.engine
        cid = str(params.get("id") or "")
        if m == "cascades.list":
            return engine.list_entries()
        if m == "cascades.snapshot":
            snap = engine.get_snapshot(cid)
            if snap is None:
                raise CascadeError("not found")
            return snap
        if m == "cascades.styles":
            styles = engine.get_styles(cid)
            if styles is None:
                raise CascadeError("not found")
            return styles
        if m == "cascades.watch":
            return {"watched": engine.set_watched(cid or None)}
        if m == "cascades.send":
            return engine.send_message(cid, str(params.get("message") or params.get("text") or ""))
        if m == "cascades.newConversation":
            return engine.send_new_conversation(cid)
        if m == "engine.status":
            return {"engine": engine.discovery_status(), "gateway": self.status()}
        raise CascadeError(f"unknown method: {m}")

    # ─────────────────────────────────────────────────────────────────────────
    # Server internals
    # ─────────────────────────────────────────────────────────────────────────

    def _run_thread(self) -> None:
        asyncio.run(self._run_async())

    async def _run_async(self) -> None:
        loop = asyncio.get_running_loop()
        self._loop = loop

        async def _rpc_reply(ws, req_id: Any, *, ok: bool, result: Any = None, error: str | None = None) -> None:
            payload: dict[str, Any] = {"type": "rpcResult", "id": req_id, "ok": bool(ok)}
            if ok:
                payload["result"] = result
            else:
                payload["error"] = {"message": str(error or "unknown error")}
            with contextlib.suppress(Exception):
                await self._ws_send_json(ws, payload)

        async def _handler(ws):  # type: ignore[no-untyped-def]
            def _push(event: dict[str, Any]) -> None:
                if loop.is_closed():
                    return
                coro = self._ws_send_json(ws, event)
                try:
                    asyncio.run_coroutine_threadsafe(coro, loop)
                except RuntimeError:
                    coro.close()

            token = self.engine.subscribe(_push)
            with self._lock:
                self._clients[token] = ws
            logger.info("client_connected token=%s clients=%d", token, len(self._clients))
            try:
                async for raw_msg in ws:
                    try:
                        msg = json.loads(raw_msg)
                    except ValueError:
                        continue
                    if not isinstance(msg, dict) or msg.get("type") != "rpc":
                        continue

                    req_id = msg.get("id")
                    method = str(msg.get("method") or "")
                    raw_params = msg.get("params")
                    params: dict[str, Any] = {}
                    if isinstance(raw_params, dict):
                        for k, v in raw_params.items():
                            if isinstance(k, str):
                                params[k] = v

                    try:
                        res = await asyncio.to_thread(self.dispatch, method, params)
                        await _rpc_reply(ws, req_id, ok=True, result=res)
                    except Exception as exc:  # noqa: BLE001
                        logger.info("rpc_failed method=%s err=%s", method, exc)
                        await _rpc_reply(ws, req_id, ok=False, error=str(exc))
            except websockets.ConnectionClosed:
                pass
            finally:
                self.engine.unsubscribe(token)
                with self._lock:
                    self._clients.pop(token, None)
                logger.info("client_disconnected token=%s", token)

        def _json_response(status: int, reason: str, payload: Any) -> WsResponse:
            headers = WsHeaders()
            headers["Content-Type"] = "application/json"
            headers["Cache-Control"] = "no-store"
            headers["Access-Control-Allow-Origin"] = "*"
            body = json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
            return WsResponse(status, reason, headers, body)

        def _process_request(_conn, request):  # type: ignore[no-untyped-def]
            # WS upgrade requests go through the normal handshake.
            upgrade = str(request.headers.get("Upgrade") or "").lower()
            if upgrade == "websocket":
                return None
            path = str(getattr(request, "path", "") or "").split("?", 1)[0]
            if path != WELL_KNOWN_PATH:
                return _json_response(404, "Not Found", {"error": "not found"})
            return _json_response(
                200,
                "OK",
                {
                    "type": "cascadeMirrorGateway",
                    "protocolVersion": GATEWAY_PROTOCOL_VERSION,
                    "probeVersion": PROBE_VERSION,
                    "pid": int(os.getpid()),
                    "gateway": self.status(),
                    "discovery": self.engine.discovery_status(),
                },
            )

        try:
            server = await websockets.serve(
                _handler,
                self.host,
                int(self.port),
                process_request=_process_request,
                max_size=8_000_000,
                ping_interval=None,
            )
        except OSError as exc:
            with self._lock:
                self._bind_error = str(exc)
            logger.error("gateway_bind_failed host=%s port=%s err=%s", self.host, self.port, exc)
            return

        bound_port = self.port
        for sock in getattr(server, "sockets", None) or []:
            bound_port = int(sock.getsockname()[1])
            break
        with self._lock:
            self._server = server
            self.port = bound_port
        logger.info("gateway_listening host=%s port=%s", self.host, self.port)

        try:
            while not self._stop.is_set():
                await asyncio.sleep(0.1)
        finally:
            await self._shutdown_async()

    async def _shutdown_async(self) -> None:
        with self._lock:
            srv = self._server
            self._server = None
            clients = list(self._clients.items())
        # No engine event may target this loop once it starts tearing down.
        for token, _ws in clients:
            self.engine.unsubscribe(token)
        for _token, ws in clients:
            with contextlib.suppress(Exception):
                await ws.close()
        if srv is not None:
            srv.close()
            with contextlib.suppress(Exception):
                await srv.wait_closed()
        logger.info("gateway_stopped")

    async def _ws_send_json(self, ws, payload: dict[str, Any]) -> None:  # type: ignore[no-untyped-def]
        await ws.send(json.dumps(payload, ensure_ascii=False))


__all__ = ["GATEWAY_PROTOCOL_VERSION", "WELL_KNOWN_PATH", "MirrorGateway"]
