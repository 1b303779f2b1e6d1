"""Cascade mirror engine: discovery + snapshot polling + operations surface.

Design goals:
- Sync API for callers (list/snapshot/send), background daemon loops internally.
- Per-target isolation: one bad port, session or probe never stops a loop.
- Low noise: membership changes (not metadata refreshes) trigger list broadcasts.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from . import dispatcher
from .broadcaster import ChangeBroadcaster, Subscriber
from .cdp_session import ProtocolSession
from .config import MirrorConfig, normalize_ports
from .discovery import FetchJson, discover_targets
from .errors import CascadeError
from .registry import Cascade, CascadeRegistry, EntryState, SessionFactory
from .shapes import ShapeRegistry
from .snapshot import capture_snapshot

logger = logging.getLogger("cascade.mirror.engine")


def _now_ms() -> int:
    return int(time.time() * 1000)


class CascadeEngine:
    def __init__(
        self,
        config: MirrorConfig | None = None,
        *,
        connect: SessionFactory | None = None,
        fetch: FetchJson | None = None,
        shapes: ShapeRegistry | None = None,
        broadcaster: ChangeBroadcaster | None = None,
    ) -> None:
        self.config = config or MirrorConfig.from_env()
        self.broadcaster = broadcaster or ChangeBroadcaster()
        self.registry = CascadeRegistry(connect or self._connect_session, shapes=shapes)
        self._fetch = fetch

        self._lock = threading.Lock()
        self._ports = normalize_ports(self.config.ports)
        self._watched_id: str | None = None
        self._last_scan_ms: int | None = None
        self._last_candidates = 0

        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []
        self._discover_gate = threading.Lock()
        self._poll_gate = threading.Lock()

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    def start(self) -> None:
        if self.is_running():
            return
        self._stop.clear()
        self._threads = [
            threading.Thread(
                target=self._loop,
                args=("discovery", self.discover_once, lambda: self.config.discovery_interval),
                name="cascade-discovery-loop",
                daemon=True,
            ),
            threading.Thread(
                target=self._loop,
                args=("poll", self.poll_once, lambda: self.config.poll_interval),
                name="cascade-poll-loop",
                daemon=True,
            ),
        ]
        for t in self._threads:
            t.start()
        logger.info("engine_started ports=%s", self.get_ports())

    def stop(self, *, timeout: float = 5.0) -> None:
        self._stop.set()
        for t in self._threads:
            t.join(timeout=timeout)
        self._threads = []
        self.registry.close_all()
        with self._lock:
            self._watched_id = None
        logger.info("engine_stopped")

    def is_running(self) -> bool:
        return any(t.is_alive() for t in self._threads)

    def _loop(self, name: str, step: Callable[[], Any], interval: Callable[[], float]) -> None:
        while not self._stop.is_set():
            try:
                step()
            except Exception:
                logger.exception("loop_step_failed loop=%s", name)
            if self._stop.wait(max(0.05, float(interval()))):
                break

    def _connect_session(self, ws_url: str) -> ProtocolSession:
        cfg = self.config
        return ProtocolSession.connect(
            ws_url,
            connect_timeout=cfg.connect_timeout,
            call_timeout=cfg.call_timeout,
            settle=cfg.context_settle,
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Passes
    # ─────────────────────────────────────────────────────────────────────────

    def discover_once(self) -> bool:
        """One discovery + reconciliation pass. Returns True if membership changed."""
        with self._discover_gate:
            ports = self.get_ports()
            candidates = discover_targets(
                ports,
                host=self.config.host,
                timeout=self.config.http_timeout,
                fetch=self._fetch,
            )
            with self._lock:
                self._last_scan_ms = _now_ms()
                self._last_candidates = len(candidates)

            changed = self.registry.reconcile(candidates)
            with self._lock:
                if self._watched_id is not None and self._watched_id not in self.registry:
                    self._watched_id = None
            if changed:
                self.broadcast_list()
            return changed

    def poll_once(self) -> int:
        """Capture snapshots; returns the number of snapshot_changed events emitted."""
        with self._poll_gate:
            with self._lock:
                watched = self._watched_id
            if watched is not None:
                entry = self.registry.get(watched)
                entries = [entry] if entry is not None else []
            else:
                entries = self.registry.entries()
            if not entries:
                return 0

            with ThreadPoolExecutor(max_workers=min(8, len(entries)), thread_name_prefix="cascade-poll") as pool:
                outcomes = list(pool.map(self._poll_entry, entries))

            changed = sum(1 for snap_changed, _ in outcomes if snap_changed)
            if any(list_dirty for _, list_dirty in outcomes):
                self.broadcast_list()
            return changed

    def _poll_entry(self, entry: Cascade) -> tuple[bool, bool]:
        """Returns (snapshot_changed, list_dirty)."""
        if entry.state is EntryState.CLOSED or entry.shape is None:
            return False, False
        if not entry.session.is_open:
            return False, self.registry.drop(entry.id, expected=entry)

        meta = entry.metadata
        try:
            snap = capture_snapshot(
                entry.session,
                entry.shape,
                root_element_id=meta.root_element_id,
                root_selector=meta.root_selector,
            )
        except CascadeError as exc:
            logger.info("snapshot_failed id=%s err=%s", entry.id, exc)
            return False, False
        except Exception:
            logger.exception("snapshot_crashed id=%s", entry.id)
            return False, False

        if snap is None:
            return False, False
        digest = snap.hash
        if digest == entry.snapshot_hash:
            return False, False

        entry.snapshot = snap
        entry.snapshot_hash = digest
        list_dirty = False
        if snap.title and snap.title != meta.chat_title:
            meta.chat_title = snap.title
            list_dirty = True
        self.broadcaster.publish_snapshot_changed(entry.id)
        return True, list_dirty

    # ─────────────────────────────────────────────────────────────────────────
    # Events
    # ─────────────────────────────────────────────────────────────────────────

    def list_items(self) -> list[dict[str, Any]]:
        return [e.list_item() for e in self.registry.entries()]

    def broadcast_list(self) -> int:
        return self.broadcaster.publish_list(self.list_items())

    def subscribe(self, callback: Subscriber, *, send_list: bool = True) -> int:
        """Register a subscriber; it receives the current full list right away."""
        token = self.broadcaster.subscribe(callback)
        if send_list:
            try:
                callback({"type": "list_changed", "entries": self.list_items()})
            except Exception as exc:  # noqa: BLE001
                logger.info("subscriber_initial_list_failed token=%s err=%s", token, exc)
        return token

    def unsubscribe(self, token: int) -> None:
        self.broadcaster.unsubscribe(token)

    # ─────────────────────────────────────────────────────────────────────────
    # Operations
    # ─────────────────────────────────────────────────────────────────────────

    def list_entries(self) -> list[dict[str, Any]]:
        return [e.summary() for e in self.registry.entries()]

    def get_snapshot(self, cascade_id: str) -> dict[str, Any] | None:
        entry = self.registry.get(cascade_id)
        if entry is None or entry.snapshot is None:
            return None
        return entry.snapshot.to_dict()

    def get_styles(self, cascade_id: str) -> dict[str, Any] | None:
        entry = self.registry.get(cascade_id)
        if entry is None:
            return None
        return {"css": entry.css or ""}

    def active_snapshot(self) -> dict[str, Any] | None:
        """Snapshot of the focused window's cascade (or the first one) for single-view clients."""
        entries = self.registry.entries()
        if not entries:
            return None
        entry = next((e for e in entries if e.metadata.is_active), entries[0])
        return entry.snapshot.to_dict() if entry.snapshot is not None else None

    def set_watched(self, cascade_id: str | None) -> bool:
        if cascade_id is None:
            with self._lock:
                self._watched_id = None
            return True
        entry = self.registry.get(cascade_id)
        if entry is None:
            return False
        with self._lock:
            self._watched_id = entry.id
        logger.info("watching id=%s window=%s", entry.id, entry.metadata.window_title)
        return True

    def watched_id(self) -> str | None:
        with self._lock:
            return self._watched_id

    def send_message(self, cascade_id: str, text: str) -> dict[str, Any]:
        entry = self.registry.get(cascade_id)
        if entry is None:
            return {"ok": False, "reason": "not found"}
        return dispatcher.send_message(entry, text)

    def send_new_conversation(self, cascade_id: str) -> dict[str, Any]:
        entry = self.registry.get(cascade_id)
        if entry is None:
            return {"ok": False, "reason": "not found"}
        return dispatcher.send_new_conversation(entry)

    def set_ports(self, ports: list[Any]) -> list[int]:
        cleaned = normalize_ports(ports)
        if cleaned:
            with self._lock:
                self._ports = cleaned
            logger.info("ports_set ports=%s", cleaned)
        return self.get_ports()

    def get_ports(self) -> list[int]:
        with self._lock:
            return list(self._ports)

    def discovery_status(self) -> dict[str, Any]:
        with self._lock:
            last_scan = self._last_scan_ms
            candidates = self._last_candidates
            ports = list(self._ports)
            watched = self._watched_id
        return {
            "lastScan": last_scan,
            "portsScanned": ports,
            "cascadesFound": len(self.registry),
            "connected": candidates > 0,
            "running": self.is_running(),
            **({"watched": watched} if watched else {}),
        }


__all__ = ["CascadeEngine"]
