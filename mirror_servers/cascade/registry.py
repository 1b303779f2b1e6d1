"""Session registry: identity -> live cascade entry.

The map is only ever replaced wholesale. `reconcile()` builds the next map
completely (reusing live entries, connecting new ones) and swaps it in with a
single assignment, so readers always see either the previous or the next
state, never a half-reconciled one. Only one reconcile/drop runs at a time.
"""

from __future__ import annotations

import enum
import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from .cdp_session import ProtocolSession
from .discovery import TargetDescriptor
from .errors import CascadeError, ShapeNotFound
from .extractor import extract_metadata
from .hashing import session_identity
from .shapes import ChatShape, ShapeMatch, ShapeRegistry, shape_registry
from .snapshot import Snapshot, capture_styles

logger = logging.getLogger("cascade.mirror.registry")

SessionFactory = Callable[[str], ProtocolSession]


class EntryState(str, enum.Enum):
    CONNECTING = "connecting"
    IDENTIFYING = "identifying"
    ACTIVE = "active"
    REFRESHING = "refreshing"
    CLOSED = "closed"


@dataclass
class CascadeMetadata:
    window_title: str = ""
    chat_title: str = ""
    is_active: bool = False
    app: str = ""
    root_element_id: str | None = None
    root_selector: str | None = None


@dataclass(eq=False)
class Cascade:
    id: str
    session: ProtocolSession
    metadata: CascadeMetadata = field(default_factory=CascadeMetadata)
    shape: ChatShape | None = None
    snapshot: Snapshot | None = None
    snapshot_hash: str | None = None
    css: str = ""
    state: EntryState = EntryState.CONNECTING

    def apply_match(self, match: ShapeMatch, shape: ChatShape, *, window_title: str | None = None) -> None:
        meta = self.metadata
        if window_title is not None:
            meta.window_title = window_title
        meta.chat_title = match.chat_title
        meta.is_active = match.is_active
        meta.app = match.app
        meta.root_element_id = match.root_element_id
        meta.root_selector = match.root_selector
        self.shape = shape

    def summary(self) -> dict[str, Any]:
        return {"id": self.id, "title": self.metadata.chat_title, "active": bool(self.metadata.is_active)}

    def list_item(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.metadata.chat_title,
            "window": self.metadata.window_title,
            "active": bool(self.metadata.is_active),
        }

    def close(self) -> None:
        if self.state is EntryState.CLOSED:
            return
        self.state = EntryState.CLOSED
        try:
            self.session.close()
        except Exception as exc:  # noqa: BLE001
            logger.debug("session_close_failed id=%s err=%s", self.id, exc)


class CascadeRegistry:
    def __init__(self, connect: SessionFactory, *, shapes: ShapeRegistry | None = None) -> None:
        self._connect = connect
        self._shapes = shapes if shapes is not None else shape_registry
        self._entries: dict[str, Cascade] = {}
        self._writer_lock = threading.Lock()

    # ─────────────────────────────────────────────────────────────────────────
    # Reads (lock-free: the map reference is swapped, never mutated)
    # ─────────────────────────────────────────────────────────────────────────

    def get(self, cascade_id: str) -> Cascade | None:
        return self._entries.get(str(cascade_id or ""))

    def entries(self) -> list[Cascade]:
        return list(self._entries.values())

    def ids(self) -> set[str]:
        return set(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, cascade_id: object) -> bool:
        return cascade_id in self._entries

    # ─────────────────────────────────────────────────────────────────────────
    # Writes
    # ─────────────────────────────────────────────────────────────────────────

    def reconcile(self, candidates: Iterable[TargetDescriptor]) -> bool:
        """Rebuild the map from one discovery pass. Returns True if membership changed."""
        with self._writer_lock:
            current = self._entries
            nxt: dict[str, Cascade] = {}

            for target in candidates:
                cid = session_identity(target.ws_url)
                if cid in nxt:
                    continue
                existing = current.get(cid)
                if existing is not None and existing.state is not EntryState.CLOSED and existing.session.is_open:
                    if self._refresh(existing, target):
                        nxt[cid] = existing
                        continue
                if existing is not None:
                    # Never two live sessions for one identity.
                    existing.close()
                entry = self._create(cid, target)
                if entry is not None:
                    nxt[cid] = entry

            self._entries = nxt

            for cid, entry in current.items():
                if nxt.get(cid) is not entry:
                    if cid not in nxt:
                        logger.info("cascade_removed id=%s title=%s", cid, entry.metadata.chat_title)
                    entry.close()

            return set(current) != set(nxt)

    def drop(self, cascade_id: str, *, expected: Cascade | None = None) -> bool:
        """Remove one entry (transport lost) via the same copy-then-swap path.

        With `expected`, only that exact entry is removed: if a reconcile already
        replaced it under the same id, the replacement stays.
        """
        with self._writer_lock:
            current = self._entries
            entry = current.get(cascade_id)
            if entry is None or (expected is not None and entry is not expected):
                return False
            self._entries = {cid: e for cid, e in current.items() if cid != cascade_id}
        logger.info("cascade_dropped id=%s title=%s", cascade_id, entry.metadata.chat_title)
        entry.close()
        return True

    def close_all(self) -> None:
        with self._writer_lock:
            current = self._entries
            self._entries = {}
        for entry in current.values():
            entry.close()

    # ─────────────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────────────

    def _refresh(self, entry: Cascade, target: TargetDescriptor) -> bool:
        entry.state = EntryState.REFRESHING
        try:
            match = extract_metadata(entry.session, self._shapes)
        except CascadeError as exc:
            logger.info("cascade_refresh_failed id=%s err=%s", entry.id, exc)
            match = None
        if match is None:
            return False
        shape = self._shapes.get(match.app)
        if shape is None:
            return False
        entry.apply_match(match, shape, window_title=target.title)
        entry.state = EntryState.ACTIVE
        return True

    def _create(self, cid: str, target: TargetDescriptor) -> Cascade | None:
        logger.info("cascade_connecting id=%s port=%s window=%s", cid, target.port, target.title)
        try:
            session = self._connect(target.ws_url)
        except CascadeError as exc:
            logger.info("cascade_connect_failed id=%s err=%s", cid, exc)
            return None
        except Exception as exc:  # noqa: BLE001
            logger.warning("cascade_connect_error id=%s err=%s", cid, exc)
            return None

        entry = Cascade(id=cid, session=session, metadata=CascadeMetadata(window_title=target.title))
        entry.state = EntryState.IDENTIFYING
        try:
            match = extract_metadata(session, self._shapes)
            if match is None:
                raise ShapeNotFound(f"no chat UI in {target.title or target.ws_url}")
            shape = self._shapes.get(match.app)
            if shape is None:
                raise ShapeNotFound(f"unregistered shape: {match.app}")
            entry.apply_match(match, shape)
            # Full stylesheet is large: captured once per entry lifetime.
            entry.css = capture_styles(session, shape)
        except ShapeNotFound as exc:
            logger.info("cascade_not_chat id=%s reason=%s", cid, exc)
            entry.close()
            return None
        except Exception as exc:  # noqa: BLE001
            logger.info("cascade_identify_failed id=%s err=%s", cid, exc)
            entry.close()
            return None

        entry.state = EntryState.ACTIVE
        logger.info("cascade_added id=%s app=%s title=%s", cid, entry.metadata.app, entry.metadata.chat_title)
        return entry


__all__ = ["Cascade", "CascadeMetadata", "CascadeRegistry", "EntryState", "SessionFactory"]
