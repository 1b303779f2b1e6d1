from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any

logger = logging.getLogger("cascade.mirror.broadcaster")

Subscriber = Callable[[dict[str, Any]], None]

LIST_CHANGED = "list_changed"
SNAPSHOT_CHANGED = "snapshot_changed"


class ChangeBroadcaster:
    """Best-effort, at-most-once fan-out of engine events.

    No replay buffer: late subscribers are expected to ask for the current list.
    A subscriber that raises is logged and skipped for that event only.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: dict[int, Subscriber] = {}
        self._next_token = 1

    def subscribe(self, callback: Subscriber) -> int:
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._subscribers[token] = callback
        return token

    def unsubscribe(self, token: int) -> None:
        with self._lock:
            self._subscribers.pop(token, None)

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, event: dict[str, Any]) -> int:
        with self._lock:
            subscribers = list(self._subscribers.items())
        delivered = 0
        for token, cb in subscribers:
            try:
                cb(event)
                delivered += 1
            except Exception as exc:  # noqa: BLE001
                logger.info("subscriber_failed token=%s type=%s err=%s", token, event.get("type"), exc)
        return delivered

    def publish_list(self, entries: list[dict[str, Any]]) -> int:
        return self.publish({"type": LIST_CHANGED, "entries": entries})

    def publish_snapshot_changed(self, cascade_id: str) -> int:
        return self.publish({"type": SNAPSHOT_CHANGED, "id": cascade_id})


__all__ = ["LIST_CHANGED", "SNAPSHOT_CHANGED", "ChangeBroadcaster", "Subscriber"]
