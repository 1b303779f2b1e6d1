from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any

from .cdp_session import ProtocolSession
from .errors import ProtocolError, StaleContextError
from .hashing import rolling_hash
from .probes import STYLESHEET_DUMP_PROBE
from .shapes import ChatShape
from .stylesheet import DEFAULT_SCOPE, build_scoped_css
from .titles import pick_title

logger = logging.getLogger("cascade.mirror.snapshot")


@dataclass
class Snapshot:
    html: str
    body_bg: str = ""
    body_color: str = ""
    title: str | None = None
    captured_at: float = field(default_factory=time.time)

    @property
    def hash(self) -> str:
        return rolling_hash(self.html)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"html": self.html, "bodyBg": self.body_bg, "bodyColor": self.body_color}
        if self.title:
            out["title"] = self.title
        return out


def capture_snapshot(
    session: ProtocolSession,
    shape: ChatShape,
    *,
    root_element_id: str | None,
    root_selector: str | None,
) -> Snapshot | None:
    """Serialize the chat root from the cached root context.

    Returns None when the root is gone (probe reports an error). A stale root
    context clears the cache so the next discovery pass rescans.
    """
    script = shape.snapshot_probe(root_element_id=root_element_id, root_selector=root_selector)
    with session.probe_lock:
        context_id = session.root_context_id
        try:
            value = session.evaluate(script, context_id=context_id)
        except StaleContextError:
            session.root_context_id = None
            raise
    if not isinstance(value, dict) or value.get("error") or not isinstance(value.get("html"), str):
        return None
    raw_titles = value.get("titleCandidates")
    titles = [t for t in raw_titles if isinstance(t, str)] if isinstance(raw_titles, list) else []
    return Snapshot(
        html=value["html"],
        body_bg=str(value.get("bodyBg") or ""),
        body_color=str(value.get("bodyColor") or ""),
        title=pick_title(titles, first_line=shape.scope_all_styles),
    )


def capture_styles(session: ProtocolSession, shape: ChatShape, *, scope: str = DEFAULT_SCOPE) -> str:
    """Capture the page stylesheet once, scoped under the mirrored root.

    Cross-origin sheets are skipped inside the probe; any probe failure yields an
    empty stylesheet rather than failing entry creation.
    """
    with session.probe_lock:
        try:
            value = session.evaluate(STYLESHEET_DUMP_PROBE, context_id=session.root_context_id)
        except ProtocolError as exc:
            logger.info("styles_capture_failed url=%s err=%s", session.ws_url, exc)
            return ""
    if not isinstance(value, dict):
        return ""
    rules = value.get("rules") if isinstance(value.get("rules"), list) else []
    skipped = value.get("skipped")
    if isinstance(skipped, int) and skipped:
        logger.debug("styles_skipped_sheets url=%s count=%d", session.ws_url, skipped)
    return build_scoped_css(rules, scope=scope, scope_all=shape.scope_all_styles)


__all__ = ["Snapshot", "capture_snapshot", "capture_styles"]
