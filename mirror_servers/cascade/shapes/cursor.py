from __future__ import annotations

from typing import Any

from .. import probes
from ..titles import pick_title
from .base import ChatShape, candidates


class CursorShape(ChatShape):
    """Cursor AI chat pane (`workbench.panel.aichat*`)."""

    name = "cursor"
    fallback_title = "Cursor Chat"
    scope_all_styles = True

    def metadata_probe(self) -> str:
        return probes.cursor_metadata_probe()

    def infer_title(self, value: dict[str, Any]) -> str:
        # Tab labels and history items can be multi-line (label + timestamp).
        title = pick_title(
            candidates(value, "explicitTitle"),
            candidates(value, "historyTitle"),
            candidates(value, "messageCandidates"),
            candidates(value, "headerTitle"),
            first_line=True,
        )
        return title or self.fallback_title

    def snapshot_probe(self, *, root_element_id: str | None, root_selector: str | None) -> str:
        return probes.cursor_snapshot_probe(root_element_id=root_element_id, root_selector=root_selector)
