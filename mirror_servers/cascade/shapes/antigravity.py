from __future__ import annotations

from typing import Any

from .. import probes
from ..titles import pick_title
from .base import ChatShape, candidates


class AntigravityShape(ChatShape):
    """Antigravity agent panel: a `#cascade` root in the workbench document."""

    name = "antigravity"
    fallback_title = "Agent"

    def metadata_probe(self) -> str:
        return probes.antigravity_metadata_probe()

    def infer_title(self, value: dict[str, Any]) -> str:
        title = pick_title(
            candidates(value, "explicitTitle"),
            candidates(value, "messageCandidates"),
            candidates(value, "headingCandidates"),
        )
        return title or self.fallback_title

    def snapshot_probe(self, *, root_element_id: str | None, root_selector: str | None) -> str:
        return probes.antigravity_snapshot_probe(root_element_id=root_element_id, root_selector=root_selector)
