from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..cdp_session import ProtocolSession


@dataclass(frozen=True)
class ShapeMatch:
    """A recognized chat UI inside one execution context."""

    app: str
    context_id: int | None
    root_element_id: str | None
    root_selector: str | None
    chat_title: str
    is_active: bool = False


class ChatShape(ABC):
    """One host-UI layout that can contain a chat conversation."""

    name: str
    fallback_title: str
    # Cursor's panel lives inside the workbench, so every selector must be scoped.
    scope_all_styles: bool = False

    @abstractmethod
    def metadata_probe(self) -> str:
        """Script that reports whether the shape's chat root exists (see probes.py)."""

    @abstractmethod
    def infer_title(self, value: dict[str, Any]) -> str:
        """Pick a display title from the probe's raw candidates."""

    @abstractmethod
    def snapshot_probe(self, *, root_element_id: str | None, root_selector: str | None) -> str:
        """Script that serializes the chat root (see probes.py)."""

    def match(self, value: Any, *, context_id: int | None) -> ShapeMatch | None:
        """Pure interpretation of a metadata probe result."""
        if not isinstance(value, dict) or value.get("found") is not True:
            return None
        root_id = value.get("rootElementId")
        root_sel = value.get("rootSelector")
        return ShapeMatch(
            app=self.name,
            context_id=context_id,
            root_element_id=str(root_id) if isinstance(root_id, str) and root_id else None,
            root_selector=str(root_sel) if isinstance(root_sel, str) and root_sel else None,
            chat_title=self.infer_title(value),
            is_active=bool(value.get("isActive")),
        )

    def identify(self, session: ProtocolSession, *, context_id: int | None) -> ShapeMatch | None:
        value = session.evaluate(self.metadata_probe(), context_id=context_id)
        return self.match(value, context_id=context_id)


def candidates(value: dict[str, Any], key: str) -> list[str]:
    raw = value.get(key)
    if isinstance(raw, list):
        return [str(x) for x in raw if isinstance(x, str)]
    if isinstance(raw, str) and raw:
        return [raw]
    return []
