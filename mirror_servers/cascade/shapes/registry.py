from __future__ import annotations

from .base import ChatShape


class ShapeRegistry:
    """Ordered list of chat shapes; the first shape that identifies a root wins."""

    def __init__(self, shapes: list[ChatShape] | None = None) -> None:
        self._shapes: list[ChatShape] = list(shapes or [])

    def register(self, shape: ChatShape) -> None:
        self._shapes = [s for s in self._shapes if s.name != shape.name]
        self._shapes.append(shape)

    def available(self) -> list[str]:
        return [s.name for s in self._shapes]

    def get(self, name: str) -> ChatShape | None:
        key = str(name or "").strip().lower()
        for shape in self._shapes:
            if shape.name == key:
                return shape
        return None

    def __iter__(self):
        return iter(list(self._shapes))

    def __len__(self) -> int:
        return len(self._shapes)


def default_shape_registry() -> ShapeRegistry:
    from .antigravity import AntigravityShape
    from .cursor import CursorShape

    return ShapeRegistry([AntigravityShape(), CursorShape()])


shape_registry = default_shape_registry()
