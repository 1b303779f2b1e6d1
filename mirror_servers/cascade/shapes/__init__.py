"""
Host-UI shapes that can contain a chat conversation.

Each shape knows how to recognize its chat root, infer a title and serialize the
root; the registry keeps them in priority order.
"""

from __future__ import annotations

from .base import ChatShape, ShapeMatch
from .registry import ShapeRegistry, shape_registry

__all__ = ["ChatShape", "ShapeMatch", "ShapeRegistry", "shape_registry"]
