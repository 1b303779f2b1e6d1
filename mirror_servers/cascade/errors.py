"""Error taxonomy for the cascade mirror engine.

Every per-target failure maps onto one of these so loops can isolate it:
- TransportUnreachable: connect/query timeout or refusal (target treated as absent)
- ProtocolError: malformed response, CDP error, evaluation exception (retried next cycle)
- StaleContextError: cached execution context no longer valid (self-heals via rescan)
- SessionClosedError: a pending call was abandoned because the transport closed
- ShapeNotFound: no known chat UI shape recognized (connection discarded)
- InjectionFailure: no editor/control located, or no observable effect
"""

from __future__ import annotations

from typing import Any


class CascadeError(RuntimeError):
    """Base class for engine errors."""


class TransportUnreachable(CascadeError):
    pass


class SessionClosedError(TransportUnreachable):
    pass


class ProtocolError(CascadeError):
    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details = details or {}


class StaleContextError(ProtocolError):
    pass


class ShapeNotFound(CascadeError):
    pass


class InjectionFailure(CascadeError):
    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


__all__ = [
    "CascadeError",
    "InjectionFailure",
    "ProtocolError",
    "SessionClosedError",
    "ShapeNotFound",
    "StaleContextError",
    "TransportUnreachable",
]
