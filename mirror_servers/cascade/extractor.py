from __future__ import annotations

import logging

from .cdp_session import ProtocolSession
from .errors import ProtocolError, StaleContextError
from .shapes import ShapeMatch, ShapeRegistry, shape_registry

logger = logging.getLogger("cascade.mirror.extractor")


def _identify_in_context(session: ProtocolSession, context_id: int | None, shapes: ShapeRegistry) -> ShapeMatch | None:
    for shape in shapes:
        try:
            match = shape.identify(session, context_id=context_id)
        except StaleContextError:
            raise
        except ProtocolError as exc:
            logger.debug("shape_probe_failed shape=%s ctx=%s err=%s", shape.name, context_id, exc)
            continue
        if match is not None:
            return match
    return None


def extract_metadata(session: ProtocolSession, shapes: ShapeRegistry | None = None) -> ShapeMatch | None:
    """Find the chat root in any of the session's execution contexts.

    The cached root context is tried first. If it fails or no longer holds a
    chat root, the cache is dropped and every known context is scanned in order.
    Transport errors propagate; per-context protocol errors do not.
    """
    registry = shapes if shapes is not None else shape_registry

    with session.probe_lock:
        cached = session.root_context_id
        if cached is not None:
            try:
                match = _identify_in_context(session, cached, registry)
            except StaleContextError:
                logger.debug("root_context_stale url=%s ctx=%s", session.ws_url, cached)
                match = None
            if match is not None:
                return match
            session.root_context_id = None

        context_ids = session.context_ids()
        if not context_ids:
            # No context notifications yet: the page's default context is still worth a try.
            context_ids_or_default: list[int | None] = [None]
        else:
            context_ids_or_default = [cid for cid in context_ids if cid != cached]

        for cid in context_ids_or_default:
            try:
                match = _identify_in_context(session, cid, registry)
            except StaleContextError:
                continue
            if match is not None:
                session.root_context_id = cid
                return match
    return None


__all__ = ["extract_metadata"]
