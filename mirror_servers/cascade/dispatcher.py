"""Inbound control actions against a tracked cascade.

Best-effort automation of a UI we do not control: every outcome is reported as
`{ok: True}` or `{ok: False, reason}`; nothing here raises to the caller and
nothing is retried automatically.
"""

from __future__ import annotations

import logging
from typing import Any

from .errors import CascadeError, InjectionFailure
from .probes import FOCUS_EDITOR_PROBE, inject_text_probe
from .registry import Cascade, EntryState

logger = logging.getLogger("cascade.mirror.dispatcher")

# CDP Input modifiers bitmask.
_MOD_CTRL = 2
_MOD_META = 4
_MOD_SHIFT = 8


def _ok() -> dict[str, Any]:
    return {"ok": True}


def _fail(reason: str) -> dict[str, Any]:
    return {"ok": False, "reason": reason}


def _ensure_usable(entry: Cascade) -> None:
    if entry.state is EntryState.CLOSED or not entry.session.is_open:
        raise InjectionFailure("session closed")


def send_message(entry: Cascade, text: str) -> dict[str, Any]:
    """Type `text` into the cascade's composer and submit it."""
    if not isinstance(text, str) or not text.strip():
        return _fail("empty message")
    try:
        _ensure_usable(entry)
        session = entry.session
        with session.probe_lock:
            value = session.evaluate(inject_text_probe(text), context_id=session.root_context_id)
        if not isinstance(value, dict):
            raise InjectionFailure("no result from page")
        if value.get("ok") is not True:
            raise InjectionFailure(str(value.get("reason") or "injection had no effect"))
    except InjectionFailure as exc:
        logger.info("send_failed id=%s reason=%s", entry.id, exc.reason)
        return _fail(exc.reason)
    except CascadeError as exc:
        logger.info("send_failed id=%s err=%s", entry.id, exc)
        return _fail(str(exc))
    except Exception as exc:  # noqa: BLE001
        logger.exception("send_crashed id=%s", entry.id)
        return _fail(str(exc) or type(exc).__name__)

    logger.info("send_ok id=%s via=%s chars=%d", entry.id, value.get("via"), len(text))
    return _ok()


def _key_event(kind: str, modifiers: int) -> dict[str, Any]:
    return {
        "type": kind,
        "modifiers": modifiers,
        "key": "L",
        "code": "KeyL",
        "windowsVirtualKeyCode": 76,
        "nativeVirtualKeyCode": 76,
    }


def send_new_conversation(entry: Cascade) -> dict[str, Any]:
    """Start a fresh conversation via the workbench shortcut (Cmd/Ctrl+Shift+L)."""
    try:
        _ensure_usable(entry)
        session = entry.session
        with session.probe_lock:
            info = session.evaluate(FOCUS_EDITOR_PROBE, context_id=session.root_context_id)
            if not isinstance(info, dict) or not info.get("focused"):
                raise InjectionFailure("no editor found")
            modifiers = (_MOD_META if info.get("mac") else _MOD_CTRL) | _MOD_SHIFT
            session.call("Input.dispatchKeyEvent", _key_event("rawKeyDown", modifiers))
            session.call("Input.dispatchKeyEvent", _key_event("keyUp", modifiers))
    except InjectionFailure as exc:
        logger.info("new_conversation_failed id=%s reason=%s", entry.id, exc.reason)
        return _fail(exc.reason)
    except CascadeError as exc:
        logger.info("new_conversation_failed id=%s err=%s", entry.id, exc)
        return _fail(str(exc))
    except Exception as exc:  # noqa: BLE001
        logger.exception("new_conversation_crashed id=%s", entry.id)
        return _fail(str(exc) or type(exc).__name__)

    logger.info("new_conversation_ok id=%s", entry.id)
    return _ok()


__all__ = ["send_message", "send_new_conversation"]
