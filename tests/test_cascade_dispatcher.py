from __future__ import annotations

from typing import Any

from cascade_fakes import FakePage, FakeSession

from mirror_servers.cascade import dispatcher
from mirror_servers.cascade.errors import ProtocolError
from mirror_servers.cascade.registry import Cascade, EntryState


def _entry(page: FakePage | None = None) -> Cascade:
    session = FakeSession("ws://t/A", page or FakePage())
    session.root_context_id = 1
    return Cascade(id="abc123", session=session, state=EntryState.ACTIVE)


def test_send_message_success_evaluates_in_root_context() -> None:
    entry = _entry()
    assert dispatcher.send_message(entry, "run the tests") == {"ok": True}
    expr, ctx = entry.session.evaluations[-1]
    assert ctx == 1
    assert '"run the tests"' in expr


def test_send_message_rejects_empty_text() -> None:
    entry = _entry()
    assert dispatcher.send_message(entry, "   ") == {"ok": False, "reason": "empty message"}
    assert entry.session.evaluations == []


def test_send_message_reports_page_reason() -> None:
    page = FakePage()
    page.inject_result = {"ok": False, "reason": "no editor found"}
    assert dispatcher.send_message(_entry(page), "hello") == {"ok": False, "reason": "no editor found"}


def test_send_message_handles_missing_result() -> None:
    page = FakePage()
    page.inject_result = None
    result = dispatcher.send_message(_entry(page), "hello")
    assert result["ok"] is False
    assert result["reason"]


def test_send_message_on_closed_session() -> None:
    entry = _entry()
    entry.session.closed = True
    assert dispatcher.send_message(entry, "hello") == {"ok": False, "reason": "session closed"}


def test_send_message_converts_protocol_errors() -> None:
    class Throwing(FakePage):
        def evaluate(self, expression: str, context_id: int | None) -> Any:
            raise ProtocolError("evaluation threw: TypeError: x is null")

    result = dispatcher.send_message(_entry(Throwing()), "hello")
    assert result == {"ok": False, "reason": "evaluation threw: TypeError: x is null"}


def test_new_conversation_dispatches_shortcut() -> None:
    entry = _entry()
    assert dispatcher.send_new_conversation(entry) == {"ok": True}
    calls = entry.session.calls
    assert [c[0] for c in calls] == ["Input.dispatchKeyEvent", "Input.dispatchKeyEvent"]
    assert [c[1]["type"] for c in calls] == ["rawKeyDown", "keyUp"]
    assert calls[0][1]["modifiers"] == 2 | 8
    assert calls[0][1]["key"] == "L"


def test_new_conversation_uses_meta_on_mac() -> None:
    page = FakePage()
    page.focus_result = {"focused": True, "mac": True}
    entry = _entry(page)
    dispatcher.send_new_conversation(entry)
    assert entry.session.calls[0][1]["modifiers"] == 4 | 8


def test_new_conversation_without_editor() -> None:
    page = FakePage()
    page.focus_result = {"focused": False}
    entry = _entry(page)
    assert dispatcher.send_new_conversation(entry) == {"ok": False, "reason": "no editor found"}
    assert entry.session.calls == []
