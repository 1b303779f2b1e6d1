from __future__ import annotations

from typing import Any

import pytest
from cascade_fakes import FakePage, FakeSession, StubShape

from mirror_servers.cascade.errors import ProtocolError, StaleContextError
from mirror_servers.cascade.hashing import rolling_hash
from mirror_servers.cascade.snapshot import Snapshot, capture_snapshot, capture_styles


def test_capture_snapshot_uses_root_context_and_valid_title() -> None:
    page = FakePage()
    page.snapshot_titles = ["New Chat", "Investigate flaky CI job"]
    session = FakeSession("ws://t/A", page)
    session.root_context_id = 1

    snap = capture_snapshot(session, StubShape(), root_element_id="root", root_selector=None)
    assert snap is not None
    assert snap.html == '<div id="root">hello</div>'
    assert snap.title == "Investigate flaky CI job"
    assert snap.hash == rolling_hash(snap.html)
    assert session.evaluations[-1][1] == 1
    assert snap.to_dict() == {
        "html": '<div id="root">hello</div>',
        "bodyBg": "rgb(24, 24, 24)",
        "bodyColor": "rgb(230, 230, 230)",
        "title": "Investigate flaky CI job",
    }


def test_capture_snapshot_returns_none_when_root_is_gone() -> None:
    session = FakeSession("ws://t/A", FakePage(html=None))
    assert capture_snapshot(session, StubShape(), root_element_id="root", root_selector=None) is None


def test_capture_snapshot_stale_context_clears_cache() -> None:
    page = FakePage()
    page.stale_contexts = {5}
    session = FakeSession("ws://t/A", page)
    session.root_context_id = 5
    with pytest.raises(StaleContextError):
        capture_snapshot(session, StubShape(), root_element_id="root", root_selector=None)
    assert session.root_context_id is None


def test_snapshot_to_dict_omits_missing_title() -> None:
    assert "title" not in Snapshot(html="<div></div>").to_dict()


def test_capture_styles_scopes_rules() -> None:
    session = FakeSession("ws://t/A", FakePage())
    assert capture_styles(session, StubShape()) == "#cascade { color: red; }"
    assert capture_styles(session, StubShape(), scope="#mirror") == "#mirror { color: red; }"


def test_capture_styles_degrades_to_empty_on_probe_failure() -> None:
    class NoStyles(FakePage):
        def evaluate(self, expression: str, context_id: int | None) -> Any:
            raise ProtocolError("evaluation threw: SecurityError")

    session = FakeSession("ws://t/A", NoStyles())
    assert capture_styles(session, StubShape()) == ""
