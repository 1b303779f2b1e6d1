from __future__ import annotations

import re
from collections.abc import Iterable

MIN_TITLE_LEN = 3
MAX_TITLE_LEN = 80

# Workbench chrome that naive heuristics keep surfacing instead of conversation text.
_BOILERPLATE = [
    re.compile(r"^new chat", re.IGNORECASE),
    re.compile(r"^new conversation", re.IGNORECASE),
    re.compile(r"^past chats?", re.IGNORECASE),
    re.compile(r"^view all", re.IGNORECASE),
    re.compile(r"^plan", re.IGNORECASE),
    re.compile(r"^local$", re.IGNORECASE),
    re.compile(r"^run everything", re.IGNORECASE),
    re.compile(r"^success$", re.IGNORECASE),
]


def normalize_title(value: object) -> str:
    return re.sub(r"\s+", " ", str(value or "")).strip()


def is_good_title(value: object) -> bool:
    text = normalize_title(value)
    if len(text) < MIN_TITLE_LEN or len(text) > MAX_TITLE_LEN:
        return False
    return not any(rx.search(text) for rx in _BOILERPLATE)


def pick_title(*groups: Iterable[object] | object | None, first_line: bool = False) -> str | None:
    """Return the first valid candidate across groups, in priority order.

    Each group is either a single candidate or an iterable of candidates.
    """
    for group in groups:
        if group is None:
            continue
        items = [group] if isinstance(group, str) or not isinstance(group, Iterable) else list(group)
        for item in items:
            raw = str(item or "")
            if first_line:
                raw = raw.strip().split("\n")[0]
            if is_good_title(raw):
                return normalize_title(raw)
    return None


__all__ = ["MAX_TITLE_LEN", "MIN_TITLE_LEN", "is_good_title", "normalize_title", "pick_title"]
