"""Rebuild a host page's stylesheet so it only applies under the mirrored root.

Input is the structured rule dump produced by `probes.STYLESHEET_DUMP_PROBE`:
- {kind: "style", selector, body, text}
- {kind: "media" | "supports", condition, rules: [...]}
- {kind: "raw", text}   (font-face, keyframes, anything else passed through)
"""

from __future__ import annotations

import re
from typing import Any

DEFAULT_SCOPE = "#cascade"

_DELIM_BEFORE = r"(^|[\s>+~,(])"
_DELIM_AFTER = r"(?=[\s>+~.#:\[,{]|$)"
_GLOBAL_IN_SELECTOR = re.compile(_DELIM_BEFORE + r"(:root|html|body)" + _DELIM_AFTER, re.IGNORECASE)
_GLOBAL_IN_RULE_TEXT = re.compile(r"(^|[\s,}])(:root|html|body)(?=[\s,{])", re.IGNORECASE)


def split_selector_list(selector: str) -> list[str]:
    """Split on top-level commas only (`:is(a, b)` stays whole)."""
    parts: list[str] = []
    depth = 0
    buf: list[str] = []
    for ch in selector or "":
        if ch in "([":
            depth += 1
        elif ch in ")]" and depth > 0:
            depth -= 1
        if ch == "," and depth == 0:
            parts.append("".join(buf))
            buf = []
            continue
        buf.append(ch)
    parts.append("".join(buf))
    return parts


def scope_selector(selector: str, scope: str = DEFAULT_SCOPE) -> str:
    """Scope one selector: global roots become the scope, anything else is nested under it."""
    trimmed = (selector or "").strip()
    if not trimmed:
        return trimmed
    if trimmed.startswith(scope) or trimmed.startswith("@"):
        return trimmed
    replaced = _GLOBAL_IN_SELECTOR.sub(lambda m: m.group(1) + scope, trimmed)
    if replaced != trimmed:
        return replaced
    return f"{scope} {trimmed}"


def scope_rule_text(css_text: str, scope: str = DEFAULT_SCOPE) -> str:
    """Only retarget document-root selectors (`body`, `html`, `:root`) inside a rule's text."""
    return _GLOBAL_IN_RULE_TEXT.sub(lambda m: m.group(1) + scope, css_text or "")


def _render_rule(rule: Any, *, scope: str, scope_all: bool) -> str:
    if not isinstance(rule, dict):
        return ""
    kind = rule.get("kind")
    if kind == "style":
        selector = str(rule.get("selector") or "")
        body = str(rule.get("body") or "")
        if not scope_all:
            text = rule.get("text")
            if not isinstance(text, str) or not text:
                text = f"{selector} {{ {body} }}"
            return scope_rule_text(text, scope)
        scoped = ", ".join(s for s in (scope_selector(p, scope) for p in split_selector_list(selector)) if s)
        if not scoped:
            return ""
        return f"{scoped} {{ {body} }}"
    if kind in ("media", "supports"):
        inner_rules = rule.get("rules") if isinstance(rule.get("rules"), list) else []
        inner = "\n".join(
            text for text in (_render_rule(r, scope=scope, scope_all=scope_all) for r in inner_rules) if text
        )
        if not inner:
            return ""
        return f"@{kind} {rule.get('condition') or ''} {{ {inner} }}"
    text = rule.get("text")
    return text if isinstance(text, str) else ""


def build_scoped_css(rules: list[Any], *, scope: str = DEFAULT_SCOPE, scope_all: bool = False) -> str:
    parts = [_render_rule(r, scope=scope, scope_all=scope_all) for r in rules or []]
    return "\n".join(p for p in parts if p)


__all__ = [
    "DEFAULT_SCOPE",
    "build_scoped_css",
    "scope_rule_text",
    "scope_selector",
    "split_selector_list",
]
