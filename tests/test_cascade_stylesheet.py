from __future__ import annotations

from mirror_servers.cascade.stylesheet import (
    build_scoped_css,
    scope_rule_text,
    scope_selector,
    split_selector_list,
)


def test_split_selector_list_respects_parentheses() -> None:
    assert split_selector_list("a, b:is(.x, .y), c") == ["a", " b:is(.x, .y)", " c"]


def test_scope_selector_retargets_document_roots() -> None:
    assert scope_selector("body") == "#cascade"
    assert scope_selector("html .monaco-workbench") == "#cascade .monaco-workbench"
    assert scope_selector(":root") == "#cascade"
    assert scope_selector(".message") == "#cascade .message"
    assert scope_selector("#cascade .already") == "#cascade .already"
    assert scope_selector(".tbody-row") == "#cascade .tbody-row"


def test_scope_rule_text_only_touches_global_selectors() -> None:
    assert scope_rule_text("body { margin: 0; }") == "#cascade { margin: 0; }"
    assert scope_rule_text(".bubble { color: red; }") == ".bubble { color: red; }"


def test_build_scoped_css_default_mode_keeps_local_selectors() -> None:
    rules = [
        {"kind": "style", "selector": "body", "body": "color: red;", "text": "body { color: red; }"},
        {"kind": "style", "selector": ".a", "body": "margin: 0;", "text": ".a { margin: 0; }"},
        {"kind": "raw", "text": "@font-face { font-family: X; }"},
    ]
    css = build_scoped_css(rules)
    assert "#cascade { color: red; }" in css
    assert ".a { margin: 0; }" in css
    assert "@font-face { font-family: X; }" in css


def test_build_scoped_css_scope_all_nests_every_selector() -> None:
    rules = [
        {"kind": "style", "selector": ".a, body > .b", "body": "margin: 0;"},
        {
            "kind": "media",
            "condition": "(max-width: 600px)",
            "rules": [{"kind": "style", "selector": ".c", "body": "display: none;"}],
        },
        {"kind": "media", "condition": "print", "rules": []},
        "garbage",
    ]
    css = build_scoped_css(rules, scope="#mirror", scope_all=True)
    assert "#mirror .a, #mirror > .b { margin: 0; }" in css
    assert "@media (max-width: 600px) { #mirror .c { display: none; } }" in css
    assert "print" not in css
