"""In-page probe scripts.

These run inside the target's own JS context via Runtime.evaluate, so they stay
opaque string payloads. Each builder documents the value the probe returns; the
Python side never relies on anything beyond that contract.

Title *validation* deliberately happens in Python (see titles.py): probes only
report raw candidate strings.
"""

from __future__ import annotations

import json

PROBE_VERSION = "2026-10-01"

_HELPERS_JS = r"""
    const normalizeText = (value) => (value || '').replace(/\s+/g, ' ').trim();
    const textOf = (el) => el ? normalizeText(el.textContent || el.innerText || '') : '';
    const messageCandidates = (root) => {
        const out = [];
        if (!root) return out;
        const human =
            root.querySelector('[data-message-role="human"]') ||
            root.querySelector('.composer-human-message') ||
            root.querySelector('[class*="user-message"]') ||
            root.querySelector('[class*="human-message"]');
        if (human) {
            const node = human.querySelector('span[data-lexical-text], p, div') || human;
            out.push(textOf(node));
        }
        const node = root.querySelector('span[data-lexical-text], .prose p, p, [class*="message"] p, [class*="message"] div');
        if (node) out.push(textOf(node));
        return out.filter(Boolean);
    };
    const activeTabLabel = () => {
        const bar = document.getElementById('workbench.parts.auxiliarybar') || document.getElementById('workbench.parts.sidebar');
        const scope = bar || document;
        const tab = scope.querySelector(
            '.composite-bar .action-item.checked,' +
            '.composite-bar .action-item[aria-selected="true"],' +
            '.composite-bar .action-item[aria-current="true"],' +
            '[role="tab"].checked,' +
            '[role="tab"][aria-selected="true"],' +
            '[role="tab"][aria-current="true"]'
        );
        const label = tab ? (tab.querySelector('.action-label') || tab) : null;
        return textOf(label);
    };
"""


def antigravity_metadata_probe() -> str:
    """Returns `{found: false}` or
    `{found, rootElementId, rootSelector, explicitTitle, messageCandidates[], headingCandidates[], isActive}`.
    """
    return (
        "(() => {"
        + _HELPERS_JS
        + r"""
    const root = document.getElementById('cascade');
    if (!root) return { found: false };
    const headings = [];
    for (const sel of ['h1', 'h2', 'header', '[class*="title"]']) {
        const el = document.querySelector(sel);
        if (!el) continue;
        const raw = (el.textContent || '').trim();
        if (raw.length > 2 && raw.length < 50) { headings.push(raw); break; }
    }
    return {
        found: true,
        rootElementId: 'cascade',
        rootSelector: '#cascade',
        explicitTitle: textOf(document.querySelector('.text-ide-sidebar-title-color')),
        messageCandidates: messageCandidates(root),
        headingCandidates: headings,
        isActive: document.hasFocus()
    };
})()"""
    )


def cursor_metadata_probe() -> str:
    """Returns `{found: false}` or
    `{found, rootElementId, rootSelector, explicitTitle, historyTitle, messageCandidates[], headerTitle, isActive}`.
    """
    return (
        "(() => {"
        + _HELPERS_JS
        + r"""
    const panel = document.querySelector('[id^="workbench.panel.aichat"]');
    if (!panel) return { found: false };
    const header = panel.querySelector('.pane-header .title') || panel.querySelector('[aria-label*="Chat"]');
    const history = panel.querySelector(
        '.composer-below-chat-history-item[aria-current="true"],' +
        '.composer-below-chat-history-item.active,' +
        '.composer-below-chat-history-item.selected'
    );
    const messagesRoot = panel.querySelector('.composer-messages-container') || panel;
    return {
        found: true,
        rootElementId: panel.id || null,
        rootSelector: '[id^="workbench.panel.aichat"]',
        explicitTitle: activeTabLabel(),
        historyTitle: history ? (history.textContent || '').trim() : '',
        messageCandidates: messageCandidates(messagesRoot),
        headerTitle: header ? (header.textContent || '').trim() : '',
        isActive: document.hasFocus()
    };
})()"""
    )


def antigravity_snapshot_probe(*, root_element_id: str | None, root_selector: str | None) -> str:
    """Returns `{error}` or `{html, bodyBg, bodyColor, titleCandidates[]}`.

    The composer (live input) block is stripped from the clone so in-progress
    keystrokes never register as content changes.
    """
    return (
        "(() => {"
        + _HELPERS_JS
        + f"""
    const rootElementId = {json.dumps(root_element_id)};
    const rootSelector = {json.dumps(root_selector)};
"""
        + r"""
    const root = (rootElementId && document.getElementById(rootElementId)) || (rootSelector && document.querySelector(rootSelector));
    if (!root) return { error: 'root not found' };
    const bodyStyles = window.getComputedStyle(document.body);
    const clone = root.cloneNode(true);
    const editable = clone.querySelector('[contenteditable="true"]');
    if (editable) {
        let block = editable;
        while (block.parentElement && block.parentElement !== clone) block = block.parentElement;
        if (block !== clone && block.parentElement === clone) block.remove();
    }
    let html = clone.outerHTML;
    if (root.id !== 'cascade') {
        const wrapper = document.createElement('div');
        wrapper.id = 'cascade';
        wrapper.appendChild(clone);
        html = wrapper.outerHTML;
    }
    const titles = [textOf(document.querySelector('.text-ide-sidebar-title-color'))].concat(messageCandidates(root));
    return {
        html,
        bodyBg: bodyStyles.backgroundColor,
        bodyColor: bodyStyles.color,
        titleCandidates: titles.filter(Boolean)
    };
})()"""
    )


def cursor_snapshot_probe(*, root_element_id: str | None, root_selector: str | None) -> str:
    """Returns `{error}` or `{html, bodyBg, bodyColor, titleCandidates[]}` for the Cursor chat panel."""
    return (
        "(() => {"
        + _HELPERS_JS
        + f"""
    const rootElementId = {json.dumps(root_element_id)};
    const rootSelector = {json.dumps(root_selector)};
"""
        + r"""
    const root = (rootElementId && document.getElementById(rootElementId)) || (rootSelector && document.querySelector(rootSelector));
    if (!root) return { error: 'root not found' };
    const themeRoot = document.querySelector('.monaco-workbench') || document.body || document.documentElement;
    const themeStyles = window.getComputedStyle(themeRoot);
    const bodyStyles = window.getComputedStyle(document.body);

    const messagesRoot = root.querySelector('.composer-messages-container') || root.querySelector('.conversations') || root;
    const clone = messagesRoot.cloneNode(true);
    clone.querySelectorAll('.composer-input-blur-wrapper, .composer-bar-input-buttons, .composer-find-widget-container, [contenteditable="true"]').forEach(el => el.remove());

    const msgTarget = messagesRoot.querySelector('.composer-human-message, .composer-ai-message, .composer-rendered-message') || messagesRoot;
    const msgStyles = window.getComputedStyle(msgTarget);

    const wrapper = document.createElement('div');
    wrapper.id = 'cascade';
    wrapper.className = 'cursor-chat';
    const rootClasses = [document.documentElement.className, document.body.className].filter(Boolean).join(' ');
    if (rootClasses) wrapper.className += ' ' + rootClasses;
    wrapper.style.fontFamily = msgStyles.fontFamily || themeStyles.fontFamily || '-apple-system, system-ui, sans-serif';
    wrapper.style.fontSize = msgStyles.fontSize || themeStyles.fontSize || '13px';
    wrapper.style.lineHeight = msgStyles.lineHeight || themeStyles.lineHeight || '1.5';
    wrapper.style.color = msgStyles.color || bodyStyles.color || '#e5e7eb';
    wrapper.style.background = 'transparent';
    wrapper.style.padding = '12px';
    for (let i = 0; i < themeStyles.length; i += 1) {
        const name = themeStyles[i];
        if (name && name.startsWith('--')) wrapper.style.setProperty(name, themeStyles.getPropertyValue(name));
    }
    const inner = document.createElement('div');
    if (rootClasses) inner.className = rootClasses;
    inner.appendChild(clone);
    wrapper.appendChild(inner);

    const titles = [activeTabLabel()].concat(messageCandidates(messagesRoot));
    return {
        html: wrapper.outerHTML,
        bodyBg: themeStyles.backgroundColor || bodyStyles.backgroundColor,
        bodyColor: msgStyles.color || bodyStyles.color,
        titleCandidates: titles.filter(Boolean)
    };
})()"""
    )


STYLESHEET_DUMP_PROBE = r"""(() => {
    const dumpRule = (rule) => {
        try {
            if (rule.type === CSSRule.STYLE_RULE) {
                return { kind: 'style', selector: rule.selectorText, body: rule.style.cssText, text: rule.cssText };
            }
            if (rule.type === CSSRule.MEDIA_RULE || rule.type === CSSRule.SUPPORTS_RULE) {
                return {
                    kind: rule.type === CSSRule.MEDIA_RULE ? 'media' : 'supports',
                    condition: rule.conditionText || (rule.media ? rule.media.mediaText : ''),
                    rules: Array.from(rule.cssRules).map(dumpRule).filter(Boolean)
                };
            }
            return { kind: 'raw', text: rule.cssText || '' };
        } catch (e) { return null; }
    };
    const sheets = [];
    let skipped = 0;
    for (const sheet of document.styleSheets) {
        try {
            sheets.push(Array.from(sheet.cssRules).map(dumpRule).filter(Boolean));
        } catch (e) { skipped += 1; }
    }
    return { rules: [].concat(...sheets), skipped };
})()"""


def inject_text_probe(text: str) -> str:
    """Returns `{ok: true, via}` or `{ok: false, reason}`."""
    return (
        "(async () => {"
        + f"\n    const value = {json.dumps(text)};\n"
        + r"""
    const cursorPanel = document.querySelector('[id^="workbench.panel.aichat"]');
    const cursorEditor = cursorPanel ? (cursorPanel.querySelector('.aislash-editor-input') || cursorPanel.querySelector('[contenteditable="true"][role="textbox"]')) : null;
    if (cursorPanel && !cursorEditor) return { ok: false, reason: 'cursor editor not found' };
    const editor = cursorEditor || document.querySelector('#cascade [contenteditable="true"]') || document.querySelector('textarea');
    if (!editor) return { ok: false, reason: 'no editor found' };

    editor.focus();
    if (editor.tagName === 'TEXTAREA') {
        const setter = Object.getOwnPropertyDescriptor(window.HTMLTextAreaElement.prototype, 'value').set;
        setter.call(editor, value);
        editor.dispatchEvent(new Event('input', { bubbles: true }));
    } else {
        document.execCommand('selectAll', false, null);
        const inserted = document.execCommand('insertText', false, value);
        if (!inserted) {
            editor.textContent = value;
            editor.dispatchEvent(new Event('input', { bubbles: true }));
        }
    }
    const currentText = editor.tagName === 'TEXTAREA' ? editor.value : (editor.textContent || '');
    if (!currentText.trim()) return { ok: false, reason: 'editor did not accept text' };

    await new Promise(r => setTimeout(r, 100));

    const btn = (cursorPanel && cursorPanel.querySelector('.send-with-mode button, .send-with-mode [role="button"], .send-with-mode .anysphere-icon-button')) ||
        document.querySelector('button[class*="arrow"]') ||
        document.querySelector('button[aria-label*="Send"]') ||
        document.querySelector('button[type="submit"]') ||
        document.querySelector('[role="button"][aria-label*="Send"]');
    if (btn) {
        btn.click();
        return { ok: true, via: 'button' };
    }
    const init = { bubbles: true, cancelable: true, key: 'Enter', code: 'Enter', keyCode: 13, which: 13 };
    editor.dispatchEvent(new KeyboardEvent('keydown', init));
    editor.dispatchEvent(new KeyboardEvent('keyup', init));
    return { ok: true, via: 'enter' };
})()"""
    )


FOCUS_EDITOR_PROBE = r"""(() => {
    const cursorPanel = document.querySelector('[id^="workbench.panel.aichat"]');
    const editor = (cursorPanel && (cursorPanel.querySelector('.aislash-editor-input') || cursorPanel.querySelector('[contenteditable="true"][role="textbox"]'))) ||
        document.querySelector('#cascade [contenteditable="true"]') ||
        document.querySelector('textarea');
    if (editor) editor.focus();
    const platform = (navigator.userAgentData && navigator.userAgentData.platform) || navigator.platform || '';
    return { focused: !!editor, mac: /mac/i.test(platform) };
})()"""


__all__ = [
    "FOCUS_EDITOR_PROBE",
    "PROBE_VERSION",
    "STYLESHEET_DUMP_PROBE",
    "antigravity_metadata_probe",
    "antigravity_snapshot_probe",
    "cursor_metadata_probe",
    "cursor_snapshot_probe",
    "inject_text_probe",
]
