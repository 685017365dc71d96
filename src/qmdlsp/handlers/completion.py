"""
Completion handler.

Offers cross-reference completions after an ``@`` in markdown prose.  The
candidates are the labels defined in the document itself:

1. **Attribute anchors** — ``# Intro {#sec-intro}``, ``![](a.png){#fig-a}``.
2. **Cell options** — ``#| label: fig-plot`` inside a code cell.
3. **Equation labels** — dollarmath ``$$ E = mc^2 $$ (eq-energy)``.

Completion inside code or math blocks belongs to the embedded language's
own tooling (see :mod:`qmdlsp.vdoc`) and is not offered here.
"""
from __future__ import annotations

import re
from typing import TYPE_CHECKING

from lsprotocol import types as lsp

from qmdlsp.document import TokenKind

if TYPE_CHECKING:
    from qmdlsp.document import ParsedDocument

_CROSSREF_KINDS = {
    'sec': 'section',
    'fig': 'figure',
    'tbl': 'table',
    'eq': 'equation',
    'lst': 'listing',
    'thm': 'theorem',
    'lem': 'lemma',
    'cor': 'corollary',
    'prp': 'proposition',
    'cnj': 'conjecture',
    'def': 'definition',
    'exm': 'example',
    'exr': 'exercise',
}

_PREFIXES = '|'.join(_CROSSREF_KINDS)

# {#fig-foo .class key=val}
_ANCHOR_RE = re.compile(r'\{[^{}]*?#((?:' + _PREFIXES + r')-[\w:.-]*\w)')

# #| label: fig-foo
_CELL_LABEL_RE = re.compile(r'^\s*#\|\s*label:\s*["\']?((?:' + _PREFIXES + r')-[\w:.-]*\w)')

# Everything between '@' and the cursor must be part of a citation key
_CITE_KEY_RE = re.compile(r'[^@;\[\]\s!,]*')


def _in_block(doc: ParsedDocument, line: int) -> bool:
    for token in doc.tokens:
        if token.kind is TokenKind.OTHER or token.line_range is None:
            continue
        start, end = token.line_range
        if start <= line < end:
            return True
    return False


def collect_labels(doc: ParsedDocument) -> list[str]:
    """Return the cross-reference labels defined in *doc*, in document order."""
    labels: dict[str, None] = {}
    for text in doc.lines:
        for m in _ANCHOR_RE.finditer(text):
            labels.setdefault(m.group(1))
        m = _CELL_LABEL_RE.match(text)
        if m:
            labels.setdefault(m.group(1))
    for token in doc.tokens:
        if token.kind is TokenKind.DISPLAY_MATH and token.info:
            labels.setdefault(token.info)
    return list(labels)


def _label_detail(label: str) -> str:
    prefix = label.split('-', 1)[0]
    return _CROSSREF_KINDS.get(prefix, 'reference')


def _cite_prefix(line: str, character: int) -> str | None:
    """Return the partial key typed after ``@`` at *character*, or None."""
    text = line[:character]
    at_pos = text.rfind('@')
    space_pos = text.rfind(' ')
    if at_pos == -1 or at_pos < space_pos:
        return None
    key = text[at_pos + 1:]
    if not _CITE_KEY_RE.fullmatch(key):
        return None
    # No text directly ahead (except bracket, space, semicolon)
    next_char = line[character:character + 1]
    if next_char and next_char not in (';', ' ', ']'):
        return None
    return key


def get_completions(doc: ParsedDocument, position: lsp.Position) -> list[lsp.CompletionItem]:
    """Return cross-reference completion items for *position* in *doc*."""
    if position.line >= doc.line_count:
        return []
    line = doc.line_at(position.line)
    # Cheap check before any regex work
    if '@' not in line:
        return []
    if _in_block(doc, position.line):
        return []

    key = _cite_prefix(line, position.character)
    if key is None:
        return []

    return [
        lsp.CompletionItem(
            label=label,
            kind=lsp.CompletionItemKind.Reference,
            detail=_label_detail(label),
            insert_text=label,
        )
        for label in collect_labels(doc)
        if label.startswith(key)
    ]
