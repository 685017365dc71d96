"""
Hover handler.

When the cursor rests on TeX math, either inside a display-math block
(``$$ ... $$``) or on an inline ``$...$`` span, return a Markdown hover that
shows the math so the client can typeset it.
"""
from __future__ import annotations

import re
from typing import TYPE_CHECKING

from lsprotocol import types as lsp

from qmdlsp.document import TokenKind

if TYPE_CHECKING:
    from qmdlsp.document import ParsedDocument

# $$ body $$ with an optional dollarmath label after the closing delimiter
_DISPLAY_MATH_RE = re.compile(r'^\s*\$\$(.*?)\$\$', re.DOTALL)

# $x$: opening '$' not followed by space, closing '$' not preceded by space
_INLINE_MATH_RE = re.compile(r'(?<![\\$])\$(?![\s$])([^$]*?[^\s\\$])\$(?!\$)')


def _math_markdown(math: str) -> str:
    return f'$$\n{math.strip()}\n$$'


def _display_math_at(doc: ParsedDocument, line: int) -> tuple[str, lsp.Range] | None:
    for token in doc.tokens:
        if token.kind is not TokenKind.DISPLAY_MATH or token.line_range is None:
            continue
        start, end = token.line_range
        if not start <= line < end:
            continue
        last = min(end, doc.line_count) - 1
        m = _DISPLAY_MATH_RE.match(doc.text_in_range(start, last + 1))
        if m is None or not m.group(1).strip():
            return None
        rng = lsp.Range(
            start=lsp.Position(line=start, character=0),
            end=lsp.Position(line=last, character=len(doc.line_at(last))),
        )
        return m.group(1), rng
    return None


def _in_fence(doc: ParsedDocument, line: int) -> bool:
    for token in doc.tokens:
        if token.kind is TokenKind.FENCE and token.line_range is not None:
            start, end = token.line_range
            if start <= line < end:
                return True
    return False


def _inline_math_at(line_text: str, line: int, character: int) -> tuple[str, lsp.Range] | None:
    for m in _INLINE_MATH_RE.finditer(line_text):
        if m.start() <= character <= m.end():
            rng = lsp.Range(
                start=lsp.Position(line=line, character=m.start()),
                end=lsp.Position(line=line, character=m.end()),
            )
            return m.group(1), rng
    return None


def get_hover(doc: ParsedDocument, position: lsp.Position) -> lsp.Hover | None:
    """Return a math hover for *position* in *doc*, or *None*."""
    if position.line >= doc.line_count:
        return None

    found = _display_math_at(doc, position.line)
    if found is None:
        if _in_fence(doc, position.line):
            return None
        found = _inline_math_at(doc.line_at(position.line), position.line, position.character)
    if found is None:
        return None

    math, rng = found
    return lsp.Hover(
        contents=lsp.MarkupContent(kind=lsp.MarkupKind.Markdown, value=_math_markdown(math)),
        range=rng,
    )
