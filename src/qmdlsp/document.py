"""
Per-document parse cache.

Each open document is stored as a ``ParsedDocument``: an immutable snapshot of
the source text, its lines, and the block tokens produced by markdown-it-py.
Parsing is performed synchronously whenever the content changes; every request
works against the snapshot that was current when it arrived.

Only three kinds of token matter to the rest of the server, so the raw
markdown-it token stream is reduced to :class:`BlockToken` values tagged with
a closed :class:`TokenKind`.
"""
from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field
from functools import lru_cache

from markdown_it import MarkdownIt
from mdit_py_plugins.dollarmath import dollarmath_plugin

# VS Code line semantics: CRLF, CR and LF all end a line.
_LINE_BREAK_RE = re.compile(r'\r\n?|\n')

# Token types emitted by markdown-it-py + dollarmath for display math.
_MATH_TOKEN_TYPES = frozenset({'math_block', 'math_block_label'})


class TokenKind(enum.Enum):
    FENCE = 'fence'
    DISPLAY_MATH = 'display_math'
    OTHER = 'other'


@dataclass(frozen=True)
class BlockToken:
    kind: TokenKind
    info: str = ''
    # [start, end) 0-based source lines, or None for tokens without a map
    line_range: tuple[int, int] | None = None


@dataclass(frozen=True)
class ParsedDocument:
    uri: str
    source: str
    lines: tuple[str, ...]
    tokens: tuple[BlockToken, ...] = field(default_factory=tuple)

    @property
    def line_count(self) -> int:
        return len(self.lines)

    def line_at(self, index: int) -> str:
        return self.lines[index]

    def text_in_range(self, start: int, end: int) -> str:
        """Return lines ``start`` (inclusive) to ``end`` (exclusive) joined by newlines."""
        return '\n'.join(self.lines[max(0, start):max(0, end)])


@lru_cache(maxsize=1)
def _markdown_engine() -> MarkdownIt:
    return MarkdownIt('commonmark').use(dollarmath_plugin)


def split_lines(source: str) -> tuple[str, ...]:
    """Split *source* into lines the way an editor counts them.

    A trailing newline yields a final empty line, and an empty source is a
    single empty line.
    """
    return tuple(_LINE_BREAK_RE.split(source))


def _kind_of(token_type: str) -> TokenKind:
    if token_type == 'fence':
        return TokenKind.FENCE
    if token_type in _MATH_TOKEN_TYPES:
        return TokenKind.DISPLAY_MATH
    return TokenKind.OTHER


def tokenize(source: str) -> tuple[BlockToken, ...]:
    """Parse *source* with markdown-it-py and return the reduced token stream."""
    tokens: list[BlockToken] = []
    for tok in _markdown_engine().parse(source):
        kind = _kind_of(tok.type)
        line_range = (tok.map[0], tok.map[1]) if tok.map else None
        tokens.append(BlockToken(kind=kind, info=tok.info or '', line_range=line_range))
    return tuple(tokens)


def parse_document(uri: str, source: str) -> ParsedDocument:
    """Parse *source* and return a :class:`ParsedDocument` snapshot for *uri*."""
    return ParsedDocument(
        uri=uri,
        source=source,
        lines=split_lines(source),
        tokens=tokenize(source),
    )
