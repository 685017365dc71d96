"""
Virtual documents for embedded languages.

A markdown document may contain code in several languages (fenced code
blocks) and TeX (display math).  To let each language's own tooling provide
completion, hover and diagnostics, the cursor's language is projected into a
*virtual document*:

* every line that belongs to a block of that language, anywhere in the
  document, is copied verbatim to the same line index;
* every other line is blank.

Because line indices are preserved, a position reported by the embedded
tooling at virtual line ``n`` applies unchanged at host line ``n``.

The projected content is then materialized either as a content-addressed URI
(:mod:`qmdlsp.vdoc_content`) or as a backing temp file
(:mod:`qmdlsp.vdoc_tempfile`), depending on the language's strategy.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable

from qmdlsp.document import BlockToken, ParsedDocument, TokenKind
from qmdlsp.languages import (
    MATH_LANGUAGE_ID,
    EmbeddedLanguage,
    LanguageRegistry,
    Strategy,
    default_registry,
)
from qmdlsp.vdoc_content import encode_uri

if TYPE_CHECKING:
    from lsprotocol import types as lsp
    from qmdlsp.vdoc_tempfile import TempFileStore

# Leading run / single trailing char of non-word characters in an info string
_LEADING_NONWORD_RE = re.compile(r'^\W*', re.ASCII)
_TRAILING_NONWORD_RE = re.compile(r'\W\Z', re.ASCII)


@dataclass(frozen=True)
class VirtualDocument:
    language: EmbeddedLanguage
    content: str


# ---------------------------------------------------------------------------
# Block location
# ---------------------------------------------------------------------------

def is_language_block(token: BlockToken) -> bool:
    return token.kind in (TokenKind.FENCE, TokenKind.DISPLAY_MATH)


def classify(token: BlockToken) -> str:
    """Return the language identifier for a fence or display-math token.

    Display math is always TeX, whatever label it carries.  For fences the
    info string is trimmed of leading punctuation and one trailing character,
    so ``{python}`` and ``python`` classify the same.
    """
    if token.kind is TokenKind.DISPLAY_MATH:
        return MATH_LANGUAGE_ID
    if token.kind is TokenKind.FENCE:
        info = _LEADING_NONWORD_RE.sub('', token.info, count=1)
        return _TRAILING_NONWORD_RE.sub('', info, count=1)
    raise ValueError(f'{token.kind} tokens carry no language')


def language_blocks(tokens: Iterable[BlockToken]) -> list[BlockToken]:
    return [t for t in tokens if is_language_block(t)]


def block_at_position(tokens: Iterable[BlockToken], position: lsp.Position) -> BlockToken | None:
    """Return the first language block whose range contains *position*.

    A block ``[start, end)`` contains every line strictly after the opening
    delimiter up to and including ``end``, the line after the closing
    delimiter.
    """
    for token in language_blocks(tokens):
        if token.line_range is None:
            continue
        start, end = token.line_range
        if start < position.line <= end:
            return token
    return None


def locate(
    tokens: Iterable[BlockToken],
    position: lsp.Position,
    registry: LanguageRegistry = default_registry,
) -> EmbeddedLanguage | None:
    """Return the embedded language at *position*, or None.

    None means the position is outside every block, or the enclosing block's
    identifier is not registered.
    """
    token = block_at_position(tokens, position)
    if token is None:
        return None
    return registry.lookup(classify(token))


def is_block_of_language(token: BlockToken, language: EmbeddedLanguage) -> bool:
    return is_language_block(token) and classify(token) in language.ids


# ---------------------------------------------------------------------------
# Projection
# ---------------------------------------------------------------------------

def project(
    doc: ParsedDocument,
    position: lsp.Position,
    registry: LanguageRegistry = default_registry,
) -> VirtualDocument | None:
    """Project the language at *position* into a line-aligned virtual document.

    Returns None when *position* is not inside a registered language block.
    """
    language = locate(doc.tokens, position, registry)
    if language is None:
        return None

    lines = [''] * doc.line_count
    for token in doc.tokens:
        if token.line_range is None or not is_block_of_language(token, language):
            continue
        start, end = token.line_range
        # Body only: skip the opening and closing delimiter lines
        for line in range(start + 1, min(end - 1, doc.line_count)):
            lines[line] = doc.line_at(line)

    # Overwrites (rather than prepends) so line indices stay aligned
    if language.inject and lines:
        lines[0] = language.inject

    return VirtualDocument(language=language, content='\n'.join(lines))


# ---------------------------------------------------------------------------
# Materialization
# ---------------------------------------------------------------------------

def virtual_doc_uri(vdoc: VirtualDocument, parent_uri: str, tempfiles: TempFileStore) -> str:
    """Return the URI the embedded tooling should read *vdoc* from.

    Raises :class:`~qmdlsp.vdoc_tempfile.VirtualDocumentError` if a backing
    file cannot be written.
    """
    language = vdoc.language
    if language.strategy is Strategy.CONTENT:
        return encode_uri(language.id, language.extension, vdoc.content, parent_uri)
    if language.strategy is Strategy.TEMPFILE:
        return tempfiles.materialize(vdoc, parent_uri)
    raise ValueError(f'unknown strategy {language.strategy!r}')
