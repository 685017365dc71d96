"""
Error locations from render output.

When a preview render fails, the renderer's output usually names the file and
line that caused it.  Each extractor below recognises one tool's error format
and returns an :class:`ErrorLocation` (1-based lines), or None if the output
does not contain that kind of error.
"""
from __future__ import annotations

import logging
import os
import re
from dataclasses import asdict, dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass
class ErrorLocation:
    file: str
    line_begin: int
    line_end: int

    def to_dict(self) -> dict:
        data = asdict(self)
        return {'file': data['file'], 'lineBegin': data['line_begin'], 'lineEnd': data['line_end']}


_LUA_RE = re.compile(r'Error running filter ([^:]+):\r?\n[^:]+:(\d+):')
_KNITR_RE = re.compile(r'Quitting from lines (\d+)-(\d+) \(([^)]+)\)')
_JUPYTER_RE = re.compile(
    r'An error occurred while executing the following cell:\s+(-{3,})\s+([\S\s]+?)\r?\n(\1)[\S\s]+line (\d+)\)'
)
_YAML_RE = re.compile(r'\(ERROR\) Validation of YAML.*\n\(ERROR\) In file (.*?)\n\(line (\d+)')


def _normalize_newlines(text: str) -> str:
    return re.sub(r'\r\n?', '\n', text)


def lua_error_location(output: str, preview_target: str, preview_dir: str) -> ErrorLocation | None:
    m = _LUA_RE.search(output)
    if not m:
        return None
    # Relative filter paths are relative to the document being previewed
    file = m.group(1)
    if not os.path.isabs(file):
        file = os.path.normpath(os.path.join(os.path.dirname(preview_target), file))
    line = int(m.group(2))
    return ErrorLocation(file=file, line_begin=line, line_end=line)


def knitr_error_location(output: str, preview_target: str, preview_dir: str) -> ErrorLocation | None:
    m = _KNITR_RE.search(output)
    if not m:
        return None
    return ErrorLocation(
        file=os.path.join(os.path.dirname(preview_target), m.group(3)),
        line_begin=int(m.group(1)),
        line_end=int(m.group(2)),
    )


def jupyter_error_location(output: str, preview_target: str, preview_dir: str) -> ErrorLocation | None:
    """Locate the failing cell by searching the target's source for the cell text."""
    m = _JUPYTER_RE.search(output)
    if not m:
        return None
    target = Path(preview_target)
    if not target.is_file():
        return None
    try:
        source = _normalize_newlines(target.read_text(encoding='utf-8'))
    except (OSError, UnicodeDecodeError) as e:
        logger.warning('jupyter_error_location: cannot read %s: %s', target, e)
        return None
    cell_loc = source.find(m.group(2))
    if cell_loc == -1:
        return None
    line_begin = source[:cell_loc].count('\n') + 1 + int(m.group(4)) - 1
    return ErrorLocation(file=preview_target, line_begin=line_begin, line_end=line_begin)


def yaml_error_location(output: str, preview_target: str, preview_dir: str) -> ErrorLocation | None:
    m = _YAML_RE.search(output)
    if not m:
        return None
    line = int(m.group(2))
    return ErrorLocation(file=os.path.join(preview_dir, m.group(1)), line_begin=line, line_end=line)


_EXTRACTORS = (
    lua_error_location,
    knitr_error_location,
    jupyter_error_location,
    yaml_error_location,
)


def preview_error_location(output: str, preview_target: str, preview_dir: str) -> ErrorLocation | None:
    """Return the first error location any extractor finds in *output*."""
    for extractor in _EXTRACTORS:
        location = extractor(output, preview_target, preview_dir)
        if location is not None:
            return location
    return None
