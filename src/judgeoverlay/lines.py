"""Map review-service line numbers to structural document positions.

The review service sees the document as plain text with one line per leaf
text block (paragraphs, headings, and the paragraphs inside list items).
``build_line_index`` numbers those blocks in document order and
``resolve_lines`` turns a reported ``(start_line, end_line)`` pair back into
a position range.

The index is a snapshot: rebuild it whenever the document changes.
"""

from __future__ import annotations

import logging
from functools import reduce
from typing import TYPE_CHECKING

from judgeoverlay.config import DocumentConfig
from judgeoverlay.document import content_size, iter_textblocks
from judgeoverlay.models import LineSpan, ResolvedRange

if TYPE_CHECKING:
    from collections.abc import Sequence

    from judgeoverlay.document import DocNode

logger = logging.getLogger(__name__)

LineIndex = tuple[LineSpan, ...]


def _append_line(index: LineIndex, bounds: tuple[int, int]) -> LineIndex:
    start, end = bounds
    return (*index, LineSpan(line=len(index) + 1, start=start, end=max(start, end)))


def build_line_index(doc: DocNode, schema: DocumentConfig | None = None) -> LineIndex:
    """Build the ordered line table for a document snapshot.

    Each leaf text block contributes one ``LineSpan`` covering its content
    (the block's own open/close tokens excluded).  A document without text
    blocks yields a single synthetic line spanning the whole document.
    """
    schema = schema or DocumentConfig()
    index: LineIndex = reduce(
        _append_line,
        ((begin, end) for _block, begin, end in iter_textblocks(doc, schema)),
        (),
    )
    if not index:
        index = (LineSpan(line=1, start=0, end=content_size(doc, schema)),)
    logger.debug("Built line index with %d line(s)", len(index))
    return index


def find_line(index: Sequence[LineSpan], line: int) -> LineSpan | None:
    """Return the entry for *line*, or None if the index has no such line."""
    if 1 <= line <= len(index) and index[line - 1].line == line:
        return index[line - 1]
    return next((entry for entry in index if entry.line == line), None)


def resolve_lines(index: Sequence[LineSpan], start_line: int, end_line: int | None = None) -> ResolvedRange | None:
    """Resolve a backend ``(start_line, end_line)`` pair to a position range.

    Returns ``None`` only when *start_line* is not in the index.  A missing
    *end_line*, or one before *start_line*, degrades to the start line's own
    bounds rather than dropping the highlight.
    """
    first = find_line(index, start_line)
    if first is None:
        logger.debug("Line %d not in index (%d lines); annotation stays unresolved", start_line, len(index))
        return None

    last = find_line(index, end_line) if end_line is not None and end_line >= start_line else None
    if last is None:
        return ResolvedRange(start=first.start, end=first.end)
    return ResolvedRange(start=first.start, end=last.end)
