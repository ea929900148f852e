"""Read-mostly model of a ProseMirror-style document tree.

Positions follow ProseMirror addressing: every non-text node costs one
token when opened and one when closed, text costs one token per character
and inline or leaf atoms cost one token.  The root ``doc`` node does not
count its own tokens, so positions run from ``0`` to ``content_size``.

The tree is immutable.  Edits return a new root.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

from judgeoverlay.config import DocumentConfig

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger(__name__)

_DEFAULT_SCHEMA = DocumentConfig()


class DocNode(BaseModel):
    """A node of the document tree, as serialized by ProseMirror's ``toJSON``."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    type: str
    text: str | None = None
    attrs: dict[str, Any] = Field(default_factory=dict)
    marks: list[dict[str, Any]] = Field(default_factory=list)
    content: list[DocNode] = Field(default_factory=list)

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> DocNode:
        """Build a tree from ProseMirror JSON (``{"type": "doc", "content": [...]}``)."""
        return cls.model_validate(data)

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(exclude_defaults=True)


def empty_document() -> DocNode:
    return DocNode(type="doc")


# -- Classification ------------------------------------------------------------


def is_inline(node: DocNode, schema: DocumentConfig = _DEFAULT_SCHEMA) -> bool:
    return node.type == "text" or node.type in schema.inline_types


def is_textblock(node: DocNode, schema: DocumentConfig = _DEFAULT_SCHEMA) -> bool:
    """Whether *node* is a leaf text-bearing block (one "line")."""
    if is_inline(node, schema):
        return False
    if node.type in schema.textblock_types:
        return True
    return bool(node.content) and all(is_inline(child, schema) for child in node.content)


def node_size(node: DocNode, schema: DocumentConfig = _DEFAULT_SCHEMA) -> int:
    """Number of position tokens *node* occupies in its parent."""
    if node.type == "text":
        return len(node.text or "")
    if not node.content and (is_inline(node, schema) or node.type not in schema.textblock_types):
        return 1
    return 2 + content_size(node, schema)


def content_size(node: DocNode, schema: DocumentConfig = _DEFAULT_SCHEMA) -> int:
    return sum(node_size(child, schema) for child in node.content)


# -- Traversal -----------------------------------------------------------------


def walk_blocks(
    node: DocNode,
    start: int = 0,
    schema: DocumentConfig = _DEFAULT_SCHEMA,
) -> Iterator[tuple[DocNode, int]]:
    """Yield ``(block, pos)`` for every block below *node*, depth first.

    *start* is the position at which *node*'s content begins (``0`` for the
    root).  ``pos`` is the position just before the block's opening token.
    Text blocks are yielded but not descended into.
    """
    pos = start
    for child in node.content:
        size = node_size(child, schema)
        if not is_inline(child, schema):
            yield child, pos
            if not is_textblock(child, schema):
                yield from walk_blocks(child, pos + 1, schema)
        pos += size


def iter_textblocks(
    doc: DocNode,
    schema: DocumentConfig = _DEFAULT_SCHEMA,
) -> Iterator[tuple[DocNode, int, int]]:
    """Yield ``(block, content_start, content_end)`` for every text block in order."""
    for block, pos in walk_blocks(doc, 0, schema):
        if is_textblock(block, schema):
            begin = pos + 1
            yield block, begin, begin + content_size(block, schema)


def _inline_text(block: DocNode, lo: int, hi: int, schema: DocumentConfig) -> str:
    """Text of *block*'s inline content between content offsets *lo* and *hi*."""
    parts: list[str] = []
    pos = 0
    for child in block.content:
        size = node_size(child, schema)
        if pos + size > lo and pos < hi:
            if child.type == "text":
                parts.append((child.text or "")[max(0, lo - pos) : hi - pos])
            elif child.type == "hard_break":
                parts.append("\n")
        pos += size
    return "".join(parts)


def text_between(
    doc: DocNode,
    start: int,
    end: int,
    schema: DocumentConfig = _DEFAULT_SCHEMA,
) -> str:
    """Plain text between two positions, with blocks separated by newlines."""
    pieces = [
        _inline_text(block, max(start, begin) - begin, min(end, finish) - begin, schema)
        for block, begin, finish in iter_textblocks(doc, schema)
        if begin <= end and start <= finish and start < end
    ]
    return "\n".join(pieces)


def document_text(doc: DocNode, schema: DocumentConfig = _DEFAULT_SCHEMA) -> str:
    """Plain text of the whole document, one line per text block.

    This is the text the review service numbers lines against.
    """
    return "\n".join(_inline_text(block, 0, end - begin, schema) for block, begin, end in iter_textblocks(doc, schema))


# -- Editing -------------------------------------------------------------------


def _text_node(text: str, marks: list[dict[str, Any]] | None) -> list[DocNode]:
    return [DocNode(type="text", text=text, marks=marks or [])] if text else []


def _splice_inline(
    block: DocNode,
    lo: int,
    hi: int,
    text: str | list[DocNode],
    schema: DocumentConfig,
) -> DocNode:
    """Replace content offsets ``lo..hi`` of a text block.

    A string takes the marks of the text it replaces; a node list is
    inserted as given.
    """
    out: list[DocNode] = []
    insert_at: int | None = None
    marks: list[dict[str, Any]] | None = None
    pos = 0
    for child in block.content:
        size = node_size(child, schema)
        child_start, child_end = pos, pos + size
        pos = child_end
        if child_end <= lo:
            out.append(child)
            if child.type == "text" and child_end == lo:
                marks = child.marks
            continue
        if child_start >= hi:
            if insert_at is None:
                insert_at = len(out)
            out.append(child)
            continue
        if child.type == "text":
            value = child.text or ""
            if child_start < lo:
                out.append(child.model_copy(update={"text": value[: lo - child_start]}))
            if insert_at is None:
                insert_at = len(out)
                marks = child.marks
            if child_end > hi:
                out.append(child.model_copy(update={"text": value[hi - child_start :]}))
        elif insert_at is None:
            insert_at = len(out)

    if insert_at is None:
        insert_at = len(out)
    nodes = _text_node(text, marks) if isinstance(text, str) else list(text)
    out[insert_at:insert_at] = nodes
    return block.model_copy(update={"content": _merge_text(out)})


def _merge_text(children: list[DocNode]) -> list[DocNode]:
    merged: list[DocNode] = []
    for child in children:
        prev = merged[-1] if merged else None
        if prev is not None and prev.type == child.type == "text" and prev.marks == child.marks:
            merged[-1] = prev.model_copy(update={"text": (prev.text or "") + (child.text or "")})
        else:
            merged.append(child)
    return merged


def _swap_block(
    node: DocNode,
    start: int,
    target_pos: int,
    replacement: DocNode,
    schema: DocumentConfig,
) -> DocNode:
    pos = start
    children = list(node.content)
    for idx, child in enumerate(children):
        size = node_size(child, schema)
        if pos == target_pos and not is_inline(child, schema) and is_textblock(child, schema):
            children[idx] = replacement
            return node.model_copy(update={"content": children})
        if pos < target_pos < pos + size:
            children[idx] = _swap_block(child, pos + 1, target_pos, replacement, schema)
            return node.model_copy(update={"content": children})
        pos += size
    return node


def inline_slice(
    doc: DocNode,
    start: int,
    end: int,
    schema: DocumentConfig = _DEFAULT_SCHEMA,
) -> list[DocNode]:
    """Inline nodes covering ``start..end`` inside the text block containing *start*.

    Text nodes cut by the range are trimmed; atoms (mentions, images, hard
    breaks) are kept whole.  Clamped to the block the way ``replace_text`` is.
    """
    for block, begin, finish in iter_textblocks(doc, schema):
        if begin <= start <= finish:
            lo, hi = start - begin, min(max(end, start), finish) - begin
            nodes: list[DocNode] = []
            pos = 0
            for child in block.content:
                size = node_size(child, schema)
                if pos + size > lo and pos < hi:
                    if child.type == "text":
                        value = child.text or ""
                        nodes.append(child.model_copy(update={"text": value[max(0, lo - pos) : hi - pos]}))
                    else:
                        nodes.append(child)
                pos += size
            return nodes
    return []


def slice_size(nodes: list[DocNode], schema: DocumentConfig = _DEFAULT_SCHEMA) -> int:
    return sum(node_size(node, schema) for node in nodes)


def replace_content(
    doc: DocNode,
    start: int,
    end: int,
    content: str | list[DocNode],
    schema: DocumentConfig = _DEFAULT_SCHEMA,
) -> DocNode:
    """Return a new document with ``start..end`` replaced by *content*.

    *content* is plain text or a list of inline nodes (as returned by
    ``inline_slice``).  The edit stays inside the text block containing
    *start*; an *end* beyond that block is clamped to the block's end.
    A *start* outside every text block leaves the document unchanged.
    """
    for block, begin, finish in iter_textblocks(doc, schema):
        if begin <= start <= finish:
            stop = min(max(end, start), finish)
            if stop < end:
                logger.debug("Clamped replacement end %d to block end %d", end, stop)
            edited = _splice_inline(block, start - begin, stop - begin, content, schema)
            return _swap_block(doc, 0, begin - 1, edited, schema)
    logger.warning("No text block contains position %d; document left unchanged", start)
    return doc


def replace_text(
    doc: DocNode,
    start: int,
    end: int,
    text: str,
    schema: DocumentConfig = _DEFAULT_SCHEMA,
) -> DocNode:
    """Return a new document with ``start..end`` replaced by *text*."""
    return replace_content(doc, start, end, text, schema)
