"""Comment threads: building them from annotations and driving their lifecycle.

Every lifecycle action is a pure ``(thread, event) -> thread`` function.
An action that does not apply in the thread's current state returns the
thread unchanged, so hosts can simply not render buttons that don't apply.

Suggestion lifecycle::

    pending --accept--> accepted --revert--> pending
    pending --reject--> rejected
    (open thread) --resolve--> resolved (terminal)

Applying the text edit to the document is the caller's job (see
``judgeoverlay.session``); the thread only records where the edit landed.
"""

from __future__ import annotations

import logging
import re
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from judgeoverlay.config import DocumentConfig, ThreadsConfig
from judgeoverlay.document import inline_slice, slice_size, text_between
from judgeoverlay.lines import find_line, resolve_lines
from judgeoverlay.models import (
    CommentThread,
    Suggestion,
    SuggestionStatus,
    ThreadAnchor,
    ThreadEvent,
    ThreadMessage,
    ThreadStatus,
)
from judgeoverlay.presentation import severity_rank

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from judgeoverlay.document import DocNode
    from judgeoverlay.models import Annotation, JudgeResult, LineSpan

logger = logging.getLogger(__name__)

# "replace X with 'Y'", "change to \"Y\"", "use 'Y'" ... -> Y
_REPLACEMENT_RE = re.compile(
    r"\b(?:replace|change|rewrite|use)\b[^\"'`]*[\"']([^\"']{2,220})[\"']",
    re.IGNORECASE,
)

_FNV_OFFSET = 2166136261
_FNV_PRIME = 16777619
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def hash_thread_id(key: str) -> str:
    """Deterministic short thread id (32-bit FNV-1a, base 36)."""
    value = _FNV_OFFSET
    for ch in key:
        value ^= ord(ch)
        value = (value * _FNV_PRIME) & 0xFFFFFFFF
    digits = ""
    while True:
        value, rem = divmod(value, 36)
        digits = _BASE36[rem] + digits
        if not value:
            break
    return f"thread-{digits}"


def parse_replacement(message: str) -> str | None:
    """Extract the quoted replacement text a judge asks for, if any."""
    match = _REPLACEMENT_RE.search(message)
    candidate = match.group(1).strip() if match else ""
    return candidate or None


# -- Building ------------------------------------------------------------------


def _suggestion_for(
    annotation: Annotation,
    doc: DocNode,
    first_line: LineSpan,
    start: int,
    end: int,
    schema: DocumentConfig | None,
) -> Suggestion | None:
    replacement = parse_replacement(annotation.message)
    if replacement is None:
        return None
    # Edits never cross a block boundary
    stop = min(end, first_line.end)
    schema = schema or DocumentConfig()
    original = text_between(doc, start, stop, schema)
    if not original.strip() or original.strip() == replacement:
        return None
    return Suggestion(
        id=f"s-{annotation.id}",
        start=start,
        end=stop,
        original_text=original,
        original_content=inline_slice(doc, start, stop, schema),
        replacement_text=replacement,
    )


def build_thread(
    annotation: Annotation,
    result: JudgeResult,
    doc: DocNode,
    index: Sequence[LineSpan],
    *,
    now: datetime | None = None,
    schema: DocumentConfig | None = None,
) -> CommentThread:
    """One open thread for *annotation*, anchored to its resolved range.

    An annotation whose start line is not in *index* still gets a thread,
    without positions or a suggestion.
    """
    now = now or datetime.now(UTC)
    anchor = ThreadAnchor(start_line=annotation.start_line, end_line=annotation.end_line)
    suggestion = None
    resolved = resolve_lines(index, annotation.start_line, annotation.end_line)
    first_line = find_line(index, annotation.start_line)
    if resolved is not None and first_line is not None:
        anchor = anchor.model_copy(update={"start_pos": resolved.start, "end_pos": resolved.end})
        suggestion = _suggestion_for(annotation, doc, first_line, resolved.start, resolved.end, schema)
    else:
        logger.info("Annotation %s (line %d) has no highlight in this document", annotation.id, annotation.start_line)

    key = f"{annotation.judge_id}:{annotation.id}"
    return CommentThread(
        id=hash_thread_id(key),
        key=key,
        annotation_id=annotation.id,
        judge_id=annotation.judge_id,
        judge_name=result.judge_name,
        severity=annotation.severity,
        anchor=anchor,
        color=result.color,
        messages=[
            ThreadMessage(
                id=f"m-{annotation.id}",
                author_type="reviewer",
                author_name=result.judge_name,
                body=annotation.message,
                created_at=now,
            )
        ],
        suggestion=suggestion,
        created_at=now,
        updated_at=now,
    )


def build_threads(
    doc: DocNode,
    index: Sequence[LineSpan],
    results: Iterable[JudgeResult],
    *,
    now: datetime | None = None,
    schema: DocumentConfig | None = None,
) -> list[CommentThread]:
    """Threads for every annotation of every result, critical first, then by line."""
    now = now or datetime.now(UTC)
    threads = [
        build_thread(annotation, result, doc, index, now=now, schema=schema)
        for result in results
        for annotation in result.annotations
    ]
    return sorted(threads, key=lambda t: (severity_rank(t.severity), t.anchor.start_line))


# -- Lifecycle -----------------------------------------------------------------


def can_apply(thread: CommentThread, event: ThreadEvent) -> bool:
    """Whether *event* changes *thread* in its current state."""
    if thread.status is ThreadStatus.RESOLVED:
        return False
    if event is ThreadEvent.RESOLVE:
        return True
    suggestion = thread.suggestion
    if suggestion is None:
        return False
    if event in {ThreadEvent.ACCEPT, ThreadEvent.REJECT}:
        return suggestion.status is SuggestionStatus.PENDING
    return suggestion.status is SuggestionStatus.ACCEPTED


def _shift_end(pos: int | None, delta: int) -> int | None:
    return None if pos is None else pos + delta


def _with_message(
    thread: CommentThread,
    now: datetime,
    author_type: str,
    author_name: str,
    body: str,
    **updates: object,
) -> CommentThread:
    message = ThreadMessage(
        id=f"m-{thread.id}-{len(thread.messages) + 1}",
        author_type=author_type,
        author_name=author_name,
        body=body,
        created_at=now,
    )
    return thread.model_copy(update={**updates, "messages": [*thread.messages, message], "updated_at": now})


def transition(
    thread: CommentThread,
    event: ThreadEvent,
    *,
    now: datetime | None = None,
    authors: ThreadsConfig | None = None,
) -> CommentThread:
    """Apply a lifecycle *event*; returns *thread* itself when it doesn't apply."""
    if not can_apply(thread, event):
        logger.debug("Ignoring %s on thread %s", event, thread.id)
        return thread

    now = now or datetime.now(UTC)
    authors = authors or ThreadsConfig()
    suggestion = thread.suggestion

    if event is ThreadEvent.RESOLVE:
        return _with_message(
            thread, now, "human", authors.user_author_name, "Thread resolved.", status=ThreadStatus.RESOLVED
        )

    if suggestion is None:
        return thread

    if event is ThreadEvent.REJECT:
        return _with_message(
            thread,
            now,
            "human",
            authors.user_author_name,
            "Suggestion rejected.",
            suggestion=suggestion.model_copy(update={"status": SuggestionStatus.REJECTED}),
        )

    if event is ThreadEvent.ACCEPT:
        applied_end = suggestion.start + len(suggestion.replacement_text)
        delta = applied_end - suggestion.end
        return _with_message(
            thread,
            now,
            "system",
            authors.system_author_name,
            "Suggestion accepted and applied.",
            anchor=thread.anchor.model_copy(update={"end_pos": _shift_end(thread.anchor.end_pos, delta)}),
            suggestion=suggestion.model_copy(
                update={
                    "status": SuggestionStatus.ACCEPTED,
                    "applied_start": suggestion.start,
                    "applied_end": applied_end,
                    "applied_at": now,
                }
            ),
        )

    # REVERT
    start = suggestion.applied_start if suggestion.applied_start is not None else suggestion.start
    applied_end = suggestion.applied_end if suggestion.applied_end is not None else suggestion.end
    restored = slice_size(suggestion.original_content) if suggestion.original_content else len(suggestion.original_text)
    restored_end = start + restored
    return _with_message(
        thread,
        now,
        "system",
        authors.system_author_name,
        "Accepted suggestion reverted to original text.",
        anchor=thread.anchor.model_copy(update={"end_pos": _shift_end(thread.anchor.end_pos, restored_end - applied_end)}),
        suggestion=suggestion.model_copy(
            update={
                "status": SuggestionStatus.PENDING,
                "start": start,
                "end": restored_end,
                "applied_start": None,
                "applied_end": None,
                "applied_at": None,
            }
        ),
    )


def accept(thread: CommentThread, *, now: datetime | None = None) -> CommentThread:
    return transition(thread, ThreadEvent.ACCEPT, now=now)


def reject(thread: CommentThread, *, now: datetime | None = None) -> CommentThread:
    return transition(thread, ThreadEvent.REJECT, now=now)


def revert(thread: CommentThread, *, now: datetime | None = None) -> CommentThread:
    return transition(thread, ThreadEvent.REVERT, now=now)


def resolve(thread: CommentThread, *, now: datetime | None = None) -> CommentThread:
    return transition(thread, ThreadEvent.RESOLVE, now=now)
