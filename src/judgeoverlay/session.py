"""Session-scoped review state: one document, its line index, and its threads.

A session owns the current document snapshot.  Accepting or reverting a
suggestion edits the document, which replaces the snapshot and rebuilds the
line index; positions held by other threads are shifted across the edit.

Sessions are kept in a process-scoped registry (reset on server restart).
"""

from __future__ import annotations

import logging
import threading
import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from judgeoverlay.config import get_config
from judgeoverlay.document import replace_content, slice_size, text_between
from judgeoverlay.lines import build_line_index, resolve_lines
from judgeoverlay.models import DecisionRecord, SuggestionStatus, ThreadEvent
from judgeoverlay.review import build_highlights, to_judge_results
from judgeoverlay.threads import build_threads, transition

if TYPE_CHECKING:
    from collections.abc import Iterable

    from judgeoverlay.config import Config
    from judgeoverlay.document import DocNode
    from judgeoverlay.lines import LineIndex
    from judgeoverlay.models import BackendReviewResult, CommentThread, Highlight, JudgeResult

logger = logging.getLogger(__name__)


class SessionNotFoundError(KeyError):
    """No review session with the given id."""

    def __init__(self, session_id: str) -> None:
        super().__init__(session_id)
        self.session_id = session_id

    def __str__(self) -> str:
        return f"No review session '{self.session_id}'"


_DECISIONS: dict[ThreadEvent, tuple[str, str, str]] = {
    ThreadEvent.ACCEPT: ("approve", "Accepted reviewer suggestion in {name}.", "Applied reviewer text replacement."),
    ThreadEvent.REJECT: ("reject", "Rejected reviewer suggestion in {name}.", "Kept current text unchanged."),
    ThreadEvent.REVERT: ("override", "Reverted accepted suggestion in {name}.", "Restored the original text span."),
    ThreadEvent.RESOLVE: ("route_change", "Resolved thread from {name}.", "Reviewer thread moved out of active queue."),
}


def _shift(pos: int | None, edit_start: int, edit_end: int, new_length: int) -> int | None:
    """Map a position across replacing ``edit_start..edit_end`` with *new_length* tokens."""
    if pos is None or pos <= edit_start:
        return pos
    if pos >= edit_end:
        return pos + new_length - (edit_end - edit_start)
    return min(pos, edit_start + new_length)


def _shift_thread(thread: CommentThread, edit_start: int, edit_end: int, new_length: int) -> CommentThread:
    def move(pos: int | None) -> int | None:
        return _shift(pos, edit_start, edit_end, new_length)

    anchor = thread.anchor.model_copy(update={"start_pos": move(thread.anchor.start_pos), "end_pos": move(thread.anchor.end_pos)})
    suggestion = thread.suggestion
    if suggestion is not None:
        suggestion = suggestion.model_copy(
            update={
                "start": move(suggestion.start),
                "end": move(suggestion.end),
                "applied_start": move(suggestion.applied_start),
                "applied_end": move(suggestion.applied_end),
            }
        )
    return thread.model_copy(update={"anchor": anchor, "suggestion": suggestion})


def _drop_overlapping(thread: CommentThread, edit_start: int, edit_end: int) -> CommentThread:
    """Drop a pending suggestion whose range the edit touches; its original text is gone."""
    suggestion = thread.suggestion
    if suggestion is None or suggestion.status is not SuggestionStatus.PENDING:
        return thread
    if suggestion.start >= edit_end or edit_start >= suggestion.end:
        return thread
    logger.info("Dropping suggestion %s overlapped by an applied edit", suggestion.id)
    return thread.model_copy(update={"suggestion": None})


class ReviewSession:
    """Review state for one document."""

    def __init__(self, document: DocNode, *, session_id: str | None = None, config: Config | None = None) -> None:
        self.session_id = session_id or uuid.uuid4().hex[:12]
        self._config = config
        self._document = document
        self._line_index = build_line_index(document, self.config.document)
        self.results: list[JudgeResult] = []
        self.threads: list[CommentThread] = []
        self.decisions: list[DecisionRecord] = []
        self.visible_judge_ids: set[str] = set()

    @property
    def config(self) -> Config:
        return self._config or get_config()

    @property
    def document(self) -> DocNode:
        return self._document

    @property
    def line_index(self) -> LineIndex:
        return self._line_index

    def _set_document(self, document: DocNode) -> None:
        self._document = document
        self._line_index = build_line_index(document, self.config.document)

    def replace_document(self, document: DocNode) -> None:
        """Swap in an externally edited document and re-anchor every thread.

        Pending suggestions whose original text is no longer at their range
        are dropped; the thread itself stays.
        """
        self._set_document(document)
        schema = self.config.document
        threads = []
        for thread in self.threads:
            resolved = resolve_lines(self._line_index, thread.anchor.start_line, thread.anchor.end_line)
            anchor = thread.anchor.model_copy(
                update={
                    "start_pos": resolved.start if resolved else None,
                    "end_pos": resolved.end if resolved else None,
                }
            )
            suggestion = thread.suggestion
            if (
                suggestion is not None
                and suggestion.status is SuggestionStatus.PENDING
                and text_between(document, suggestion.start, suggestion.end, schema) != suggestion.original_text
            ):
                logger.info("Dropping stale suggestion %s after document change", suggestion.id)
                suggestion = None
            threads.append(thread.model_copy(update={"anchor": anchor, "suggestion": suggestion}))
        self.threads = threads

    # -- Review passes ---------------------------------------------------------

    def ingest(self, payload: Iterable[BackendReviewResult | dict[str, Any]]) -> list[CommentThread]:
        """Start a new review pass; its threads supersede the previous ones."""
        config = self.config
        self.results = to_judge_results(payload, config)
        self.threads = build_threads(self._document, self._line_index, self.results, schema=config.document)
        self.visible_judge_ids = {r.judge_id for r in self.results}
        logger.info(
            "Session %s: %d judge result(s), %d thread(s)", self.session_id, len(self.results), len(self.threads)
        )
        return self.threads

    def highlights(self) -> tuple[list[Highlight], list[str]]:
        return build_highlights(self.results, self._line_index, self.visible_judge_ids)

    def toggle_judge(self, judge_id: str) -> bool:
        """Flip highlight visibility for a judge; returns the new visibility."""
        if judge_id in self.visible_judge_ids:
            self.visible_judge_ids.discard(judge_id)
            return False
        self.visible_judge_ids.add(judge_id)
        return True

    # -- Thread lifecycle ------------------------------------------------------

    def thread(self, thread_id: str) -> CommentThread | None:
        return next((t for t in self.threads if t.id == thread_id), None)

    def _edit(self, start: int, end: int, content: str | list[DocNode], *, skip: str) -> None:
        schema = self.config.document
        new_length = len(content) if isinstance(content, str) else slice_size(content, schema)
        self._set_document(replace_content(self._document, start, end, content, schema))
        self.threads = [
            t if t.id == skip else _shift_thread(_drop_overlapping(t, start, end), start, end, new_length)
            for t in self.threads
        ]

    def apply(self, thread_id: str, event: ThreadEvent) -> tuple[CommentThread | None, bool]:
        """Apply a lifecycle *event* to a thread.

        Returns:
            (thread, changed): ``thread`` is None for unknown ids; ``changed``
            is False when the event does not apply in the thread's state.
        """
        current = self.thread(thread_id)
        if current is None:
            logger.debug("Session %s has no thread %s", self.session_id, thread_id)
            return None, False

        updated = transition(current, event, authors=self.config.threads)
        if updated is current:
            return current, False

        before, after = current.suggestion, updated.suggestion
        if event is ThreadEvent.ACCEPT and before is not None and after is not None:
            self._edit(before.start, before.end, before.replacement_text, skip=thread_id)
        elif event is ThreadEvent.REVERT and before is not None and after is not None:
            applied_end = before.applied_end if before.applied_end is not None else before.end
            original = before.original_content or before.original_text
            self._edit(after.start, applied_end, original, skip=thread_id)

        self.threads = [updated if t.id == thread_id else t for t in self.threads]
        decision_type, reason, impact = _DECISIONS[event]
        self.decisions.append(
            DecisionRecord(
                decision_type=decision_type,
                reason=reason.format(name=current.judge_name or "reviewer"),
                evidence_refs=[current.annotation_id],
                impact_summary=impact,
                created_at=datetime.now(UTC),
            )
        )
        logger.info("Session %s: %s thread %s", self.session_id, event.value, thread_id)
        return updated, True

    def accept(self, thread_id: str) -> tuple[CommentThread | None, bool]:
        return self.apply(thread_id, ThreadEvent.ACCEPT)

    def reject(self, thread_id: str) -> tuple[CommentThread | None, bool]:
        return self.apply(thread_id, ThreadEvent.REJECT)

    def revert(self, thread_id: str) -> tuple[CommentThread | None, bool]:
        return self.apply(thread_id, ThreadEvent.REVERT)

    def resolve(self, thread_id: str) -> tuple[CommentThread | None, bool]:
        return self.apply(thread_id, ThreadEvent.RESOLVE)


# -- Registry ------------------------------------------------------------------

_sessions: dict[str, ReviewSession] = {}
_lock = threading.Lock()


def open_session(document: DocNode, *, session_id: str | None = None) -> ReviewSession:
    """Create (or replace) a session for *document*."""
    session = ReviewSession(document, session_id=session_id)
    with _lock:
        _sessions[session.session_id] = session
    logger.info("Opened review session %s (%d line(s))", session.session_id, len(session.line_index))
    return session


def get_session(session_id: str) -> ReviewSession:
    with _lock:
        session = _sessions.get(session_id)
    if session is None:
        raise SessionNotFoundError(session_id)
    return session


def close_session(session_id: str) -> bool:
    with _lock:
        removed = _sessions.pop(session_id, None)
    if removed is not None:
        logger.info("Closed review session %s", session_id)
    return removed is not None


def clear_sessions() -> None:
    with _lock:
        if _sessions:
            logger.debug("Sessions cleared (%d)", len(_sessions))
        _sessions.clear()


def session_count() -> int:
    with _lock:
        return len(_sessions)
