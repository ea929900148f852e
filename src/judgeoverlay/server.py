"""FastMCP server for judgeoverlay.

Exposes the review overlay (line index, span resolution, comment threads,
popover placement and mention parsing) to a rendering host.  All state is
kept in per-document review sessions held in memory by this process.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Literal

from fastmcp import FastMCP
from fastmcp.server.lifespan import lifespan
from fastmcp.server.middleware.error_handling import ErrorHandlingMiddleware
from fastmcp.server.middleware.logging import LoggingMiddleware
from fastmcp.server.middleware.ping import PingMiddleware
from fastmcp.server.middleware.timing import TimingMiddleware
from pydantic import ValidationError

from judgeoverlay import mentions, placement
from judgeoverlay.config import get_config, get_config_path, load_config, set_config
from judgeoverlay.document import DocNode
from judgeoverlay.lines import resolve_lines
from judgeoverlay.models import (
    BackendReviewResult,
    ConfigInfo,
    MentionResult,
    PopoverResult,
    RangeResult,
    Rect,
    Reviewer,
    SessionInfo,
    ThreadActionResult,
    ThreadEvent,
    ThreadListResult,
    ThreadStatus,
)
from judgeoverlay.session import SessionNotFoundError, close_session, get_session, open_session

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from judgeoverlay.session import ReviewSession

logger = logging.getLogger(__name__)


@lifespan
async def load_overlay_config(server: FastMCP) -> AsyncIterator[dict[str, object] | None]:  # noqa: ARG001, RUF029
    """Load ``.judgeoverlay.toml`` on server startup; a broken config aborts startup."""
    config, path = load_config()
    set_config(config, config_path=path)
    logger.info("judgeoverlay config loaded from %s", path or "defaults")
    yield {}


mcp = FastMCP(
    "judgeoverlay",
    lifespan=load_overlay_config,
    instructions="""\
Judge review overlay — map judge annotations (given as 1-based line numbers)
onto a structured rich-text document and manage the resulting comment threads.

## Workflow

1. **Open** — `open_review_session(document)` with the document JSON
   (`{"type": "doc", "content": [...]}`). Keep the returned `session_id`.
2. **Ingest** — `ingest_review(session_id, results)` with the judges' review
   results. Each annotation becomes a thread; a new pass replaces the old threads.
3. **Inspect** — `list_threads(session_id)` returns threads ordered critical
   first, then by line, plus the highlights of visible judges.
   Annotations whose line is not in the document appear in
   `unresolved_annotation_ids` and have no highlight.
4. **Act** — `accept_suggestion`, `reject_suggestion`, `revert_suggestion`
   and `resolve_thread`. An action that does not apply in the thread's
   current state returns `changed: false` and changes nothing; do not retry it.
5. **Close** — `close_review_session(session_id)` when the document is done.

## Lines

A line is one text block (paragraph, heading, code block), not a visual
line. `get_line_index` shows the table; `resolve_line_range` turns a line
range into document positions.

## Mentions

`parse_mentions` handles `@token` and `@{Display Name}` forms;
`resolve_mentions` matches them against a reviewer roster regardless of
spelling ("Fact Integrity Reviewer" and "fact_integrity_reviewer" are the same).

Call `show_config` to inspect the active configuration.
""",
)


def _recovery_error(
    exc: Exception,
    *,
    tool_name: str,
    session_id: str | None = None,
) -> str:
    """Build an actionable error message with recovery hints."""
    if isinstance(exc, SessionNotFoundError):
        return (
            f"{tool_name} failed: no review session '{exc.session_id}'. "
            "Sessions are lost when the server restarts. Call open_review_session() and retry with the new session_id."
        )
    if isinstance(exc, ValidationError):
        return f"{tool_name} failed: invalid payload ({exc.error_count()} error(s)): {exc}. Fix the payload and retry."

    parts = [f"{tool_name} failed: {exc}."]
    if session_id:
        parts.append(f"Call get_line_index(session_id='{session_id}') to check the session state.")
    return " ".join(parts)


mcp.add_middleware(ErrorHandlingMiddleware(include_traceback=True, transform_errors=True))
mcp.add_middleware(TimingMiddleware())
mcp.add_middleware(LoggingMiddleware(include_payloads=True, max_payload_length=500))
mcp.add_middleware(PingMiddleware(interval_ms=30_000))


def _session_info(session: ReviewSession) -> SessionInfo:
    return SessionInfo(
        session_id=session.session_id,
        line_count=len(session.line_index),
        lines=list(session.line_index),
    )


def _thread_list(session: ReviewSession, status: ThreadStatus | None = None) -> ThreadListResult:
    highlights, unresolved = session.highlights()
    threads = [t for t in session.threads if status is None or t.status is status]
    return ThreadListResult(threads=threads, highlights=highlights, unresolved_annotation_ids=unresolved)


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


@mcp.tool(tags={"command"})
def open_review_session(document: dict[str, Any], session_id: str | None = None) -> SessionInfo:
    """Open a review session for a document and build its line index.

    Args:
        document: Document JSON (``{"type": "doc", "content": [...]}``).
        session_id: Reuse a specific id; an existing session with that id is replaced.

    Returns:
        The session id and the line table (1-based line, start and end positions).
    """
    try:
        session = open_session(DocNode.from_json(document), session_id=session_id)
        return _session_info(session)
    except Exception as exc:
        logger.exception("open_review_session failed")
        return SessionInfo(error=_recovery_error(exc, tool_name="open_review_session"))


@mcp.tool(tags={"command"})
def update_document(session_id: str, document: dict[str, Any]) -> SessionInfo:
    """Replace a session's document after an external edit and re-anchor its threads.

    Args:
        session_id: Session returned by open_review_session.
        document: The edited document JSON.
    """
    try:
        session = get_session(session_id)
        session.replace_document(DocNode.from_json(document))
        return _session_info(session)
    except Exception as exc:
        logger.exception("update_document failed for session %s", session_id)
        return SessionInfo(session_id=session_id, error=_recovery_error(exc, tool_name="update_document"))


@mcp.tool(tags={"command"})
def close_review_session(session_id: str) -> str:
    """Close a review session and drop its threads.

    Returns:
        Confirmation message or an error message.
    """
    if close_session(session_id):
        return f"Closed review session {session_id}"
    return _recovery_error(SessionNotFoundError(session_id), tool_name="close_review_session")


@mcp.tool(tags={"query"})
def get_line_index(session_id: str) -> SessionInfo:
    """Return the line table of a session's current document.

    Line N is the Nth text block in document order.  The table is rebuilt
    whenever a suggestion is accepted or reverted.
    """
    try:
        return _session_info(get_session(session_id))
    except Exception as exc:
        logger.exception("get_line_index failed for session %s", session_id)
        return SessionInfo(session_id=session_id, error=_recovery_error(exc, tool_name="get_line_index"))


@mcp.tool(tags={"query"})
def resolve_line_range(session_id: str, start_line: int, end_line: int | None = None) -> RangeResult:
    """Resolve a 1-based line range to document positions.

    A missing or out-of-range ``end_line`` falls back to the start line
    alone.  ``range`` is null when ``start_line`` is not in the document.
    """
    try:
        session = get_session(session_id)
        return RangeResult(range=resolve_lines(session.line_index, start_line, end_line))
    except Exception as exc:
        logger.exception("resolve_line_range failed for session %s", session_id)
        return RangeResult(error=_recovery_error(exc, tool_name="resolve_line_range", session_id=session_id))


# ---------------------------------------------------------------------------
# Threads
# ---------------------------------------------------------------------------


@mcp.tool(tags={"command"})
def ingest_review(session_id: str, results: list[BackendReviewResult]) -> ThreadListResult:
    """Ingest judge review results; each annotation becomes an open thread.

    A new review pass supersedes every thread of the previous one.  Judges
    disabled in ``[judges.<id>]`` are skipped.

    Args:
        session_id: Session returned by open_review_session.
        results: One entry per judge with its annotations (``start``/``end`` are 1-based lines).
    """
    try:
        session = get_session(session_id)
        session.ingest(results)
        return _thread_list(session)
    except Exception as exc:
        logger.exception("ingest_review failed for session %s", session_id)
        return ThreadListResult(error=_recovery_error(exc, tool_name="ingest_review", session_id=session_id))


@mcp.tool(tags={"query"})
def list_threads(session_id: str, status: Literal["open", "resolved"] | None = None) -> ThreadListResult:
    """List a session's threads (critical first, then by line) and visible highlights.

    Args:
        session_id: Session returned by open_review_session.
        status: Filter by "open" or "resolved". Returns all if not set.
    """
    try:
        session = get_session(session_id)
        return _thread_list(session, ThreadStatus(status) if status else None)
    except Exception as exc:
        logger.exception("list_threads failed for session %s", session_id)
        return ThreadListResult(error=_recovery_error(exc, tool_name="list_threads", session_id=session_id))


def _apply(tool_name: str, session_id: str, thread_id: str, event: ThreadEvent) -> ThreadActionResult:
    try:
        thread, changed = get_session(session_id).apply(thread_id, event)
        return ThreadActionResult(thread=thread, changed=changed)
    except Exception as exc:
        logger.exception("%s failed for thread %s", tool_name, thread_id)
        return ThreadActionResult(error=_recovery_error(exc, tool_name=tool_name, session_id=session_id))


@mcp.tool(tags={"command"})
def accept_suggestion(session_id: str, thread_id: str) -> ThreadActionResult:
    """Accept a pending suggestion and apply its replacement text to the document."""
    return _apply("accept_suggestion", session_id, thread_id, ThreadEvent.ACCEPT)


@mcp.tool(tags={"command"})
def reject_suggestion(session_id: str, thread_id: str) -> ThreadActionResult:
    """Reject a pending suggestion; the document is left unchanged."""
    return _apply("reject_suggestion", session_id, thread_id, ThreadEvent.REJECT)


@mcp.tool(tags={"command"})
def revert_suggestion(session_id: str, thread_id: str) -> ThreadActionResult:
    """Restore the original text of an accepted suggestion; it becomes pending again."""
    return _apply("revert_suggestion", session_id, thread_id, ThreadEvent.REVERT)


@mcp.tool(tags={"command"})
def resolve_thread(session_id: str, thread_id: str) -> ThreadActionResult:
    """Mark a thread resolved. Resolved threads accept no further actions."""
    return _apply("resolve_thread", session_id, thread_id, ThreadEvent.RESOLVE)


@mcp.tool(tags={"command"})
def toggle_judge_visibility(session_id: str, judge_id: str) -> ThreadListResult:
    """Show or hide one judge's highlights. Threads are unaffected."""
    try:
        session = get_session(session_id)
        visible = session.toggle_judge(judge_id)
        logger.info("Judge %s is now %s", judge_id, "visible" if visible else "hidden")
        return _thread_list(session)
    except Exception as exc:
        logger.exception("toggle_judge_visibility failed for session %s", session_id)
        return ThreadListResult(error=_recovery_error(exc, tool_name="toggle_judge_visibility", session_id=session_id))


# ---------------------------------------------------------------------------
# Presentation and mentions
# ---------------------------------------------------------------------------


@mcp.tool(tags={"query"})
def place_popover(rect: Rect, kind: Literal["tooltip", "bubble"] = "tooltip") -> PopoverResult:
    """Position a tooltip or thread bubble for a highlight's bounding rectangle.

    Popovers open above the highlight unless it is close to the top of the
    viewport, and are always centered horizontally on it.
    """
    try:
        config = get_config().placement
        place = placement.place_bubble if kind == "bubble" else placement.place_tooltip
        return PopoverResult(placement=place(rect, config))
    except Exception as exc:
        logger.exception("place_popover failed")
        return PopoverResult(error=_recovery_error(exc, tool_name="place_popover"))


@mcp.tool(tags={"query"})
def parse_mentions(text: str) -> MentionResult:
    """Extract ``@token`` / ``@{Display Name}`` mentions and the text without them."""
    try:
        return MentionResult(tokens=mentions.parse_mentions(text), stripped=mentions.strip(text))
    except Exception as exc:
        logger.exception("parse_mentions failed")
        return MentionResult(error=_recovery_error(exc, tool_name="parse_mentions"))


@mcp.tool(tags={"query"})
def resolve_mentions(text: str, reviewers: list[Reviewer]) -> MentionResult:
    """Match the mentions in *text* against a reviewer roster.

    Args:
        text: Free text containing mentions.
        reviewers: Roster of ``{"id", "name"}`` entries.

    Returns:
        Parsed tokens, the stripped text, the mentioned reviewers (first
        mention first) and the tokens that match nobody.
    """
    try:
        directory = mentions.MentionDirectory(reviewers)
        return MentionResult(
            tokens=mentions.parse_mentions(text),
            stripped=mentions.strip(text),
            reviewers=directory.resolve(text),
            unknown=directory.unknown(text),
        )
    except Exception as exc:
        logger.exception("resolve_mentions failed")
        return MentionResult(error=_recovery_error(exc, tool_name="resolve_mentions"))


@mcp.tool(tags={"discovery"})
def show_config() -> ConfigInfo:
    """Show the active judgeoverlay configuration and where it was loaded from."""
    config = get_config()
    path = get_config_path()

    parts: list[str] = [
        f"Text blocks: {', '.join(config.document.textblock_types)}.",
        (
            f"Tooltips flip below under {config.placement.tooltip_threshold:g}px, "
            f"bubbles under {config.placement.bubble_threshold:g}px."
        ),
    ]
    if config.judges:
        judge_summaries = []
        for judge_id, jc in sorted(config.judges.items()):
            status = "enabled" if jc.enabled else "disabled"
            color = f", color={jc.color}" if jc.color else ""
            judge_summaries.append(f"{judge_id}: {status}{color}")
        parts.append(f"{len(config.judges)} judge override(s): {'; '.join(judge_summaries)}.")
    else:
        parts.append("No judge overrides; every judge is enabled with palette colors.")

    return ConfigInfo(
        config=config.model_dump(mode="json"),
        source=str(path) if path else "defaults",
        summary=" ".join(parts),
    )


@mcp.prompt
def review_document() -> str:
    """Walk through a full review pass on one document."""
    return """\
You are reviewing a document against judge feedback. Follow these steps in order:

1. **Open** — call `open_review_session(document)` and keep the `session_id`.
2. **Ingest** — call `ingest_review(session_id, results)` with the judges' results.
3. **Critical first** — `list_threads(session_id, status="open")` is already ordered
   critical first. For each thread with a pending `suggestion`, decide:
   - `accept_suggestion` when the replacement is correct,
   - `reject_suggestion` when it is not.
   If an accepted change turns out wrong, `revert_suggestion` restores the original text.
4. **Resolve** — call `resolve_thread` once a thread needs no further work.
5. **Unanchored feedback** — report every id in `unresolved_annotation_ids`;
   those annotations point at lines that are not in the document.
6. **Close** — `close_review_session(session_id)`.
"""
