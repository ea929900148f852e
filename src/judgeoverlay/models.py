"""Pydantic models for judgeoverlay."""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - Pydantic needs this at runtime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from judgeoverlay.document import DocNode  # noqa: TC001 - Pydantic needs this at runtime


class Severity(StrEnum):
    """Annotation severity levels, ordered from least to most critical."""

    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class ThreadStatus(StrEnum):
    """Whether a comment thread is still open."""

    OPEN = "open"
    RESOLVED = "resolved"


class SuggestionStatus(StrEnum):
    """Lifecycle state of an inline edit suggestion."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class ThreadEvent(StrEnum):
    """User actions that drive the thread lifecycle."""

    ACCEPT = "accept"
    REJECT = "reject"
    REVERT = "revert"
    RESOLVE = "resolve"


# -- Positions -----------------------------------------------------------------


class LineSpan(BaseModel):
    """One line of the document: a leaf text block and its structural span."""

    model_config = ConfigDict(frozen=True)

    line: int = Field(ge=1, description="1-based line number in document order")
    start: int = Field(ge=0, description="Position of the block's content start")
    end: int = Field(ge=0, description="Position of the block's content end (>= start)")


class ResolvedRange(BaseModel):
    """Structural range covering a backend line range."""

    model_config = ConfigDict(frozen=True)

    start: int = Field(description="Start position of the highlight")
    end: int = Field(description="End position of the highlight")


class Rect(BaseModel):
    """On-screen bounding rectangle of a highlight, in viewport pixels."""

    model_config = ConfigDict(frozen=True)

    top: float
    left: float
    width: float = 0.0
    height: float = 0.0

    @property
    def bottom(self) -> float:
        return self.top + self.height


class PopoverPlacement(BaseModel):
    """Where to anchor a tooltip or thread bubble relative to its highlight."""

    side: str = Field(description="'below' or 'above' the highlight")
    top: float = Field(description="Popover top coordinate")
    left: float = Field(description="Horizontal center of the highlight")
    transform: str = Field(description="CSS transform centering the popover on ``left``")


# -- Presentation --------------------------------------------------------------


class SeverityPresentation(BaseModel):
    """Fixed presentation tokens for a severity level."""

    model_config = ConfigDict(frozen=True)

    severity: Severity
    bg: str = Field(description="Badge background token")
    fg: str = Field(description="Badge foreground token")
    label: str = Field(description="Human-readable badge label")
    underline_style: str = Field(description="Text-decoration style: wavy, solid or dotted")
    thickness: str = Field(description="Underline thickness")
    show_icon: bool = Field(description="Whether a '!' marker precedes the highlight")


class ReviewerColor(BaseModel):
    """A palette entry used for a judge's underlines, icons and cards."""

    model_config = ConfigDict(frozen=True)

    id: str
    underline: str
    bg: str = Field(description="8% opacity fill for hover/active states")
    label: str


# -- Identities ----------------------------------------------------------------


class Reviewer(BaseModel):
    """A mention-eligible reviewer identity."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Stable reviewer identifier (e.g. 'fact_integrity_reviewer')")
    name: str = Field(description="Display name (e.g. 'Fact Integrity Reviewer')")


class MentionToken(BaseModel):
    """A mention found in free text plus its canonical key."""

    model_config = ConfigDict(frozen=True)

    raw: str = Field(description="Matched text without the '@' and braces")
    key: str = Field(description="Canonical identity key")


# -- Review payload ------------------------------------------------------------


class BackendAnnotation(BaseModel):
    """A line-based annotation as reported by the review service."""

    model_config = ConfigDict(extra="ignore")

    start: int = Field(description="1-based start line")
    end: int = Field(description="1-based end line")
    message: str
    severity: str = Field(default=Severity.INFO, description="critical, warning or info")
    criterion: str | None = None


class BackendReviewResult(BaseModel):
    """One judge's verdict as reported by the review service."""

    model_config = ConfigDict(extra="ignore")

    judge_id: str
    judge_name: str
    score: float = 0.0
    decision: str = "pass"
    reasoning: str = ""
    files_referenced: list[str] = Field(default_factory=list)
    annotations: list[BackendAnnotation] = Field(default_factory=list)


class Annotation(BaseModel):
    """A judge annotation anchored to a line range of the current document."""

    model_config = ConfigDict(frozen=True)

    id: str
    judge_id: str
    judge_name: str
    severity: str = Field(description="Raw severity; unknown values present as info")
    message: str
    criterion: str | None = None
    start_line: int
    end_line: int


class JudgeResult(BaseModel):
    """A judge's result ready for the overlay."""

    judge_id: str
    judge_name: str
    score: float = 0.0
    decision: str = "pass"
    reasoning: str = ""
    annotations: list[Annotation] = Field(default_factory=list)
    files_referenced: list[str] = Field(default_factory=list)
    color: ReviewerColor


class Highlight(BaseModel):
    """A resolved annotation highlight handed to the renderer."""

    annotation: Annotation
    range: ResolvedRange
    color: ReviewerColor
    presentation: SeverityPresentation


# -- Threads -------------------------------------------------------------------


class ThreadAnchor(BaseModel):
    """Where a thread is anchored, in lines and (when resolvable) positions."""

    start_line: int
    end_line: int
    start_pos: int | None = Field(default=None, description="None when the start line is unresolvable")
    end_pos: int | None = None


class ThreadMessage(BaseModel):
    """A single message within a comment thread."""

    id: str
    author_type: str = Field(description="reviewer, system or human")
    author_name: str
    body: str
    created_at: datetime


class Suggestion(BaseModel):
    """An inline text replacement proposed by a judge."""

    id: str
    status: SuggestionStatus = SuggestionStatus.PENDING
    start: int = Field(description="Start of the text the suggestion replaces")
    end: int = Field(description="End of the text the suggestion replaces")
    original_text: str
    original_content: list[DocNode] = Field(
        default_factory=list, description="Inline nodes the suggestion replaces, restored on revert"
    )
    replacement_text: str
    applied_start: int | None = None
    applied_end: int | None = None
    applied_at: datetime | None = None


class CommentThread(BaseModel):
    """A judge-anchored comment conversation with an optional suggestion."""

    id: str
    key: str = Field(description="Stable '<judge_id>:<annotation_id>' key the id is hashed from")
    annotation_id: str
    judge_id: str
    judge_name: str
    severity: str
    status: ThreadStatus = ThreadStatus.OPEN
    anchor: ThreadAnchor
    color: ReviewerColor
    messages: list[ThreadMessage] = Field(default_factory=list)
    suggestion: Suggestion | None = None
    created_at: datetime
    updated_at: datetime


class DecisionRecord(BaseModel):
    """Audit entry appended for every effective lifecycle transition."""

    decision_type: str = Field(description="approve, reject, override or route_change")
    reason: str
    evidence_refs: list[str] = Field(default_factory=list)
    impact_summary: str = ""
    created_at: datetime


# -- Tool results --------------------------------------------------------------


class SessionInfo(BaseModel):
    """A review session and its current line table."""

    session_id: str = ""
    line_count: int = 0
    lines: list[LineSpan] = Field(default_factory=list)
    error: str | None = Field(default=None, description="Error message if the request failed")


class RangeResult(BaseModel):
    """Result of resolving a backend line range."""

    range: ResolvedRange | None = Field(default=None, description="None when the start line is unresolvable")
    error: str | None = Field(default=None, description="Error message if the request failed")


class ThreadListResult(BaseModel):
    """Threads and visible highlights of a session."""

    threads: list[CommentThread] = Field(default_factory=list, description="Threads ordered by severity, then line")
    highlights: list[Highlight] = Field(default_factory=list, description="Resolved highlights of visible judges")
    unresolved_annotation_ids: list[str] = Field(
        default_factory=list, description="Annotations without a highlight (listed in the sidebar only)"
    )
    error: str | None = Field(default=None, description="Error message if the request failed")


class ThreadActionResult(BaseModel):
    """Result of a lifecycle action on one thread."""

    thread: CommentThread | None = None
    changed: bool = Field(default=False, description="False when the action did not apply in the thread's state")
    error: str | None = Field(default=None, description="Error message if the request failed")


class PopoverResult(BaseModel):
    """Popover placement for one highlight."""

    placement: PopoverPlacement | None = None
    error: str | None = Field(default=None, description="Error message if the request failed")


class MentionResult(BaseModel):
    """Mentions parsed from free text."""

    tokens: list[MentionToken] = Field(default_factory=list, description="Mentions in order of occurrence")
    stripped: str = Field(default="", description="Text with mentions removed")
    reviewers: list[Reviewer] = Field(default_factory=list, description="Roster entries mentioned, first mention first")
    unknown: list[str] = Field(default_factory=list, description="Tokens that match no roster entry")
    error: str | None = Field(default=None, description="Error message if the request failed")


class ConfigInfo(BaseModel):
    """Active judgeoverlay configuration with metadata."""

    config: dict[str, Any] = Field(description="Full configuration as a dictionary")
    source: str = Field(default="defaults", description="Path of the loaded config file, or 'defaults'")
    summary: str = Field(default="", description="Human-readable explanation of the active settings")
