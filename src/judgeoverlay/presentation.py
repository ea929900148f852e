"""Severity presentation tokens and the judge color palette."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from judgeoverlay.models import ReviewerColor, Severity, SeverityPresentation

if TYPE_CHECKING:
    from collections.abc import Iterable

    from judgeoverlay.config import Config

logger = logging.getLogger(__name__)

_PRESENTATIONS: dict[Severity, SeverityPresentation] = {
    Severity.CRITICAL: SeverityPresentation(
        severity=Severity.CRITICAL,
        bg="var(--status-error-bg)",
        fg="var(--status-error)",
        label="Critical",
        underline_style="wavy",
        thickness="2.5px",
        show_icon=True,
    ),
    Severity.WARNING: SeverityPresentation(
        severity=Severity.WARNING,
        bg="var(--status-warning-bg)",
        fg="var(--status-warning)",
        label="Warning",
        underline_style="solid",
        thickness="2px",
        show_icon=True,
    ),
    Severity.INFO: SeverityPresentation(
        severity=Severity.INFO,
        bg="var(--status-info-bg)",
        fg="var(--status-info)",
        label="Info",
        underline_style="dotted",
        thickness="2px",
        show_icon=False,
    ),
}

# Most critical first
SEVERITY_ORDER: dict[Severity, int] = {
    Severity.CRITICAL: 0,
    Severity.WARNING: 1,
    Severity.INFO: 2,
}


def classify_severity(value: str | None) -> Severity:
    """Map a raw severity string to a known level; anything unrecognized is info."""
    try:
        return Severity((value or "").strip().lower())
    except ValueError:
        logger.debug("Unknown severity %r presented as info", value)
        return Severity.INFO


def presentation_for(value: str | None) -> SeverityPresentation:
    return _PRESENTATIONS[classify_severity(value)]


def severity_rank(value: str | None) -> int:
    return SEVERITY_ORDER[classify_severity(value)]


# -- Judge palette -------------------------------------------------------------

REVIEWER_COLORS: tuple[ReviewerColor, ...] = (
    ReviewerColor(id="violet", underline="#7c3aed", bg="rgba(124, 58, 237, 0.08)", label="Violet"),
    ReviewerColor(id="rose", underline="#e11d48", bg="rgba(225, 29, 72, 0.08)", label="Rose"),
    ReviewerColor(id="teal", underline="#0d9488", bg="rgba(13, 148, 136, 0.08)", label="Teal"),
    ReviewerColor(id="amber", underline="#d97706", bg="rgba(217, 119, 6, 0.08)", label="Amber"),
    ReviewerColor(id="blue", underline="#2563eb", bg="rgba(37, 99, 235, 0.08)", label="Blue"),
    ReviewerColor(id="fuchsia", underline="#c026d3", bg="rgba(192, 38, 211, 0.08)", label="Fuchsia"),
    ReviewerColor(id="emerald", underline="#059669", bg="rgba(5, 150, 105, 0.08)", label="Emerald"),
    ReviewerColor(id="orange", underline="#ea580c", bg="rgba(234, 88, 12, 0.08)", label="Orange"),
)

_COLORS_BY_ID = {color.id: color for color in REVIEWER_COLORS}


def color_for(index: int) -> ReviewerColor:
    return REVIEWER_COLORS[index % len(REVIEWER_COLORS)]


def build_color_map(judge_ids: Iterable[str], config: Config | None = None) -> dict[str, ReviewerColor]:
    """Assign palette colors by judge order, honoring ``[judges.<id>] color`` overrides."""
    colors: dict[str, ReviewerColor] = {}
    for idx, judge_id in enumerate(judge_ids):
        color = color_for(idx)
        override = config.get_judge(judge_id).color if config else None
        if override:
            if override in _COLORS_BY_ID:
                color = _COLORS_BY_ID[override]
            else:
                logger.warning("Unknown palette color %r for judge %s, using %s", override, judge_id, color.id)
        colors[judge_id] = color
    return colors


def color_with_alpha(color: str, alpha: float) -> str:
    """Convert ``#rgb`` / ``#rrggbb`` to ``rgba(...)``; other values pass through."""
    safe_alpha = max(0.0, min(1.0, alpha))
    raw = color.strip()
    if not raw.startswith("#"):
        return color
    digits = raw[1:]
    if len(digits) == 3:  # noqa: PLR2004
        digits = "".join(ch * 2 for ch in digits)
    if len(digits) != 6:  # noqa: PLR2004
        return color
    try:
        r, g, b = (int(digits[i : i + 2], 16) for i in (0, 2, 4))
    except ValueError:
        return color
    return f"rgba({r}, {g}, {b}, {safe_alpha:g})"


def highlight_style(value: str | None, color: ReviewerColor, *, active: bool = False) -> dict[str, str]:
    """Inline style for an annotation highlight."""
    presentation = presentation_for(value)
    return {
        "text-decoration": f"underline {presentation.underline_style} {color.underline}",
        "text-decoration-thickness": presentation.thickness,
        "text-underline-offset": "3px",
        "background-color": color_with_alpha(color.underline, 0.28 if active else 0.2),
    }
