"""Turn review-service payloads into overlay-ready judge results and highlights."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from judgeoverlay.lines import resolve_lines
from judgeoverlay.models import Annotation, BackendReviewResult, Highlight, JudgeResult
from judgeoverlay.presentation import build_color_map, presentation_for

if TYPE_CHECKING:
    from collections.abc import Collection, Iterable, Sequence

    from judgeoverlay.config import Config
    from judgeoverlay.models import LineSpan

logger = logging.getLogger(__name__)


def parse_results(payload: Iterable[BackendReviewResult | dict[str, Any]]) -> list[BackendReviewResult]:
    """Validate raw backend results (dicts are accepted as-is from JSON)."""
    return [item if isinstance(item, BackendReviewResult) else BackendReviewResult.model_validate(item) for item in payload]


def to_judge_results(
    payload: Iterable[BackendReviewResult | dict[str, Any]],
    config: Config | None = None,
) -> list[JudgeResult]:
    """Convert backend results, dropping judges disabled in config.

    Annotation ids are ``<judge_id>-<index>`` and colors follow judge order.
    """
    backend = parse_results(payload)
    if config is not None:
        skipped = [r.judge_id for r in backend if not config.get_judge(r.judge_id).enabled]
        if skipped:
            logger.info("Skipping disabled judge(s): %s", ", ".join(skipped))
        backend = [r for r in backend if r.judge_id not in skipped]

    colors = build_color_map((r.judge_id for r in backend), config)
    return [
        JudgeResult(
            judge_id=r.judge_id,
            judge_name=r.judge_name,
            score=r.score,
            decision=r.decision,
            reasoning=r.reasoning,
            files_referenced=r.files_referenced,
            color=colors[r.judge_id],
            annotations=[
                Annotation(
                    id=f"{r.judge_id}-{idx}",
                    judge_id=r.judge_id,
                    judge_name=r.judge_name,
                    severity=ann.severity,
                    message=ann.message,
                    criterion=ann.criterion,
                    start_line=ann.start,
                    end_line=ann.end,
                )
                for idx, ann in enumerate(r.annotations)
            ],
        )
        for r in backend
    ]


def build_highlights(
    results: Iterable[JudgeResult],
    index: Sequence[LineSpan],
    visible_judge_ids: Collection[str] | None = None,
) -> tuple[list[Highlight], list[str]]:
    """Resolve every annotation of the visible judges against *index*.

    Returns:
        (highlights, unresolved_annotation_ids): annotations whose start
        line is not in the index are listed but not highlighted.
    """
    highlights: list[Highlight] = []
    unresolved: list[str] = []
    for result in results:
        if visible_judge_ids is not None and result.judge_id not in visible_judge_ids:
            continue
        for annotation in result.annotations:
            resolved = resolve_lines(index, annotation.start_line, annotation.end_line)
            if resolved is None:
                unresolved.append(annotation.id)
                continue
            highlights.append(
                Highlight(
                    annotation=annotation,
                    range=resolved,
                    color=result.color,
                    presentation=presentation_for(annotation.severity),
                )
            )
    if unresolved:
        logger.warning("%d annotation(s) reference lines outside the document", len(unresolved))
    return highlights, unresolved
