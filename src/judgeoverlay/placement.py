"""Anchor tooltips and thread bubbles to a highlight's on-screen rectangle.

Popovers open above the highlight unless its top edge is too close to the
top of the viewport, in which case they open below.  They are always
centered horizontally on the highlight; there is no horizontal flipping.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from judgeoverlay.models import PopoverPlacement, Rect

if TYPE_CHECKING:
    from judgeoverlay.config import PlacementConfig

TOOLTIP_THRESHOLD = 120
TOOLTIP_OFFSET = 8
BUBBLE_THRESHOLD = 190
BUBBLE_OFFSET = 10


def place_popover(rect: Rect, threshold: float = TOOLTIP_THRESHOLD, offset: float = TOOLTIP_OFFSET) -> PopoverPlacement:
    left = rect.left + rect.width / 2
    if rect.top < threshold:
        return PopoverPlacement(side="below", top=rect.bottom + offset, left=left, transform="translate(-50%, 0)")
    return PopoverPlacement(side="above", top=rect.top - offset, left=left, transform="translate(-50%, -100%)")


def place_tooltip(rect: Rect, config: PlacementConfig | None = None) -> PopoverPlacement:
    if config is None:
        return place_popover(rect, TOOLTIP_THRESHOLD, TOOLTIP_OFFSET)
    return place_popover(rect, config.tooltip_threshold, config.tooltip_offset)


def place_bubble(rect: Rect, config: PlacementConfig | None = None) -> PopoverPlacement:
    if config is None:
        return place_popover(rect, BUBBLE_THRESHOLD, BUBBLE_OFFSET)
    return place_popover(rect, config.bubble_threshold, config.bubble_offset)
