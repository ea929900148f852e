"""Tests for severity presentation and the judge color palette."""

from __future__ import annotations

import logging

import pytest

from judgeoverlay.config import Config, JudgeConfig
from judgeoverlay.models import Severity
from judgeoverlay.presentation import (
    REVIEWER_COLORS,
    build_color_map,
    classify_severity,
    color_for,
    color_with_alpha,
    highlight_style,
    presentation_for,
    severity_rank,
)


class TestClassifySeverity:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("critical", Severity.CRITICAL),
            ("WARNING", Severity.WARNING),
            (" info ", Severity.INFO),
            ("blocker", Severity.INFO),
            ("", Severity.INFO),
            (None, Severity.INFO),
        ],
    )
    def test_known_and_fallback(self, raw: str | None, expected: Severity):
        assert classify_severity(raw) is expected


class TestPresentation:
    def test_critical_is_wavy_and_thick(self):
        p = presentation_for("critical")
        assert (p.underline_style, p.thickness, p.show_icon) == ("wavy", "2.5px", True)

    def test_warning_is_solid(self):
        p = presentation_for("warning")
        assert (p.underline_style, p.thickness, p.show_icon) == ("solid", "2px", True)

    def test_info_is_dotted_without_icon(self):
        p = presentation_for("info")
        assert (p.underline_style, p.show_icon) == ("dotted", False)

    def test_unknown_presents_as_info(self):
        assert presentation_for("nitpick") == presentation_for("info")

    def test_rank_orders_critical_first(self):
        ranked = sorted(["info", "critical", "odd", "warning"], key=severity_rank)
        assert ranked[:2] == ["critical", "warning"]


class TestPalette:
    def test_eight_colors(self):
        assert len(REVIEWER_COLORS) == 8
        assert len({c.id for c in REVIEWER_COLORS}) == 8

    def test_color_for_wraps(self):
        assert color_for(0) == color_for(8)

    def test_color_map_by_order(self):
        colors = build_color_map(["a", "b"])
        assert colors["a"].id == "violet"
        assert colors["b"].id == "rose"

    def test_config_override(self):
        config = Config(judges={"b": JudgeConfig(color="teal")})
        assert build_color_map(["a", "b"], config)["b"].id == "teal"

    def test_unknown_override_keeps_positional_color(self, caplog: pytest.LogCaptureFixture):
        config = Config(judges={"a": JudgeConfig(color="chartreuse")})
        with caplog.at_level(logging.WARNING, logger="judgeoverlay.presentation"):
            colors = build_color_map(["a"], config)
        assert colors["a"].id == "violet"
        assert any("chartreuse" in r.message for r in caplog.records)


class TestColorWithAlpha:
    def test_long_hex(self):
        assert color_with_alpha("#7c3aed", 0.2) == "rgba(124, 58, 237, 0.2)"

    def test_short_hex(self):
        assert color_with_alpha("#fff", 1) == "rgba(255, 255, 255, 1)"

    def test_alpha_clamped(self):
        assert color_with_alpha("#000000", 3) == "rgba(0, 0, 0, 1)"

    @pytest.mark.parametrize("value", ["red", "#12", "#zzzzzz", "var(--x)"])
    def test_passthrough(self, value: str):
        assert color_with_alpha(value, 0.5) == value


class TestHighlightStyle:
    def test_uses_severity_and_color(self):
        style = highlight_style("critical", REVIEWER_COLORS[2])
        assert style["text-decoration"] == "underline wavy #0d9488"
        assert style["text-decoration-thickness"] == "2.5px"
        assert style["background-color"] == "rgba(13, 148, 136, 0.2)"

    def test_active_is_stronger(self):
        assert highlight_style("info", REVIEWER_COLORS[0], active=True)["background-color"].endswith("0.28)")
