"""Tests for mention parsing, normalization and roster lookup."""

from __future__ import annotations

import logging

import pytest

from judgeoverlay.mentions import (
    MentionDirectory,
    build_identity_keys,
    format_display_mention,
    normalize,
    parse_mentions,
    parse_tokens,
    strip,
)
from judgeoverlay.models import MentionToken, Reviewer

FACT = Reviewer(id="fact_integrity_reviewer", name="Fact Integrity Reviewer")
PLANNER = Reviewer(id="mission_planner", name="Mission Planner")


class TestNormalize:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("Fact Integrity Reviewer", "fact_integrity_reviewer"),
            ("  Mission   Planner ", "mission_planner"),
            ("Clarity & Structure", "clarity_structure"),
            ("already_canonical", "already_canonical"),
            ("kebab-case-id", "kebab-case-id"),
            ("__edge__", "edge"),
            ("", ""),
            ("!!!", ""),
        ],
    )
    def test_canonical_form(self, raw: str, expected: str):
        assert normalize(raw) == expected

    @pytest.mark.parametrize("raw", ["Fact Integrity Reviewer", " a _ b ", "X--Y", "é accent", "", "@{odd}"])
    def test_idempotent(self, raw: str):
        assert normalize(normalize(raw)) == normalize(raw)


class TestParseTokens:
    def test_both_syntaxes_in_order(self):
        text = "Draft this with @mission_planner then @{Fact Integrity Reviewer}"
        assert parse_tokens(text) == ["mission_planner", "Fact Integrity Reviewer"]

    def test_duplicates_preserved(self):
        assert parse_tokens("@a and @a") == ["a", "a"]

    def test_bare_at_is_text(self):
        assert parse_tokens("email me @ noon") == []

    def test_unclosed_brace_is_text(self):
        assert parse_tokens("@{Fact Integrity") == []

    def test_whitespace_only_braces_skipped(self):
        assert parse_tokens("@{   } hello") == []

    def test_display_mention_round_trip(self):
        assert "Fact Integrity Reviewer" in parse_tokens(format_display_mention("Fact Integrity Reviewer"))

    def test_parse_mentions_pairs_keys(self):
        assert parse_mentions("hi @{Mission Planner}") == [MentionToken(raw="Mission Planner", key="mission_planner")]


class TestStrip:
    def test_removes_mentions_and_collapses_whitespace(self):
        assert strip("Draft this with @mission_planner then @{Fact Integrity Reviewer}") == "Draft this with then"

    def test_leading_mention(self):
        assert strip("@a   please look") == "please look"

    def test_no_mentions(self):
        assert strip("  plain   text ") == "plain text"


class TestIdentityKeys:
    def test_id_and_name_collapse(self):
        assert build_identity_keys("fact_integrity_reviewer", "Fact Integrity Reviewer") == ["fact_integrity_reviewer"]

    def test_distinct_keys_id_first(self):
        assert build_identity_keys("fir", "Fact Integrity Reviewer") == ["fir", "fact_integrity_reviewer"]

    def test_empty_name_dropped(self):
        assert build_identity_keys("fir", "") == ["fir"]


class TestMentionDirectory:
    def test_lookup_by_either_spelling(self):
        directory = MentionDirectory([FACT, PLANNER])
        assert directory.lookup("Fact Integrity Reviewer") == FACT
        assert directory.lookup("fact_integrity_reviewer") == FACT
        assert "Mission Planner" in directory
        assert "nobody" not in directory

    def test_resolve_dedupes_in_order(self):
        directory = MentionDirectory([FACT, PLANNER])
        text = "@{Mission Planner} and @fact_integrity_reviewer, again @mission_planner"
        assert directory.resolve(text) == [PLANNER, FACT]

    def test_unknown_tokens(self):
        directory = MentionDirectory([FACT])
        assert directory.unknown("@fact_integrity_reviewer @ghost @{Someone Else}") == ["ghost", "Someone Else"]

    def test_first_registration_wins(self, caplog: pytest.LogCaptureFixture):
        impostor = Reviewer(id="other", name="Fact Integrity Reviewer")
        with caplog.at_level(logging.WARNING, logger="judgeoverlay.mentions"):
            directory = MentionDirectory([FACT, impostor])
        assert directory.lookup("Fact Integrity Reviewer") == FACT
        assert directory.lookup("other") == impostor
        assert any("already belongs" in r.message for r in caplog.records)

    def test_len_counts_keys(self):
        assert len(MentionDirectory([FACT, Reviewer(id="mp", name="Mission Planner")])) == 3
