"""Tests for the overlay configuration system."""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from pathlib import Path

from judgeoverlay.config import (
    CONFIG_FILENAME,
    DEFAULT_CONFIG_TEMPLATE,
    Config,
    DocumentConfig,
    JudgeConfig,
    _collect_unknown_keys,
    clean_config,
    get_config,
    get_config_path,
    init_config,
    load_config,
    set_config,
    update_config,
)


def _write(root: Path, content: str) -> Path:
    target = root / CONFIG_FILENAME
    target.write_text(content, encoding="utf-8")
    return target


class TestConfig:
    def test_defaults(self):
        config = Config()
        assert config.document.textblock_types == ["paragraph", "heading", "code_block"]
        assert config.placement.tooltip_threshold == 120
        assert config.placement.bubble_offset == 10
        assert config.threads.system_author_name == "System"
        assert config.judges == {}

    def test_unknown_judge_gets_defaults(self):
        judge = Config().get_judge("anyone")
        assert judge.enabled is True
        assert judge.color is None

    def test_configured_judge(self):
        config = Config(judges={"style": JudgeConfig(enabled=False, color="rose")})
        assert config.get_judge("style").enabled is False

    def test_overlapping_node_types_rejected(self):
        with pytest.raises(ValueError, match="both textblock and inline"):
            Config(document=DocumentConfig(textblock_types=["paragraph", "image"]))

    def test_negative_threshold_rejected(self):
        with pytest.raises(ValueError):
            Config.model_validate({"placement": {"tooltip_threshold": -1}})


class TestLoadConfig:
    def test_missing_file_returns_defaults(self, tmp_path: Path):
        (tmp_path / ".git").mkdir()
        config, path = load_config(cwd=tmp_path)
        assert path is None
        assert config == Config()

    def test_load_valid_toml(self, tmp_path: Path):
        (tmp_path / ".git").mkdir()
        _write(
            tmp_path,
            """\
[placement]
tooltip_threshold = 80

[judges.style_reviewer]
enabled = false

[judges.fact_integrity_reviewer]
color = "teal"
""",
        )
        config, path = load_config(cwd=tmp_path)
        assert path == tmp_path / CONFIG_FILENAME
        assert config.placement.tooltip_threshold == 80
        assert config.placement.bubble_threshold == 190
        assert config.get_judge("style_reviewer").enabled is False
        assert config.get_judge("fact_integrity_reviewer").color == "teal"

    def test_load_walks_up_to_git_root(self, tmp_path: Path):
        (tmp_path / ".git").mkdir()
        _write(tmp_path, "[threads]\nuser_author_name = \"Editor\"\n")
        subdir = tmp_path / "docs" / "deep"
        subdir.mkdir(parents=True)
        config, _ = load_config(cwd=subdir)
        assert config.threads.user_author_name == "Editor"

    def test_stops_at_git_root(self, tmp_path: Path):
        _write(tmp_path, "[threads]\nuser_author_name = \"Editor\"\n")
        project = tmp_path / "project"
        project.mkdir()
        (project / ".git").mkdir()
        config, path = load_config(cwd=project)
        assert path is None
        assert config.threads.user_author_name == "You"

    def test_invalid_toml_raises(self, tmp_path: Path):
        (tmp_path / ".git").mkdir()
        _write(tmp_path, "{{invalid toml")
        with pytest.raises(ValueError, match="Invalid TOML"):
            load_config(cwd=tmp_path)

    def test_invalid_config_values_raises(self, tmp_path: Path):
        (tmp_path / ".git").mkdir()
        _write(tmp_path, '[placement]\ntooltip_threshold = "high"\n')
        with pytest.raises(ValueError, match="Invalid config"):
            load_config(cwd=tmp_path)

    def test_empty_config_file_returns_defaults(self, tmp_path: Path):
        (tmp_path / ".git").mkdir()
        _write(tmp_path, "")
        config, _ = load_config(cwd=tmp_path)
        assert config == Config()

    def test_init_template_matches_zero_config(self, tmp_path: Path):
        (tmp_path / ".git").mkdir()
        _write(tmp_path, DEFAULT_CONFIG_TEMPLATE)
        config, _ = load_config(cwd=tmp_path)
        assert config == Config()


class TestCollectUnknownKeys:
    def test_top_level_unknown(self):
        assert _collect_unknown_keys({"styling": {}}, Config) == ["styling"]

    def test_nested_unknown(self):
        assert _collect_unknown_keys({"placement": {"tooltip_gap": 4}}, Config) == ["placement.tooltip_gap"]

    def test_unknown_judge_ids_are_allowed(self):
        assert _collect_unknown_keys({"judges": {"new_judge": {"enabled": True}}}, Config) == []

    def test_unknown_key_inside_judge(self):
        assert _collect_unknown_keys({"judges": {"j": {"colour": "teal"}}}, Config) == ["judges.j.colour"]


class TestLoadConfigWarnings:
    def test_warns_on_unknown_keys(self, tmp_path: Path, caplog: pytest.LogCaptureFixture):
        (tmp_path / ".git").mkdir()
        _write(tmp_path, "[placement]\ntooltip_gap = 4\n")
        with caplog.at_level(logging.WARNING, logger="judgeoverlay.config"):
            load_config(cwd=tmp_path)
        assert any("tooltip_gap" in r.message for r in caplog.records)
        assert any("--update" in r.message for r in caplog.records)


class TestHotReload:
    def test_reloads_on_change(self, tmp_path: Path):
        target = _write(tmp_path, "[placement]\ntooltip_threshold = 80\n")
        config, _ = load_config(cwd=tmp_path)
        set_config(config, config_path=target)
        assert get_config().placement.tooltip_threshold == 80
        assert get_config_path() == target

        target.write_text("[placement]\ntooltip_threshold = 60\n", encoding="utf-8")
        stat = target.stat()
        os.utime(target, (stat.st_atime, stat.st_mtime + 5))
        assert get_config().placement.tooltip_threshold == 60

    def test_invalid_edit_keeps_last_good(self, tmp_path: Path):
        target = _write(tmp_path, "[placement]\ntooltip_threshold = 80\n")
        set_config(Config.model_validate({"placement": {"tooltip_threshold": 80}}), config_path=target)
        target.write_text("{{broken", encoding="utf-8")
        stat = target.stat()
        os.utime(target, (stat.st_atime, stat.st_mtime + 5))
        assert get_config().placement.tooltip_threshold == 80

    def test_deleted_file_falls_back_to_defaults(self, tmp_path: Path):
        target = _write(tmp_path, "[placement]\ntooltip_threshold = 80\n")
        set_config(Config.model_validate({"placement": {"tooltip_threshold": 80}}), config_path=target)
        target.unlink()
        assert get_config().placement.tooltip_threshold == 120


class TestInitConfig:
    def test_creates_file(self, tmp_path: Path):
        target = init_config(cwd=tmp_path)
        assert target.read_text(encoding="utf-8") == DEFAULT_CONFIG_TEMPLATE

    def test_refuses_to_overwrite(self, tmp_path: Path):
        _write(tmp_path, "")
        with pytest.raises(SystemExit):
            init_config(cwd=tmp_path)


class TestUpdateConfig:
    def test_appends_missing_sections(self, tmp_path: Path):
        config_file = _write(tmp_path, "[placement]\ntooltip_threshold = 80\n")
        _, added, deprecated = update_config(cwd=tmp_path)
        assert added == ["[document]", "[threads]", "[judges."]
        assert deprecated == []
        content = config_file.read_text(encoding="utf-8")
        assert content.count("[placement]") == 1
        assert "tooltip_threshold = 80" in content

    def test_up_to_date(self, tmp_path: Path):
        _write(tmp_path, DEFAULT_CONFIG_TEMPLATE)
        _, added, deprecated = update_config(cwd=tmp_path)
        assert added == []
        assert deprecated == []

    def test_comments_out_deprecated_keys(self, tmp_path: Path):
        config_file = _write(tmp_path, "[placement]\ntooltip_threshold = 80\ntooltip_gap = 4\n")
        _, _added, deprecated = update_config(cwd=tmp_path)
        assert deprecated == ["placement.tooltip_gap"]
        content = config_file.read_text(encoding="utf-8")
        assert "DEPRECATED: tooltip_gap = 4" in content

    def test_comments_out_unknown_table_section(self, tmp_path: Path):
        config_file = _write(tmp_path, '[placement]\ntooltip_offset = 8\n\n[old_section]\nkey = "val"\n')
        _, _added, deprecated = update_config(cwd=tmp_path)
        assert "old_section" in deprecated
        assert "DEPRECATED" in config_file.read_text(encoding="utf-8")

    def test_fails_if_no_config(self, tmp_path: Path):
        with pytest.raises(SystemExit):
            update_config(cwd=tmp_path)


class TestCleanConfig:
    def test_removes_deprecated_keys(self, tmp_path: Path):
        config_file = _write(tmp_path, "[threads]\nuser_author_name = \"Editor\"\nbot_name = \"x\"\n")
        _, removed = clean_config(cwd=tmp_path)
        assert removed == ["threads.bot_name"]
        content = config_file.read_text(encoding="utf-8")
        assert "bot_name" not in content
        assert "user_author_name" in content

    def test_no_deprecated_keys(self, tmp_path: Path):
        _write(tmp_path, "[threads]\nuser_author_name = \"Editor\"\n")
        _, removed = clean_config(cwd=tmp_path)
        assert removed == []

    def test_fails_if_no_config(self, tmp_path: Path):
        with pytest.raises(SystemExit):
            clean_config(cwd=tmp_path)
