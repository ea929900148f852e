"""Overlay configuration system.

Loads ``.judgeoverlay.toml`` from the project root (walking up to ``.git``),
validates with Pydantic, and provides sensible defaults so zero-config still works.
"""

from __future__ import annotations

import logging
import tomllib
import typing
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".judgeoverlay.toml"


class DocumentConfig(BaseModel):
    """How document nodes are classified when building the line table."""

    model_config = ConfigDict(extra="ignore")

    textblock_types: list[str] = Field(
        default_factory=lambda: ["paragraph", "heading", "code_block"],
        description="Node types that always count as one line, even when empty",
    )
    inline_types: list[str] = Field(
        default_factory=lambda: ["text", "hard_break", "image", "mention"],
        description="Node types that live inside a line rather than forming one",
    )


class PlacementConfig(BaseModel):
    """Viewport thresholds and gaps for popover anchoring."""

    model_config = ConfigDict(extra="ignore")

    tooltip_threshold: int = Field(default=120, ge=0, description="Below this top edge (px), tooltips open below")
    tooltip_offset: int = Field(default=8, ge=0, description="Gap between highlight and tooltip (px)")
    bubble_threshold: int = Field(default=190, ge=0, description="Below this top edge (px), thread bubbles open below")
    bubble_offset: int = Field(default=10, ge=0, description="Gap between highlight and thread bubble (px)")


class ThreadsConfig(BaseModel):
    """Author names used for messages the lifecycle appends to threads."""

    model_config = ConfigDict(extra="ignore")

    system_author_name: str = Field(default="System", min_length=1)
    user_author_name: str = Field(default="You", min_length=1)


class JudgeConfig(BaseModel):
    """Configuration for a single judge."""

    model_config = ConfigDict(extra="ignore")

    enabled: bool = Field(default=True, description="Whether this judge's annotations become threads")
    color: str | None = Field(
        default=None,
        min_length=1,
        description="Palette id (e.g. 'teal') overriding the judge's positional color",
    )


class Config(BaseModel):
    """Top-level judgeoverlay configuration."""

    model_config = ConfigDict(extra="ignore")

    document: DocumentConfig = Field(default_factory=DocumentConfig, description="Document classification settings")
    placement: PlacementConfig = Field(default_factory=PlacementConfig, description="Popover placement settings")
    threads: ThreadsConfig = Field(default_factory=ThreadsConfig, description="Thread lifecycle settings")
    judges: dict[str, JudgeConfig] = Field(default_factory=dict, description="Per-judge configuration sections")

    @model_validator(mode="after")
    def _check_classification_disjoint(self) -> Config:
        overlap = set(self.document.textblock_types) & set(self.document.inline_types)
        if overlap:
            msg = f"[document] types cannot be both textblock and inline: {sorted(overlap)}"
            raise ValueError(msg)
        return self

    def get_judge(self, judge_id: str) -> JudgeConfig:
        """Get config for a judge, falling back to defaults for unconfigured judges."""
        return self.judges.get(judge_id) or JudgeConfig()


def _get_dict_value_model(annotation: Any) -> type[BaseModel] | None:
    """Extract the value model from ``dict[str, SomeModel]`` type annotations.

    Returns the model class if annotation is ``dict[str, <BaseModel subclass>]``,
    otherwise ``None``.
    """
    args = typing.get_args(annotation)
    if len(args) == 2 and isinstance(args[1], type) and issubclass(args[1], BaseModel):  # noqa: PLR2004
        return args[1]
    return None


def _collect_unknown_keys(
    data: dict[str, Any],
    model_cls: type[BaseModel],
    prefix: str = "",
) -> list[str]:
    """Recursively find keys in *data* that don't match any field in *model_cls*.

    Unknown judge *ids* under ``[judges.*]`` are allowed, since judges come
    from the review service.  Only unknown *keys within* known sections are
    flagged.

    Returns dotted key paths like ``placement.tooltip_gap``.
    """
    known = set(model_cls.model_fields)
    unknown: list[str] = []

    for key, value in data.items():
        dotted = f"{prefix}{key}"
        if key not in known:
            unknown.append(dotted)
            continue
        annotation = model_cls.model_fields[key].annotation
        if isinstance(annotation, type) and issubclass(annotation, BaseModel) and isinstance(value, dict):
            unknown.extend(_collect_unknown_keys(value, annotation, prefix=f"{dotted}."))
            continue
        value_model = _get_dict_value_model(annotation)
        if value_model is not None and isinstance(value, dict):
            for sub_key, sub_value in value.items():
                if isinstance(sub_value, dict):
                    unknown.extend(_collect_unknown_keys(sub_value, value_model, prefix=f"{dotted}.{sub_key}."))

    return unknown


def _find_config_file(start: Path) -> Path | None:
    """Walk up from *start* looking for ``.judgeoverlay.toml``, stopping at ``.git`` root."""
    current = start.resolve()
    while True:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        if current.parent == current:
            return None
        if (current / ".git").exists():
            return None
        current = current.parent


def load_config(cwd: str | Path | None = None) -> tuple[Config, Path | None]:
    """Load configuration from ``.judgeoverlay.toml``.

    Walks up from *cwd* (defaulting to the current directory) looking for the
    config file.  If not found, returns a ``Config`` with all defaults.

    Returns:
        (config, config_path): the parsed config and the file path (or None
        if no config file was found).

    Raises ``ValueError`` on invalid TOML or validation errors so the server
    can refuse to start with a broken config.
    """
    start = Path(cwd) if cwd else Path.cwd()
    config_path = _find_config_file(start)

    if config_path is None:
        logger.info("No %s found, using defaults", CONFIG_FILENAME)
        return Config(), None

    logger.info("Loading config from %s", config_path)
    try:
        data = tomllib.loads(config_path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        msg = f"Invalid TOML in {config_path}: {exc}"
        raise ValueError(msg) from exc

    try:
        config = Config.model_validate(data)
    except Exception as exc:
        msg = f"Invalid config in {config_path}: {exc}"
        raise ValueError(msg) from exc

    for key in _collect_unknown_keys(data, Config):
        logger.warning(
            "Unknown config key '%s' in %s — run 'judgeoverlay config --update' to clean up",
            key,
            config_path,
        )

    return config, config_path


# -- Hot-reloading config with mtime cache ------------------------------------


class _ConfigState:
    """Tracks the active config, its file path, and mtime for hot-reload."""

    __slots__ = ("config", "mtime", "path")

    def __init__(self) -> None:
        self.config: Config = Config()
        self.path: Path | None = None
        self.mtime: float | None = None


_state = _ConfigState()


def get_config() -> Config:
    """Return the active configuration, hot-reloading if the file changed.

    If the file was deleted, falls back to defaults.  If it became invalid,
    logs a warning and keeps the last good config.
    """
    path = _state.path
    if path is None:
        return _state.config

    try:
        current_mtime = path.stat().st_mtime
    except OSError:
        if _state.mtime is not None:
            logger.warning("%s deleted — falling back to defaults", path.name)
            _state.config = Config()
            _state.mtime = None
        return _state.config

    if current_mtime == _state.mtime:
        return _state.config

    logger.info("Config file changed (mtime %.0f → %.0f), reloading", _state.mtime or 0, current_mtime)
    try:
        new_config = Config.model_validate(tomllib.loads(path.read_text(encoding="utf-8")))
    except Exception as exc:
        logger.warning("Invalid config after edit — keeping last good config: %s", exc)
        _state.mtime = current_mtime
        return _state.config

    _state.config = new_config
    _state.mtime = current_mtime
    logger.info("Config hot-reloaded successfully")
    return new_config


def set_config(config: Config, *, config_path: Path | None = None) -> None:
    """Set the active configuration (called during server startup).

    If *config_path* is provided, enables hot-reload on subsequent
    ``get_config()`` calls by tracking the file's mtime.
    """
    _state.config = config
    _state.path = config_path
    try:
        _state.mtime = config_path.stat().st_mtime if config_path else None
    except OSError:
        _state.mtime = None


def get_config_path() -> Path | None:
    """Return the path to the active config file, or None if using defaults."""
    return _state.path


# -- Template sections for ``judgeoverlay config`` ----------------------------

_TEMPLATE_HEADER = """\
# .judgeoverlay.toml: configuration for judgeoverlay
# All settings are optional. Omitted values use sensible defaults.
# Place this file in your project root (next to .git/).
"""

_TEMPLATE_SECTIONS: list[tuple[str, str]] = [
    (
        "[document]",
        """\
[document]
textblock_types = ["paragraph", "heading", "code_block"]  # Always one line each, even when empty
inline_types = ["text", "hard_break", "image", "mention"]  # Never lines on their own
""",
    ),
    (
        "[placement]",
        """\
[placement]
tooltip_threshold = 120           # Tooltips open below highlights closer than this to the viewport top
tooltip_offset = 8
bubble_threshold = 190            # Same for thread bubbles
bubble_offset = 10
""",
    ),
    (
        "[threads]",
        """\
[threads]
system_author_name = "System"     # Author of "Suggestion accepted" style messages
user_author_name = "You"          # Author of "Suggestion rejected" / "Thread resolved" messages
""",
    ),
    (
        "[judges.",
        """\
# [judges.fact_integrity_reviewer]
# enabled = true                  # Set to false to drop this judge's annotations
# color = "teal"                  # violet, rose, teal, amber, blue, fuchsia, emerald, orange
""",
    ),
]

DEFAULT_CONFIG_TEMPLATE = _TEMPLATE_HEADER + "\n" + "\n".join(block for _, block in _TEMPLATE_SECTIONS)


def init_config(cwd: Path | None = None) -> Path:
    """Create a new ``.judgeoverlay.toml`` in the given directory.

    Raises ``SystemExit(1)`` if the file already exists.
    """
    target = (cwd or Path.cwd()) / CONFIG_FILENAME
    if target.exists():
        print(f"Error: {CONFIG_FILENAME} already exists in {target.parent}")  # noqa: T201
        print("Hint: use 'judgeoverlay config --update' to add new sections")  # noqa: T201
        raise SystemExit(1)
    target.write_text(DEFAULT_CONFIG_TEMPLATE, encoding="utf-8")
    print(f"Created {target}")  # noqa: T201
    return target


def _edit_unknown_keys(target: Path, *, comment_out: bool) -> list[str]:
    """Comment out (or remove) unknown keys using tomlkit (style-preserving).

    Returns list of dotted key paths that were edited.
    """
    import tomlkit  # noqa: PLC0415

    raw = target.read_text(encoding="utf-8")
    unknown = _collect_unknown_keys(tomllib.loads(raw), Config)
    if not unknown:
        return []

    doc = tomlkit.loads(raw)
    for dotted in unknown:
        parts = dotted.split(".")
        container = doc
        for part in parts[:-1]:
            container = container[part]  # type: ignore[index]
        key = parts[-1]
        value = container[key]  # type: ignore[index]
        del container[key]  # type: ignore[attr-defined]
        if not comment_out:
            continue
        try:
            if isinstance(value, dict):
                serialized = tomlkit.inline_table()
                serialized.update(value)
                value_str = str(serialized)
            else:
                value_str = tomlkit.dumps({"_": value}).split("= ", 1)[1].strip()
                if "\n" in value_str:
                    value_str = repr(value)
        except Exception:
            value_str = repr(value)
        container.add(tomlkit.comment(f"DEPRECATED: {key} = {value_str}"))  # type: ignore[union-attr]

    target.write_text(tomlkit.dumps(doc), encoding="utf-8")
    return unknown


def _require_config_file(cwd: Path | None) -> Path:
    target = (cwd or Path.cwd()) / CONFIG_FILENAME
    if not target.exists():
        print(f"Error: {CONFIG_FILENAME} not found in {target.parent}")  # noqa: T201
        print("Hint: use 'judgeoverlay config --init' to create one")  # noqa: T201
        raise SystemExit(1)
    return target


def update_config(cwd: Path | None = None) -> tuple[Path, list[str], list[str]]:
    """Append missing sections and comment out deprecated keys.

    Raises ``SystemExit(1)`` if the config file doesn't exist.

    Returns:
        Tuple of (config path, list of added section headers, list of deprecated keys commented out).
    """
    target = _require_config_file(cwd)

    deprecated = _edit_unknown_keys(target, comment_out=True)
    if deprecated:
        print(f"Commented out {len(deprecated)} deprecated key(s):")  # noqa: T201
        for d in deprecated:
            print(f"  # {d}")  # noqa: T201

    existing = target.read_text(encoding="utf-8")
    added = [header for header, _block in _TEMPLATE_SECTIONS if header not in existing]

    if added:
        appendix = "" if existing.endswith("\n") else "\n"
        appendix += "\n# --- New sections added by 'judgeoverlay config --update' ---\n\n"
        appendix += "\n".join(block for header, block in _TEMPLATE_SECTIONS if header in added)
        target.write_text(existing + appendix, encoding="utf-8")
        print(f"Added {len(added)} section(s):")  # noqa: T201
        for h in added:
            print(f"  + {h}")  # noqa: T201

    if not added and not deprecated:
        print(f"{CONFIG_FILENAME} is up to date — nothing to change")  # noqa: T201

    return target, added, deprecated


def clean_config(cwd: Path | None = None) -> tuple[Path, list[str]]:
    """Remove deprecated keys from an existing ``.judgeoverlay.toml``.

    Raises ``SystemExit(1)`` if the config file doesn't exist.
    """
    target = _require_config_file(cwd)

    removed = _edit_unknown_keys(target, comment_out=False)
    if removed:
        print(f"Removed {len(removed)} deprecated key(s) from {target}:")  # noqa: T201
        for r in removed:
            print(f"  - {r}")  # noqa: T201
    else:
        print(f"{CONFIG_FILENAME} is clean — no deprecated keys found")  # noqa: T201

    return target, removed
