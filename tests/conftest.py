"""Global test fixtures for judgeoverlay."""

from __future__ import annotations

import pytest

from judgeoverlay.config import Config, set_config
from judgeoverlay.session import clear_sessions


@pytest.fixture(autouse=True)
def _default_config():
    """Reset config to defaults before every test.

    A committed .judgeoverlay.toml may disable judges or change placement
    thresholds, which breaks tests that expect the defaults.  Sessions are
    process-wide, so they are cleared too.
    """
    set_config(Config())
    clear_sessions()
    yield
    set_config(Config())
    clear_sessions()
