"""Pytest configuration and fixtures."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Project root
PROJECT_ROOT = Path(__file__).parent.parent

# Add src to the Python path
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from subprocess_manager.config import reload_config  # noqa: E402


@pytest.fixture(autouse=True)
def fresh_config(monkeypatch: pytest.MonkeyPatch):
    """Every test starts from a config without SPM_* overrides."""
    for name in (
        "SPM_LOG_DEBUG",
        "SPM_SIGINT_MODE",
        "SPM_SIGINT_DOUBLE_TAP_WINDOW",
        "SPM_TERM_TIMEOUT",
        "SPM_KILL_TIMEOUT",
    ):
        monkeypatch.delenv(name, raising=False)
    config = reload_config()
    yield config
    reload_config()


@pytest.fixture
def python() -> str:
    """Interpreter used as a portable child command."""
    return sys.executable


@pytest.fixture
def sleep_args() -> list[str]:
    """Arguments that keep a Python child alive for a while."""
    return ["-c", "import time; time.sleep(30)"]


@pytest.fixture
def project_root() -> Path:
    return PROJECT_ROOT
