"""SPM environment variable configuration.

Environment variables:
    SPM_LOG_DEBUG: Debug logging
        - true/1/yes/on = DEBUG logs go to a temporary file
        - anything else = off (default, INFO logs go to stderr)

    SPM_SIGINT_MODE: SIGINT (Ctrl+C) handling mode
        - cancel = terminate supervised processes, exit if there are none (default)
        - exit = shut down immediately
        - cancel_then_exit = terminate processes first, exit on the second SIGINT

    SPM_SIGINT_DOUBLE_TAP_WINDOW: Seconds in which a second Ctrl+C forces exit
        - default 1.0, clamped to 0.1-10

    SPM_TERM_TIMEOUT: Seconds to wait after SIGTERM before SIGKILL
        - default 2.0, clamped to 0.1-60

    SPM_KILL_TIMEOUT: Seconds to wait after SIGKILL
        - default 1.0, clamped to 0.1-60
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, fields
from datetime import datetime
from enum import Enum
from pathlib import Path

__all__ = ["Config", "load_config", "get_config", "reload_config", "SigintMode"]

ENV_PREFIX = "SPM_"

DEFAULT_DOUBLE_TAP_WINDOW = 1.0
DEFAULT_TERM_TIMEOUT = 2.0
DEFAULT_KILL_TIMEOUT = 1.0

_TRUTHY = frozenset({"true", "1", "yes", "on"})


class SigintMode(Enum):
    """What the first SIGINT does."""

    CANCEL = "cancel"
    EXIT = "exit"
    CANCEL_THEN_EXIT = "cancel_then_exit"

    @classmethod
    def from_string(cls, value: str) -> "SigintMode":
        """Parse a mode name; unknown names give CANCEL."""
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.CANCEL


def _env(name: str) -> str | None:
    return os.environ.get(ENV_PREFIX + name)


def _parse_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in _TRUTHY


def _parse_float(value: str | None, default: float, low: float, high: float) -> float:
    """Parse a float, clamped to [low, high]; empty or invalid gives default."""
    if not value:
        return default
    try:
        parsed = float(value)
    except ValueError:
        return default
    return min(max(parsed, low), high)


@dataclass
class Config:
    """Runtime configuration.

    Attributes:
        log_debug: Debug logging to a temporary file
        log_file: Debug log path (only when log_debug)
        sigint_mode: SIGINT handling mode
        sigint_double_tap_window: Double-tap window in seconds
        term_timeout: Grace period after SIGTERM in seconds
        kill_timeout: Grace period after SIGKILL in seconds
    """

    log_debug: bool = False
    log_file: str | None = None
    sigint_mode: SigintMode = SigintMode.CANCEL
    sigint_double_tap_window: float = DEFAULT_DOUBLE_TAP_WINDOW
    term_timeout: float = DEFAULT_TERM_TIMEOUT
    kill_timeout: float = DEFAULT_KILL_TIMEOUT

    def __repr__(self) -> str:
        parts = []
        for field in fields(self):
            value = getattr(self, field.name)
            if isinstance(value, Enum):
                value = value.value
            parts.append(f"{field.name}={value}")
        return f"Config({', '.join(parts)})"


def _debug_log_path() -> str:
    """Timestamped file under <tmp>/subprocess-manager/, directory created."""
    directory = Path(tempfile.gettempdir()) / "subprocess-manager"
    directory.mkdir(parents=True, exist_ok=True)
    name = f"spm_debug_{datetime.now():%Y%m%d_%H%M%S}.log"
    return str((directory / name).resolve())


def load_config() -> Config:
    """Read configuration from the environment."""
    log_debug = _parse_bool(_env("LOG_DEBUG"))
    return Config(
        log_debug=log_debug,
        log_file=_debug_log_path() if log_debug else None,
        sigint_mode=SigintMode.from_string(_env("SIGINT_MODE") or ""),
        sigint_double_tap_window=_parse_float(
            _env("SIGINT_DOUBLE_TAP_WINDOW"), DEFAULT_DOUBLE_TAP_WINDOW, 0.1, 10.0
        ),
        term_timeout=_parse_float(_env("TERM_TIMEOUT"), DEFAULT_TERM_TIMEOUT, 0.1, 60.0),
        kill_timeout=_parse_float(_env("KILL_TIMEOUT"), DEFAULT_KILL_TIMEOUT, 0.1, 60.0),
    )


_config: Config | None = None


def get_config() -> Config:
    """Process-wide configuration, loaded on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """Re-read the environment (tests)."""
    global _config
    _config = load_config()
    return _config
