"""Config module tests.

Tests SPM_* environment variable parsing and configuration management.
"""

from __future__ import annotations

import os
from pathlib import Path
from unittest import mock

import pytest

from subprocess_manager.config import (
    Config,
    SigintMode,
    get_config,
    load_config,
    reload_config,
)


class TestDefaults:
    """Defaults without environment overrides."""

    def test_defaults(self):
        config = load_config()
        assert config.log_debug is False
        assert config.log_file is None
        assert config.sigint_mode == SigintMode.CANCEL
        assert config.sigint_double_tap_window == 1.0
        assert config.term_timeout == 2.0
        assert config.kill_timeout == 1.0


class TestParseBool:
    """Boolean parsing."""

    @pytest.mark.parametrize("value", ["true", "True", "TRUE", "1", "yes", "Yes", "on"])
    def test_truthy_values(self, value: str, tmp_path: Path):
        with mock.patch.dict(os.environ, {"SPM_LOG_DEBUG": value}, clear=False), \
                mock.patch("tempfile.gettempdir", return_value=str(tmp_path)):
            config = load_config()
            assert config.log_debug is True

    @pytest.mark.parametrize("value", ["false", "False", "FALSE", "0", "no", "No", "off", ""])
    def test_falsy_values(self, value: str):
        with mock.patch.dict(os.environ, {"SPM_LOG_DEBUG": value}, clear=False):
            config = load_config()
            assert config.log_debug is False


class TestLogFile:
    """Debug log file path."""

    def test_log_file_created_in_temp_dir(self, tmp_path: Path):
        with mock.patch.dict(os.environ, {"SPM_LOG_DEBUG": "1"}, clear=False), \
                mock.patch("tempfile.gettempdir", return_value=str(tmp_path)):
            config = load_config()

        assert config.log_file is not None
        log_file = Path(config.log_file)
        assert log_file.parent == (tmp_path / "subprocess-manager").resolve()
        assert log_file.name.startswith("spm_debug_")
        assert log_file.suffix == ".log"


class TestSigintMode:
    """SigintMode parsing."""

    def test_from_string_valid(self):
        assert SigintMode.from_string("cancel") == SigintMode.CANCEL
        assert SigintMode.from_string("exit") == SigintMode.EXIT
        assert SigintMode.from_string("cancel_then_exit") == SigintMode.CANCEL_THEN_EXIT

    def test_from_string_case_insensitive(self):
        assert SigintMode.from_string("EXIT") == SigintMode.EXIT
        assert SigintMode.from_string(" Cancel_Then_Exit ") == SigintMode.CANCEL_THEN_EXIT

    def test_from_string_invalid(self):
        assert SigintMode.from_string("invalid") == SigintMode.CANCEL
        assert SigintMode.from_string("") == SigintMode.CANCEL

    def test_from_env(self):
        with mock.patch.dict(os.environ, {"SPM_SIGINT_MODE": "exit"}):
            assert load_config().sigint_mode == SigintMode.EXIT


class TestFloatSettings:
    """Clamped float settings."""

    def test_double_tap_window(self):
        with mock.patch.dict(os.environ, {"SPM_SIGINT_DOUBLE_TAP_WINDOW": "2.5"}):
            assert load_config().sigint_double_tap_window == 2.5

    def test_double_tap_window_clamped(self):
        with mock.patch.dict(os.environ, {"SPM_SIGINT_DOUBLE_TAP_WINDOW": "0.01"}):
            assert load_config().sigint_double_tap_window == 0.1
        with mock.patch.dict(os.environ, {"SPM_SIGINT_DOUBLE_TAP_WINDOW": "100"}):
            assert load_config().sigint_double_tap_window == 10.0

    def test_timeouts(self):
        with mock.patch.dict(os.environ, {"SPM_TERM_TIMEOUT": "5", "SPM_KILL_TIMEOUT": "0.5"}):
            config = load_config()
            assert config.term_timeout == 5.0
            assert config.kill_timeout == 0.5

    def test_timeouts_clamped(self):
        with mock.patch.dict(os.environ, {"SPM_TERM_TIMEOUT": "0", "SPM_KILL_TIMEOUT": "600"}):
            config = load_config()
            assert config.term_timeout == 0.1
            assert config.kill_timeout == 60.0

    @pytest.mark.parametrize("name", ["SPM_TERM_TIMEOUT", "SPM_KILL_TIMEOUT", "SPM_SIGINT_DOUBLE_TAP_WINDOW"])
    def test_invalid_value_uses_default(self, name: str):
        defaults = Config()
        with mock.patch.dict(os.environ, {name: "invalid"}):
            config = load_config()
        assert config.term_timeout == defaults.term_timeout
        assert config.kill_timeout == defaults.kill_timeout
        assert config.sigint_double_tap_window == defaults.sigint_double_tap_window


class TestGlobalConfig:
    """Global config instance."""

    def test_get_config_returns_same_instance(self):
        reload_config()
        assert get_config() is get_config()

    def test_reload_config_creates_new_instance(self):
        config1 = get_config()
        config2 = reload_config()
        assert config1 is not config2

    def test_repr(self):
        text = repr(Config(sigint_mode=SigintMode.EXIT, term_timeout=3.0))
        assert "sigint_mode=exit" in text
        assert "term_timeout=3.0" in text
