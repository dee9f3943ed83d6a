"""Entry point tests: argument parsing and the run mode lifecycle."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import subprocess
import time
from pathlib import Path
from unittest import mock

import pytest

from subprocess_manager import app
from subprocess_manager.config import reload_config
from subprocess_manager.runtime.process_runner import IS_WINDOWS
from subprocess_manager.utils import format_command


class TestBuildParser:
    """CLI argument parsing."""

    def test_run_with_options(self):
        options = app.build_parser().parse_args(
            ["run", "--then", "echo done", "--cwd", "/tmp", "sleep", "10"]
        )
        assert options.mode == "run"
        assert options.completion_command == "echo done"
        assert options.cwd == "/tmp"
        assert options.command == "sleep"
        assert options.args == ["10"]

    def test_run_keeps_option_like_arguments(self):
        options = app.build_parser().parse_args(["run", "python", "-c", "print(1)"])
        assert options.command == "python"
        assert options.args == ["-c", "print(1)"]
        assert options.completion_command is None
        assert options.verbose is False

    def test_serve(self):
        options = app.build_parser().parse_args(["serve", "-v"])
        assert options.mode == "serve"
        assert options.verbose is True

    def test_mode_is_required(self):
        with pytest.raises(SystemExit):
            app.build_parser().parse_args([])


@pytest.fixture
def restore_logging():
    """Put the root and package loggers back after setup_logging()."""
    root = logging.getLogger()
    package = logging.getLogger("subprocess_manager")
    handlers, root_level, package_level = root.handlers[:], root.level, package.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(root_level)
    package.setLevel(package_level)


class TestSetupLogging:
    """Log handler configuration."""

    def test_debug_file_gets_plain_messages(self, tmp_path: Path, restore_logging):
        with mock.patch.dict(os.environ, {"SPM_LOG_DEBUG": "1"}), \
                mock.patch("tempfile.gettempdir", return_value=str(tmp_path)):
            config = reload_config()

        app.setup_logging()
        logging.getLogger("subprocess_manager.test").debug("spawned pid=7 {'k': 1}")

        [handler] = logging.getLogger().handlers
        handler.flush()
        assert isinstance(handler, logging.FileHandler)
        assert type(handler.formatter) is logging.Formatter
        text = Path(config.log_file).read_text(encoding="utf-8")
        assert "[DEBUG] subprocess_manager.test: spawned pid=7 {'k': 1}" in text

    def test_stderr_by_default(self, restore_logging):
        app.setup_logging(verbose=True)

        [handler] = logging.getLogger().handlers
        assert type(handler) is logging.StreamHandler
        assert logging.getLogger("subprocess_manager").level == logging.DEBUG
        assert logging.getLogger().level == logging.WARNING


class TestRunCommand:
    """run_command lifecycle."""

    @pytest.mark.asyncio
    async def test_quick_command_exits_ok(self, python: str):
        code = await app.run_command(python, ["-c", "pass"])
        assert code == app.EXIT_OK

    @pytest.mark.skipif(IS_WINDOWS, reason="cmd.exe starts even for unknown commands")
    @pytest.mark.asyncio
    async def test_spawn_failure(self):
        code = await app.run_command("definitely-not-a-real-binary-xyz")
        assert code == app.EXIT_SPAWN_FAILED

    @pytest.mark.skipif(IS_WINDOWS, reason="POSIX quoting rules")
    @pytest.mark.asyncio
    async def test_completion_command_runs_before_exit(self, python: str, tmp_path: Path):
        marker = tmp_path / "done.txt"
        then = format_command([python, "-c", f"open({str(marker)!r}, 'w').write('done')"])

        code = await app.run_command(python, ["-c", "pass"], completion_command=then)

        assert code == app.EXIT_OK
        assert marker.read_text() == "done"

    @pytest.mark.asyncio
    async def test_working_directory(self, python: str, tmp_path: Path):
        code = await app.run_command(
            python, ["-c", "open('here.txt', 'w').write('x')"], cwd=str(tmp_path)
        )
        assert code == app.EXIT_OK
        assert (tmp_path / "here.txt").exists()

    @pytest.mark.skipif(IS_WINDOWS, reason="POSIX signals")
    @pytest.mark.asyncio
    async def test_sigterm_stops_children(self, python: str, sleep_args: list[str]):
        loop = asyncio.get_running_loop()
        loop.call_later(1.0, os.kill, os.getpid(), signal.SIGTERM)

        started = time.monotonic()
        code = await app.run_command(python, sleep_args)

        assert code == app.EXIT_OK
        assert time.monotonic() - started < 15


class TestMain:
    """main() wiring."""

    def test_run_exit_code(self, python: str):
        with mock.patch.object(app, "setup_logging"), pytest.raises(SystemExit) as exc_info:
            app.main(["run", python, "-c", "pass"])
        assert exc_info.value.code == app.EXIT_OK

    def test_leading_separator_is_dropped(self):
        with mock.patch.object(app, "setup_logging"), \
                mock.patch.object(app, "run_command", new=mock.MagicMock()) as run_command, \
                mock.patch.object(app.asyncio, "run", return_value=0), \
                pytest.raises(SystemExit):
            app.main(["run", "--then", "echo done", "sleep", "--", "10"])
        run_command.assert_called_once_with("sleep", ["10"], "echo done", None)


@pytest.mark.integration
@pytest.mark.skipif(IS_WINDOWS, reason="POSIX quoting rules")
def test_cli_end_to_end(python: str, project_root: Path, tmp_path: Path):
    marker = tmp_path / "chained.txt"
    then = format_command([python, "-c", f"open({str(marker)!r}, 'w').write('ok')"])
    env = dict(os.environ, PYTHONPATH=str(project_root / "src"))

    result = subprocess.run(
        [python, "-m", "subprocess_manager", "run", "--then", then, python, "-c", "pass"],
        env=env,
        capture_output=True,
        text=True,
        timeout=60,
    )

    assert result.returncode == 0, result.stderr
    assert marker.read_text() == "ok"
    assert "All supervised processes have exited" in result.stderr
