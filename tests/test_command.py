"""Command tokenizer tests."""

from __future__ import annotations

import pytest

from subprocess_manager.errors import CommandParseError
from subprocess_manager.runtime.process_runner import IS_WINDOWS
from subprocess_manager.utils.command import format_command, split_command


class TestSplitCommand:
    """split_command behaviour."""

    def test_whitespace_separates_tokens(self):
        assert split_command("ping -c 3  127.0.0.1") == ["ping", "-c", "3", "127.0.0.1"]

    def test_double_quotes_keep_whitespace(self):
        assert split_command('notify-send "build finished"') == ["notify-send", "build finished"]

    def test_single_quotes_keep_whitespace(self):
        assert split_command("echo 'a  b'") == ["echo", "a  b"]

    def test_sequence_is_copied(self):
        argv = ["echo", "a b"]
        result = split_command(argv)
        assert result == argv
        assert result is not argv

    def test_tuple_is_accepted(self):
        assert split_command(("echo", "x")) == ["echo", "x"]

    @pytest.mark.parametrize("value", ["", "   ", []])
    def test_empty_raises(self, value):
        with pytest.raises(CommandParseError):
            split_command(value)

    @pytest.mark.skipif(IS_WINDOWS, reason="POSIX quoting rules")
    def test_unbalanced_quotes_raise(self):
        with pytest.raises(CommandParseError) as exc_info:
            split_command('echo "unterminated')
        assert exc_info.value.command_line == 'echo "unterminated'

    @pytest.mark.skipif(IS_WINDOWS, reason="POSIX quoting rules")
    def test_escaped_space(self):
        assert split_command(r"ls my\ dir") == ["ls", "my dir"]


class TestFormatCommand:
    """format_command behaviour."""

    def test_plain(self):
        assert format_command(["echo", "hello"]) == "echo hello"

    @pytest.mark.skipif(IS_WINDOWS, reason="POSIX quoting rules")
    def test_roundtrip_with_spaces(self):
        argv = ["notify-send", "build finished"]
        assert split_command(format_command(argv)) == argv
