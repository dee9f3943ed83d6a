"""Command line tokenization.

Splits a single command line string into an argument vector using
shell-like rules: unquoted whitespace separates tokens, quoted substrings
keep embedded whitespace.
"""

from __future__ import annotations

import shlex
import sys
from collections.abc import Sequence

from ..errors import CommandParseError

__all__ = ["split_command", "format_command"]

IS_WINDOWS = sys.platform == "win32"


def _strip_quotes(token: str) -> str:
    if len(token) >= 2 and token[0] == token[-1] and token[0] in ("'", '"'):
        return token[1:-1]
    return token


def split_command(command_line: str | Sequence[str]) -> list[str]:
    """Split a command line into [executable, *args].

    Args:
        command_line: A command line string, or an already split argument vector

    Returns:
        The argument vector (never empty)

    Raises:
        CommandParseError: If the line is empty or its quotes are unbalanced
    """
    if not isinstance(command_line, str):
        argv = [str(arg) for arg in command_line]
        if not argv or not argv[0]:
            raise CommandParseError(repr(command_line), "empty command")
        return argv

    try:
        if IS_WINDOWS:
            # Non-POSIX mode keeps backslashes in paths; quotes are stripped afterwards
            argv = [_strip_quotes(token) for token in shlex.split(command_line, posix=False)]
        else:
            argv = shlex.split(command_line)
    except ValueError as e:
        raise CommandParseError(command_line, str(e)) from e

    if not argv or not argv[0]:
        raise CommandParseError(command_line, "empty command")
    return argv


def format_command(argv: Sequence[str]) -> str:
    """Render an argument vector as a single shell-quoted string."""
    return shlex.join(argv)
