"""Exception classes for subprocess-manager."""

from __future__ import annotations

__all__ = [
    "SubprocessManagerError",
    "SpawnError",
    "CommandParseError",
]


class SubprocessManagerError(Exception):
    """Base exception for subprocess-manager."""
    pass


class SpawnError(SubprocessManagerError):
    """The OS could not create the process at all.

    Attributes:
        command: Executable that was requested
        reason: Human readable failure reason
        errno: OS error number, if the failure came from the OS
    """

    def __init__(self, command: str, reason: str, errno: int | None = None) -> None:
        self.command = command
        self.reason = reason
        self.errno = errno
        super().__init__(f"Failed to spawn '{command}': {reason}")


class CommandParseError(SubprocessManagerError):
    """A command line could not be split into an argument vector.

    Attributes:
        command_line: The offending command line
        reason: Why tokenization failed
    """

    def __init__(self, command_line: str, reason: str) -> None:
        self.command_line = command_line
        self.reason = reason
        super().__init__(f"Invalid command line {command_line!r}: {reason}")
