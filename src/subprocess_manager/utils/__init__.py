"""Utility module.

Provides general helper functions.
"""

from .command import format_command, split_command

__all__ = [
    "format_command",
    "split_command",
]
