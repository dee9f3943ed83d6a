"""Subprocess Manager - supervised child processes with completion commands.

Environment variables:
    SPM_LOG_DEBUG: Debug logging to a temporary file (default false)
    SPM_SIGINT_MODE: SIGINT handling mode (cancel/exit/cancel_then_exit)
    SPM_TERM_TIMEOUT / SPM_KILL_TIMEOUT: Termination timeouts

Usage:
    subprocess-manager run --then "notify-send done" make build
    subprocess-manager serve
"""

__version__ = "0.1.0"

from .registry import ProcessRegistry, TrackedProcess
from .runtime import ProcessHandle, ProcessRunner
from .supervisor import SubprocessSupervisor

__all__ = [
    "__version__",
    "ProcessHandle",
    "ProcessRegistry",
    "ProcessRunner",
    "SubprocessSupervisor",
    "TrackedProcess",
]
