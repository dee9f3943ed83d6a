"""Runtime module for spawning and watching child processes.

This module provides the OS-facing process binding: spawning with a fixed
configuration, a lifecycle event channel per process, and reliable
termination.
"""

from __future__ import annotations

from .process_runner import (
    IS_WINDOWS,
    LifecycleEvent,
    LifecycleEventType,
    ProcessHandle,
    ProcessRunner,
    ProcessSpec,
)

__all__ = [
    "IS_WINDOWS",
    "LifecycleEvent",
    "LifecycleEventType",
    "ProcessHandle",
    "ProcessRunner",
    "ProcessSpec",
]
