"""Process registry.

The single source of truth for what is currently running under
supervision:
- ProcessRegistry: pid -> TrackedProcess mapping
- Idempotent insert/remove so duplicate or out-of-order lifecycle
  notifications are harmless
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional, Union

from .runtime.process_runner import ProcessHandle

__all__ = ["ProcessRegistry", "TrackedProcess", "CompletionCommand"]

logger = logging.getLogger(__name__)

# A full command line, either unsplit or already tokenized
CompletionCommand = Union[str, Sequence[str]]


@dataclass(frozen=True)
class TrackedProcess:
    """A supervised external process.

    Attributes:
        pid: OS process identifier (unique while the process is alive)
        handle: Process handle, owned by this entry
        completion_command: Command to run after this process exits
        spawn_label: Executable name used for spawning (diagnostics)
        registered_at: Registration time
    """

    pid: int
    handle: ProcessHandle
    completion_command: Optional[CompletionCommand] = None
    spawn_label: str = ""
    registered_at: datetime = field(default_factory=datetime.now)

    def __repr__(self) -> str:
        elapsed = (datetime.now() - self.registered_at).total_seconds()
        completion = "yes" if self.completion_command else "no"
        return (
            f"TrackedProcess(pid={self.pid}, "
            f"spawnfile={self.spawn_label}, "
            f"completion={completion}, "
            f"elapsed={elapsed:.1f}s)"
        )


class ProcessRegistry:
    """Registry of supervised processes, keyed by pid.

    Mutations happen from the supervisor's event loop; reads may come from
    any thread. A single lock guards the mapping so list_all() always
    returns a consistent snapshot.

    Example:
        ```python
        registry = ProcessRegistry()
        registry.insert(TrackedProcess(pid=handle.pid, handle=handle))

        for entry in registry.list_all():
            print(entry.pid)

        registry.remove_entry(handle.pid)
        ```
    """

    def __init__(self) -> None:
        self._entries: Dict[int, TrackedProcess] = {}
        self._lock = threading.Lock()

    def insert(self, entry: TrackedProcess) -> bool:
        """Register a process.

        Args:
            entry: The tracked process record

        Returns:
            False if the pid was already registered (no-op), True otherwise
        """
        with self._lock:
            if entry.pid in self._entries:
                return False
            self._entries[entry.pid] = entry

        logger.debug(f"add() (pid: {entry.pid}) {entry}")
        return True

    def remove_entry(self, pid: int) -> Optional[TrackedProcess]:
        """Deregister a process and release its handle.

        Args:
            pid: Process identifier

        Returns:
            The removed entry, or None if the pid was not registered (no-op)
        """
        with self._lock:
            entry = self._entries.pop(pid, None)

        if entry is None:
            return None

        entry.handle.release()
        logger.debug(f"remove() (pid: {pid})")
        return entry

    def lookup(self, pid: int) -> Optional[TrackedProcess]:
        """Get the entry for a pid, or None."""
        with self._lock:
            return self._entries.get(pid)

    def list_all(self) -> list[TrackedProcess]:
        """Snapshot of every tracked process (order unspecified)."""
        with self._lock:
            return list(self._entries.values())

    def pids(self) -> list[int]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, pid: object) -> bool:
        with self._lock:
            return pid in self._entries
