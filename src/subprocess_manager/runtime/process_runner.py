"""Process runner: the OS process creation boundary.

subprocess-manager runtime module

This module provides:
- Spawning of supervised children with a fixed configuration
  (stdio discarded, same process group, hidden window on Windows)
- A per-process lifecycle event channel (started / error / exited)
- Reliable termination (SIGTERM -> timeout -> SIGKILL)

Key design points:
- Windows: commands run through the command interpreter (cmd /c) so shell
  built-ins and .bat/.cmd files resolve the same way as in a console
- POSIX: commands are executed directly
- Children are NOT detached: no new session or process group is created
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import subprocess
import sys
from collections.abc import AsyncIterator, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

import anyio

from ..errors import SpawnError

__all__ = [
    "IS_WINDOWS",
    "LifecycleEvent",
    "LifecycleEventType",
    "ProcessHandle",
    "ProcessRunner",
    "ProcessSpec",
]

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == "win32"

# Default timeouts
DEFAULT_TERM_TIMEOUT = 2.0  # seconds to wait after SIGTERM
DEFAULT_KILL_TIMEOUT = 1.0  # seconds to wait after SIGKILL
DEFAULT_ERROR_RETRY_INTERVAL = 0.5  # seconds between wait() retries after an error


@dataclass(frozen=True)
class ProcessSpec:
    """Specification for a subprocess to spawn.

    Attributes:
        argv: Command line as launched (first element is the executable)
        cwd: Working directory for the process
        env: Environment variables (None = inherit parent)
    """

    argv: list[str]
    cwd: Path
    env: Mapping[str, str] | None = None


class LifecycleEventType(str, Enum):
    """Lifecycle notifications delivered for a spawned process."""

    STARTED = "started"
    ERROR = "error"
    EXITED = "exited"


def _signal_name(signum: int) -> str:
    try:
        return signal.Signals(signum).name
    except ValueError:
        return f"SIG{signum}"


@dataclass(frozen=True)
class LifecycleEvent:
    """A single lifecycle notification.

    For EXITED events exactly one of exit_code / signal is set.

    Attributes:
        type: Kind of notification
        pid: Process identifier (None if the process never started)
        exit_code: Exit status for a normal exit
        signal: Name of the terminating signal (e.g. "SIGKILL")
        error: Exception carried by an ERROR event
    """

    type: LifecycleEventType
    pid: int | None = None
    exit_code: int | None = None
    signal: str | None = None
    error: BaseException | None = None

    @classmethod
    def exited(cls, pid: int | None, returncode: int) -> "LifecycleEvent":
        """Build an EXITED event from an asyncio style return code."""
        if returncode < 0:
            return cls(LifecycleEventType.EXITED, pid=pid, signal=_signal_name(-returncode))
        return cls(LifecycleEventType.EXITED, pid=pid, exit_code=returncode)


class ProcessHandle:
    """In-process representation of one spawned OS process.

    The handle owns the underlying asyncio process object and an event
    channel. Exactly one consumer is expected to iterate events().

    Example:
        handle = await runner.spawn("sleep", ["10"])
        async for event in handle.events():
            print(event.type, event.pid)
    """

    def __init__(
        self,
        command: str,
        args: Sequence[str],
        spec: ProcessSpec,
    ) -> None:
        self.command = command
        self.args: tuple[str, ...] = tuple(args)
        self.spec = spec

        self._process: asyncio.subprocess.Process | None = None
        self._pid: int | None = None
        self._returncode: int | None = None
        self._started = False
        self._exited = False
        self._released = False
        self._events: asyncio.Queue[LifecycleEvent] = asyncio.Queue()
        self._exit_event = asyncio.Event()
        self._watcher: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    @property
    def pid(self) -> int | None:
        """Process identifier, None until start is confirmed."""
        return self._pid

    @property
    def command_argv(self) -> list[str]:
        """Executable plus arguments as requested by the caller."""
        return [self.command, *self.args]

    @property
    def spawnfile(self) -> str:
        """Executable actually launched (the interpreter on Windows)."""
        return self.spec.argv[0]

    @property
    def spawnargs(self) -> list[str]:
        """Full argument vector actually launched."""
        return list(self.spec.argv)

    @property
    def returncode(self) -> int | None:
        return self._returncode

    @property
    def exit_code(self) -> int | None:
        if self._returncode is None or self._returncode < 0:
            return None
        return self._returncode

    @property
    def exit_signal(self) -> str | None:
        if self._returncode is None or self._returncode >= 0:
            return None
        return _signal_name(-self._returncode)

    @property
    def is_running(self) -> bool:
        return self._started and not self._exited

    @property
    def is_released(self) -> bool:
        return self._released

    def __repr__(self) -> str:
        if self._exited:
            status = f"exited({self._returncode})"
        elif self._started:
            status = "running"
        else:
            status = "pending"
        return f"ProcessHandle(pid={self._pid}, command={self.command!r}, status={status})"

    # ------------------------------------------------------------------
    # Event channel
    # ------------------------------------------------------------------

    def notify_started(
        self,
        pid: int,
        process: asyncio.subprocess.Process | None = None,
    ) -> None:
        """Record start confirmation and publish a STARTED event."""
        if self._started:
            return
        self._started = True
        self._pid = pid
        self._process = process
        self._events.put_nowait(LifecycleEvent(LifecycleEventType.STARTED, pid=pid))

    def notify_error(self, error: BaseException) -> None:
        """Publish an ERROR event."""
        self._events.put_nowait(
            LifecycleEvent(LifecycleEventType.ERROR, pid=self._pid, error=error)
        )

    def notify_exited(self, returncode: int) -> None:
        """Record termination and publish an EXITED event (at most once)."""
        if self._exited:
            return
        self._exited = True
        self._returncode = returncode
        self._events.put_nowait(LifecycleEvent.exited(self._pid, returncode))
        self._exit_event.set()

    async def events(self) -> AsyncIterator[LifecycleEvent]:
        """Yield lifecycle events in delivery order.

        Ends after EXITED, or after an ERROR that arrives before any
        start confirmation.
        """
        started = False
        while True:
            event = await self._events.get()
            yield event
            if event.type is LifecycleEventType.STARTED:
                started = True
            elif event.type is LifecycleEventType.EXITED:
                return
            elif event.type is LifecycleEventType.ERROR and not started:
                return

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def send_signal(self, sig: int) -> None:
        if self._process is None or self._exited:
            raise ProcessLookupError(f"Process {self._pid} is not running")
        self._process.send_signal(sig)

    def terminate(self) -> None:
        if self._process is None or self._exited:
            raise ProcessLookupError(f"Process {self._pid} is not running")
        self._process.terminate()

    def kill(self) -> None:
        if self._process is None or self._exited:
            raise ProcessLookupError(f"Process {self._pid} is not running")
        self._process.kill()

    async def wait(self) -> int | None:
        """Wait for the process to exit and return its return code.

        Returns None immediately for a handle that never started.
        """
        if not self._started:
            return None
        await self._exit_event.wait()
        return self._returncode

    def release(self) -> None:
        """Drop ownership of the OS process object.

        The pid and return code remain readable for diagnostics.
        """
        if self._released:
            return
        self._released = True
        if self._watcher is not None and not self._watcher.done():
            self._watcher.cancel()
        self._watcher = None
        self._process = None


@dataclass
class ProcessRunner:
    """Cross-platform spawner for supervised child processes.

    Example:
        runner = ProcessRunner()
        handle = await runner.spawn("ping", ["127.0.0.1"])
        ...
        await runner.terminate(handle)
    """

    term_timeout: float = DEFAULT_TERM_TIMEOUT
    kill_timeout: float = DEFAULT_KILL_TIMEOUT
    error_retry_interval: float = DEFAULT_ERROR_RETRY_INTERVAL

    @staticmethod
    def build_argv(command: str, args: Sequence[str] = ()) -> list[str]:
        """Build the argument vector actually passed to the OS.

        Args:
            command: Executable name or path
            args: Arguments for the executable

        Returns:
            ["cmd.exe", "/c", command, *args] on Windows, [command, *args] elsewhere
        """
        if IS_WINDOWS:
            comspec = os.environ.get("COMSPEC", "cmd.exe")
            return [comspec, "/c", command, *args]
        return [command, *args]

    async def spawn(
        self,
        command: str,
        args: Sequence[str] = (),
        *,
        cwd: str | Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> ProcessHandle:
        """Spawn a child process and start watching for its exit.

        Args:
            command: Executable name or path
            args: Arguments for the executable
            cwd: Working directory (default: current directory at call time)
            env: Environment variables (None = inherit parent)

        Returns:
            A ProcessHandle whose STARTED event is already queued

        Raises:
            SpawnError: If the OS could not create the process
        """
        args = list(args)
        try:
            spec = ProcessSpec(
                argv=self.build_argv(command, args),
                cwd=Path(cwd) if cwd is not None else Path.cwd(),
                env=env,
            )
            kwargs = self._build_subprocess_kwargs(spec)

            # stdio is discarded; the child never shares the parent's streams
            process = await asyncio.create_subprocess_exec(
                *spec.argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
                cwd=spec.cwd,
                **kwargs,
            )
        except OSError as e:
            raise SpawnError(command, e.strerror or str(e), e.errno) from e
        except ValueError as e:
            # e.g. embedded null byte in an argument
            raise SpawnError(command, str(e)) from e

        handle = ProcessHandle(command, args, spec)
        handle.notify_started(process.pid, process)
        handle._watcher = asyncio.create_task(
            self._watch(handle, process),
            name=f"process-watch-{process.pid}",
        )

        logger.debug(
            f"Started subprocess pid={process.pid} "
            f"argv={spec.argv[0]} cwd={spec.cwd}"
        )
        return handle

    def _build_subprocess_kwargs(self, spec: ProcessSpec) -> dict[str, Any]:
        """Build platform-specific subprocess kwargs.

        Args:
            spec: Process specification

        Returns:
            Dict of kwargs for asyncio.create_subprocess_exec
        """
        kwargs: dict[str, Any] = {}

        if spec.env is not None:
            kwargs["env"] = dict(spec.env)

        if IS_WINDOWS:
            kwargs["creationflags"] = subprocess.CREATE_NO_WINDOW

        return kwargs

    async def _watch(
        self,
        handle: ProcessHandle,
        process: asyncio.subprocess.Process,
    ) -> None:
        """Wait for exit and publish it; errors while waiting are reported, not fatal."""
        while True:
            try:
                returncode = await process.wait()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error while waiting for subprocess pid={process.pid}: {e}")
                handle.notify_error(e)
                await anyio.sleep(self.error_retry_interval)
                continue

            handle.notify_exited(returncode)
            logger.debug(
                f"Subprocess completed pid={process.pid} "
                f"returncode={returncode}"
            )
            return

    async def terminate(self, handle: ProcessHandle) -> int | None:
        """Terminate a process gracefully, then forcefully if needed.

        Termination strategy:
        1. Send SIGTERM (terminate() on Windows)
        2. Wait up to term_timeout for exit
        3. If still running, send SIGKILL
        4. Wait up to kill_timeout for forced exit

        Args:
            handle: The process to terminate

        Returns:
            The return code, or None if the process did not exit in time
        """
        pid = handle.pid
        if not handle.is_running:
            logger.debug(f"Subprocess not running pid={pid}")
            return handle.returncode

        logger.debug(f"Terminating subprocess pid={pid}")

        try:
            handle.terminate()
            with anyio.move_on_after(self.term_timeout):
                await handle.wait()
            if not handle.is_running:
                logger.debug(
                    f"Subprocess terminated gracefully pid={pid} "
                    f"returncode={handle.returncode}"
                )
                return handle.returncode

            logger.debug(f"Force killing subprocess pid={pid}")
            handle.kill()
            with anyio.move_on_after(self.kill_timeout):
                await handle.wait()
            if handle.is_running:
                logger.warning(f"Subprocess did not exit after kill pid={pid}")
            else:
                logger.debug(
                    f"Subprocess killed pid={pid} "
                    f"returncode={handle.returncode}"
                )

        except ProcessLookupError:
            logger.debug(f"Subprocess already exited pid={pid}")
        except OSError as e:
            logger.warning(f"Error terminating subprocess pid={pid}: {e}")

        return handle.returncode
