"""Lifecycle supervisor.

Spawns child processes, registers them once their start is confirmed,
observes their termination, optionally chains a completion command, and
reaps them from the registry.

Per process the supervisor sees:

    requested -> (started) -> tracked -> (exited) -> reaped
    requested -> (spawn failed / never started) -> untracked

Each process gets one observer task consuming its lifecycle events in
order, so all registry mutations for a pid happen on the event loop in
delivery order.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Optional

import anyio

from .config import get_config
from .errors import CommandParseError, SpawnError
from .registry import CompletionCommand, ProcessRegistry, TrackedProcess
from .runtime.process_runner import (
    LifecycleEvent,
    LifecycleEventType,
    ProcessHandle,
    ProcessRunner,
)
from .utils.command import format_command, split_command

__all__ = ["SubprocessSupervisor"]

logger = logging.getLogger(__name__)


def _describe(completion_command: Optional[CompletionCommand]) -> str:
    if not completion_command:
        return "-"
    if isinstance(completion_command, str):
        return completion_command
    return format_command(list(completion_command))


class SubprocessSupervisor:
    """Starts and supervises background processes.

    Construct one per program and pass it to whatever needs it. Use it as
    an async context manager (or call shutdown()) so that every tracked
    child is terminated and reaped on teardown.

    Example:
        ```python
        async with SubprocessSupervisor() as supervisor:
            handle = await supervisor.start("make", ["build"], "notify-send done")
            await supervisor.wait_idle()
        ```

    Attributes:
        runner: OS process binding
        registry: pid -> TrackedProcess mapping
        cwd: Working directory for children (None = current directory at spawn time)
    """

    def __init__(
        self,
        runner: Optional[ProcessRunner] = None,
        registry: Optional[ProcessRegistry] = None,
        cwd: str | Path | None = None,
    ) -> None:
        if runner is None:
            config = get_config()
            runner = ProcessRunner(
                term_timeout=config.term_timeout,
                kill_timeout=config.kill_timeout,
            )
        self.runner = runner
        self.registry = registry if registry is not None else ProcessRegistry()
        self.cwd = cwd

        self._observers: set[asyncio.Task[None]] = set()
        self._unchained: set[int] = set()
        self._shutting_down = False

        logger.debug("SubprocessSupervisor created")

    async def __aenter__(self) -> "SubprocessSupervisor":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.shutdown()

    # ------------------------------------------------------------------
    # Query surface
    # ------------------------------------------------------------------

    @property
    def is_shutting_down(self) -> bool:
        return self._shutting_down

    @property
    def tracked_count(self) -> int:
        return len(self.registry)

    def has_tracked_processes(self) -> bool:
        return len(self.registry) > 0

    def list_all(self) -> list[ProcessHandle]:
        """Handles of every currently tracked process (order unspecified)."""
        return [entry.handle for entry in self.registry.list_all()]

    def list_tracked(self) -> list[TrackedProcess]:
        return self.registry.list_all()

    def lookup(self, pid: int) -> Optional[TrackedProcess]:
        return self.registry.lookup(pid)

    # ------------------------------------------------------------------
    # Spawn and monitor
    # ------------------------------------------------------------------

    async def start(
        self,
        command: str,
        args: Sequence[str] = (),
        completion_command: Optional[CompletionCommand] = None,
    ) -> Optional[ProcessHandle]:
        """Execute a command as a supervised child process.

        Returns once the start confirmation has been processed; never waits
        for the child to exit.

        Args:
            command: Executable name or path
            args: Arguments for the executable
            completion_command: Command line to run after the child exits

        Returns:
            The process handle, or None if the process could not be created
        """
        args = [str(arg) for arg in args]
        logger.info(
            f"start() (command: {command}) "
            f"(arguments: {' '.join(args) if args else '-'}) "
            f"(completion command: {_describe(completion_command)})"
        )

        if self._shutting_down:
            logger.warning(f"Supervisor is shutting down, refusing to start '{command}'")
            return None

        if not command:
            logger.error("child process spawn error: empty command")
            return None

        try:
            handle = await self.runner.spawn(command, args, cwd=self.cwd)
        except SpawnError as e:
            logger.error(
                f"child process spawn error (message: {e.reason}) "
                f"(spawnfile: {command})"
            )
            return None

        settled = asyncio.Event()
        self._attach(handle, completion_command, settled)
        await settled.wait()

        if self._shutting_down and handle.is_running:
            # Shutdown began while the spawn was in flight
            logger.info(f"Terminating late start during shutdown pid={handle.pid}")
            await self.runner.terminate(handle)

        return handle

    def monitor(
        self,
        handle: ProcessHandle,
        completion_command: Optional[CompletionCommand] = None,
    ) -> asyncio.Task[None]:
        """Observe a process handle for its whole lifecycle.

        - started: register the process (with its completion command)
        - error: log only, the entry stays registered
        - exited: chain the completion command if any, then reap

        Args:
            handle: Handle of a spawned process
            completion_command: Command line to run after the process exits

        Returns:
            The observer task
        """
        return self._attach(handle, completion_command, None)

    def _attach(
        self,
        handle: ProcessHandle,
        completion_command: Optional[CompletionCommand],
        settled: Optional[asyncio.Event],
    ) -> asyncio.Task[None]:
        task = asyncio.create_task(
            self._observe(handle, completion_command, settled),
            name=f"supervise-{handle.pid if handle.pid is not None else handle.command}",
        )
        self._observers.add(task)
        task.add_done_callback(self._observers.discard)
        return task

    async def _observe(
        self,
        handle: ProcessHandle,
        completion_command: Optional[CompletionCommand],
        settled: Optional[asyncio.Event],
    ) -> None:
        try:
            async for event in handle.events():
                try:
                    if event.type is LifecycleEventType.STARTED:
                        self._on_started(handle, event, completion_command)
                    elif event.type is LifecycleEventType.ERROR:
                        self._on_error(handle, event)
                    elif event.type is LifecycleEventType.EXITED:
                        await self._on_exited(handle, event)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.error(
                        f"Error handling {event.type.value} event "
                        f"(pid: {event.pid}): {e}",
                        exc_info=True,
                    )
                if settled is not None:
                    settled.set()
        finally:
            if settled is not None:
                settled.set()

    def _on_started(
        self,
        handle: ProcessHandle,
        event: LifecycleEvent,
        completion_command: Optional[CompletionCommand],
    ) -> None:
        if event.pid is None:
            return
        self.registry.insert(
            TrackedProcess(
                pid=event.pid,
                handle=handle,
                completion_command=completion_command,
                spawn_label=handle.spawnfile,
            )
        )

    def _on_error(self, handle: ProcessHandle, event: LifecycleEvent) -> None:
        logger.error(
            f"child process error (message: {event.error}) "
            f"(pid: {event.pid}) (spawnfile: {handle.spawnfile})"
        )

    async def _on_exited(self, handle: ProcessHandle, event: LifecycleEvent) -> None:
        logger.debug(
            f"child process exited (pid: {event.pid}) "
            f"(spawnfile: {handle.spawnfile}) "
            f"(code: {event.exit_code}) (signal: {event.signal or 'N/A'})"
        )
        if event.pid is None:
            return

        entry = self.registry.lookup(event.pid)
        if entry is None or entry.handle is not handle:
            # Never registered, or the pid already belongs to another process
            return

        try:
            if entry.completion_command:
                if self._shutting_down or event.pid in self._unchained:
                    logger.info(
                        f"Skipping completion command of pid={event.pid}: "
                        f"terminated by supervisor"
                    )
                else:
                    await self._run_completion(entry)
        finally:
            self.registry.remove_entry(event.pid)
            self._unchained.discard(event.pid)

    async def _run_completion(self, entry: TrackedProcess) -> None:
        try:
            argv = split_command(entry.completion_command)
        except CommandParseError as e:
            logger.error(f"Completion command of pid={entry.pid} skipped: {e}")
            return

        logger.info(f"Running completion command of pid={entry.pid}: {format_command(argv)}")
        await self.start(argv[0], argv[1:])

    # ------------------------------------------------------------------
    # Termination and teardown
    # ------------------------------------------------------------------

    async def terminate_all(self, *, chain: bool = False) -> int:
        """Terminate every tracked process.

        Args:
            chain: Whether completion commands still run for the terminated processes

        Returns:
            Number of processes that were signalled
        """
        entries = self.registry.list_all()
        if not entries:
            return 0

        if not chain:
            self._unchained.update(entry.pid for entry in entries)

        logger.info(f"Terminating {len(entries)} supervised process(es)")
        await asyncio.gather(*(self.runner.terminate(entry.handle) for entry in entries))
        return len(entries)

    async def wait_idle(self, timeout: float | None = None) -> bool:
        """Wait until every monitored process has been reaped.

        Args:
            timeout: Maximum seconds to wait (None = no limit)

        Returns:
            True if idle, False on timeout
        """
        with anyio.move_on_after(timeout) as scope:
            while self._observers:
                await asyncio.wait(set(self._observers))
        return not scope.cancelled_caught

    async def shutdown(self) -> None:
        """Terminate and reap every tracked process. Idempotent.

        New starts are refused and completion commands no longer chain once
        shutdown has begun.
        """
        if self._shutting_down and not self._observers and not self.registry.pids():
            return

        self._shutting_down = True
        logger.info(f"Shutting down supervisor ({len(self.registry)} tracked process(es))")

        reap_timeout = self.runner.term_timeout + self.runner.kill_timeout + 1.0
        while self._observers or self.registry.pids():
            await self.terminate_all()

            pending = set(self._observers)
            if not pending:
                break

            _, still_pending = await asyncio.wait(pending, timeout=reap_timeout)
            if still_pending:
                logger.warning(f"Cancelling {len(still_pending)} observer(s) that did not finish")
                for task in still_pending:
                    task.cancel()
                await asyncio.gather(*still_pending, return_exceptions=True)

        for entry in self.registry.list_all():
            logger.warning(f"Releasing process that was never reaped pid={entry.pid}")
            self.registry.remove_entry(entry.pid)

        logger.info("Supervisor shut down")
