"""OS signal handling for the supervisor.

SIGINT stops the supervised children before it stops the program itself;
SIGTERM always asks for an orderly shutdown. Behaviour is configured with
SPM_SIGINT_MODE and SPM_SIGINT_DOUBLE_TAP_WINDOW.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
import time
from typing import TYPE_CHECKING, Callable, Optional

from .config import SigintMode, get_config

if TYPE_CHECKING:
    from .supervisor import SubprocessSupervisor

__all__ = ["SignalManager", "SigintMode"]

logger = logging.getLogger(__name__)

_ON_WINDOWS = sys.platform == "win32"


class SignalManager:
    """Maps SIGINT/SIGTERM onto supervisor operations.

    SIGINT, depending on ``sigint_mode``:

    ==================  ===============================  =====================
    mode                children tracked                 nothing tracked
    ==================  ===============================  =====================
    cancel              terminate them                   shut down
    exit                shut down                        shut down
    cancel_then_exit    terminate them, arm exit         shut down
    ==================  ===============================  =====================

    A second SIGINT within ``double_tap_window`` seconds of the previous
    one, once shutdown is requested or armed, forces exit. The owner polls
    ``is_force_exit`` after cleanup and exits with status 130.

    Usage:
        ```python
        manager = SignalManager(supervisor)
        await manager.start()
        try:
            await manager.wait_for_shutdown()
        finally:
            await manager.stop()
            await supervisor.shutdown()
        ```
    """

    def __init__(
        self,
        supervisor: "SubprocessSupervisor",
        sigint_mode: Optional[SigintMode] = None,
        double_tap_window: Optional[float] = None,
        on_shutdown: Optional[Callable[[], None]] = None,
    ) -> None:
        config = get_config()
        self.supervisor = supervisor
        self.sigint_mode = config.sigint_mode if sigint_mode is None else sigint_mode
        self.double_tap_window = (
            config.sigint_double_tap_window if double_tap_window is None else double_tap_window
        )
        self._on_shutdown = on_shutdown

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._shutdown_event: Optional[asyncio.Event] = None
        self._previous_handler = None
        self._running = False

        self._last_sigint_time: Optional[float] = None
        self._shutdown_requested = False
        self._force_exit = False
        self._pending: set[asyncio.Task] = set()

    @property
    def is_shutdown_requested(self) -> bool:
        return self._shutdown_requested

    @property
    def is_force_exit(self) -> bool:
        return self._force_exit

    # ------------------------------------------------------------------
    # Installation
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Install the handlers on the running event loop."""
        if self._running:
            logger.warning("SignalManager.start() called twice, ignoring")
            return

        loop = asyncio.get_running_loop()
        self._loop = loop
        self._shutdown_event = asyncio.Event()

        if _ON_WINDOWS:
            # No add_signal_handler on the proactor loop
            self._previous_handler = signal.signal(
                signal.SIGINT,
                lambda signum, frame: loop.call_soon_threadsafe(self._handle_sigint),
            )
        else:
            loop.add_signal_handler(signal.SIGINT, self._handle_sigint)
            loop.add_signal_handler(signal.SIGTERM, self._handle_sigterm)

        self._running = True
        logger.debug(
            f"Signal handling active (mode={self.sigint_mode.value}, "
            f"double_tap_window={self.double_tap_window}s, windows={_ON_WINDOWS})"
        )

    async def stop(self) -> None:
        """Put the previous handlers back."""
        if not self._running:
            return
        self._running = False

        try:
            if _ON_WINDOWS:
                if self._previous_handler is not None:
                    signal.signal(signal.SIGINT, self._previous_handler)
            elif self._loop is not None:
                for signum in (signal.SIGINT, signal.SIGTERM):
                    self._loop.remove_signal_handler(signum)
        except (OSError, RuntimeError, ValueError) as e:
            logger.debug(f"Could not restore signal handlers: {e}")
        else:
            logger.debug("Signal handling stopped")

    async def wait_for_shutdown(self) -> None:
        if self._shutdown_event is not None:
            await self._shutdown_event.wait()

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _handle_sigint(self) -> None:
        now = time.monotonic()
        previous, self._last_sigint_time = self._last_sigint_time, now

        if (
            self._shutdown_requested
            and previous is not None
            and now - previous < self.double_tap_window
        ):
            logger.warning(f"Second SIGINT within {self.double_tap_window}s, forcing exit")
            self._force_shutdown()
            return

        mode = self.sigint_mode
        if mode is SigintMode.EXIT or not self.supervisor.has_tracked_processes():
            logger.info(f"SIGINT (mode={mode.value}), shutting down")
            self._request_shutdown()
            return

        count = self._terminate_processes()
        if mode is SigintMode.CANCEL_THEN_EXIT:
            # Armed: the next SIGINT inside the window exits
            self._shutdown_requested = True
            logger.info(
                f"SIGINT (mode={mode.value}), terminating {count} process(es); "
                f"press Ctrl+C again within {self.double_tap_window}s to exit"
            )
        else:
            logger.info(f"SIGINT (mode={mode.value}), terminating {count} process(es)")

    def _handle_sigterm(self) -> None:
        logger.info("SIGTERM, shutting down")
        self._request_shutdown()

    def _terminate_processes(self) -> int:
        """Schedule supervisor.terminate_all() and return how many are affected."""
        if self._loop is None:
            logger.warning("Signal handling not started, nothing terminated")
            return 0

        count = self.supervisor.tracked_count
        task = self._loop.create_task(self.supervisor.terminate_all())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return count

    # ------------------------------------------------------------------
    # Shutdown requests
    # ------------------------------------------------------------------

    def request_graceful_shutdown(self) -> None:
        """Ask for shutdown from code instead of a signal."""
        logger.info("Shutdown requested programmatically")
        self._request_shutdown()

    def _request_shutdown(self) -> None:
        self._shutdown_requested = True
        self._notify_shutdown()

    def _force_shutdown(self) -> None:
        # The entry point exits after cleanup, not here
        self._force_exit = True
        self._request_shutdown()

    def _notify_shutdown(self) -> None:
        if self._on_shutdown is not None:
            try:
                self._on_shutdown()
            except Exception as e:
                logger.warning(f"on_shutdown callback failed: {e}")

        if self._loop is not None and self._shutdown_event is not None:
            self._loop.call_soon_threadsafe(self._shutdown_event.set)
