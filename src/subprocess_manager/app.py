"""Subprocess Manager entry point.

Command line interface, logging setup and the lifecycle of the two run
modes:

    subprocess-manager run [--then CMD] [--cwd DIR] COMMAND [ARGS...]
    subprocess-manager serve

Both modes race their work against the signal manager's shutdown event
and tear the supervisor down afterwards, whichever finished first.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import sys
from collections.abc import Awaitable, Sequence
from typing import Any

from . import __version__
from .config import get_config
from .signal_manager import SignalManager
from .supervisor import SubprocessSupervisor

__all__ = ["run_command", "run_server", "build_parser", "setup_logging", "main"]

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_SPAWN_FAILED = 1
EXIT_FORCED = 130  # 128 + SIGINT


async def _until_shutdown(work: Awaitable[Any], signal_manager: SignalManager, name: str) -> bool:
    """Run ``work`` until it finishes or shutdown is requested.

    Returns:
        True if the work finished on its own, False if shutdown won
    """
    work_task = asyncio.ensure_future(work)
    work_task.set_name(name)
    shutdown_task = asyncio.create_task(
        signal_manager.wait_for_shutdown(), name="shutdown-watcher"
    )
    try:
        done, _ = await asyncio.wait(
            {work_task, shutdown_task}, return_when=asyncio.FIRST_COMPLETED
        )
    finally:
        for task in (work_task, shutdown_task):
            if not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

    if work_task in done:
        # Surface exceptions of the work itself
        work_task.result()
        return True
    return False


async def run_command(
    command: str,
    args: Sequence[str] = (),
    completion_command: str | None = None,
    cwd: str | None = None,
) -> int:
    """Run one command, and its completion chain, under supervision.

    Returns:
        Exit status for the CLI
    """
    supervisor = SubprocessSupervisor(cwd=cwd)
    signal_manager = SignalManager(supervisor)

    await signal_manager.start()
    try:
        if await supervisor.start(command, args, completion_command) is None:
            return EXIT_SPAWN_FAILED

        if await _until_shutdown(supervisor.wait_idle(), signal_manager, "idle-watcher"):
            logger.info("All supervised processes have exited")
        else:
            logger.info("Shutdown requested, stopping supervised processes")
    finally:
        await signal_manager.stop()
        await supervisor.shutdown()

    if signal_manager.is_force_exit:
        logger.warning(f"Forced exit, status {EXIT_FORCED}")
        return EXIT_FORCED
    return EXIT_OK


async def run_server() -> None:
    """Serve the MCP tools over stdio until stdin closes or shutdown is requested."""
    from mcp.server.stdio import stdio_server

    from .server import create_server

    logger.info(f"Starting Subprocess Manager MCP server: {get_config()}")

    supervisor = SubprocessSupervisor()

    def close_stdin() -> None:
        # The stdio transport blocks on a stdin read; closing it lets the server return
        try:
            sys.stdin.close()
        except OSError as e:
            logger.debug(f"Could not close stdin: {e}")

    signal_manager = SignalManager(supervisor, on_shutdown=close_stdin)
    server = create_server(supervisor)

    async def serve() -> None:
        async with stdio_server() as (read_stream, write_stream):
            await server.run(read_stream, write_stream, server.create_initialization_options())

    await signal_manager.start()
    try:
        if await _until_shutdown(serve(), signal_manager, "mcp-server"):
            logger.info("MCP client disconnected")
        else:
            logger.info("Shutdown requested, MCP server stopped")
    finally:
        await signal_manager.stop()
        await supervisor.shutdown()
        logger.debug("Server cleanup done")

    if signal_manager.is_force_exit:
        logger.warning(f"Forced exit, status {EXIT_FORCED}")
        sys.exit(EXIT_FORCED)


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(verbose: bool = False) -> None:
    """Send our logs to stderr, or to the debug file when SPM_LOG_DEBUG is set.

    Third-party loggers stay at WARNING.
    """
    config = get_config()

    if config.log_debug and config.log_file:
        handler: logging.Handler = logging.FileHandler(config.log_file, encoding="utf-8")
        level = logging.DEBUG
    else:
        handler = logging.StreamHandler(sys.stderr)
        level = logging.DEBUG if verbose else logging.INFO

    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.basicConfig(level=logging.WARNING, handlers=[handler], force=True)
    logging.getLogger("subprocess_manager").setLevel(level)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="subprocess-manager",
        description="Launch commands as supervised child processes, with optional completion commands.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="mode", required=True)

    run_parser = subparsers.add_parser(
        "run",
        help="Run a command under supervision and wait until it (and its chain) has exited.",
    )
    run_parser.add_argument(
        "--then",
        dest="completion_command",
        metavar="CMD",
        help="Command line to run once COMMAND exits.",
    )
    run_parser.add_argument("--cwd", help="Working directory for the child processes.")
    run_parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    run_parser.add_argument("command", help="Executable name or path.")
    run_parser.add_argument("args", nargs=argparse.REMAINDER, help="Arguments for COMMAND.")

    serve_parser = subparsers.add_parser("serve", help="Run the MCP server on stdio.")
    serve_parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")

    return parser


def main(argv: Sequence[str] | None = None) -> None:
    options = build_parser().parse_args(argv)
    setup_logging(options.verbose)

    if options.mode == "serve":
        asyncio.run(run_server())
        return

    args = list(options.args)
    if args[:1] == ["--"]:
        args = args[1:]
    sys.exit(
        asyncio.run(run_command(options.command, args, options.completion_command, options.cwd))
    )


if __name__ == "__main__":
    main()
