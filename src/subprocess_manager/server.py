"""Subprocess Manager MCP Server.

Exposes a SubprocessSupervisor over the MCP stdio transport with three
tools: start_process, list_processes and terminate_all.

Usage:
    subprocess-manager serve
"""

from __future__ import annotations

import json
import logging
from typing import Any

from mcp.server import Server
from mcp.types import TextContent, Tool
from pydantic import ValidationError

from .supervisor import SubprocessSupervisor
from .tool_schema import (
    SUPPORTED_TOOLS,
    TOOL_ARGUMENT_MODELS,
    TOOL_DESCRIPTIONS,
    ListProcessesArgs,
    StartProcessArgs,
    TerminateAllArgs,
    create_tool_schema,
    describe_process,
)

__all__ = ["create_server", "format_error_response", "format_json_response"]

logger = logging.getLogger(__name__)


def format_json_response(payload: Any) -> list[TextContent]:
    """Wrap a JSON-serializable payload as tool output."""
    return [TextContent(type="text", text=json.dumps(payload, ensure_ascii=False, indent=2))]


def format_error_response(error: str) -> list[TextContent]:
    """Wrap an error message as tool output."""
    return [TextContent(type="text", text=f"Error: {error}")]


def create_server(supervisor: SubprocessSupervisor) -> Server:
    """Create the MCP Server instance.

    Args:
        supervisor: Supervisor that owns every process started through the tools
    """
    server = Server("subprocess-manager")

    async def _start_process(args: StartProcessArgs) -> list[TextContent]:
        handle = await supervisor.start(args.command, args.args, args.completion_command)
        if handle is None:
            return format_error_response(f"Could not start '{args.command}'")
        return format_json_response({
            "pid": handle.pid,
            "command": handle.command,
            "args": list(handle.args),
            "spawnargs": handle.spawnargs,
        })

    async def _list_processes(args: ListProcessesArgs) -> list[TextContent]:
        entries = sorted(supervisor.list_tracked(), key=lambda entry: entry.registered_at)
        return format_json_response([describe_process(entry) for entry in entries])

    async def _terminate_all(args: TerminateAllArgs) -> list[TextContent]:
        count = await supervisor.terminate_all(chain=args.chain)
        return format_json_response({"terminated": count})

    handlers = {
        "start_process": _start_process,
        "list_processes": _list_processes,
        "terminate_all": _terminate_all,
    }

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        """List available tools."""
        tools = [
            Tool(
                name=name,
                description=TOOL_DESCRIPTIONS[name],
                inputSchema=create_tool_schema(name),
            )
            for name in TOOL_ARGUMENT_MODELS
        ]
        logger.debug(
            f"[MCP] list_tools called, returning {len(tools)} tools: "
            f"{[t.name for t in tools]}"
        )
        return tools

    @server.call_tool()
    async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
        """Call a tool."""
        logger.debug(f"[MCP] call_tool request: name={name}, arguments={arguments}")

        if name not in SUPPORTED_TOOLS:
            return format_error_response(f"Unknown tool '{name}'")

        try:
            args = TOOL_ARGUMENT_MODELS[name].model_validate(arguments or {})
        except ValidationError as e:
            return format_error_response(f"Invalid arguments for '{name}': {e}")

        try:
            return await handlers[name](args)
        except Exception as e:
            logger.error(f"Tool '{name}' failed: type={type(e).__name__}, msg={e}")
            return format_error_response(str(e))

    return server
