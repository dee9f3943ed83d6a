"""MCP tool schema definitions.

Tool argument models, descriptions and schema creation. The pydantic
models validate incoming arguments and double as the published
inputSchema.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from .registry import TrackedProcess

__all__ = [
    "SUPPORTED_TOOLS",
    "TOOL_DESCRIPTIONS",
    "TOOL_ARGUMENT_MODELS",
    "StartProcessArgs",
    "ListProcessesArgs",
    "TerminateAllArgs",
    "create_tool_schema",
    "describe_process",
]


class StartProcessArgs(BaseModel):
    """Arguments of start_process."""

    model_config = ConfigDict(extra="forbid")

    command: str = Field(min_length=1, description="Executable name or path.")
    args: list[str] = Field(
        default_factory=list,
        description="Arguments passed to the executable, in order.",
    )
    completion_command: Optional[str] = Field(
        default=None,
        description=(
            "Command line to run once this process exits. "
            "Split with shell-like quoting rules."
        ),
    )


class ListProcessesArgs(BaseModel):
    """Arguments of list_processes (none)."""

    model_config = ConfigDict(extra="ignore")


class TerminateAllArgs(BaseModel):
    """Arguments of terminate_all."""

    model_config = ConfigDict(extra="forbid")

    chain: bool = Field(
        default=False,
        description="Still run completion commands of the terminated processes.",
    )


TOOL_ARGUMENT_MODELS: dict[str, type[BaseModel]] = {
    "start_process": StartProcessArgs,
    "list_processes": ListProcessesArgs,
    "terminate_all": TerminateAllArgs,
}

SUPPORTED_TOOLS = frozenset(TOOL_ARGUMENT_MODELS)

TOOL_DESCRIPTIONS = {
    "start_process": """Start a command as a supervised background process.

The process runs in the server's working directory with its output
discarded. Optionally give completion_command: it is started once this
process exits (it is NOT started if this process never starts).

Returns the pid of the new process.""",
    "list_processes": "List every process currently supervised (pid, command, arguments, completion command).",
    "terminate_all": """Terminate every supervised process (SIGTERM, then SIGKILL after a timeout).

Completion commands of the terminated processes are skipped unless chain=true.""",
}


def create_tool_schema(tool_name: str) -> dict[str, Any]:
    """Build the JSON schema for a tool's arguments."""
    schema = TOOL_ARGUMENT_MODELS[tool_name].model_json_schema()
    schema.setdefault("properties", {})
    return schema


def describe_process(entry: TrackedProcess) -> dict[str, Any]:
    """Serialize a tracked process for tool responses."""
    completion = entry.completion_command
    if completion is not None and not isinstance(completion, str):
        completion = list(completion)
    return {
        "pid": entry.pid,
        "command": entry.handle.command,
        "args": list(entry.handle.args),
        "spawnfile": entry.spawn_label,
        "completion_command": completion,
        "running": entry.handle.is_running,
        "registered_at": entry.registered_at.isoformat(timespec="seconds"),
    }
