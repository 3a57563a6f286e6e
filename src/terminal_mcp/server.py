"""MCP server implementation."""

import asyncio
import logging
import os
import signal
import sys
from collections.abc import Awaitable, Callable
from typing import Any, List, Optional, cast

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool
from pydantic import BaseModel, Field

from . import __version__
from .activity import ActivityAction, ActivityLogger
from .config import GatewayConfig, load_config
from .filesystem import FileSystem
from .security import CommandExecutionError, CommandPolicy, CommandValidator, PathAuthorizer
from .shell import ExecutionResult, ShellExecutor

logger = logging.getLogger(__name__)

ENV_LOG_LEVEL = "TERMINAL_MCP_LOG_LEVEL"

NO_OUTPUT_MESSAGE = "Command executed successfully with no output."
EMPTY_DIRECTORY_MESSAGE = "Directory is empty"

# --- Pydantic Models for Tool Inputs ---

class ExecuteCommandInput(BaseModel):
    command: str = Field(..., description="The command to execute in the terminal")
    timeout: Optional[float] = Field(None, description="Command timeout in milliseconds")

class ListDirectoryInput(BaseModel):
    path: str = Field(..., description="The directory path to list")

class ReadFileInput(BaseModel):
    path: str = Field(..., description="The file path to read")

# --- End Pydantic Models ---


def format_output(result: ExecutionResult) -> str:
    text = ""
    if result.stdout:
        text += f"Standard Output:\n{result.stdout}\n"
    if result.stderr:
        text += f"Standard Error:\n{result.stderr}\n"
    return text or NO_OUTPUT_MESSAGE


class TerminalServer:
    def __init__(self, config: GatewayConfig, policy: Optional[CommandPolicy] = None) -> None:
        self.config = config
        self.server: Server = Server(
            name="terminal",
            version=__version__,
            instructions="Runs shell commands and reads files within allowed directories.",
        )

        self.policy: CommandPolicy = policy or CommandValidator(config)
        self.authorizer = PathAuthorizer(config)
        self.shell = ShellExecutor(config)
        self.filesystem = FileSystem(self.authorizer)
        self.activity = ActivityLogger(config)
        logger.info("Allowed directories: %s", list(config.allowed_directories))

        self._register_handlers()

    # --- Handler Registration (Called from __init__) ---
    def _register_handlers(self) -> None:
        """Registers handlers dynamically after self.server is created."""

        @self.server.call_tool()  # type: ignore[misc]
        async def _dispatch_tool_call(
            tool_name: str,
            arguments: dict[str, Any],
        ) -> list[TextContent]:
            """Dispatches incoming tool calls to the appropriate implementation method."""
            return await self.dispatch(tool_name, arguments)

        @self.server.list_tools()  # type: ignore[misc]
        async def list_tools_handler() -> list[Tool]:
            return self.list_tools_impl()

    async def dispatch(self, tool_name: str, arguments: dict[str, Any]) -> list[TextContent]:
        """Maps a tool name such as ``execute-command`` onto its handler method."""
        if tool_name not in {"execute-command", "list_directory", "read_file"}:
            raise ValueError(f"Unknown or invalid tool name: {tool_name}")
        target_method: Callable[[dict[str, Any]], Awaitable[list[TextContent]]]
        target_method = getattr(self, tool_name.replace("-", "_"))
        result = await target_method(arguments)
        return cast(list[TextContent], result)

    async def _record(self, action: ActivityAction, details: dict[str, Any]) -> None:
        error = await self.activity.log(action, details)
        if error is not None:
            logger.error("Failed to write to log file: %s", error)

    # --- Tool Implementations ---

    async def execute_command(
        self,
        arguments: dict[str, Any],
    ) -> list[TextContent]:
        """Execute a shell command after blocklist and directory policy checks."""
        command = arguments.get("command", "")
        timeout = arguments.get("timeout")

        try:
            await self._record(ActivityAction.COMMAND_REQUESTED, {"command": command})

            self.policy.validate(command)

            effective_timeout = self.shell.effective_timeout_ms(timeout)
            result = await self.shell.run(command, effective_timeout)

            if not result.success:
                raise CommandExecutionError(f"Command failed: {command}\n{result.stderr}")

            text = format_output(result)
            await self._record(
                ActivityAction.COMMAND_EXECUTED,
                {"command": command, "success": True, "outputSize": len(text)},
            )
            return [TextContent(type="text", text=text)]
        except Exception as e:
            await self._record(ActivityAction.COMMAND_ERROR, {"command": command, "error": str(e)})
            return [TextContent(type="text", text=f"Error executing command: {e}")]

    async def list_directory(
        self,
        arguments: dict[str, Any],
    ) -> list[TextContent]:
        """List contents of a directory inside the allowed directories."""
        path = arguments.get("path", "")

        result = await self.filesystem.list_directory(path)
        if not result.get("success"):
            return [TextContent(type="text", text=f"Error listing directory: {result.get('error')}")]

        listing = result.get("listing", "")
        return [TextContent(type="text", text=listing or EMPTY_DIRECTORY_MESSAGE)]

    async def read_file(
        self,
        arguments: dict[str, Any],
    ) -> list[TextContent]:
        """Read the contents of a file inside the allowed directories."""
        path = arguments.get("path", "")

        result = await self.filesystem.read_file(path)
        if not result.get("success"):
            return [TextContent(type="text", text=f"Error reading file: {result.get('error')}")]

        return [TextContent(type="text", text=result.get("content", ""))]

    # --- Tool Listing Implementation ---

    def list_tools_impl(self) -> list[Tool]:
        """Provides the list of available tools and their schemas using Pydantic."""
        allowed_dirs_desc = "\n".join(f"- {d}" for d in self.config.allowed_directories)
        blocked_desc = ", ".join(f"'{b}'" for b in self.config.blocked_commands) or "none"

        return [
            Tool(
                name="execute-command",
                description=(
                    "Execute a command in the terminal. "
                    f"Commands containing {blocked_desc} are rejected. "
                    "File operations must reference one of the allowed directories:\n"
                    f"{allowed_dirs_desc}\n"
                    f"Timeout is capped at {self.config.timeout_ms}ms."
                ),
                inputSchema=ExecuteCommandInput.model_json_schema(),
            ),
            Tool(
                name="list_directory",
                description=(
                    "List files and directories in a specified path. "
                    f"Only works within allowed directories:\n{allowed_dirs_desc}"
                ),
                inputSchema=ListDirectoryInput.model_json_schema(),
            ),
            Tool(
                name="read_file",
                description=(
                    "Read the contents of a file. "
                    f"Only works within allowed directories:\n{allowed_dirs_desc}"
                ),
                inputSchema=ReadFileInput.model_json_schema(),
            ),
        ]

    # --- Server Run ---

    async def run(self) -> None:
        """Run the server using stdio."""
        async with stdio_server() as (read_stream, write_stream):
            await self.server.run(
                read_stream,
                write_stream,
                self.server.create_initialization_options(),
            )

    async def serve(self, exit_on_signal: bool = True) -> None:
        """
        Run until the transport closes or SIGINT/SIGTERM arrives.

        On a signal the shutdown record is written and, when ``exit_on_signal``
        is set, the process exits with code 0 straight away.
        """
        loop = asyncio.get_running_loop()
        main_task = asyncio.current_task()
        shutdown_tasks: List[asyncio.Task] = []

        async def _shutdown(reason: str) -> None:
            await self._record(ActivityAction.SERVER_SHUTDOWN, {"reason": reason})
            if exit_on_signal:
                # The stdio reader thread blocks on stdin, so the loop cannot unwind on its own
                _exit_process(0)
            if main_task is not None:
                main_task.cancel()

        def _on_signal(name: str) -> None:
            if not shutdown_tasks:
                shutdown_tasks.append(loop.create_task(_shutdown(name)))

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _on_signal, sig.name)

        await self._record(ActivityAction.SERVER_START, {"version": __version__})
        logger.info("Terminal MCP Server running on stdio")
        try:
            await self.run()
        except asyncio.CancelledError:
            if not shutdown_tasks:
                raise
        except Exception as e:
            await self._record(ActivityAction.SERVER_ERROR, {"error": str(e)})
            raise
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)


def _exit_process(code: int) -> None:
    sys.stdout.flush()
    sys.stderr.flush()
    os._exit(code)


def _configure_logging() -> None:
    # stdout carries the MCP transport, so diagnostics go to stderr
    level_name = os.environ.get(ENV_LOG_LEVEL, "WARNING")
    level = getattr(logging, level_name.upper(), None)
    if not isinstance(level, int):
        level = logging.WARNING
    logging.basicConfig(stream=sys.stderr, level=level)


def cli() -> None:
    """Console entry point: exit 0 on signal shutdown, 1 on any fatal error."""
    _configure_logging()
    try:
        server = TerminalServer(load_config())
    except Exception as e:
        print(f"Error starting server: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        asyncio.run(server.serve())
    except Exception as e:
        print(f"Fatal error in main(): {e}", file=sys.stderr)
        sys.exit(1)
    sys.exit(0)


if __name__ == "__main__":
    cli()
