"""Tests for the MCP tool handlers."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from mcp.shared.memory import create_connected_server_and_client_session

from terminal_mcp.server import TerminalServer

from .conftest import read_log


def text_of(result) -> str:
    assert len(result) == 1
    assert result[0].type == "text"
    return result[0].text


class TestExecuteCommand:
    """execute-command handler."""

    async def test_echo(self, server: TerminalServer) -> None:
        result = await server.execute_command({"command": "echo hello"})
        assert text_of(result) == "Standard Output:\nhello\n\n"

    async def test_stderr_section(self, server: TerminalServer) -> None:
        result = await server.execute_command({"command": "printf 'warn\\n' >&2"})
        assert text_of(result) == "Standard Error:\nwarn\n\n"

    async def test_no_output(self, server: TerminalServer) -> None:
        result = await server.execute_command({"command": "true"})
        assert text_of(result) == "Command executed successfully with no output."

    async def test_blocked_command_never_spawns(self, server: TerminalServer) -> None:
        server.shell.run = AsyncMock()
        result = await server.execute_command({"command": "sudo apt install x"})
        assert text_of(result).startswith("Error executing command: Command contains blocked pattern")
        server.shell.run.assert_not_awaited()

    async def test_file_operation_outside_allowed_dirs(self, server: TerminalServer) -> None:
        result = await server.execute_command({"command": "cat /etc/hostname"})
        assert text_of(result) == "Error executing command: File operations only allowed in permitted directories"

    async def test_file_operation_inside_allowed_dir(self, server: TerminalServer, allowed_dir: Path) -> None:
        result = await server.execute_command({"command": f"cat {allowed_dir}/notes.txt"})
        assert text_of(result) == "Standard Output:\nhello world\n\n"

    async def test_nonzero_exit_is_error(self, server: TerminalServer) -> None:
        result = await server.execute_command({"command": "ls /definitely/not/here"})
        text = text_of(result)
        assert text.startswith("Error executing command: Command failed: ls /definitely/not/here\n")
        assert "No such file or directory" in text

    async def test_timeout(self, server: TerminalServer) -> None:
        result = await server.execute_command({"command": "sleep 5", "timeout": 200})
        assert text_of(result) == "Error executing command: Command timed out after 200ms"

    async def test_output_limit(self, server: TerminalServer) -> None:
        result = await server.execute_command({"command": "yes | head -c 4096"})
        assert text_of(result) == "Error executing command: Command output exceeded maximum size of 1024 bytes"

    async def test_custom_policy(self, config) -> None:
        """A different policy can be injected without touching the handler."""

        class DenyAll:
            def validate(self, command: str) -> None:
                raise PermissionError("denied by policy")

        server = TerminalServer(config, policy=DenyAll())
        result = await server.execute_command({"command": "echo hello"})
        assert text_of(result) == "Error executing command: denied by policy"


class TestExecuteCommandLogging:
    """Activity records written by execute-command."""

    async def test_success_records(self, server: TerminalServer, log_file: Path) -> None:
        await server.execute_command({"command": "echo hello"})
        lines = read_log(log_file)
        assert len(lines) == 2
        assert 'COMMAND_REQUESTED: {"command":"echo hello"}' in lines[0]
        assert 'COMMAND_EXECUTED: {"command":"echo hello","success":true,"outputSize":24}' in lines[1]

    async def test_error_records(self, server: TerminalServer, log_file: Path) -> None:
        await server.execute_command({"command": "sudo ls"})
        lines = read_log(log_file)
        assert len(lines) == 2
        assert "COMMAND_REQUESTED" in lines[0]
        assert 'COMMAND_ERROR: {"command":"sudo ls","error":"Command contains blocked pattern: sudo"}' in lines[1]

    async def test_log_failure_does_not_abort(self, config, tmp_path: Path) -> None:
        server = TerminalServer(config.model_copy(update={"log_file": str(tmp_path)}))
        result = await server.execute_command({"command": "echo hello"})
        assert text_of(result) == "Standard Output:\nhello\n\n"

    async def test_list_and_read_are_not_logged(
        self, server: TerminalServer, allowed_dir: Path, log_file: Path
    ) -> None:
        await server.list_directory({"path": str(allowed_dir)})
        await server.read_file({"path": f"{allowed_dir}/notes.txt"})
        await server.list_directory({"path": "/etc"})
        assert read_log(log_file) == []


class TestListDirectory:
    async def test_lists_entries(self, server: TerminalServer, allowed_dir: Path) -> None:
        result = await server.list_directory({"path": str(allowed_dir)})
        assert text_of(result) == "[FILE] notes.txt\n[DIR] sub"

    async def test_empty_directory(self, server: TerminalServer, allowed_dir: Path) -> None:
        result = await server.list_directory({"path": str(allowed_dir / "sub")})
        assert text_of(result) == "Directory is empty"

    async def test_access_denied(self, server: TerminalServer) -> None:
        result = await server.list_directory({"path": "/etc"})
        assert text_of(result) == "Error listing directory: Access denied - path outside allowed directories"

    async def test_denied_path_is_not_touched(self, server: TerminalServer, monkeypatch: pytest.MonkeyPatch) -> None:
        def fail(*args, **kwargs):
            raise AssertionError("filesystem touched")

        monkeypatch.setattr("terminal_mcp.filesystem.os.scandir", fail)
        result = await server.list_directory({"path": "/nowhere"})
        assert text_of(result).startswith("Error listing directory: Access denied")

    async def test_missing_directory(self, server: TerminalServer, allowed_dir: Path) -> None:
        result = await server.list_directory({"path": str(allowed_dir / "missing")})
        assert text_of(result).startswith("Error listing directory: ")


class TestReadFile:
    async def test_reads_content(self, server: TerminalServer, allowed_dir: Path) -> None:
        result = await server.read_file({"path": str(allowed_dir / "notes.txt")})
        assert text_of(result) == "hello world\n"

    async def test_access_denied(self, server: TerminalServer) -> None:
        result = await server.read_file({"path": "/etc/hostname"})
        assert text_of(result) == "Error reading file: Access denied - path outside allowed directories"

    async def test_missing_file(self, server: TerminalServer, allowed_dir: Path) -> None:
        result = await server.read_file({"path": str(allowed_dir / "missing.txt")})
        assert text_of(result).startswith("Error reading file: ")

    async def test_invalid_utf8_is_replaced(self, server: TerminalServer, allowed_dir: Path) -> None:
        """Undecodable bytes come back as U+FFFD rather than an error."""
        (allowed_dir / "mixed.txt").write_bytes(b"abc\xffdef\n")
        result = await server.read_file({"path": str(allowed_dir / "mixed.txt")})
        assert text_of(result) == "abc\ufffddef\n"


class TestDispatch:
    async def test_unknown_tool(self, server: TerminalServer) -> None:
        with pytest.raises(ValueError, match="Unknown or invalid tool name"):
            await server.dispatch("write_file", {"path": "/x"})

    async def test_hyphenated_tool_name(self, server: TerminalServer) -> None:
        result = await server.dispatch("execute-command", {"command": "echo hi"})
        assert text_of(result) == "Standard Output:\nhi\n\n"

    async def test_tool_listing(self, server: TerminalServer, allowed_dir: Path) -> None:
        tools = {tool.name: tool for tool in server.list_tools_impl()}
        assert set(tools) == {"execute-command", "list_directory", "read_file"}
        assert tools["execute-command"].inputSchema["required"] == ["command"]
        assert str(allowed_dir) in tools["read_file"].description


class TestProtocolRoundTrip:
    """The three tools through an in-memory MCP client session."""

    async def test_client_session(self, server: TerminalServer, allowed_dir: Path) -> None:
        async with create_connected_server_and_client_session(server.server) as client:
            listed = await client.list_tools()
            assert {t.name for t in listed.tools} == {"execute-command", "list_directory", "read_file"}

            result = await client.call_tool("execute-command", {"command": "echo hello"})
            assert not result.isError
            assert result.content[0].text == "Standard Output:\nhello\n\n"

            result = await client.call_tool("list_directory", {"path": "/etc"})
            assert not result.isError
            assert result.content[0].text.startswith("Error listing directory: Access denied")
