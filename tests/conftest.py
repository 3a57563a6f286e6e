"""Pytest configuration and fixtures for terminal-mcp tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from terminal_mcp.config import GatewayConfig
from terminal_mcp.server import TerminalServer


@pytest.fixture
def allowed_dir(tmp_path: Path) -> Path:
    """An allowed directory with a file and a subdirectory in it."""
    root = tmp_path / "allowed"
    root.mkdir()
    (root / "notes.txt").write_text("hello world\n")
    (root / "sub").mkdir()
    return root


@pytest.fixture
def log_file(tmp_path: Path) -> Path:
    return tmp_path / "activity.log"


@pytest.fixture
def config(allowed_dir: Path, log_file: Path) -> GatewayConfig:
    return GatewayConfig(
        blocked_commands=("rm -rf", "sudo", "wget", "curl -o"),
        timeout_ms=5000,
        max_output_size=1024,
        allowed_directories=(str(allowed_dir),),
        log_file=str(log_file),
    )


@pytest.fixture
def server(config: GatewayConfig) -> TerminalServer:
    return TerminalServer(config)


def read_log(log_file: Path) -> list[str]:
    if not log_file.exists():
        return []
    return log_file.read_text().splitlines()
