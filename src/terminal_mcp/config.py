"""Gateway configuration loaded once at startup."""

import os
from typing import Tuple

from pydantic import BaseModel, ConfigDict, Field

ENV_BLOCKED_COMMANDS = "BLOCKED_COMMANDS"
ENV_COMMAND_TIMEOUT_MS = "COMMAND_TIMEOUT_MS"
ENV_MAX_OUTPUT_SIZE = "MAX_OUTPUT_SIZE"
ENV_ALLOWED_DIRS = "ALLOWED_DIRS"
ENV_ACTIVITY_LOG_FILE = "ACTIVITY_LOG_FILE"

DEFAULT_BLOCKED_COMMANDS = ("rm -rf", "sudo", "wget", "curl -o")
DEFAULT_TIMEOUT_MS = 30000
DEFAULT_MAX_OUTPUT_SIZE = 1024 * 1024
DEFAULT_ALLOWED_DIR = "~/Documents"
DEFAULT_LOG_FILE = "./terminal-mcp.log"


class GatewayConfig(BaseModel):
    """Immutable settings shared by the validator, executor, logger and handlers."""
    model_config = ConfigDict(frozen=True)

    blocked_commands: Tuple[str, ...] = DEFAULT_BLOCKED_COMMANDS
    timeout_ms: int = Field(DEFAULT_TIMEOUT_MS, gt=0)
    max_output_size: int = Field(DEFAULT_MAX_OUTPUT_SIZE, gt=0)
    allowed_directories: Tuple[str, ...] = Field(..., min_length=1)
    log_file: str = DEFAULT_LOG_FILE


def _split_csv(value: str) -> Tuple[str, ...]:
    return tuple(part.strip() for part in value.split(",") if part.strip())


def load_config() -> GatewayConfig:
    """Loads gateway configuration from environment variables, falling back to the built-in defaults."""
    blocked_str = os.getenv(ENV_BLOCKED_COMMANDS)
    allowed_dirs_str = os.getenv(ENV_ALLOWED_DIRS)
    timeout_str = os.getenv(ENV_COMMAND_TIMEOUT_MS, str(DEFAULT_TIMEOUT_MS))
    max_output_str = os.getenv(ENV_MAX_OUTPUT_SIZE, str(DEFAULT_MAX_OUTPUT_SIZE))

    blocked_commands = _split_csv(blocked_str) if blocked_str is not None else DEFAULT_BLOCKED_COMMANDS

    if allowed_dirs_str:
        allowed_directories = _split_csv(allowed_dirs_str)
    else:
        allowed_directories = (os.path.expanduser(DEFAULT_ALLOWED_DIR),)

    try:
        timeout_ms = int(timeout_str)
        max_output_size = int(max_output_str)
    except ValueError as e:
        raise ValueError(f"Invalid integer value in environment variable for gateway config: {e}") from e

    # Pydantic enforces the remaining constraints here
    return GatewayConfig(
        blocked_commands=blocked_commands,
        timeout_ms=timeout_ms,
        max_output_size=max_output_size,
        allowed_directories=allowed_directories,
        log_file=os.getenv(ENV_ACTIVITY_LOG_FILE, DEFAULT_LOG_FILE),
    )
