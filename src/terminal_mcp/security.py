"""Security module for Terminal MCP command execution."""

import re
from typing import Protocol

from .config import GatewayConfig


class CommandError(Exception):
    """Base exception for command-related errors."""
    pass


class CommandSecurityError(CommandError):
    """Security violation errors."""
    pass


class BlockedPatternError(CommandSecurityError):
    """The command contains a blocked substring."""

    def __init__(self, pattern: str) -> None:
        self.pattern = pattern
        super().__init__(f"Command contains blocked pattern: {pattern}")


class DirectoryNotAllowedError(CommandSecurityError):
    """A file operation does not mention any allowed directory."""

    def __init__(self) -> None:
        super().__init__("File operations only allowed in permitted directories")


class AccessDeniedError(CommandSecurityError, PermissionError):
    """A filesystem path falls outside the allowed directories."""

    def __init__(self, path: str = "") -> None:
        self.path = path
        super().__init__("Access denied - path outside allowed directories")


class CommandExecutionError(CommandError):
    """Command execution errors."""
    pass


class CommandTimeoutError(CommandExecutionError):
    """Command timeout errors."""
    pass


class OutputLimitExceededError(CommandExecutionError):
    """Captured output grew past the configured maximum."""
    pass


class CommandSpawnError(CommandExecutionError):
    """The system shell could not be started."""
    pass


# Coarse on purpose: matched against the whole command line, not parsed tokens.
FILE_OPERATION_PATTERN = re.compile(r"(cp|mv|rm|cat|echo.*>|touch|mkdir|rmdir)")


class CommandPolicy(Protocol):
    """Decides whether a raw command string may be handed to the shell."""

    def validate(self, command: str) -> None: ...


class CommandValidator:
    """Substring blocklist plus directory allowlist for file operations."""

    def __init__(self, config: GatewayConfig) -> None:
        self.config = config

    def is_file_operation(self, command: str) -> bool:
        return FILE_OPERATION_PATTERN.search(command) is not None

    def validate(self, command: str) -> None:
        """
        Validates a command string against the blocklist and directory allowlist.

        Commands that are not classified as file operations skip the directory
        check entirely.

        Raises:
            BlockedPatternError: The command contains a blocked substring.
            DirectoryNotAllowedError: A file operation names no allowed directory.
        """
        for blocked in self.config.blocked_commands:
            if blocked in command:
                raise BlockedPatternError(blocked)

        mentions_allowed_dir = any(d in command for d in self.config.allowed_directories)
        if self.is_file_operation(command) and not mentions_allowed_dir:
            raise DirectoryNotAllowedError()


class PathAuthorizer:
    """Prefix check of raw path strings against the allowed directories.

    Paths are compared as given: no normalization, no ``..`` or symlink
    resolution.
    """

    def __init__(self, config: GatewayConfig) -> None:
        self.config = config

    def is_allowed(self, path: str) -> bool:
        return any(path.startswith(d) for d in self.config.allowed_directories)

    def require(self, path: str) -> None:
        if not self.is_allowed(path):
            raise AccessDeniedError(path)
