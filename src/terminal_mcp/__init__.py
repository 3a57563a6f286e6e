"""Terminal MCP - a Model Context Protocol gateway for local shell commands and file reads."""

__version__ = "1.1.0"

from .config import GatewayConfig, load_config
from .security import CommandValidator, PathAuthorizer
from .shell import ExecutionResult, ShellExecutor
from .activity import ActivityAction, ActivityLogger
from .filesystem import FileSystem

__all__ = [
    "GatewayConfig",
    "load_config",
    "CommandValidator",
    "PathAuthorizer",
    "ExecutionResult",
    "ShellExecutor",
    "ActivityAction",
    "ActivityLogger",
    "FileSystem",
]
