"""Append-only activity log for command execution and server lifecycle events."""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Optional

from .config import GatewayConfig


class ActivityAction(str, Enum):
    COMMAND_REQUESTED = "COMMAND_REQUESTED"
    COMMAND_EXECUTED = "COMMAND_EXECUTED"
    COMMAND_ERROR = "COMMAND_ERROR"
    SERVER_START = "SERVER_START"
    SERVER_SHUTDOWN = "SERVER_SHUTDOWN"
    SERVER_ERROR = "SERVER_ERROR"


def _isoformat(ts: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision and a ``Z`` suffix."""
    return ts.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class ActivityRecord:
    action: ActivityAction
    details: Mapping[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def format_line(self) -> str:
        details = json.dumps(dict(self.details), separators=(",", ":"), default=str)
        return f"[{_isoformat(self.timestamp)}] {self.action.value}: {details}\n"


class ActivityLogger:
    """Writes one line per ActivityRecord to the configured log file."""

    def __init__(self, config: GatewayConfig) -> None:
        self.log_file = config.log_file

    async def log(self, action: ActivityAction, details: Mapping[str, Any]) -> Optional[OSError]:
        """
        Append a timestamped record to the log file.

        Write failures are returned rather than raised so that logging can never
        abort the operation being logged.
        """
        record = ActivityRecord(action=action, details=details)
        try:
            with open(self.log_file, "a", encoding="utf-8") as f:
                f.write(record.format_line())
        except OSError as e:
            return e
        return None
