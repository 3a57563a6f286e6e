"""File system operations implementation."""

import os
from typing import Any

from .security import AccessDeniedError, PathAuthorizer


class FileSystem:
    def __init__(self, authorizer: PathAuthorizer) -> None:
        self.authorizer = authorizer

    async def list_directory(self, path: str) -> dict[str, Any]:
        """List directory contents with [FILE] or [DIR] prefixes."""
        try:
            # Denied paths are rejected before the filesystem is touched
            self.authorizer.require(path)

            with os.scandir(path) as it:
                entries = sorted(it, key=lambda e: e.name)

            items = []
            for entry in entries:
                prefix = "[DIR]" if entry.is_dir(follow_symlinks=False) else "[FILE]"
                items.append(f"{prefix} {entry.name}")

            return {
                "success": True,
                "error": None,
                "listing": "\n".join(items)
            }
        except AccessDeniedError as e:
            return {"success": False, "error": str(e), "listing": None}
        except OSError as e:
            return {"success": False, "error": f"{e.strerror or e}: {path}", "listing": None}

    async def read_file(self, path: str) -> dict[str, Any]:
        """Read the complete contents of a file."""
        try:
            self.authorizer.require(path)

            with open(path, "r", encoding="utf-8", errors="replace") as f:
                content = f.read()
                return {
                    "success": True,
                    "error": None,
                    "content": content,
                }
        except AccessDeniedError as e:
            return {"success": False, "error": str(e), "content": None}
        except OSError as e:
            return {"success": False, "error": f"{e.strerror or e}: {path}", "content": None}
