"""Shell command execution with bounded time and bounded captured output."""

import asyncio
import logging
import os
import signal
from dataclasses import dataclass
from typing import List, Optional

from .config import GatewayConfig
from .security import CommandSpawnError, CommandTimeoutError, OutputLimitExceededError

logger = logging.getLogger(__name__)

_READ_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class ExecutionResult:
    """Captured output of a finished command."""

    stdout: str
    stderr: str
    exit_code: int

    @property
    def success(self) -> bool:
        return self.exit_code == 0


class ShellExecutor:
    """
    Runs command strings through the system shell.

    Every run is bounded by an effective timeout (the smaller of the requested
    timeout and the configured ceiling) and by a ceiling on the combined size
    of captured stdout and stderr.
    """

    def __init__(self, config: GatewayConfig) -> None:
        self.config = config

    def effective_timeout_ms(self, requested_ms: Optional[float] = None) -> float:
        """Caller-supplied timeouts can only shrink the configured ceiling."""
        if requested_ms is None or requested_ms <= 0:
            return self.config.timeout_ms
        return min(requested_ms, self.config.timeout_ms)

    async def run(self, command: str, timeout_ms: Optional[float] = None) -> ExecutionResult:
        """
        Execute ``command`` with the system shell and capture its output.

        Args:
            command: Command line passed verbatim to the shell.
            timeout_ms: Requested timeout in milliseconds; capped by the config.

        Returns:
            ExecutionResult with decoded stdout, stderr and the exit code.

        Raises:
            CommandSpawnError: The shell could not be started.
            CommandTimeoutError: The command outlived the effective timeout.
            OutputLimitExceededError: Combined output exceeded ``max_output_size``.
        """
        effective_ms = self.effective_timeout_ms(timeout_ms)

        try:
            proc = await asyncio.create_subprocess_shell(
                command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as e:
            raise CommandSpawnError(f"Failed to start shell: {e}") from e

        stdout_buf = bytearray()
        stderr_buf = bytearray()
        captured = [0]
        limit = self.config.max_output_size

        async def drain(stream: asyncio.StreamReader, sink: bytearray) -> None:
            while True:
                chunk = await stream.read(_READ_CHUNK_SIZE)
                if not chunk:
                    return
                sink.extend(chunk)
                captured[0] += len(chunk)
                if captured[0] > limit:
                    raise OutputLimitExceededError(
                        f"Command output exceeded maximum size of {limit} bytes"
                    )

        if proc.stdout is None or proc.stderr is None:
            await self._terminate(proc, [])
            raise CommandSpawnError("Shell started without captured output pipes")
        tasks: List[asyncio.Future] = [
            asyncio.ensure_future(drain(proc.stdout, stdout_buf)),
            asyncio.ensure_future(drain(proc.stderr, stderr_buf)),
        ]

        async def communicate() -> int:
            await asyncio.gather(*tasks)
            return await proc.wait()

        try:
            exit_code = await asyncio.wait_for(communicate(), timeout=effective_ms / 1000)
        except asyncio.TimeoutError:
            await self._terminate(proc, tasks)
            raise CommandTimeoutError(f"Command timed out after {effective_ms:g}ms")
        except OutputLimitExceededError:
            await self._terminate(proc, tasks)
            raise

        logger.debug("Command exited with %s (%d bytes captured)", exit_code, captured[0])
        return ExecutionResult(
            stdout=stdout_buf.decode("utf-8", errors="replace"),
            stderr=stderr_buf.decode("utf-8", errors="replace"),
            exit_code=exit_code,
        )

    async def _terminate(self, proc: asyncio.subprocess.Process, tasks: List[asyncio.Future]) -> None:
        """Kill the whole process group and reap the shell."""
        for task in tasks:
            task.cancel()
        try:
            if os.name == "posix":
                os.killpg(proc.pid, signal.SIGKILL)
            else:
                proc.kill()
        except ProcessLookupError:
            pass
        await proc.wait()
        await asyncio.gather(*tasks, return_exceptions=True)
