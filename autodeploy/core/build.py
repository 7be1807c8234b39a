"""External build command runner.

Runs the project's build command through the shell and captures its
output. A run fails on a non-zero exit status, on timeout and when the
combined output grows past the configured buffer size.
"""

import asyncio
import os
import signal
import time
from pathlib import Path

from pydantic import BaseModel

from autodeploy.config import settings
from autodeploy.core.exceptions import BuildFailedError
from autodeploy.utils.logging import get_logger

logger = get_logger(__name__)

_CHUNK_SIZE = 64 * 1024
_DRAIN_TIMEOUT = 5.0


class BuildResult(BaseModel):
    """Output of a successful build."""

    command: str
    output: str
    returncode: int = 0
    duration_ms: int = 0


class _OutputOverflow(Exception):
    pass


class _BoundedBuffer:
    """Collects stdout and stderr, enforcing a shared byte limit."""

    def __init__(self, limit: int):
        self.limit = limit
        self.size = 0
        self.stdout = bytearray()
        self.stderr = bytearray()

    def add(self, target: bytearray, chunk: bytes) -> None:
        self.size += len(chunk)
        target.extend(chunk)
        if self.size > self.limit:
            raise _OutputOverflow()

    def text(self) -> str:
        return (
            self.stdout.decode(errors="replace") + self.stderr.decode(errors="replace")
        )


class BuildRunner:
    """Runs the configured build command with bounded time and output."""

    def __init__(
        self,
        command: str | None = None,
        cwd: str | Path | None = None,
        timeout: float | None = None,
        max_buffer: int | None = None,
    ):
        self.command = command or settings.deploy_build_command
        self.cwd = Path(cwd or settings.deploy_working_directory or os.getcwd())
        self.timeout = (
            settings.deploy_build_timeout_seconds if timeout is None else timeout
        )
        self.max_buffer = (
            settings.deploy_build_max_buffer_bytes if max_buffer is None else max_buffer
        )

    async def run(self) -> BuildResult:
        """Run the build.

        Returns:
            The captured output, stdout followed by stderr

        Raises:
            BuildFailedError: On non-zero exit, timeout or output overflow
        """
        start = time.perf_counter()
        logger.info("build.started", command=self.command, cwd=str(self.cwd))

        try:
            process = await asyncio.create_subprocess_shell(
                self.command,
                cwd=str(self.cwd),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as e:
            raise BuildFailedError(f"Command failed to start: {self.command}: {e}") from e

        buffer = _BoundedBuffer(self.max_buffer)

        async def pump(stream: asyncio.StreamReader, target: bytearray) -> None:
            while chunk := await stream.read(_CHUNK_SIZE):
                buffer.add(target, chunk)

        readers = [
            asyncio.ensure_future(pump(process.stdout, buffer.stdout)),
            asyncio.ensure_future(pump(process.stderr, buffer.stderr)),
        ]

        try:
            await asyncio.wait_for(
                asyncio.gather(*readers, process.wait()),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            await self._abort(process, readers)
            raise BuildFailedError(
                f"Command timed out after {self.timeout:g} seconds: {self.command}",
                buffer.text(),
            )
        except _OutputOverflow:
            await self._abort(process, readers)
            raise BuildFailedError(
                f"Output exceeded {self.max_buffer} bytes: {self.command}",
                buffer.text(),
            )

        output = buffer.text()
        duration_ms = int((time.perf_counter() - start) * 1000)

        if process.returncode != 0:
            logger.error(
                "build.failed",
                command=self.command,
                returncode=process.returncode,
                duration_ms=duration_ms,
            )
            raise BuildFailedError(
                f"Command failed with exit code {process.returncode}: {self.command}",
                output,
            )

        logger.info(
            "build.completed",
            command=self.command,
            output_len=len(output),
            duration_ms=duration_ms,
        )
        return BuildResult(
            command=self.command,
            output=output,
            returncode=process.returncode,
            duration_ms=duration_ms,
        )

    async def _abort(
        self,
        process: asyncio.subprocess.Process,
        readers: list[asyncio.Future],
    ) -> None:
        """Kill the build's process group and drain its pipes."""
        try:
            os.killpg(process.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass

        for reader in readers:
            reader.cancel()
        await asyncio.gather(*readers, return_exceptions=True)

        try:
            await asyncio.wait_for(self._drain(process), timeout=_DRAIN_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning("build.drain_timed_out", command=self.command, pid=process.pid)

    async def _drain(self, process: asyncio.subprocess.Process) -> None:
        # A paused pipe never sees EOF, and wait() blocks until both pipes close
        for stream in (process.stdout, process.stderr):
            while await stream.read(_CHUNK_SIZE):
                pass
        await process.wait()
