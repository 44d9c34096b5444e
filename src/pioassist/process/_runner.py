"""Runner for external commands.

This module provides the CommandRunner class that spawns subprocesses,
captures and streams their output, serializes queued commands, and honors
cancellation requests made through a CommandHandle.
"""

from __future__ import annotations

import os
import subprocess
from typing import TYPE_CHECKING, final

import anyio
import structlog
from anyio.streams.text import TextReceiveStream

from pioassist.exceptions import CommandFailedError

from ._handle import CommandHandle
from ._models import CommandResult
from ._queue import CommandQueue

if TYPE_CHECKING:
    from collections.abc import Callable

    from anyio.abc import ByteReceiveStream
    from structlog.typing import FilteringBoundLogger

    from ._models import ExternalCommand
    from ._protocol import OutputCallback

_GLOBAL_QUEUE: CommandQueue | None = None


def get_global_queue() -> CommandQueue:
    """Return the process-wide queue shared by runners that do not get one."""
    global _GLOBAL_QUEUE  # noqa: PLW0603
    if _GLOBAL_QUEUE is None:
        _GLOBAL_QUEUE = CommandQueue()
    return _GLOBAL_QUEUE


def build_environment(overrides: dict[str, str]) -> dict[str, str]:
    """Build the subprocess environment.

    PLATFORMIO_PATH, when present, replaces PATH so that the PlatformIO
    virtual environment's executables take precedence.
    """
    env = {**os.environ, **overrides}
    pio_path = env.get("PLATFORMIO_PATH")
    if pio_path:
        env["PATH"] = pio_path
    return env


@final
class CommandRunner:
    """Runs external commands and reports their results."""

    __slots__ = ("_logger", "_queue")

    def __init__(
        self,
        *,
        queue: CommandQueue | None = None,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        """Initialize the runner.

        Args:
            queue: Queue used for commands with run_in_queue set. Defaults to
                the process-wide queue.
            logger: Logger for diagnostics.
        """
        self._queue = queue if queue is not None else get_global_queue()
        self._logger: FilteringBoundLogger = logger or structlog.get_logger()

    @property
    def queue(self) -> CommandQueue:
        """Return the serialization queue used by this runner."""
        return self._queue

    async def run(
        self,
        command: ExternalCommand,
        *,
        on_stdout: OutputCallback | None = None,
        on_stderr: OutputCallback | None = None,
        on_handle: Callable[[CommandHandle], None] | None = None,
    ) -> CommandResult:
        """Run a command to completion.

        The handle is passed to on_handle before the first suspension point,
        so callers can cancel a command that is still waiting in the queue.

        Args:
            command: The command to run.
            on_stdout: Receives stdout text as it arrives.
            on_stderr: Receives stderr text as it arrives.
            on_handle: Receives the CommandHandle for cancellation.

        Returns:
            The command result. Spawn failures yield exit code -1.

        Raises:
            CommandCancelledError: If the command was cancelled.
        """
        handle = CommandHandle(command)
        if on_handle is not None:
            on_handle(handle)

        self._logger.debug(
            "run_command",
            argv=command.argv,
            cwd=str(command.cwd) if command.cwd else None,
            queued=command.run_in_queue,
        )

        try:
            if command.run_in_queue and not handle.done:
                await self._queue.acquire(handle)
            if not handle.done:
                result = await self._spawn(handle, on_stdout, on_stderr)
                if handle.cancel_requested:
                    _ = handle.settle_cancelled()
                else:
                    _ = handle.settle(result=result)
        except anyio.get_cancelled_exc_class():
            _ = handle.settle_cancelled()
            raise
        finally:
            if command.run_in_queue:
                self._queue.release(handle)

        return handle.result()

    async def output(self, command: ExternalCommand) -> str:
        """Run a command and return its stdout.

        Raises:
            CommandFailedError: If the command exits with a non-zero code.
            CommandCancelledError: If the command was cancelled.
        """
        result = await self.run(command)
        if result.success:
            return result.stdout
        msg = f"{result.stderr} -> {result.stdout}" if result.stdout else result.stderr
        raise CommandFailedError(
            msg,
            exit_code=result.exit_code,
            stdout=result.stdout,
            stderr=result.stderr,
        )

    async def _spawn(
        self,
        handle: CommandHandle,
        on_stdout: OutputCallback | None,
        on_stderr: OutputCallback | None,
    ) -> CommandResult:
        command = handle.command
        try:
            process = await anyio.open_process(
                command.argv,
                cwd=command.cwd,
                env=build_environment(command.env),
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            self._logger.warning("command_spawn_failed", argv=command.argv, error=str(e))
            return CommandResult(exit_code=-1, stderr=str(e))

        handle.attach(process)
        if handle.cancel_requested:
            process.kill()

        stdout_chunks: list[str] = []
        stderr_chunks: list[str] = []

        async with process:
            async with anyio.create_task_group() as tg:
                if process.stdout is not None:
                    tg.start_soon(self._collect, process.stdout, stdout_chunks, on_stdout)
                if process.stderr is not None:
                    tg.start_soon(self._collect, process.stderr, stderr_chunks, on_stderr)
                exit_code = await process.wait()

        return CommandResult(
            exit_code=exit_code,
            stdout="".join(stdout_chunks),
            stderr="".join(stderr_chunks),
        )

    @staticmethod
    async def _collect(
        stream: ByteReceiveStream,
        chunks: list[str],
        callback: OutputCallback | None,
    ) -> None:
        """Read a process stream to EOF, forwarding each chunk to callback."""
        try:
            async for chunk in TextReceiveStream(stream, errors="replace"):
                chunks.append(chunk)
                if callback is not None:
                    try:  # noqa: SIM105
                        callback(chunk)
                    except Exception:  # noqa: BLE001, S110
                        # Output callbacks should not crash streaming
                        pass
        except (anyio.ClosedResourceError, anyio.BrokenResourceError):
            # Stream closed, which is expected on process exit
            pass
