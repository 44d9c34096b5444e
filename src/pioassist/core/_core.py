"""Invocation of PlatformIO Core through its Python interpreter."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, final

from pioassist.exceptions import CoreNotInstalledError
from pioassist.process import CommandRunner, ExternalCommand

from ._paths import get_core_state

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from pathlib import Path

    from pioassist.process import CommandHandle, CommandResult, OutputCallback, Runner


@final
class PlatformIOCore:
    """Builds and runs ``python -m platformio`` commands.

    Attributes:
        runner: Runner used to execute commands.
        caller: Value passed to PlatformIO as ``-c <caller>``, if any.
    """

    __slots__ = ("caller", "runner")

    def __init__(
        self,
        runner: Runner | None = None,
        *,
        caller: str | None = None,
    ) -> None:
        self.runner: Runner = runner if runner is not None else CommandRunner()
        self.caller = caller if caller is not None else os.environ.get("PLATFORMIO_CALLER")

    def python_exe(self) -> Path:
        """Return the interpreter that has PlatformIO Core installed.

        Raises:
            CoreNotInstalledError: If no interpreter has been recorded.
        """
        python_exe = get_core_state().python_exe
        if python_exe is None:
            msg = "PlatformIO Core is not installed"
            raise CoreNotInstalledError(msg)
        return python_exe

    def python_command(
        self,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        run_in_queue: bool = False,
    ) -> ExternalCommand:
        """Build a command running the core interpreter with args."""
        return ExternalCommand(
            program=str(self.python_exe()),
            args=tuple(args),
            cwd=cwd,
            run_in_queue=run_in_queue,
        )

    def pio_command(
        self,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        run_in_queue: bool = False,
    ) -> ExternalCommand:
        """Build a ``python -m platformio`` command."""
        base_args = ["-m", "platformio"]
        if self.caller:
            base_args.extend(["-c", self.caller])
        return self.python_command(
            [*base_args, *args], cwd=cwd, run_in_queue=run_in_queue
        )

    async def run_pio(
        self,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        on_stdout: OutputCallback | None = None,
        on_stderr: OutputCallback | None = None,
        on_handle: Callable[[CommandHandle], None] | None = None,
    ) -> CommandResult:
        """Run a PlatformIO command and return its result."""
        return await self.runner.run(
            self.pio_command(args, cwd=cwd),
            on_stdout=on_stdout,
            on_stderr=on_stderr,
            on_handle=on_handle,
        )

    async def pio_output(self, args: Sequence[str], *, cwd: Path | None = None) -> str:
        """Run a PlatformIO command and return its stdout.

        Raises:
            CommandFailedError: If the command exits with a non-zero code.
        """
        return await self.runner.output(self.pio_command(args, cwd=cwd))

    async def python_output(
        self,
        script: str,
        *,
        cwd: Path | None = None,
        run_in_queue: bool = False,
    ) -> str:
        """Run a Python snippet with the core interpreter and return its stdout.

        Raises:
            CommandFailedError: If the script exits with a non-zero code.
        """
        command = self.python_command(["-c", script], cwd=cwd, run_in_queue=run_in_queue)
        return await self.runner.output(command)
