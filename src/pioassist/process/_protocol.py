"""Protocol definitions for external command execution.

This module defines the interfaces that decouple the home server and project
tooling from how processes are actually spawned:
- OutputCallback: Receives streamed stdout/stderr text
- Runner: Protocol implemented by CommandRunner and by test doubles
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ._handle import CommandHandle
    from ._models import CommandResult, ExternalCommand

OutputCallback = Callable[[str], None]


@runtime_checkable
class Runner(Protocol):
    """Protocol for running external commands."""

    async def run(
        self,
        command: ExternalCommand,
        *,
        on_stdout: OutputCallback | None = None,
        on_stderr: OutputCallback | None = None,
        on_handle: Callable[[CommandHandle], None] | None = None,
    ) -> CommandResult:
        """Run a command to completion.

        Raises:
            CommandCancelledError: If the command was cancelled.
        """
        ...

    async def output(self, command: ExternalCommand) -> str:
        """Run a command and return its stdout.

        Raises:
            CommandFailedError: If the command exits with a non-zero code.
        """
        ...
