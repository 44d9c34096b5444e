"""Settle-once handle for a submitted external command."""

from __future__ import annotations

import contextlib
from collections.abc import Callable
from typing import TYPE_CHECKING, final

import anyio

from pioassist.exceptions import CommandCancelledError

from ._models import CommandState

if TYPE_CHECKING:
    import anyio.abc

    from ._models import CommandResult, ExternalCommand
    from ._queue import CommandQueue

DoneCallback = Callable[["CommandResult | None", "Exception | None"], None]


@final
class CommandHandle:
    """Tracks one external command from submission to completion.

    The handle settles exactly once, either with a CommandResult or with an
    exception. Callbacks registered with add_done_callback() run once, at
    settle time (or immediately if the handle has already settled).

    Attributes:
        command: The command this handle tracks.
        state: Current lifecycle state.
    """

    __slots__ = (
        "_callbacks",
        "_cancel_requested",
        "_done",
        "_error",
        "_process",
        "_queue",
        "_result",
        "_turn",
        "command",
        "state",
    )

    def __init__(self, command: ExternalCommand) -> None:
        self.command = command
        self.state = CommandState.PENDING
        self._callbacks: list[DoneCallback] = []
        self._cancel_requested = False
        self._done = anyio.Event()
        self._turn = anyio.Event()
        self._error: Exception | None = None
        self._result: CommandResult | None = None
        self._process: anyio.abc.Process | None = None
        self._queue: CommandQueue | None = None

    @property
    def done(self) -> bool:
        """Return True once the handle has settled."""
        return self.state == CommandState.DONE

    @property
    def cancel_requested(self) -> bool:
        """Return True if cancel() was called before the handle settled."""
        return self._cancel_requested

    @property
    def pid(self) -> int | None:
        """Return the subprocess id while running."""
        return self._process.pid if self._process is not None else None

    def add_done_callback(self, callback: DoneCallback) -> None:
        """Register a callback invoked once with (result, error)."""
        if self.done:
            self._invoke(callback)
            return
        self._callbacks.append(callback)

    def _invoke(self, callback: DoneCallback) -> None:
        try:  # noqa: SIM105
            callback(self._result, self._error)
        except Exception:  # noqa: BLE001, S110
            # Callback errors should not break command bookkeeping
            pass

    def settle(
        self,
        *,
        result: CommandResult | None = None,
        error: Exception | None = None,
    ) -> bool:
        """Settle the handle with a result or an error.

        Returns:
            True if this call settled the handle, False if it was already done.
        """
        if self.done:
            return False
        self.state = CommandState.DONE
        self._result = result
        self._error = error
        self._process = None
        self._done.set()
        self._turn.set()
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            self._invoke(callback)
        return True

    def settle_cancelled(self) -> bool:
        """Settle the handle with a CommandCancelledError."""
        msg = f"Command cancelled: {' '.join(self.command.argv)}"
        return self.settle(error=CommandCancelledError(msg, command=self.command))

    def attach(self, process: anyio.abc.Process) -> None:
        """Record the spawned subprocess and mark the handle running."""
        self._process = process
        self.state = CommandState.RUNNING

    def cancel(self) -> None:
        """Cancel the command.

        A queued command is removed from its queue and settled with a
        CommandCancelledError without ever being spawned. A running command
        has its subprocess killed; the runner settles it once the process
        exits.
        """
        if self.done:
            return
        self._cancel_requested = True

        if self.state == CommandState.RUNNING:
            if self._process is not None:
                with contextlib.suppress(ProcessLookupError):
                    self._process.kill()
            return

        if self._queue is not None:
            self._queue.discard(self)
        _ = self.settle_cancelled()

    async def wait(self) -> CommandResult:
        """Wait for the handle to settle.

        Returns:
            The command result.

        Raises:
            CommandCancelledError: If the command was cancelled.
        """
        await self._done.wait()
        return self.result()

    def result(self) -> CommandResult:
        """Return the settled result or raise the settled error."""
        if not self.done:
            msg = "Command has not completed"
            raise RuntimeError(msg)
        if self._error is not None:
            raise self._error
        if self._result is None:
            msg = "Command settled without a result"
            raise RuntimeError(msg)
        return self._result
