"""FIFO serialization queue for heavy external commands."""

from __future__ import annotations

from collections import deque
from typing import TYPE_CHECKING, final

from ._models import CommandState

if TYPE_CHECKING:
    from ._handle import CommandHandle


@final
class CommandQueue:
    """Serializes commands so that at most one queued command runs at a time.

    A handle entering an empty queue proceeds immediately; otherwise it waits
    until every handle ahead of it has been released or discarded.
    """

    __slots__ = ("_entries",)

    def __init__(self) -> None:
        self._entries: deque[CommandHandle] = deque()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, handle: object) -> bool:
        return handle in self._entries

    async def acquire(self, handle: CommandHandle) -> None:
        """Append a handle and wait until it reaches the head of the queue."""
        handle._queue = self  # noqa: SLF001
        handle.state = CommandState.QUEUED
        self._entries.append(handle)
        if self._entries[0] is handle:
            handle._turn.set()  # noqa: SLF001
        await handle._turn.wait()  # noqa: SLF001

    def release(self, handle: CommandHandle) -> None:
        """Remove a finished handle and wake the next one in line."""
        self.discard(handle)

    def discard(self, handle: CommandHandle) -> None:
        """Remove a handle wherever it sits, waking the new head if needed."""
        if handle not in self._entries:
            return
        was_head = self._entries[0] is handle
        self._entries.remove(handle)
        handle._queue = None  # noqa: SLF001
        if was_head and self._entries:
            self._entries[0]._turn.set()  # noqa: SLF001
