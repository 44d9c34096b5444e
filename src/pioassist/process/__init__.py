"""External command execution.

Key Components:
    - ExternalCommand: What to run, where, and whether to serialize it
    - CommandResult: Exit code and captured output
    - CommandHandle: Settle-once handle supporting cancellation
    - CommandQueue: FIFO queue serializing heavy commands
    - CommandRunner: Spawns subprocesses with anyio
    - Runner: Protocol for runner implementations

Example:
    >>> runner = CommandRunner()
    >>> result = await runner.run(ExternalCommand("pio", ("--version",)))
    >>> result.exit_code
    0
"""

from ._handle import CommandHandle, DoneCallback
from ._models import CommandResult, CommandState, ExternalCommand
from ._protocol import OutputCallback, Runner
from ._queue import CommandQueue
from ._runner import CommandRunner, build_environment, get_global_queue

__all__ = [
    "CommandHandle",
    "CommandQueue",
    "CommandResult",
    "CommandRunner",
    "CommandState",
    "DoneCallback",
    "ExternalCommand",
    "OutputCallback",
    "Runner",
    "build_environment",
    "get_global_queue",
]
