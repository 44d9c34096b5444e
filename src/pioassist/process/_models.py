"""Data models for external command execution.

This module defines the core data types for running external programs:
- CommandState: Lifecycle states of a submitted command
- ExternalCommand: Immutable description of what to run
- CommandResult: Exit code and captured output
"""

from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path  # noqa: TC003 - Used in runtime type annotations


class CommandState(StrEnum):
    """Command lifecycle states.

    - PENDING: Created, not yet queued or spawned
    - QUEUED: Waiting for its turn in the serial queue
    - RUNNING: Subprocess has been spawned
    - DONE: Settled with a result or an error
    """

    PENDING = "pending"
    QUEUED = "queued"
    RUNNING = "running"
    DONE = "done"


@dataclass(frozen=True, slots=True)
class ExternalCommand:
    """An external program invocation.

    Attributes:
        program: Executable to run.
        args: Arguments passed to the executable.
        cwd: Working directory for the process.
        env: Environment variable overrides merged over os.environ.
        run_in_queue: Serialize against other queued commands.
    """

    program: str
    args: tuple[str, ...] = ()
    cwd: Path | None = None
    env: dict[str, str] = field(default_factory=dict)
    run_in_queue: bool = False

    @property
    def argv(self) -> list[str]:
        """Return the full argument vector including the program."""
        return [self.program, *self.args]


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Outcome of an external command.

    Attributes:
        exit_code: Process exit code, -1 when the process could not be spawned.
        stdout: Captured standard output.
        stderr: Captured standard error.
    """

    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def success(self) -> bool:
        """Return True when the command exited with code 0."""
        return self.exit_code == 0
