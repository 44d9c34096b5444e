# ruff: noqa: TC003  # Path needed at runtime for dataclass field
"""CLI context shared by commands.

The context is set once by the meta command and read by subcommands via
contextvars.
"""

import contextvars
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from pioassist.config import PioAssistConfig

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

_current_cli_context: contextvars.ContextVar["CLIContext | None"] = contextvars.ContextVar(
    "cli_context", default=None
)


@dataclass(frozen=True, slots=True)
class CLIContext:
    """Global CLI options and loaded settings.

    Attributes:
        config: Loaded settings.
        config_path: Settings file given with ``--config``, if any.
        logger: Structured logger for commands (writes to the log file).
    """

    config: PioAssistConfig = field(repr=False)
    config_path: Path | None = None
    logger: "FilteringBoundLogger | None" = field(default=None, repr=False)

    @property
    def log(self) -> "FilteringBoundLogger":
        return self.logger if self.logger is not None else structlog.get_logger()

    @classmethod
    def get_current(cls) -> "CLIContext":
        """Return the active context, or one with default settings."""
        ctx = _current_cli_context.get()
        if ctx is not None:
            return ctx
        return cls(config=PioAssistConfig())

    @classmethod
    def set_current(cls, ctx: "CLIContext") -> None:
        _ = _current_cli_context.set(ctx)

    @classmethod
    def reset(cls) -> None:
        _ = _current_cli_context.set(None)
