# pyright: reportExplicitAny=false
"""Shared CLI utilities: exit codes, formatting and error output."""

from enum import IntEnum
from typing import TYPE_CHECKING, Any, Never

if TYPE_CHECKING:
    from rich.console import Console

FormattableData = dict[str, Any] | list[Any]


class ExitCode(IntEnum):
    """Standard exit codes for pioassist CLI commands."""

    SUCCESS = 0
    LOAD_ERROR = 1
    VALIDATION_ERROR = 2
    NOT_FOUND = 3
    IO_ERROR = 4
    INTERNAL_ERROR = 5


def format_json(data: FormattableData, *, indent: bool = True) -> str:
    """Format data as JSON."""
    import orjson

    options = orjson.OPT_INDENT_2 if indent else 0
    return orjson.dumps(data, option=options).decode("utf-8")


def get_error_console() -> "Console":
    from rich.console import Console

    return Console(stderr=True)


def exit_with_error(
    message: str,
    code: ExitCode = ExitCode.INTERNAL_ERROR,
    *,
    console: "Console | None" = None,
) -> Never:
    """Print an error message and exit with the given code.

    Raises:
        SystemExit: Always raised with the specified exit code.
    """
    if console is None:
        console = get_error_console()
    console.print(f"[red]Error:[/red] {message}")
    raise SystemExit(code)
