"""The command-line interface for pioassist."""
# ruff: noqa: TC003  # Path needed at runtime for cyclopts parameter parsing

from pathlib import Path
from typing import Annotated

from cyclopts import App, Parameter
from rich.console import Console

from pioassist.config import PioAssistConfig, load_config
from pioassist.core import update_core_state
from pioassist.exceptions import ConfigError
from pioassist.utils import create_logger

from ._context import CLIContext
from ._home import app as home_app
from ._project import app as project_app
from ._shared import ExitCode, exit_with_error

APP_HELP = "PlatformIO project and Home server helper."


def _apply_core_settings(config: PioAssistConfig) -> None:
    changes: dict[str, Path | None] = {}
    if config.core.core_dir is not None:
        changes["core_dir"] = config.core.core_dir
    if config.core.python_exe is not None:
        changes["python_exe"] = config.core.python_exe
    if changes:
        _ = update_core_state(**changes)


def create_app(
    console: Console | None = None,
    error_console: Console | None = None,
    *,
    exit_on_error: bool = True,
) -> App:
    if console is None:
        console = Console()
    if error_console is None:
        error_console = Console(stderr=True)
    app = App(
        name="pioassist",
        help=APP_HELP,
        help_on_error=True,
        console=console,
        error_console=error_console,
        exit_on_error=exit_on_error,
    )

    @app.meta.default
    def _default(  # pyright: ignore[reportUnusedFunction]
        *tokens: Annotated[str, Parameter(show=False, allow_leading_hyphen=True)],
        config: Annotated[
            Path | None, Parameter(name="--config", help="Path to settings file")
        ] = None,
    ) -> None:
        """Launch pioassist with global options.

        Args:
            tokens: Command tokens to pass to subcommands.
            config: Explicit path to a TOML settings file.
        """
        try:
            loaded_config = load_config(config)
        except ConfigError as e:
            exit_with_error(str(e), ExitCode.LOAD_ERROR, console=error_console)

        cli_logger = create_logger(
            level=loaded_config.logging.level.value,
            log_format=loaded_config.logging.format.value,  # type: ignore[arg-type]
            log_file=loaded_config.logging.file,
            component="cli",
        )
        _apply_core_settings(loaded_config)

        CLIContext.set_current(
            CLIContext(config=loaded_config, config_path=config, logger=cli_logger)
        )
        try:
            app(tokens)
        finally:
            CLIContext.reset()

    app.command(home_app)
    app.command(project_app)
    return app


app = create_app()


def main() -> None:
    """Default entrypoint for the `pioassist` CLI."""
    app.meta()


if __name__ == "__main__":
    main()
