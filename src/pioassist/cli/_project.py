# pyright: reportUnusedCallResult=false, reportUnusedFunction=false
# ruff: noqa: D415, FBT002, TC003  # Path needed at runtime for cyclopts parameter parsing
"""Commands for PlatformIO project environments, tasks and indexing."""

from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import anyio
from cyclopts import App, Parameter
from rich.console import Console
from rich.table import Table

from pioassist.core import PlatformIOCore
from pioassist.exceptions import ConfigParseError
from pioassist.project import ProjectConfig, ProjectObserver, watch_project

from ._context import CLIContext
from ._shared import ExitCode, exit_with_error, format_json

if TYPE_CHECKING:
    from collections.abc import Callable

    import anyio.abc

    from pioassist.project import TaskItem

app = App(name="project", help="Inspect PlatformIO projects", help_on_error=True)


def _load_config(project_dir: Path) -> ProjectConfig:
    try:
        return ProjectConfig.from_project_dir(project_dir)
    except ConfigParseError as e:
        exit_with_error(str(e), ExitCode.NOT_FOUND)


def _create_observer(
    project_dir: Path,
    task_group: "anyio.abc.TaskGroup",
    ctx: CLIContext,
    console: Console | None = None,
) -> ProjectObserver:
    config = ctx.config
    on_progress: Callable[[str], None] | None = None
    on_flood: Callable[[str], None] | None = None
    if console is not None:
        out = console

        def on_progress(text: str) -> None:
            out.print(text, end="")

        def on_flood(message: str) -> None:
            out.print(f"[yellow]{message}[/yellow]")

    return ProjectObserver(
        project_dir.resolve(),
        task_group,
        ide=config.core.ide,
        settings=config.project,
        indexer_settings=config.indexer,
        core=PlatformIOCore(caller=config.core.caller),
        on_progress=on_progress,
        on_flood=on_flood,
        logger=ctx.log,
    )


@app.command(name="envs")
def _envs(
    project_dir: Path = Path(),
    /,
    *,
    json: Annotated[bool, Parameter(help="Print JSON instead of a table")] = False,
) -> None:
    """List the build environments of a project

    Args:
        project_dir: Project directory
        json: Print JSON instead of a table
    """
    config = _load_config(project_dir)
    default_env = config.get_default_env()
    environments = config.environments()

    if json:
        data = [
            {"name": env.name, "platform": env.platform, "default": env.name == default_env}
            for env in environments
        ]
        print(format_json(data))  # noqa: T201
        return

    console = Console()
    if not environments:
        console.print("[dim]No environments declared[/dim]")
        return

    table = Table(show_header=True, header_style="bold", box=None, padding=(0, 1))
    table.add_column("Environment", style="cyan")
    table.add_column("Platform")
    table.add_column("Default", justify="center")
    for env in environments:
        table.add_row(
            env.name,
            env.platform or "[red]not set[/red]",
            "*" if env.name == default_env else "",
        )
    console.print(table)


@app.command(name="tasks")
def _tasks(
    project_dir: Path = Path(),
    /,
    *,
    env: Annotated[str | None, Parameter(help="Only list tasks of this environment")] = None,
    port: Annotated[str | None, Parameter(help="Fill in upload/monitor ports")] = None,
    json: Annotated[bool, Parameter(help="Print JSON instead of a table")] = False,
) -> None:
    """List the tasks of a project

    Args:
        project_dir: Project directory
        env: Only list tasks of this environment
        port: Fill in upload/monitor ports
        json: Print JSON instead of a table
    """
    ctx = CLIContext.get_current()
    config = _load_config(project_dir)
    if env is not None and env not in config.envs():
        exit_with_error(f"Unknown environment '{env}'", ExitCode.NOT_FOUND)

    async def run() -> "list[TaskItem]":
        async with anyio.create_task_group() as tg:
            observer = _create_observer(project_dir, tg, ctx)
            try:
                if env is not None:
                    return await observer.load_env_tasks(env)
                return await observer.get_tasks(preload=True)
            finally:
                observer.dispose()

    tasks = anyio.run(run)

    if json:
        data = [
            {
                "id": task.id,
                "title": task.title,
                "group": task.group,
                "target": task.core_target,
                "env": task.core_env,
                "args": task.core_args(port),
            }
            for task in tasks
        ]
        print(format_json(data))  # noqa: T201
        return

    table = Table(show_header=True, header_style="bold", box=None, padding=(0, 1))
    table.add_column("Task", style="cyan")
    table.add_column("Group", style="dim")
    table.add_column("Arguments")
    for task in tasks:
        table.add_row(task.id, task.group, " ".join(task.core_args(port)))
    Console().print(table)


@app.command(name="index")
def _index(
    project_dir: Path = Path(),
    /,
    *,
    env: Annotated[str | None, Parameter(help="Environment to index")] = None,
) -> None:
    """Rebuild the IntelliSense index of a project

    Args:
        project_dir: Project directory
        env: Environment to index
    """
    ctx = CLIContext.get_current()
    console = Console()
    _ = _load_config(project_dir)

    async def run() -> bool:
        async with anyio.create_task_group() as tg:
            observer = _create_observer(project_dir, tg, ctx, console)
            try:
                return await observer.indexer.rebuild(env)
            finally:
                observer.dispose()

    if not anyio.run(run):
        exit_with_error("Could not rebuild the project index", ExitCode.IO_ERROR)
    console.print("[green]Project index rebuilt[/green]")


@app.command(name="watch")
def _watch(
    project_dir: Path = Path(),
    /,
    *,
    env: Annotated[str | None, Parameter(help="Environment to index")] = None,
) -> None:
    """Rebuild the IntelliSense index whenever the project changes

    Args:
        project_dir: Project directory
        env: Environment to index
    """
    ctx = CLIContext.get_current()
    console = Console()
    config = _load_config(project_dir)
    if env is not None and env not in config.envs():
        exit_with_error(f"Unknown environment '{env}'", ExitCode.NOT_FOUND)

    async def run() -> None:
        async with anyio.create_task_group() as tg:
            observer = _create_observer(project_dir, tg, ctx, console)
            if env is not None:
                observer.switch_project_env(env, rebuild=False)
            observer.activate()
            try:
                await watch_project(
                    observer,
                    lib_dirs_delay=ctx.config.indexer.watch_dirs_delay,
                    logger=ctx.log,
                )
            finally:
                observer.dispose()

    console.print(f"Watching {project_dir.resolve()} [dim](Ctrl+C to stop)[/dim]")
    try:
        anyio.run(run)
    except KeyboardInterrupt:
        console.print("[dim]Stopped[/dim]")
