"""Headless file watching for an observed project using watchfiles."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import anyio
import structlog
from watchfiles import Change, awatch

from ._config import PROJECT_CONFIG_NAME

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from ._observer import ProjectObserver


def is_config_change(change: Change, path: str) -> bool:
    """Return True for creation or modification of ``platformio.ini``."""
    return change in (Change.added, Change.modified) and Path(path).name == PROJECT_CONFIG_NAME


async def watch_lib_dirs(
    observer: ProjectObserver,
    *,
    delay: float = 0.0,
    stop_event: anyio.Event | None = None,
    logger: FilteringBoundLogger | None = None,
) -> None:
    """Request delayed index rebuilds whenever a library directory changes.

    Args:
        observer: Project whose library directories are watched.
        delay: Seconds to wait before asking PlatformIO for the directories.
        stop_event: Stops watching when set.
        logger: Logger for diagnostics.
    """
    log: FilteringBoundLogger = logger or structlog.get_logger()
    await anyio.sleep(delay)
    dirs = [path for path in await observer.fetch_lib_dirs() if path.is_dir()]
    if not dirs:
        return
    log.debug("watching_lib_dirs", dirs=[str(path) for path in dirs])
    async for _changes in awatch(*dirs, stop_event=stop_event):
        observer.on_did_change_lib_dirs()


async def watch_project(
    observer: ProjectObserver,
    *,
    lib_dirs_delay: float = 10.0,
    stop_event: anyio.Event | None = None,
    logger: FilteringBoundLogger | None = None,
) -> None:
    """Feed file system changes of a project into its observer.

    ``platformio.ini`` changes invalidate the observer's caches and restart
    the library directory watch, since the directories may have moved.
    Runs until stop_event is set or the task is cancelled.

    Args:
        observer: Project to watch.
        lib_dirs_delay: Delay before library directories are (re)resolved.
        stop_event: Stops watching when set.
        logger: Logger for diagnostics.
    """
    log: FilteringBoundLogger = logger or structlog.get_logger()

    async with anyio.create_task_group() as tg:
        lib_scope: anyio.CancelScope | None = None

        async def run_lib_watch(scope: anyio.CancelScope, delay: float) -> None:
            with scope:
                await watch_lib_dirs(observer, delay=delay, stop_event=stop_event, logger=log)

        def restart_lib_watch(delay: float) -> None:
            nonlocal lib_scope
            if lib_scope is not None:
                lib_scope.cancel()
            lib_scope = anyio.CancelScope()
            tg.start_soon(run_lib_watch, lib_scope, delay)

        restart_lib_watch(lib_dirs_delay)
        log.info("watching_project", project_dir=str(observer.project_dir))
        async for _changes in awatch(
            observer.project_dir,
            watch_filter=is_config_change,
            recursive=False,
            stop_event=stop_event,
        ):
            observer.on_did_change_project_config()
            restart_lib_watch(lib_dirs_delay)

        tg.cancel_scope.cancel()
