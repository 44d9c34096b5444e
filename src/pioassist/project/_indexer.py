"""Debounced, flood-controlled rebuilds of a project's IntelliSense index.

Rebuild requests are coalesced by a debounce delay. A rolling window caps
how many requests are honored; once the cap is reached scheduling stops
until the window rolls over and a single warning is reported.
"""

from __future__ import annotations

import time
from enum import StrEnum
from typing import TYPE_CHECKING, final

import anyio
import structlog

from pioassist.config import IndexerConfig
from pioassist.core import PlatformIOCore
from pioassist.exceptions import (
    CommandCancelledError,
    CoreNotInstalledError,
    IndexerRebuildError,
)

from ._config import is_pio_project

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    import anyio.abc
    from structlog.typing import FilteringBoundLogger

    from pioassist.process import OutputCallback

FLOOD_WARNING = (
    "Multiple requests to rebuild the project index have been received. "
    "Automatic index rebuilding has been paused for {minutes} minutes."
)


class IndexerState(StrEnum):
    """Observable states of a ProjectIndexer."""

    IDLE = "idle"
    SCHEDULED = "scheduled"
    RUNNING = "running"


@final
class ProjectIndexer:
    """Schedules ``pio project init`` runs for one project.

    At most one rebuild runs at a time. A request made while a rebuild is
    running arms the debounce timer again, and the trailing rebuild waits
    for the running one to finish.
    """

    __slots__ = (
        "_attempts",
        "_clock",
        "_core",
        "_flood_warned",
        "_get_env",
        "_logger",
        "_on_flood",
        "_on_progress",
        "_pending",
        "_running",
        "_settings",
        "_task_group",
        "_window_start",
        "ide",
        "project_dir",
    )

    def __init__(  # noqa: PLR0913
        self,
        project_dir: Path,
        task_group: anyio.abc.TaskGroup,
        *,
        ide: str = "vscode",
        core: PlatformIOCore | None = None,
        settings: IndexerConfig | None = None,
        get_env: Callable[[], str | None] | None = None,
        on_progress: OutputCallback | None = None,
        on_flood: Callable[[str], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        """Initialize the indexer.

        Args:
            project_dir: Project directory containing ``platformio.ini``.
            task_group: Task group that runs delayed rebuilds.
            ide: IDE name passed to ``project init --ide``.
            core: PlatformIO Core invoker.
            settings: Debounce and flood-control settings.
            get_env: Returns the environment to index, if one is selected.
            on_progress: Receives rebuild output as it arrives.
            on_flood: Receives the flood-control warning.
            clock: Monotonic clock in seconds.
            logger: Logger for diagnostics.
        """
        self.project_dir = project_dir
        self.ide = ide
        self._task_group = task_group
        self._core = core if core is not None else PlatformIOCore()
        self._settings = settings if settings is not None else IndexerConfig()
        self._get_env = get_env
        self._on_progress = on_progress
        self._on_flood = on_flood
        self._clock = clock
        self._logger: FilteringBoundLogger = logger or structlog.get_logger()

        self._pending: anyio.CancelScope | None = None
        self._running: anyio.Event | None = None
        self._window_start: float | None = None
        self._attempts = 0
        self._flood_warned = False

    @property
    def state(self) -> IndexerState:
        if self._running is not None:
            return IndexerState.RUNNING
        if self._pending is not None:
            return IndexerState.SCHEDULED
        return IndexerState.IDLE

    @property
    def in_progress(self) -> bool:
        return self._running is not None

    @property
    def attempts(self) -> int:
        """Return the number of requests counted in the current window."""
        return self._attempts

    def request_rebuild(self) -> bool:
        """Schedule a rebuild after the debounce delay.

        Returns:
            True if a rebuild was scheduled, False if flood control dropped
            the request.
        """
        if not self._register_request():
            return False

        if self._pending is not None:
            self._pending.cancel()
        scope = anyio.CancelScope()
        self._pending = scope
        self._task_group.start_soon(self._delayed_rebuild, scope)
        return True

    def _register_request(self) -> bool:
        now = self._clock()
        if self._window_start is None or now - self._window_start > self._settings.flood_window:
            self._window_start = now
            self._attempts = 0
            self._flood_warned = False

        self._attempts += 1
        if self._attempts < self._settings.flood_limit:
            return True

        if not self._flood_warned:
            self._flood_warned = True
            message = FLOOD_WARNING.format(minutes=round(self._settings.flood_window / 60))
            self._logger.warning(
                "index_rebuild_flood",
                project_dir=str(self.project_dir),
                attempts=self._attempts,
            )
            if self._on_flood is not None:
                try:  # noqa: SIM105
                    self._on_flood(message)
                except Exception:  # noqa: BLE001, S110
                    # Notification failures must not break scheduling
                    pass
        return False

    async def _delayed_rebuild(self, scope: anyio.CancelScope) -> None:
        with scope:
            await anyio.sleep(self._settings.rebuild_delay)
            while self._running is not None:
                await self._running.wait()
            if self._pending is scope:
                self._pending = None
            _ = await self.rebuild()

    async def rebuild(self, env: str | None = None) -> bool:
        """Run ``pio project init`` now.

        Skipped when a rebuild is already running or the directory is not
        a PlatformIO project. Failures are logged and never raised.

        Args:
            env: Environment to index. Defaults to the selected environment.

        Returns:
            True if the index was rebuilt successfully.
        """
        if self._running is not None or not is_pio_project(self.project_dir):
            return False

        finished = anyio.Event()
        self._running = finished
        if env is None and self._get_env is not None:
            env = self._get_env()

        args = ["project", "init", "--ide", self.ide, "--project-dir", str(self.project_dir)]
        if env:
            args.extend(["--environment", env])

        self._logger.info("index_rebuild_started", project_dir=str(self.project_dir), env=env)
        try:
            result = await self._core.run_pio(
                args,
                cwd=self.project_dir,
                on_stdout=self._on_progress,
                on_stderr=self._on_progress,
            )
            if not result.success:
                msg = result.stderr.strip() or f"project init exited with {result.exit_code}"
                raise IndexerRebuildError(
                    msg,
                    project_dir=self.project_dir,
                    exit_code=result.exit_code,
                )
        except (IndexerRebuildError, CommandCancelledError, CoreNotInstalledError) as e:
            self._logger.warning(
                "index_rebuild_failed",
                project_dir=str(self.project_dir),
                env=env,
                error=str(e),
            )
            return False
        finally:
            self._running = None
            finished.set()

        self._logger.info("index_rebuild_finished", project_dir=str(self.project_dir), env=env)
        return True

    def dispose(self) -> None:
        """Cancel any scheduled rebuild."""
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
