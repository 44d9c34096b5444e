"""Pool of project observers for every open project directory."""

from __future__ import annotations

from typing import TYPE_CHECKING, final

import structlog

from ._observer import ProjectObserver

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    import anyio.abc
    from structlog.typing import FilteringBoundLogger

    from pioassist.config import IndexerConfig, ProjectSettings
    from pioassist.core import PlatformIOCore
    from pioassist.process import OutputCallback


@final
class ProjectPool:
    """Tracks one ProjectObserver per project directory.

    Exactly one project is active at a time; switching deactivates every
    other observer.
    """

    __slots__ = (
        "_active_project_dir",
        "_core",
        "_ide",
        "_indexer_settings",
        "_logger",
        "_observers",
        "_on_config_changed",
        "_on_flood",
        "_on_progress",
        "_settings",
        "_task_group",
    )

    def __init__(  # noqa: PLR0913
        self,
        task_group: anyio.abc.TaskGroup,
        *,
        ide: str = "vscode",
        settings: ProjectSettings | None = None,
        indexer_settings: IndexerConfig | None = None,
        core: PlatformIOCore | None = None,
        on_config_changed: Callable[[Path], None] | None = None,
        on_progress: OutputCallback | None = None,
        on_flood: Callable[[str], None] | None = None,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        self._task_group = task_group
        self._ide = ide
        self._settings = settings
        self._indexer_settings = indexer_settings
        self._core = core
        self._on_config_changed = on_config_changed
        self._on_progress = on_progress
        self._on_flood = on_flood
        self._logger: FilteringBoundLogger = logger or structlog.get_logger()
        self._observers: dict[Path, ProjectObserver] = {}
        self._active_project_dir: Path | None = None

    @property
    def active_project_dir(self) -> Path | None:
        return self._active_project_dir

    @property
    def active_observer(self) -> ProjectObserver | None:
        if self._active_project_dir is None:
            return None
        return self.get_observer(self._active_project_dir)

    @property
    def observers(self) -> list[ProjectObserver]:
        return list(self._observers.values())

    def get_observer(self, project_dir: Path) -> ProjectObserver:
        """Return the observer for a directory, creating it if needed."""
        key = project_dir.resolve()
        observer = self._observers.get(key)
        if observer is None:
            observer = ProjectObserver(
                key,
                self._task_group,
                ide=self._ide,
                settings=self._settings,
                indexer_settings=self._indexer_settings,
                core=self._core,
                on_config_changed=self._on_config_changed,
                on_progress=self._on_progress,
                on_flood=self._on_flood,
                logger=self._logger,
            )
            self._observers[key] = observer
        return observer

    def switch(self, project_dir: Path) -> ProjectObserver:
        """Make a project active and deactivate all others."""
        key = project_dir.resolve()
        self._active_project_dir = key
        self._logger.info("project_switched", project_dir=str(key))
        for other_dir, observer in self._observers.items():
            if other_dir != key:
                observer.deactivate()
        observer = self.get_observer(key)
        observer.activate()
        return observer

    def dispose(self) -> None:
        """Dispose every tracked observer."""
        for observer in self._observers.values():
            observer.dispose()
        self._observers.clear()
        self._active_project_dir = None
