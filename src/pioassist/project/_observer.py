"""Per-project aggregation of configuration, tasks and indexing."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Final, final

import orjson
import structlog
from pydantic import TypeAdapter, ValidationError

from pioassist.config import IndexerConfig, ProjectSettings
from pioassist.core import PlatformIOCore
from pioassist.exceptions import (
    CommandCancelledError,
    CommandFailedError,
    CoreNotInstalledError,
    ProjectConfigError,
)

from ._config import PROJECT_CONFIG_NAME, ProjectConfig
from ._indexer import ProjectIndexer
from ._tasks import ProjectTasks

if TYPE_CHECKING:
    from collections.abc import Callable

    import anyio.abc
    from structlog.typing import FilteringBoundLogger

    from pioassist.process import OutputCallback

    from ._tasks import TaskItem

LIB_DIRS_SCRIPT: Final = """
import json
from platformio.public import get_project_watch_lib_dirs
print(json.dumps(get_project_watch_lib_dirs()))
"""

_LIB_DIRS_ADAPTER: Final = TypeAdapter(list[str])


@final
class ProjectObserver:
    """Caches a project's configuration and tasks and owns its indexer.

    The parsed configuration and per-environment task lists are memoized
    until the configuration file changes. Switching the selected
    environment keeps the caches.
    """

    __slots__ = (
        "_cache_generation",
        "_config",
        "_core",
        "_env_tasks",
        "_indexer",
        "_indexer_settings",
        "_logger",
        "_on_config_changed",
        "_on_flood",
        "_on_progress",
        "_selected_env",
        "_settings",
        "_task_group",
        "_tasks",
        "ide",
        "project_dir",
    )

    def __init__(  # noqa: PLR0913
        self,
        project_dir: Path,
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
        """Initialize the observer.

        Args:
            project_dir: Project directory.
            task_group: Task group that runs background rebuilds.
            ide: IDE name used for index rebuilds.
            settings: Observer behavior settings.
            indexer_settings: Settings for the project indexer.
            core: PlatformIO Core invoker.
            on_config_changed: Called with the config path after it changes.
            on_progress: Receives index rebuild output.
            on_flood: Receives the indexer's flood-control warning.
            logger: Logger for diagnostics.
        """
        self.project_dir = project_dir
        self.ide = ide
        self._task_group = task_group
        self._settings = settings if settings is not None else ProjectSettings()
        self._indexer_settings = indexer_settings
        self._core = core if core is not None else PlatformIOCore()
        self._on_config_changed = on_config_changed
        self._on_progress = on_progress
        self._on_flood = on_flood
        self._logger: FilteringBoundLogger = (logger or structlog.get_logger()).bind(
            project_dir=str(project_dir)
        )

        self._tasks = ProjectTasks(project_dir, ide=ide, core=self._core, logger=self._logger)
        self._config: ProjectConfig | None = None
        self._env_tasks: dict[str, list[TaskItem]] = {}
        self._cache_generation = 0
        self._indexer: ProjectIndexer | None = None
        self._selected_env: str | None = None

    @property
    def config_path(self) -> Path:
        return self.project_dir / PROJECT_CONFIG_NAME

    @property
    def selected_env(self) -> str | None:
        return self._selected_env

    @property
    def settings(self) -> ProjectSettings:
        return self._settings

    @property
    def indexer(self) -> ProjectIndexer:
        """Return the project's indexer, creating it on first use."""
        if self._indexer is None:
            self._indexer = ProjectIndexer(
                self.project_dir,
                self._task_group,
                ide=self.ide,
                core=self._core,
                settings=self._indexer_settings,
                get_env=lambda: self._selected_env,
                on_progress=self._on_progress,
                on_flood=self._on_flood,
                logger=self._logger,
            )
        return self._indexer

    def get_config(self) -> ProjectConfig:
        """Return the parsed configuration, parsing it on first use.

        Raises:
            ConfigParseError: If ``platformio.ini`` cannot be read.
        """
        if self._config is None:
            self._config = ProjectConfig.parse(self.config_path)
        return self._config

    def envs(self) -> list[str]:
        return self.get_config().envs()

    def reset_cache(self) -> None:
        self._config = None
        self._env_tasks.clear()
        self._cache_generation += 1

    # -------------------------------------------------------------------------
    # Environments
    # -------------------------------------------------------------------------

    def switch_project_env(self, name: str | None, *, rebuild: bool = True) -> str | None:
        """Select an environment.

        Unknown names clear the selection. A rebuild is requested when the
        selection actually changes.

        Returns:
            The selected environment, or None.
        """
        if name is not None and name not in self.envs():
            name = None
        changed = name != self._selected_env
        self._selected_env = name
        self._logger.debug("project_env_switched", env=name, changed=changed)
        if changed and rebuild:
            _ = self.rebuild_index()
        return name

    def reveal_active_environment(self) -> str | None:
        """Return the selected environment, else the config's default."""
        if self._selected_env:
            return self._selected_env
        return self.get_config().get_default_env()

    # -------------------------------------------------------------------------
    # Tasks
    # -------------------------------------------------------------------------

    def get_default_tasks(self) -> list[TaskItem]:
        return self._tasks.default_tasks()

    async def get_loaded_env_tasks(
        self,
        name: str,
        *,
        preload: bool = False,
    ) -> list[TaskItem] | None:
        """Return an environment's tasks if they are cached or may be loaded.

        Tasks are loaded when preloading is requested or enabled, when the
        environment is selected, or when it is the only one in the project.
        Otherwise None is returned and nothing is queried.
        """
        cached = self._env_tasks.get(name)
        if cached is not None:
            return cached
        should_load = (
            preload
            or self._settings.auto_preload_env_tasks
            or self._selected_env == name
            or len(self.envs()) == 1
        )
        if not should_load:
            return None
        return await self.load_env_tasks(name)

    async def load_env_tasks(self, name: str) -> list[TaskItem]:
        """Load and cache an environment's tasks.

        Environments without a platform get no tasks. While loading, the
        cache holds an empty placeholder so concurrent callers do not start
        a second query. Results of a load that outlived a cache reset are
        returned to the caller but not cached.
        """
        cached = self._env_tasks.get(name)
        if cached is not None:
            return cached
        if not self.get_config().env_platform(name):
            self._logger.debug("env_without_platform", env=name)
            self._env_tasks[name] = []
            return []

        generation = self._cache_generation
        self._env_tasks[name] = []
        try:
            tasks = await self._tasks.fetch_env_tasks(name)
        except BaseException:
            if generation == self._cache_generation:
                _ = self._env_tasks.pop(name, None)
            raise
        if generation == self._cache_generation:
            self._env_tasks[name] = tasks
        else:
            self._logger.debug("env_tasks_superseded", env=name)
        return tasks

    async def get_tasks(self, *, preload: bool = False) -> list[TaskItem]:
        """Return the default tasks followed by each environment's loaded tasks."""
        result = self.get_default_tasks()
        for env in self.get_config().environments():
            if not env.is_valid:
                continue
            tasks = await self.get_loaded_env_tasks(env.name, preload=preload)
            if tasks:
                result.extend(tasks)
        return result

    # -------------------------------------------------------------------------
    # Change notifications
    # -------------------------------------------------------------------------

    def on_did_change_project_config(self) -> None:
        """Drop cached state after ``platformio.ini`` was created or modified."""
        self.reset_cache()
        if self._selected_env is not None:
            try:
                if self._selected_env not in self.envs():
                    self._selected_env = None
            except ProjectConfigError:
                self._selected_env = None
        self._logger.info("project_config_changed")
        if self._on_config_changed is not None:
            try:  # noqa: SIM105
                self._on_config_changed(self.config_path)
            except Exception:  # noqa: BLE001, S110
                # Listener failures must not break cache invalidation
                pass
        _ = self.rebuild_index(delayed=True)

    def on_did_change_lib_dirs(self) -> None:
        _ = self.rebuild_index(delayed=True)

    def rebuild_index(self, *, force: bool = False, delayed: bool = False) -> bool:
        """Request an index rebuild.

        Args:
            force: Rebuild even when automatic rebuilds are disabled.
            delayed: Go through the indexer's debounce and flood control.

        Returns:
            True if a rebuild was requested.
        """
        if not force and not self._settings.auto_rebuild:
            return False
        if delayed:
            return self.indexer.request_rebuild()
        self._task_group.start_soon(self.indexer.rebuild)
        return True

    async def fetch_lib_dirs(self) -> list[Path]:
        """Return the library directories PlatformIO wants watched.

        Failures are logged and yield an empty list.
        """
        try:
            output = await self._core.python_output(LIB_DIRS_SCRIPT, cwd=self.project_dir)
            dirs = _LIB_DIRS_ADAPTER.validate_python(orjson.loads(output.strip()))
        except (
            CommandFailedError,
            CommandCancelledError,
            CoreNotInstalledError,
            orjson.JSONDecodeError,
            ValidationError,
        ) as e:
            self._logger.warning("lib_dirs_unavailable", error=str(e))
            return []
        return [Path(item) for item in dirs]

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def activate(self) -> None:
        self._logger.info("project_activated")
        _ = self.rebuild_index()

    def deactivate(self) -> None:
        self._logger.info("project_deactivated")

    def dispose(self) -> None:
        """Cancel scheduled work and drop cached state."""
        if self._indexer is not None:
            self._indexer.dispose()
        self.reset_cache()
