"""PlatformIO project discovery, tasks and indexing.

Key Components:
    - ProjectConfig: ``platformio.ini`` parser with extends and interpolation
    - ProjectTasks / TaskItem: Static and per-environment task catalog
    - ProjectIndexer: Debounced, flood-controlled IntelliSense rebuilds
    - ProjectObserver: Per-project caches, environment selection and indexing
    - ProjectPool: One observer per open project
    - watch_project: watchfiles-based change feed for an observer
"""

from ._config import (
    ENV_PREFIX,
    MAX_INTERPOLATION_DEPTH,
    PROJECT_CONFIG_NAME,
    ClassifiedLine,
    Environment,
    LineKind,
    ParserState,
    ProjectConfig,
    classify_line,
    is_pio_project,
    parse_multi_values,
    strip_comment,
)
from ._indexer import FLOOD_WARNING, IndexerState, ProjectIndexer
from ._observer import ProjectObserver
from ._pool import ProjectPool
from ._tasks import GENERAL_TASKS, BuildTarget, ProjectTasks, TaskItem
from ._watcher import is_config_change, watch_lib_dirs, watch_project

__all__ = [
    "ENV_PREFIX",
    "FLOOD_WARNING",
    "GENERAL_TASKS",
    "MAX_INTERPOLATION_DEPTH",
    "PROJECT_CONFIG_NAME",
    "BuildTarget",
    "ClassifiedLine",
    "Environment",
    "IndexerState",
    "LineKind",
    "ParserState",
    "ProjectConfig",
    "ProjectIndexer",
    "ProjectObserver",
    "ProjectPool",
    "ProjectTasks",
    "TaskItem",
    "classify_line",
    "is_config_change",
    "is_pio_project",
    "parse_multi_values",
    "strip_comment",
    "watch_lib_dirs",
    "watch_project",
]
