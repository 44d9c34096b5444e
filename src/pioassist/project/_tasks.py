"""Catalog of PlatformIO tasks for a project.

Static tasks are fixed constants. Tasks flagged ``multienv`` are bound to
each environment by appending ``--environment <name>``; the remaining tasks
are environment-agnostic. Per-environment task lists also include the
development platform's own targets, queried from PlatformIO Core.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import TYPE_CHECKING, ClassVar, Final, final

import orjson
import structlog
from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError

from pioassist.core import PlatformIOCore
from pioassist.exceptions import (
    CommandCancelledError,
    CommandFailedError,
    CoreNotInstalledError,
    TaskQueryError,
)

if TYPE_CHECKING:
    from pathlib import Path

    from structlog.typing import FilteringBoundLogger

DEFAULT_GROUP: Final = "General"

TARGETS_SCRIPT: Final = """
import json
import os
from platformio.public import load_build_metadata

print(json.dumps(load_build_metadata(os.getcwd(), {env!r}, cache=True)["targets"]))
"""


def _arg_after(args: tuple[str, ...], flag: str) -> str | None:
    try:
        index = args.index(flag)
    except ValueError:
        return None
    return args[index + 1] if index + 1 < len(args) else None


@dataclass(frozen=True, slots=True)
class TaskItem:
    """A named PlatformIO operation.

    Attributes:
        name: Task name, e.g. ``Upload``.
        args: PlatformIO argument vector.
        group: Group label used to categorize tasks.
        description: Human description shown instead of the name, if any.
        multienv: Whether the task is instantiated once per environment.
        optional_args: Flags the caller may fill in at invocation time.
    """

    name: str
    args: tuple[str, ...]
    group: str = DEFAULT_GROUP
    description: str | None = None
    multienv: bool = False
    optional_args: tuple[str, ...] = ()

    def is_build(self) -> bool:
        return self.name.startswith("Build")

    def is_clean(self) -> bool:
        return self.name.startswith("Clean")

    def is_test(self) -> bool:
        return self.name.startswith("Test")

    @property
    def core_target(self) -> str:
        """Return the build target implied by the argument vector.

        For ``run`` commands this is the value of ``--target``, defaulting
        to ``build``. For anything else it is the command name itself.
        """
        if self.args and self.args[0] != "run":
            return self.args[0]
        return _arg_after(self.args, "--target") or "build"

    @property
    def core_env(self) -> str | None:
        """Return the environment bound via ``--environment``, if any."""
        return _arg_after(self.args, "--environment")

    @property
    def id(self) -> str:
        env = self.core_env
        return f"{self.name} ({env})" if env else self.name

    @property
    def title(self) -> str:
        env = self.core_env
        title = self.description or self.name
        return f"{title} ({env})" if env else title

    def core_args(self, port: str | None = None) -> list[str]:
        """Return the argument vector with every optional port flag filled in."""
        args = list(self.args)
        if port:
            for flag in self.optional_args:
                if flag.endswith("-port"):
                    args.extend([flag, port])
        return args

    def for_env(self, env: str) -> TaskItem:
        """Return a copy of this task bound to an environment."""
        return dataclasses.replace(self, args=(*self.args, "--environment", env))


GENERAL_TASKS: Final[tuple[TaskItem, ...]] = (
    TaskItem("Build", ("run",), multienv=True),
    TaskItem(
        "Upload",
        ("run", "--target", "upload"),
        optional_args=("--upload-port",),
        multienv=True,
    ),
    TaskItem(
        "Monitor",
        ("device", "monitor"),
        optional_args=("--port",),
        multienv=True,
    ),
    TaskItem(
        "Upload and Monitor",
        ("run", "--target", "upload", "--target", "monitor"),
        optional_args=("--upload-port", "--monitor-port"),
        multienv=True,
    ),
    TaskItem("Devices", ("device", "list")),
    TaskItem("Clean", ("run", "--target", "clean"), multienv=True),
    TaskItem(
        "Full Clean",
        ("run", "--target", "fullclean"),
        description="Clean a build environment and installed library dependencies",
        multienv=True,
    ),
    TaskItem("List", ("pkg", "list"), group="Dependencies", multienv=True),
    TaskItem("Outdated", ("pkg", "outdated"), group="Dependencies", multienv=True),
    TaskItem("Update", ("pkg", "update"), group="Dependencies", multienv=True),
    TaskItem(
        "Test",
        ("test",),
        group="Advanced",
        optional_args=("--upload-port", "--test-port"),
        multienv=True,
    ),
    TaskItem("Check", ("check",), group="Advanced", multienv=True),
    TaskItem(
        "Pre-Debug",
        ("debug",),
        group="Advanced",
        description="Build in debug mode",
        multienv=True,
    ),
    TaskItem("Verbose Build", ("run", "--verbose"), group="Advanced", multienv=True),
    TaskItem(
        "Verbose Upload",
        ("run", "--verbose", "--target", "upload"),
        group="Advanced",
        optional_args=("--upload-port",),
        multienv=True,
    ),
    TaskItem("Verbose Test", ("test", "--verbose"), group="Advanced", multienv=True),
    TaskItem("Verbose Check", ("check", "--verbose"), group="Advanced", multienv=True),
    TaskItem(
        "Compilation Database",
        ("run", "--target", "compiledb"),
        group="Advanced",
        description="Generate compilation database `compile_commands.json`",
        multienv=True,
    ),
    TaskItem(
        "Remote Upload",
        ("remote", "run", "--target", "upload"),
        group="Remote",
        multienv=True,
    ),
    TaskItem("Remote Monitor", ("remote", "device", "monitor"), group="Remote"),
    TaskItem("Remote Devices", ("remote", "device", "list"), group="Remote"),
    TaskItem("Remote Test", ("remote", "test"), group="Remote", multienv=True),
    TaskItem("Upgrade PlatformIO Core", ("upgrade",), group="Miscellaneous"),
)


class BuildTarget(BaseModel):
    """A target reported by a development platform's build metadata."""

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    name: str
    title: str | None = None
    description: str | None = None
    group: str | None = None


_TARGETS_ADAPTER: Final = TypeAdapter(list[BuildTarget])


@final
class ProjectTasks:
    """Builds the task lists for one project directory."""

    __slots__ = ("_core", "_logger", "ide", "project_dir")

    def __init__(
        self,
        project_dir: Path,
        *,
        ide: str = "vscode",
        core: PlatformIOCore | None = None,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        self.project_dir = project_dir
        self.ide = ide
        self._core = core if core is not None else PlatformIOCore()
        self._logger: FilteringBoundLogger = logger or structlog.get_logger()

    def default_tasks(self) -> list[TaskItem]:
        """Return the environment-agnostic tasks."""
        return [task for task in GENERAL_TASKS if not task.multienv]

    async def fetch_env_tasks(self, env: str) -> list[TaskItem]:
        """Return every task bound to an environment.

        Static tasks come first, then the IntelliSense rebuild task, then
        platform targets whose titles do not collide with an earlier task.
        If the targets cannot be fetched, only the static tasks are returned.
        """
        result = [task.for_env(env) for task in GENERAL_TASKS if task.multienv]
        result.append(
            TaskItem(
                "Rebuild IntelliSense Index",
                ("project", "init", "--ide", self.ide, "--environment", env),
                group="Miscellaneous",
                multienv=True,
            )
        )
        used_titles = {task.name for task in result}

        try:
            targets = await self.fetch_env_targets(env)
        except TaskQueryError as e:
            self._logger.warning("env_targets_unavailable", env=env, error=str(e))
            return result

        for target in targets:
            title = target.title or target.name
            if title in used_titles:
                continue
            used_titles.add(title)
            result.append(
                TaskItem(
                    title,
                    ("run", "--target", target.name, "--environment", env),
                    group=target.group or DEFAULT_GROUP,
                    description=target.description,
                    multienv=True,
                )
            )
        return result

    async def fetch_env_targets(self, env: str) -> list[BuildTarget]:
        """Query PlatformIO Core for an environment's build targets.

        The query runs in the shared command queue so that concurrent
        metadata loads do not overlap.

        Raises:
            TaskQueryError: If the query fails or returns malformed output.
        """
        try:
            output = await self._core.python_output(
                TARGETS_SCRIPT.format(env=env),
                cwd=self.project_dir,
                run_in_queue=True,
            )
            return _TARGETS_ADAPTER.validate_python(orjson.loads(output.strip()))
        except (CommandFailedError, CommandCancelledError, CoreNotInstalledError) as e:
            msg = f"Could not fetch project targets for '{env}' environment: {e}"
            raise TaskQueryError(msg, env=env) from e
        except (orjson.JSONDecodeError, ValidationError) as e:
            msg = f"Malformed project targets for '{env}' environment: {e}"
            raise TaskQueryError(msg, env=env) from e
