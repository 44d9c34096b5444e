from __future__ import annotations

from typing import TYPE_CHECKING

import anyio
import orjson
import pytest
from watchfiles import Change

from pioassist.config import ProjectSettings
from pioassist.process import CommandResult
from pioassist.project import ProjectObserver, is_config_change, watch_lib_dirs, watch_project

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from pioassist.core import PlatformIOCore
    from tests.conftest import FakeRunner, ProjectFactory

pytestmark = pytest.mark.anyio


class TestIsConfigChange:
    @pytest.mark.parametrize("change", [Change.added, Change.modified])
    def test_config_written(self, change: Change) -> None:
        assert is_config_change(change, "/project/platformio.ini")

    def test_config_deleted(self) -> None:
        assert not is_config_change(Change.deleted, "/project/platformio.ini")

    def test_other_file(self) -> None:
        assert not is_config_change(Change.modified, "/project/src/main.cpp")


class TestWatchers:
    async def test_lib_watch_skips_missing_dirs(
        self,
        make_project: ProjectFactory,
        fake_core: PlatformIOCore,
        fake_runner: FakeRunner,
        null_logger: FilteringBoundLogger,
    ) -> None:
        project_dir = make_project("[env:uno]\n")
        fake_runner.default = CommandResult(
            exit_code=0, stdout=orjson.dumps([str(project_dir / "missing")]).decode()
        )

        async with anyio.create_task_group() as tg:
            observer = ProjectObserver(project_dir, tg, core=fake_core, logger=null_logger)
            with anyio.fail_after(5):
                await watch_lib_dirs(observer, logger=null_logger)

        assert len(fake_runner.commands) == 1

    async def test_watch_project_stops_on_event(
        self,
        make_project: ProjectFactory,
        fake_core: PlatformIOCore,
        null_logger: FilteringBoundLogger,
    ) -> None:
        project_dir = make_project("[env:uno]\n")
        stop_event = anyio.Event()
        stop_event.set()

        async with anyio.create_task_group() as tg:
            observer = ProjectObserver(
                project_dir,
                tg,
                settings=ProjectSettings(auto_rebuild=False),
                core=fake_core,
                logger=null_logger,
            )
            with anyio.fail_after(5):
                await watch_project(
                    observer, lib_dirs_delay=60, stop_event=stop_event, logger=null_logger
                )
