"""Shared test fixtures for pioassist tests."""

from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass, field
from pathlib import Path

import pytest
from structlog.typing import FilteringBoundLogger

from pioassist.core import CoreState, PlatformIOCore, get_core_state, set_core_state
from pioassist.exceptions import CommandFailedError
from pioassist.process import CommandHandle, CommandResult, ExternalCommand, OutputCallback

FAKE_PYTHON = Path("/opt/pio/penv/bin/python")


@dataclass(slots=True)
class FakeRunner:
    """Runner double that records commands and replays scripted results.

    Results are matched against the first argument after ``-m platformio`` (or
    the ``-c`` script for python snippets) and fall back to ``default``.
    """

    results: dict[str, CommandResult] = field(default_factory=dict)
    default: CommandResult = field(default_factory=lambda: CommandResult(exit_code=0))
    stdout_chunks: list[str] = field(default_factory=list)
    commands: list[ExternalCommand] = field(default_factory=list)
    on_run: Callable[[ExternalCommand], Awaitable[None]] | None = None

    def _key(self, command: ExternalCommand) -> str:
        args = list(command.args)
        if args[:2] == ["-m", "platformio"]:
            args = args[2:]
            if args[:1] == ["-c"]:
                args = args[2:]
            return args[0] if args else ""
        return args[1] if len(args) > 1 else ""

    def _result(self, command: ExternalCommand) -> CommandResult:
        key = self._key(command)
        for prefix, result in self.results.items():
            if prefix in key:
                return result
        return self.default

    async def run(
        self,
        command: ExternalCommand,
        *,
        on_stdout: OutputCallback | None = None,
        on_stderr: OutputCallback | None = None,
        on_handle: Callable[[CommandHandle], None] | None = None,
    ) -> CommandResult:
        self.commands.append(command)
        if self.on_run is not None:
            await self.on_run(command)
        if on_stdout is not None:
            for chunk in self.stdout_chunks:
                on_stdout(chunk)
        return self._result(command)

    async def output(self, command: ExternalCommand) -> str:
        result = await self.run(command)
        if not result.success:
            raise CommandFailedError(
                result.stderr,
                exit_code=result.exit_code,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        return result.stdout

    def argvs(self) -> list[list[str]]:
        return [command.argv for command in self.commands]


@pytest.fixture
def core_state() -> Iterator[CoreState]:
    """Install a core state with a known interpreter, restoring it afterwards."""
    previous = get_core_state()
    state = CoreState(core_dir=Path("/opt/pio"), python_exe=FAKE_PYTHON)
    set_core_state(state)
    yield state
    set_core_state(previous)


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def fake_core(fake_runner: FakeRunner, core_state: CoreState) -> PlatformIOCore:
    """PlatformIOCore wired to the fake runner."""
    return PlatformIOCore(fake_runner, caller="vscode")


@pytest.fixture
def null_logger() -> FilteringBoundLogger:
    import structlog

    return structlog.wrap_logger(
        structlog.ReturnLogger(),
        wrapper_class=structlog.make_filtering_bound_logger(0),
    )


ProjectFactory = Callable[[str], Path]


@pytest.fixture
def make_project(tmp_path: Path) -> ProjectFactory:
    """Return a factory writing a ``platformio.ini`` into a fresh project dir."""
    counter = 0

    def _make(content: str) -> Path:
        nonlocal counter
        counter += 1
        project_dir = tmp_path / f"project{counter}"
        project_dir.mkdir()
        (project_dir / "platformio.ini").write_text(content, encoding="utf-8")
        return project_dir

    return _make
