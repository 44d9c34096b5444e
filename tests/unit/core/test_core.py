"""Tests for core directory resolution and command building."""

from collections.abc import Iterator
from pathlib import Path

import pytest

from pioassist.core import (
    IS_WINDOWS,
    CoreState,
    PlatformIOCore,
    get_cache_dir,
    get_core_dir,
    get_core_state,
    get_env_bin_dir,
    get_env_dir,
    get_tmp_dir,
    set_core_state,
    update_core_state,
)
from pioassist.exceptions import CoreNotInstalledError

from tests.conftest import FAKE_PYTHON, FakeRunner


@pytest.fixture(autouse=True)
def empty_state(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for key in ("PLATFORMIO_CORE_DIR", "PLATFORMIO_HOME_DIR", "PLATFORMIO_PENV_DIR"):
        monkeypatch.delenv(key, raising=False)
    previous = get_core_state()
    set_core_state(CoreState())
    yield
    set_core_state(previous)


class TestDirectories:
    @pytest.mark.skipif(IS_WINDOWS, reason="drive-root relocation applies on Windows")
    def test_default_core_dir(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.setenv("HOME", str(tmp_path))

        assert get_core_dir() == tmp_path / ".platformio"

    @pytest.mark.skipif(IS_WINDOWS, reason="drive-root relocation applies on Windows")
    def test_env_core_dir(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.setenv("PLATFORMIO_HOME_DIR", str(tmp_path / "legacy"))
        assert get_core_dir() == tmp_path / "legacy"

        monkeypatch.setenv("PLATFORMIO_CORE_DIR", str(tmp_path / "core"))
        assert get_core_dir() == tmp_path / "core"

    def test_recorded_state_wins(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.setenv("PLATFORMIO_CORE_DIR", str(tmp_path / "env"))
        _ = update_core_state(core_dir=tmp_path / "reported")

        assert get_core_dir() == tmp_path / "reported"

    def test_cache_and_tmp_dirs_are_created(self, tmp_path: Path) -> None:
        _ = update_core_state(core_dir=tmp_path)

        assert get_cache_dir() == tmp_path / ".cache"
        assert get_tmp_dir() == tmp_path / ".cache" / "tmp"
        assert get_tmp_dir().is_dir()

    def test_env_dirs(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        _ = update_core_state(core_dir=tmp_path)
        assert get_env_dir() == tmp_path / "penv"
        assert get_env_bin_dir() == tmp_path / "penv" / ("Scripts" if IS_WINDOWS else "bin")

        monkeypatch.setenv("PLATFORMIO_PENV_DIR", str(tmp_path / "venv"))
        assert get_env_dir() == tmp_path / "venv"

    def test_update_keeps_other_fields(self, tmp_path: Path) -> None:
        _ = update_core_state(core_dir=tmp_path)
        state = update_core_state(python_exe=FAKE_PYTHON)

        assert state.core_dir == tmp_path
        assert state.python_exe == FAKE_PYTHON


class TestPlatformIOCore:
    def test_python_exe_requires_install(self) -> None:
        with pytest.raises(CoreNotInstalledError):
            _ = PlatformIOCore(FakeRunner()).python_exe()

    def test_pio_command_with_caller(self) -> None:
        _ = update_core_state(python_exe=FAKE_PYTHON)

        command = PlatformIOCore(FakeRunner(), caller="vscode").pio_command(
            ["run", "-t", "upload"], run_in_queue=True
        )

        assert command.argv == [
            str(FAKE_PYTHON),
            "-m",
            "platformio",
            "-c",
            "vscode",
            "run",
            "-t",
            "upload",
        ]
        assert command.run_in_queue

    def test_caller_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        _ = update_core_state(python_exe=FAKE_PYTHON)
        monkeypatch.setenv("PLATFORMIO_CALLER", "atom")

        command = PlatformIOCore(FakeRunner()).pio_command(["--version"])

        assert command.args == ("-m", "platformio", "-c", "atom", "--version")

    def test_no_caller(self, monkeypatch: pytest.MonkeyPatch) -> None:
        _ = update_core_state(python_exe=FAKE_PYTHON)
        monkeypatch.delenv("PLATFORMIO_CALLER", raising=False)

        command = PlatformIOCore(FakeRunner()).pio_command(["--version"])

        assert command.args == ("-m", "platformio", "--version")

    @pytest.mark.anyio
    async def test_python_output_runs_script(self) -> None:
        _ = update_core_state(python_exe=FAKE_PYTHON)
        runner = FakeRunner()

        _ = await PlatformIOCore(runner).python_output("print(1)", run_in_queue=True)

        assert runner.argvs() == [[str(FAKE_PYTHON), "-c", "print(1)"]]
        assert runner.commands[0].run_in_queue
