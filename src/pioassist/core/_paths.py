"""PlatformIO Core directory resolution.

Directories reported by an installed PlatformIO Core are recorded in a
CoreState. When a directory is not known yet, it is derived from the
PLATFORMIO_* environment variables and the user's home directory.
"""

import os
import sys
from dataclasses import dataclass, replace
from pathlib import Path, PureWindowsPath

IS_WINDOWS = sys.platform.startswith("win")


@dataclass(frozen=True, slots=True)
class CoreState:
    """Directories and interpreter reported by PlatformIO Core.

    Attributes:
        core_dir: PlatformIO home directory.
        cache_dir: Cache directory.
        penv_dir: Virtual environment directory.
        penv_bin_dir: Executables directory of the virtual environment.
        python_exe: Python interpreter that has PlatformIO installed.
    """

    core_dir: Path | None = None
    cache_dir: Path | None = None
    penv_dir: Path | None = None
    penv_bin_dir: Path | None = None
    python_exe: Path | None = None


_CORE_STATE = CoreState()


def set_core_state(state: CoreState) -> None:
    """Replace the process-wide core state."""
    global _CORE_STATE  # noqa: PLW0603
    _CORE_STATE = state


def update_core_state(**changes: Path | None) -> CoreState:
    """Update selected fields of the process-wide core state."""
    set_core_state(replace(_CORE_STATE, **changes))
    return _CORE_STATE


def get_core_state() -> CoreState:
    """Return the process-wide core state."""
    return _CORE_STATE


def _user_home_dir() -> Path:
    if IS_WINDOWS:
        if os.environ.get("USERPROFILE"):
            return Path(os.environ["USERPROFILE"])
        if os.environ.get("HOMEPATH"):
            return Path(os.environ.get("HOMEDRIVE", "") + os.environ["HOMEPATH"])
    return Path(os.environ.get("HOME", "~")).expanduser()


def get_core_dir() -> Path:
    """Return the PlatformIO core directory.

    On Windows the directory is moved to the drive root when the home path
    contains non-ASCII characters, or when a drive-root copy already exists.
    """
    if _CORE_STATE.core_dir is not None:
        return _CORE_STATE.core_dir

    env_dir = os.environ.get("PLATFORMIO_CORE_DIR") or os.environ.get(
        "PLATFORMIO_HOME_DIR"
    )
    core_dir = Path(env_dir) if env_dir else _user_home_dir() / ".platformio"
    if not IS_WINDOWS:
        return core_dir

    root_dir = Path(PureWindowsPath(core_dir).anchor or "\\") / ".platformio"
    if root_dir.exists():
        return root_dir
    if not str(core_dir).isascii():
        return root_dir
    return core_dir


def get_cache_dir() -> Path:
    """Return the cache directory, creating it if needed."""
    if _CORE_STATE.cache_dir is not None:
        return _CORE_STATE.cache_dir
    cache_dir = get_core_dir() / ".cache"
    cache_dir.mkdir(parents=True, exist_ok=True)
    return cache_dir


def get_tmp_dir() -> Path:
    """Return the temporary directory inside the cache, creating it if needed."""
    tmp_dir = get_cache_dir() / "tmp"
    tmp_dir.mkdir(parents=True, exist_ok=True)
    return tmp_dir


def get_env_dir() -> Path:
    """Return the PlatformIO virtual environment directory."""
    if _CORE_STATE.penv_dir is not None:
        return _CORE_STATE.penv_dir
    if "PLATFORMIO_PENV_DIR" in os.environ:
        return Path(os.environ["PLATFORMIO_PENV_DIR"])
    return get_core_dir() / "penv"


def get_env_bin_dir() -> Path:
    """Return the executables directory of the virtual environment."""
    if _CORE_STATE.penv_bin_dir is not None:
        return _CORE_STATE.penv_bin_dir
    return get_env_dir() / ("Scripts" if IS_WINDOWS else "bin")
