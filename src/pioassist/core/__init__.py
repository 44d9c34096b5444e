"""PlatformIO Core state and command helpers."""

from ._core import PlatformIOCore
from ._paths import (
    IS_WINDOWS,
    CoreState,
    get_cache_dir,
    get_core_dir,
    get_core_state,
    get_env_bin_dir,
    get_env_dir,
    get_tmp_dir,
    set_core_state,
    update_core_state,
)

__all__ = [
    "IS_WINDOWS",
    "CoreState",
    "PlatformIOCore",
    "get_cache_dir",
    "get_core_dir",
    "get_core_state",
    "get_env_bin_dir",
    "get_env_dir",
    "get_tmp_dir",
    "set_core_state",
    "update_core_state",
]
