"""Default configuration values.

DEFAULT_CONFIG is a plain dict so it can be deep-merged with file and
environment sources before validation.
"""

from typing import Any

DEFAULT_CONFIG: dict[str, Any] = {  # pyright: ignore[reportExplicitAny]
    "logging": {
        "level": "info",
        "format": "json",
        "file": "",
    },
    "home": {
        "host": "127.0.0.1",
        "port_begin": 8010,
        "port_end": 8050,
        "launch_timeout": 30.0,
        "autoshutdown_timeout": 3600,
        "max_start_attempts": 3,
        "settle_delay": 2.0,
        "probe_timeout": 1.0,
        "poll_interval": 0.5,
    },
    "indexer": {
        "rebuild_delay": 3.0,
        "flood_window": 600.0,
        "flood_limit": 30,
        "watch_dirs_delay": 10.0,
    },
    "project": {
        "auto_rebuild": True,
        "auto_preload_env_tasks": False,
    },
    "core": {
        "ide": "vscode",
    },
}
