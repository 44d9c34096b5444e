"""Library settings for pioassist."""

from ._defaults import DEFAULT_CONFIG
from ._loader import deep_merge, load_config, parse_env_vars, read_toml_file
from ._models import (
    CoreSettings,
    HomeConfig,
    IndexerConfig,
    LogFormat,
    LoggingConfig,
    LogLevel,
    PioAssistConfig,
    ProjectSettings,
)

__all__ = [
    "DEFAULT_CONFIG",
    "CoreSettings",
    "HomeConfig",
    "IndexerConfig",
    "LogFormat",
    "LogLevel",
    "LoggingConfig",
    "PioAssistConfig",
    "ProjectSettings",
    "deep_merge",
    "load_config",
    "parse_env_vars",
    "read_toml_file",
]
