"""Settings models.

This module provides the Pydantic models for pioassist settings:
- LoggingConfig: Log level, format and file
- HomeConfig: Home server host, port range and timing
- IndexerConfig: Rebuild debounce and flood control
- ProjectSettings: Project observer behavior
- CoreSettings: Caller name and known PlatformIO Core locations
- PioAssistConfig: Aggregate of all sections
"""

from enum import StrEnum
from pathlib import Path  # noqa: TC003 - Used at runtime by pydantic
from typing import ClassVar, Self

from pydantic import BaseModel, ConfigDict, Field, model_validator


class LogLevel(StrEnum):
    """Log level threshold values."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class LogFormat(StrEnum):
    """Log output format values."""

    JSON = "json"
    TEXT = "text"


class LoggingConfig(BaseModel):
    """Logging configuration section.

    Attributes:
        level: Log level threshold.
        format: Log output format.
        file: Path to log file (empty uses the default core log file).
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    level: LogLevel = LogLevel.INFO
    format: LogFormat = LogFormat.JSON
    file: str = ""


class HomeConfig(BaseModel):
    """Home server configuration section.

    Attributes:
        host: Host the home server binds to.
        port_begin: First candidate port (inclusive).
        port_end: Last candidate port (exclusive).
        launch_timeout: Seconds to wait for a launched server to accept connections.
        autoshutdown_timeout: Idle seconds after which the server exits by itself.
        max_start_attempts: Start attempts before giving up.
        settle_delay: Seconds to wait after broadcasting shutdown requests.
        probe_timeout: Seconds allowed for each port probe or HTTP request.
        poll_interval: Seconds between reachability checks while launching.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    host: str = "127.0.0.1"
    port_begin: int = Field(default=8010, ge=1, le=65535)
    port_end: int = Field(default=8050, ge=1, le=65536)
    launch_timeout: float = Field(default=30.0, gt=0)
    autoshutdown_timeout: int = Field(default=3600, ge=0)
    max_start_attempts: int = Field(default=3, ge=1)
    settle_delay: float = Field(default=2.0, ge=0)
    probe_timeout: float = Field(default=1.0, gt=0)
    poll_interval: float = Field(default=0.5, gt=0)

    @model_validator(mode="after")
    def _check_port_range(self) -> Self:
        if self.port_end <= self.port_begin:
            msg = "port_end must be greater than port_begin"
            raise ValueError(msg)
        return self

    @property
    def port_range(self) -> range:
        """Return the candidate port range."""
        return range(self.port_begin, self.port_end)


class IndexerConfig(BaseModel):
    """Project indexer configuration section.

    Attributes:
        rebuild_delay: Debounce delay in seconds before a requested rebuild runs.
        flood_window: Length of the flood-control window in seconds.
        flood_limit: Rebuild requests allowed inside one window.
        watch_dirs_delay: Delay in seconds before library watch dirs are refreshed.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    rebuild_delay: float = Field(default=3.0, ge=0)
    flood_window: float = Field(default=600.0, gt=0)
    flood_limit: int = Field(default=30, ge=1)
    watch_dirs_delay: float = Field(default=10.0, ge=0)


class ProjectSettings(BaseModel):
    """Project observer configuration section.

    Attributes:
        auto_rebuild: Rebuild the IntelliSense index when project files change.
        auto_preload_env_tasks: Load every environment's tasks eagerly.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    auto_rebuild: bool = True
    auto_preload_env_tasks: bool = False


class CoreSettings(BaseModel):
    """PlatformIO Core configuration section.

    Attributes:
        caller: Caller name passed to PlatformIO as ``-c``.
        ide: IDE name used for ``project init --ide``.
        core_dir: Override for the PlatformIO core directory.
        python_exe: Interpreter that has PlatformIO Core installed.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    caller: str | None = None
    ide: str = "vscode"
    core_dir: Path | None = None
    python_exe: Path | None = None


class PioAssistConfig(BaseModel):
    """Complete pioassist settings."""

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    logging: LoggingConfig = LoggingConfig()
    home: HomeConfig = HomeConfig()
    indexer: IndexerConfig = IndexerConfig()
    project: ProjectSettings = ProjectSettings()
    core: CoreSettings = CoreSettings()
