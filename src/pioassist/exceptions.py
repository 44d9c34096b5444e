"""pioassist exceptions."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pathlib import Path

    from pioassist.process import ExternalCommand


class PioAssistError(Exception):
    """Base exception for pioassist errors."""


# =============================================================================
# Settings Exceptions
# =============================================================================


class ConfigError(PioAssistError):
    """Base exception for library settings errors."""


class ConfigLoadError(ConfigError):
    """Raised when the settings file cannot be loaded or parsed."""

    def __init__(
        self,
        message: str,
        *,
        path: Path | None = None,
        line: int | None = None,
        column: int | None = None,
    ) -> None:
        """Initialize with error message and optional location context."""
        super().__init__(message)
        self.path: Path | None = path
        self.line: int | None = line
        self.column: int | None = column


class ConfigValidationError(ConfigError):
    """Raised when the settings fail validation."""

    def __init__(
        self,
        message: str,
        *,
        key: str,
        value: Any,  # pyright: ignore[reportAny,reportExplicitAny]
        expected: str,
    ) -> None:
        """Initialize with error message and validation context."""
        super().__init__(message)
        self.key: str = key
        self.value: Any = value  # pyright: ignore[reportExplicitAny]
        self.expected: str = expected


# =============================================================================
# Project Configuration Exceptions
# =============================================================================


class ProjectConfigError(PioAssistError):
    """Base exception for platformio.ini errors."""


class ConfigParseError(ProjectConfigError):
    """Raised when a project configuration file cannot be read.

    Attributes:
        path: The file that could not be read.
    """

    def __init__(self, message: str, *, path: Path | None = None) -> None:
        super().__init__(message)
        self.path: Path | None = path


class NoSectionError(ProjectConfigError, KeyError):
    """Raised when a configuration section does not exist."""

    def __init__(self, message: str, *, section: str) -> None:
        super().__init__(message)
        self.section: str = section

    def __str__(self) -> str:
        return str(self.args[0])


class NoOptionError(ProjectConfigError, KeyError):
    """Raised when an option cannot be resolved in a section."""

    def __init__(self, message: str, *, section: str, option: str) -> None:
        super().__init__(message)
        self.section: str = section
        self.option: str = option

    def __str__(self) -> str:
        return str(self.args[0])


class InterpolationError(ProjectConfigError, ValueError):
    """Raised when a ``${section.option}`` reference cannot be expanded."""

    def __init__(self, message: str, *, section: str, option: str) -> None:
        super().__init__(message)
        self.section: str = section
        self.option: str = option


# =============================================================================
# Process Exceptions
# =============================================================================


class ProcessError(PioAssistError):
    """Base exception for external command errors."""


class CommandCancelledError(ProcessError):
    """Raised when an external command is cancelled before completing.

    Attributes:
        command: The command that was cancelled.
    """

    def __init__(self, message: str, *, command: ExternalCommand) -> None:
        super().__init__(message)
        self.command: ExternalCommand = command


class CommandFailedError(ProcessError):
    """Raised when an external command exits with a non-zero code.

    Attributes:
        exit_code: Process exit code.
        stdout: Captured standard output.
        stderr: Captured standard error.
    """

    def __init__(
        self,
        message: str,
        *,
        exit_code: int,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.exit_code: int = exit_code
        self.stdout: str = stdout
        self.stderr: str = stderr


class CoreNotInstalledError(PioAssistError):
    """Raised when no Python executable is known for PlatformIO Core."""


# =============================================================================
# Home Server Exceptions
# =============================================================================


class ServerError(PioAssistError):
    """Base exception for home server errors."""


class ServerStartError(ServerError):
    """Raised when the home server cannot be started.

    Attributes:
        port: The port the start attempt used, if one was allocated.
        stderr: Standard error of the server process, if it exited.
    """

    def __init__(
        self,
        message: str,
        *,
        port: int | None = None,
        stderr: str | None = None,
    ) -> None:
        super().__init__(message)
        self.port: int | None = port
        self.stderr: str | None = stderr


class ServerStartTimeoutError(ServerStartError):
    """Raised when the home server does not become reachable in time."""


class PortAllocationError(ServerStartError):
    """Raised when every port in the candidate range is in use.

    Attributes:
        port_begin: First candidate port (inclusive).
        port_end: Last candidate port (exclusive).
    """

    def __init__(self, message: str, *, port_begin: int, port_end: int) -> None:
        super().__init__(message)
        self.port_begin: int = port_begin
        self.port_end: int = port_end


class CommandRelayError(PioAssistError):
    """Raised when a relay message cannot be decoded or dispatched."""

    def __init__(self, message: str, *, raw: str | bytes | None = None) -> None:
        super().__init__(message)
        self.raw: str | bytes | None = raw


# =============================================================================
# Project Tooling Exceptions
# =============================================================================


class TaskQueryError(PioAssistError):
    """Raised when dynamic targets cannot be fetched for an environment.

    Attributes:
        env: The environment whose targets were requested.
    """

    def __init__(self, message: str, *, env: str) -> None:
        super().__init__(message)
        self.env: str = env


class IndexerRebuildError(PioAssistError):
    """Raised when ``pio project init`` exits with a non-zero code."""

    def __init__(
        self,
        message: str,
        *,
        project_dir: Path,
        exit_code: int,
    ) -> None:
        super().__init__(message)
        self.project_dir: Path = project_dir
        self.exit_code: int = exit_code
