"""Home server supervisor.

This module provides the HomeServer class that owns the lifecycle of the
single PlatformIO Home server used by this process: port allocation,
launch, health checks, retries, shutdown and the IDE command relay.
"""

from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING, Any, Final, Protocol, Self, final, runtime_checkable

import anyio
import httpx
import orjson
import pendulum
import structlog
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from pioassist.config import HomeConfig
from pioassist.core import PlatformIOCore
from pioassist.exceptions import (
    CommandCancelledError,
    CoreNotInstalledError,
    ServerStartError,
    ServerStartTimeoutError,
)

from ._models import ServerSession, SessionStatus
from ._ports import find_free_port, is_port_used
from ._relay import CommandRelay
from ._state import frontend_query
from ._urls import construct_server_url

if TYPE_CHECKING:
    from types import TracebackType

    import anyio.abc
    from structlog.typing import FilteringBoundLogger

    from pioassist.process import CommandResult

    from ._ports import PortProbe
    from ._relay import CommandHandler, Connector

SHUTDOWN_PATH: Final = "/__shutdown__"
VERSION_PATH: Final = "/package.json"
RELAY_PATH: Final = "/wsrpc"


@runtime_checkable
class ErrorReporter(Protocol):
    """Receives errors that are surfaced to the user."""

    def report_error(self, error: BaseException) -> None:
        """Report an error, e.g. to a telemetry service."""
        ...


@final
class _LaunchOutcome:
    __slots__ = ("error", "exited", "result")

    def __init__(self) -> None:
        self.exited = anyio.Event()
        self.result: CommandResult | None = None
        self.error: Exception | None = None


@final
class HomeServer:
    """Supervises the PlatformIO Home server for this process.

    Use as an async context manager; the launched server process and the
    command relay run in a task group owned by the supervisor and are
    cancelled when the context exits.

    Example:
        >>> async with HomeServer() as home:
        ...     session = await home.ensure_started()
        ...     print(home.frontend_url())
    """

    __slots__ = (
        "_core",
        "_http",
        "_launch_scope",
        "_logger",
        "_owns_http",
        "_probe",
        "_relay",
        "_relay_connector",
        "_reporter",
        "_session",
        "_settings",
        "_start_lock",
        "_task_group",
    )

    def __init__(  # noqa: PLR0913
        self,
        *,
        settings: HomeConfig | None = None,
        core: PlatformIOCore | None = None,
        session_id: str | None = None,
        probe: PortProbe | None = None,
        http_client: httpx.AsyncClient | None = None,
        relay_connector: Connector | None = None,
        reporter: ErrorReporter | None = None,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        """Initialize the supervisor.

        Args:
            settings: Host, port range and timing settings.
            core: PlatformIO Core invoker used to launch the server.
            session_id: Session token. Defaults to the process-wide token.
            probe: Reports whether host:port accepts connections.
            http_client: Client for health checks and shutdown requests.
            relay_connector: Opens relay connections. Defaults to websockets.
            reporter: Receives the final error when the server cannot start.
            logger: Logger for diagnostics.
        """
        self._settings = settings if settings is not None else HomeConfig()
        self._core = core if core is not None else PlatformIOCore()
        self._session = ServerSession(host=self._settings.host)
        if session_id is not None:
            self._session.session_id = session_id
        self._probe: PortProbe = probe or self._probe_port
        self._http = http_client
        self._owns_http = http_client is None
        self._relay_connector = relay_connector
        self._reporter = reporter
        self._logger: FilteringBoundLogger = logger or structlog.get_logger()
        self._task_group: anyio.abc.TaskGroup | None = None
        self._relay: CommandRelay | None = None
        self._launch_scope: anyio.CancelScope | None = None
        self._start_lock = anyio.Lock()

    async def __aenter__(self) -> Self:
        if self._http is None:
            self._http = httpx.AsyncClient()
        self._task_group = anyio.create_task_group()
        _ = await self._task_group.__aenter__()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> bool | None:
        task_group = self._task_group
        self._task_group = None
        self._relay = None
        try:
            if task_group is not None:
                task_group.cancel_scope.cancel()
                # Exceptions from the body propagate unwrapped, not as a group
                _ = await task_group.__aexit__(None, None, None)
            return None
        finally:
            if self._owns_http and self._http is not None:
                await self._http.aclose()
                self._http = None

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def session(self) -> ServerSession:
        return self._session

    @property
    def settings(self) -> HomeConfig:
        return self._settings

    @property
    def relay(self) -> CommandRelay:
        """Return the command relay, creating it on first use."""
        if self._relay is None:
            self._relay = CommandRelay(
                self._require_task_group(),
                lambda: self.server_url(scheme="ws", path=RELAY_PATH),
                connector=self._relay_connector,
                logger=self._logger,
            )
        return self._relay

    def _require_task_group(self) -> anyio.abc.TaskGroup:
        if self._task_group is None:
            msg = "HomeServer must be used as an async context manager"
            raise RuntimeError(msg)
        return self._task_group

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            msg = "HomeServer must be used as an async context manager"
            raise RuntimeError(msg)
        return self._http

    # -------------------------------------------------------------------------
    # URLs
    # -------------------------------------------------------------------------

    def server_url(
        self,
        *,
        scheme: str = "http",
        path: str = "/",
        query: dict[str, str] | None = None,
        include_session: bool = True,
        port: int | None = None,
    ) -> str:
        """Return a URL on the tracked server."""
        return construct_server_url(
            self._session.host,
            port if port is not None else self._session.port,
            session_id=self._session.session_id if include_session else None,
            scheme=scheme,
            path=path,
            query=query,
        )

    def frontend_url(
        self,
        *,
        start: str | None = None,
        theme: str | None = None,
        workspace: str | None = None,
    ) -> str:
        """Return the dashboard URL, honoring persisted theme and workspace."""
        query = frontend_query(start=start, theme=theme, workspace=workspace)
        return self.server_url(query=query)

    # -------------------------------------------------------------------------
    # Health checks
    # -------------------------------------------------------------------------

    async def _probe_port(self, host: str, port: int) -> bool:
        return await is_port_used(host, port, timeout=self._settings.probe_timeout)

    async def get_frontend_version(self) -> str | None:
        """Return the dashboard version reported by the server, or None."""
        try:
            response = await self._client().get(
                self.server_url(path=VERSION_PATH),
                timeout=self._settings.probe_timeout,
            )
            _ = response.raise_for_status()
            data = orjson.loads(response.content)
        except (httpx.HTTPError, orjson.JSONDecodeError):
            return None
        version = data.get("version") if isinstance(data, dict) else None
        return str(version) if version else None

    async def is_server_started(self) -> bool:
        """Return True if the server accepts connections and answers requests."""
        session = self._session
        if session.port == 0:
            return False
        if not await self._probe(session.host, session.port):
            return False
        return bool(await self.get_frontend_version())

    # -------------------------------------------------------------------------
    # Start
    # -------------------------------------------------------------------------

    async def ensure_started(
        self,
        *,
        host: str | None = None,
        port: int | None = None,
        on_ide_command: CommandHandler | None = None,
    ) -> ServerSession:
        """Start the server unless it is already running.

        Each failed attempt releases the port and asks every server in the
        candidate range to shut down before the next attempt.

        Args:
            host: Host to bind. Defaults to the configured host.
            port: Port to use instead of scanning the candidate range.
            on_ide_command: Handler for IDE commands relayed by the server.

        Returns:
            The running session.

        Raises:
            ServerStartError: If the server cannot be started after all attempts.
        """
        async with self._start_lock:
            await self._start_with_retries(host, port)

        if on_ide_command is not None:
            _ = self.relay.listen(on_ide_command)
        return self._session

    async def _start_with_retries(self, host: str | None, port: int | None) -> None:
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._settings.max_start_attempts),
                retry=retry_if_exception_type(ServerStartError),
                sleep=anyio.sleep,
                reraise=True,
            ):
                with attempt:
                    try:
                        await self._start_once(host, port)
                    except ServerStartError as e:
                        self._on_start_failed(e, attempt.retry_state.attempt_number)
                        await self.shutdown_all_servers()
                        raise
        except ServerStartError as e:
            self._logger.error("home_server_start_failed", error=str(e))
            if self._reporter is not None:
                try:  # noqa: SIM105
                    self._reporter.report_error(e)
                except Exception:  # noqa: BLE001, S110
                    # Telemetry must not mask the start failure
                    pass
            raise

    def _on_start_failed(self, error: ServerStartError, attempt: int) -> None:
        self._logger.warning(
            "home_server_start_attempt_failed",
            attempt=attempt,
            port=self._session.port,
            error=str(error),
        )
        if self._launch_scope is not None:
            self._launch_scope.cancel()
            self._launch_scope = None
        self._session.reset(SessionStatus.FAILED)

    async def _start_once(self, host: str | None, port: int | None) -> None:
        session = self._session
        if host:
            session.host = host
        if session.port == 0:
            session.port = port or await find_free_port(
                session.host,
                self._settings.port_range,
                probe=self._probe,
            )
        generation = session.generation

        if await self.is_server_started():
            if generation == session.generation:
                session.status = SessionStatus.RUNNING
            return

        if generation != session.generation:
            self._logger.debug("home_server_start_superseded")
            return

        session.status = SessionStatus.STARTING
        await self._launch(session.host, session.port)

        if generation != session.generation:
            self._logger.debug("home_server_start_superseded")
            return
        session.status = SessionStatus.RUNNING
        session.started_at = pendulum.now("UTC").to_iso8601_string()
        self._logger.info("home_server_started", host=session.host, port=session.port)

    async def _launch(self, host: str, port: int) -> None:
        args = [
            "home",
            "--port",
            str(port),
            "--host",
            host,
            "--session-id",
            self._session.session_id,
            "--shutdown-timeout",
            str(self._settings.autoshutdown_timeout),
            "--no-open",
        ]
        outcome = _LaunchOutcome()
        scope = anyio.CancelScope()
        self._launch_scope = scope

        async def run_server() -> None:
            with scope:
                try:
                    outcome.result = await self._core.run_pio(args)
                except (CommandCancelledError, CoreNotInstalledError) as e:
                    outcome.error = e
                finally:
                    outcome.exited.set()

        self._logger.debug("home_server_launching", host=host, port=port)
        self._require_task_group().start_soon(run_server)

        try:
            with anyio.fail_after(self._settings.launch_timeout):
                await self._wait_until_reachable(host, port, outcome)
        except TimeoutError as e:
            msg = (
                "Could not start PIO Home server: not reachable after "
                f"{self._settings.launch_timeout:g}s"
            )
            raise ServerStartTimeoutError(msg, port=port) from e

    async def _wait_until_reachable(self, host: str, port: int, outcome: _LaunchOutcome) -> None:
        while True:
            if outcome.exited.is_set():
                if outcome.error is not None:
                    msg = f"Could not start PIO Home server: {outcome.error}"
                    raise ServerStartError(msg, port=port) from outcome.error
                if outcome.result is not None and not outcome.result.success:
                    stderr = outcome.result.stderr.strip()
                    msg = f"Could not start PIO Home server: {stderr}"
                    raise ServerStartError(msg, port=port, stderr=stderr)
            if await self._probe(host, port):
                return
            await anyio.sleep(self._settings.poll_interval)

    # -------------------------------------------------------------------------
    # Shutdown
    # -------------------------------------------------------------------------

    async def shutdown_server(self) -> None:
        """Ask the tracked server to shut down; connection errors are ignored."""
        session = self._session
        if session.port == 0:
            return
        url = self.server_url(path=SHUTDOWN_PATH)
        session.reset(SessionStatus.STOPPED)
        self._logger.info("home_server_shutdown", url=url)
        try:
            _ = await self._client().post(url, timeout=self._settings.probe_timeout)
        except httpx.HTTPError as e:
            self._logger.debug("home_server_shutdown_failed", error=str(e))

    async def shutdown_all_servers(self) -> None:
        """Ask every server in the candidate range to shut down.

        Recovers ports held by orphaned servers of earlier sessions. Errors
        are ignored per port, then the settle delay is awaited.
        """
        self._logger.info(
            "home_server_shutdown_all",
            port_begin=self._settings.port_begin,
            port_end=self._settings.port_end,
        )
        async with anyio.create_task_group() as tg:
            for port in self._settings.port_range:
                tg.start_soon(self.request_shutdown, port)
        await anyio.sleep(self._settings.settle_delay)

    async def request_shutdown(self, port: int) -> None:
        """Ask whatever server listens on a port to shut down, ignoring errors."""
        url = self.server_url(port=port, include_session=False, query={"__shutdown__": "1"})
        with contextlib.suppress(httpx.HTTPError):
            _ = await self._client().get(url, timeout=self._settings.probe_timeout)

    def status(self) -> dict[str, Any]:  # pyright: ignore[reportExplicitAny]
        """Return a status summary of the tracked session."""
        session = self._session
        return {
            "status": session.status.value,
            "host": session.host,
            "port": session.port,
            "session_id": session.session_id,
            "started_at": session.started_at,
            "relay": self._relay.state.value if self._relay is not None else None,
        }
