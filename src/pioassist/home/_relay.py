"""JSON-RPC command relay between the home server and the IDE.

The relay is a long poll: after every inbound message, whether it was a
command, an error or garbage, the relay asks the server for the next
command with ``ide.listen_commands``.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any, Final, Protocol, final, runtime_checkable

import orjson
import structlog
import websockets.asyncio.client
import websockets.exceptions
from pydantic import ValidationError

from pioassist.exceptions import CommandRelayError

from ._models import IdeCommand, RelayState, RpcFailure, RpcSuccess

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable
    from contextlib import AbstractAsyncContextManager

    import anyio.abc
    from structlog.typing import FilteringBoundLogger

HANDSHAKE_METHOD: Final = "core.version"
LISTEN_METHOD: Final = "ide.listen_commands"
RESULT_METHOD: Final = "ide.on_command_result"

type CommandHandler = Callable[[str, Any], Awaitable[Any]]  # pyright: ignore[reportExplicitAny]


@runtime_checkable
class RelayConnection(Protocol):
    """A duplex text message connection to the home server."""

    async def send(self, message: str) -> None:
        """Send one text message."""
        ...

    def __aiter__(self) -> AsyncIterator[str | bytes]:
        """Iterate over inbound messages until the connection closes."""
        ...


type Connector = Callable[[str], AbstractAsyncContextManager[RelayConnection]]


def websocket_connector(url: str) -> AbstractAsyncContextManager[RelayConnection]:
    """Open a websocket connection without per-message compression."""
    return websockets.asyncio.client.connect(url, compression=None)


def build_request(method: str, params: Any = None) -> str:  # pyright: ignore[reportExplicitAny]
    """Encode a JSON-RPC 2.0 request with a fresh random id."""
    request: dict[str, Any] = {  # pyright: ignore[reportExplicitAny]
        "jsonrpc": "2.0",
        "id": uuid.uuid4().hex,
        "method": method,
    }
    if params is not None:
        request["params"] = params
    return orjson.dumps(request).decode()


def parse_message(raw: str | bytes) -> RpcSuccess | RpcFailure | None:
    """Decode an inbound JSON-RPC message.

    Returns:
        The success or error response, or None for any other kind of
        JSON-RPC message.

    Raises:
        CommandRelayError: If the message is not a valid JSON-RPC object.
    """
    try:
        data = orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        msg = f"Invalid RPC message: {e}"
        raise CommandRelayError(msg, raw=raw) from e
    if not isinstance(data, dict):
        msg = "Invalid RPC message: expected a JSON object"
        raise CommandRelayError(msg, raw=raw)

    try:
        if "error" in data:
            return RpcFailure.model_validate(data)
        if "result" in data:
            return RpcSuccess.model_validate(data)
    except ValidationError as e:
        msg = f"Invalid RPC message: {e}"
        raise CommandRelayError(msg, raw=raw) from e
    return None


def extract_command(response: RpcSuccess) -> IdeCommand | None:
    """Return the IDE command carried by a success response, if any.

    Raises:
        CommandRelayError: If the result looks like a command but is malformed.
    """
    result = response.result
    if not isinstance(result, dict) or not result.get("method"):
        return None
    try:
        return IdeCommand.model_validate(result)
    except ValidationError as e:
        msg = f"Invalid IDE command: {e}"
        raise CommandRelayError(msg) from e


@final
class CommandRelay:
    """Receives IDE commands from the home server and returns their results.

    Only one relay connection is active at a time; ``listen`` while
    connecting or listening does nothing. When the connection closes the
    relay returns to DISCONNECTED and may be started again.
    """

    __slots__ = ("_connector", "_logger", "_state", "_task_group", "_url_factory")

    def __init__(
        self,
        task_group: anyio.abc.TaskGroup,
        url_factory: Callable[[], str],
        *,
        connector: Connector | None = None,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        """Initialize the relay.

        Args:
            task_group: Task group that runs the relay connection.
            url_factory: Returns the relay endpoint of the current session.
            connector: Opens connections. Defaults to websockets.
            logger: Logger for diagnostics.
        """
        self._task_group = task_group
        self._url_factory = url_factory
        self._connector: Connector = connector or websocket_connector
        self._logger: FilteringBoundLogger = logger or structlog.get_logger()
        self._state = RelayState.DISCONNECTED

    @property
    def state(self) -> RelayState:
        return self._state

    def listen(self, on_command: CommandHandler) -> bool:
        """Start relaying commands in the background.

        Returns:
            True if a new connection was started, False if one is active.
        """
        if self._state != RelayState.DISCONNECTED:
            return False
        self._state = RelayState.CONNECTING
        self._task_group.start_soon(self.run, on_command)
        return True

    async def run(self, on_command: CommandHandler) -> None:
        """Connect and relay commands until the connection closes."""
        self._state = RelayState.CONNECTING
        url = self._url_factory()
        try:
            async with self._connector(url) as connection:
                self._state = RelayState.LISTENING
                self._logger.debug("relay_connected", url=url)
                await connection.send(build_request(HANDSHAKE_METHOD))
                async for raw in connection:
                    await self.handle_message(connection, raw, on_command)
        except (OSError, websockets.exceptions.WebSocketException) as e:
            self._logger.warning("relay_connection_lost", url=url, error=str(e))
        finally:
            self._state = RelayState.DISCONNECTED
            self._logger.debug("relay_disconnected", url=url)

    async def handle_message(
        self,
        connection: RelayConnection,
        raw: str | bytes,
        on_command: CommandHandler,
    ) -> None:
        """Process one inbound message, then re-arm the long poll."""
        try:
            await self._dispatch(connection, raw, on_command)
        except CommandRelayError as e:
            self._logger.warning("relay_message_invalid", error=str(e))
        await connection.send(build_request(LISTEN_METHOD))

    async def _dispatch(
        self,
        connection: RelayConnection,
        raw: str | bytes,
        on_command: CommandHandler,
    ) -> None:
        message = parse_message(raw)
        if isinstance(message, RpcFailure):
            self._logger.error(
                "relay_error_response",
                code=message.error.code,
                message=message.error.message,
            )
            return
        if message is None:
            return

        command = extract_command(message)
        if command is None:
            return

        try:
            result = await on_command(command.method, command.params)
            reply = build_request(RESULT_METHOD, [command.id, result])
        except Exception as e:  # noqa: BLE001
            self._logger.warning("ide_command_failed", method=command.method, error=str(e))
            return
        await connection.send(reply)
