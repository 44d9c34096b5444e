"""Tests for the IDE command relay."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import TYPE_CHECKING, Any

import anyio
import orjson
import pytest
from structlog.testing import capture_logs

from pioassist.exceptions import CommandRelayError
from pioassist.home import (
    HANDSHAKE_METHOD,
    LISTEN_METHOD,
    RESULT_METHOD,
    CommandRelay,
    RelayConnection,
    RelayState,
    RpcFailure,
    RpcSuccess,
    build_request,
    extract_command,
    parse_message,
)

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

pytestmark = pytest.mark.anyio

COMMAND_MESSAGE = orjson.dumps(
    {
        "jsonrpc": "2.0",
        "id": "req-1",
        "result": {"id": "cmd-1", "method": "open_project", "params": ["/projects/blink"]},
    }
)
ERROR_MESSAGE = orjson.dumps(
    {"jsonrpc": "2.0", "id": "req-2", "error": {"code": 4003, "message": "Unauthorized"}}
)
VERSION_MESSAGE = orjson.dumps({"jsonrpc": "2.0", "id": "req-0", "result": "6.1.16"})


class FakeConnection:
    def __init__(self, inbound: list[str | bytes] | None = None) -> None:
        self.inbound = inbound or []
        self.sent: list[dict[str, Any]] = []

    async def send(self, message: str) -> None:
        self.sent.append(orjson.loads(message))

    def __aiter__(self) -> AsyncIterator[str | bytes]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str | bytes]:
        for raw in self.inbound:
            yield raw

    def methods(self) -> list[str]:
        return [message["method"] for message in self.sent]


def connector_for(
    connection: FakeConnection, urls: list[str]
) -> Callable[[str], AbstractAsyncContextManager[FakeConnection]]:
    @asynccontextmanager
    async def connect(url: str) -> AsyncIterator[FakeConnection]:
        urls.append(url)
        yield connection

    return connect


class Recorder:
    def __init__(self, result: object = True) -> None:
        self.result = result
        self.calls: list[tuple[str, object]] = []

    async def __call__(self, method: str, params: object) -> object:
        self.calls.append((method, params))
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


class TestMessages:
    def test_build_request(self) -> None:
        request = orjson.loads(build_request(LISTEN_METHOD))

        assert request["jsonrpc"] == "2.0"
        assert request["method"] == LISTEN_METHOD
        assert len(request["id"]) == 32
        assert "params" not in request

    def test_build_request_ids_are_unique(self) -> None:
        first = orjson.loads(build_request(HANDSHAKE_METHOD))
        second = orjson.loads(build_request(HANDSHAKE_METHOD))

        assert first["id"] != second["id"]

    def test_build_request_with_params(self) -> None:
        request = orjson.loads(build_request(RESULT_METHOD, ["cmd-1", None]))

        assert request["params"] == ["cmd-1", None]

    def test_parse_success(self) -> None:
        message = parse_message(VERSION_MESSAGE)

        assert isinstance(message, RpcSuccess)
        assert message.result == "6.1.16"

    def test_parse_error(self) -> None:
        message = parse_message(ERROR_MESSAGE)

        assert isinstance(message, RpcFailure)
        assert message.error.code == 4003

    def test_parse_other_message(self) -> None:
        assert parse_message(b'{"jsonrpc": "2.0", "method": "notify"}') is None

    @pytest.mark.parametrize("raw", ["not json", "[1, 2]", '{"error": "flat"}'])
    def test_parse_invalid(self, raw: str) -> None:
        with pytest.raises(CommandRelayError) as exc_info:
            _ = parse_message(raw)

        assert exc_info.value.raw == raw

    def test_extract_command(self) -> None:
        message = parse_message(COMMAND_MESSAGE)
        assert isinstance(message, RpcSuccess)

        command = extract_command(message)

        assert command is not None
        assert command.id == "cmd-1"
        assert command.method == "open_project"
        assert command.params == ["/projects/blink"]

    def test_extract_command_from_plain_result(self) -> None:
        assert extract_command(RpcSuccess(id="1", result="6.1.16")) is None

    def test_extract_command_malformed(self) -> None:
        with pytest.raises(CommandRelayError):
            _ = extract_command(RpcSuccess(id="1", result={"method": "open_project"}))


class TestHandleMessage:
    async def relay(self, null_logger: FilteringBoundLogger) -> CommandRelay:
        async with anyio.create_task_group() as tg:
            return CommandRelay(tg, lambda: "ws://127.0.0.1:8010/wsrpc", logger=null_logger)

    async def test_command_result_then_listen(self, null_logger: FilteringBoundLogger) -> None:
        connection = FakeConnection()
        handler = Recorder(result={"opened": True})

        await (await self.relay(null_logger)).handle_message(connection, COMMAND_MESSAGE, handler)

        assert handler.calls == [("open_project", ["/projects/blink"])]
        assert connection.methods() == [RESULT_METHOD, LISTEN_METHOD]
        assert connection.sent[0]["params"] == ["cmd-1", {"opened": True}]

    @pytest.mark.parametrize(
        "raw",
        [ERROR_MESSAGE, VERSION_MESSAGE, b"garbage", b'{"jsonrpc": "2.0", "method": "x"}'],
    )
    async def test_always_rearms_exactly_once(
        self, raw: bytes, null_logger: FilteringBoundLogger
    ) -> None:
        connection = FakeConnection()
        handler = Recorder()

        await (await self.relay(null_logger)).handle_message(connection, raw, handler)

        assert handler.calls == []
        assert connection.methods() == [LISTEN_METHOD]

    async def test_handler_failure_sends_no_result(
        self, null_logger: FilteringBoundLogger
    ) -> None:
        connection = FakeConnection()
        handler = Recorder(result=RuntimeError("no workspace"))

        await (await self.relay(null_logger)).handle_message(connection, COMMAND_MESSAGE, handler)

        assert len(handler.calls) == 1
        assert connection.methods() == [LISTEN_METHOD]

    async def test_default_logger_records_invalid_messages(self) -> None:
        connection = FakeConnection()

        with capture_logs() as logs:
            async with anyio.create_task_group() as tg:
                relay = CommandRelay(tg, lambda: "ws://relay")
            await relay.handle_message(connection, b"garbage", Recorder())

        assert [log["event"] for log in logs] == ["relay_message_invalid"]
        assert logs[0]["log_level"] == "warning"


class TestRelayConnection:
    async def test_run_handshakes_and_rearms(self, null_logger: FilteringBoundLogger) -> None:
        connection = FakeConnection([VERSION_MESSAGE, COMMAND_MESSAGE, ERROR_MESSAGE])
        urls: list[str] = []
        handler = Recorder()

        async with anyio.create_task_group() as tg:
            relay = CommandRelay(
                tg,
                lambda: "ws://127.0.0.1:8010/session/abc/wsrpc",
                connector=connector_for(connection, urls),
                logger=null_logger,
            )
            await relay.run(handler)

        assert urls == ["ws://127.0.0.1:8010/session/abc/wsrpc"]
        assert connection.methods() == [
            HANDSHAKE_METHOD,
            LISTEN_METHOD,
            RESULT_METHOD,
            LISTEN_METHOD,
            LISTEN_METHOD,
        ]
        assert relay.state == RelayState.DISCONNECTED

    async def test_listen_is_single_flight(self, null_logger: FilteringBoundLogger) -> None:
        connection = FakeConnection([VERSION_MESSAGE])
        urls: list[str] = []

        async with anyio.create_task_group() as tg:
            relay = CommandRelay(
                tg,
                lambda: "ws://relay",
                connector=connector_for(connection, urls),
                logger=null_logger,
            )

            assert relay.listen(Recorder())
            assert relay.state == RelayState.CONNECTING
            assert not relay.listen(Recorder())

        assert urls == ["ws://relay"]
        assert relay.state == RelayState.DISCONNECTED

        async with anyio.create_task_group() as tg:
            relay = CommandRelay(
                tg,
                lambda: "ws://relay",
                connector=connector_for(FakeConnection(), urls),
                logger=null_logger,
            )
            assert relay.listen(Recorder())

        assert len(urls) == 2

    async def test_connection_errors_are_contained(
        self, null_logger: FilteringBoundLogger
    ) -> None:
        @asynccontextmanager
        async def refuse(url: str) -> AsyncIterator[RelayConnection]:
            raise ConnectionRefusedError(url)
            yield FakeConnection()  # pragma: no cover

        async with anyio.create_task_group() as tg:
            relay = CommandRelay(tg, lambda: "ws://relay", connector=refuse, logger=null_logger)
            await relay.run(Recorder())

        assert relay.state == RelayState.DISCONNECTED

    def test_fake_connection_satisfies_protocol(self) -> None:
        assert isinstance(FakeConnection(), RelayConnection)
