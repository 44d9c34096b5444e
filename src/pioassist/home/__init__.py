"""PlatformIO Home server supervision and IDE command relay.

Key Components:
    - HomeServer: Port allocation, launch with retries, health checks, shutdown
    - CommandRelay: Long-poll JSON-RPC relay of IDE commands
    - ServerSession: Host, port, token and status of the tracked server
    - construct_server_url: URL builder for server endpoints
    - show_at_startup / load_state: Persisted dashboard state
"""

from ._models import (
    DEFAULT_HOST,
    SESSION_ID,
    IdeCommand,
    RelayState,
    RpcError,
    RpcFailure,
    RpcSuccess,
    ServerSession,
    SessionStatus,
    generate_session_id,
)
from ._ports import PortProbe, find_free_port, is_port_used
from ._relay import (
    HANDSHAKE_METHOD,
    LISTEN_METHOD,
    RESULT_METHOD,
    CommandHandler,
    CommandRelay,
    Connector,
    RelayConnection,
    build_request,
    extract_command,
    parse_message,
    websocket_connector,
)
from ._state import frontend_query, load_state, show_at_startup
from ._supervisor import ErrorReporter, HomeServer
from ._urls import construct_server_url

__all__ = [
    "DEFAULT_HOST",
    "HANDSHAKE_METHOD",
    "LISTEN_METHOD",
    "RESULT_METHOD",
    "SESSION_ID",
    "CommandHandler",
    "CommandRelay",
    "Connector",
    "ErrorReporter",
    "HomeServer",
    "IdeCommand",
    "PortProbe",
    "RelayConnection",
    "RelayState",
    "RpcError",
    "RpcFailure",
    "RpcSuccess",
    "ServerSession",
    "SessionStatus",
    "build_request",
    "construct_server_url",
    "extract_command",
    "find_free_port",
    "frontend_query",
    "generate_session_id",
    "is_port_used",
    "load_state",
    "parse_message",
    "show_at_startup",
    "websocket_connector",
]
