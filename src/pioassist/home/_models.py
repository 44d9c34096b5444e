"""Data models for the home server session and its command relay."""

import hashlib
import os
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, ClassVar, Final

from pydantic import BaseModel, ConfigDict

DEFAULT_HOST: Final = "127.0.0.1"


def generate_session_id() -> str:
    """Return a new random session token (SHA-1 hex of 512 random bytes)."""
    return hashlib.sha1(os.urandom(512)).hexdigest()  # noqa: S324


SESSION_ID: Final = generate_session_id()


class SessionStatus(StrEnum):
    """Lifecycle states of a home server session."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    FAILED = "failed"


class RelayState(StrEnum):
    """Connection states of the command relay."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    LISTENING = "listening"


@dataclass(slots=True)
class ServerSession:
    """Mutable state of the home server tracked by this process.

    Attributes:
        session_id: Token identifying this process's session.
        host: Host the server listens on.
        port: Server port, or 0 when unallocated.
        status: Current lifecycle state.
        generation: Incremented on every reset so that suspended start
            attempts can detect that the session changed under them.
        started_at: ISO 8601 timestamp of the last successful start.
    """

    session_id: str = SESSION_ID
    host: str = DEFAULT_HOST
    port: int = 0
    status: SessionStatus = SessionStatus.STOPPED
    generation: int = 0
    started_at: str | None = None

    def reset(self, status: SessionStatus) -> None:
        """Release the port and move to a terminal state."""
        self.port = 0
        self.status = status
        self.generation += 1


# =============================================================================
# JSON-RPC wire models
# =============================================================================


class RpcError(BaseModel):
    """Error object of a JSON-RPC error response."""

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    code: int = 0
    message: str = ""
    data: Any = None  # pyright: ignore[reportExplicitAny]


class RpcSuccess(BaseModel):
    """A JSON-RPC success response."""

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    id: str | int | None = None
    result: Any = None  # pyright: ignore[reportExplicitAny]


class RpcFailure(BaseModel):
    """A JSON-RPC error response."""

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    id: str | int | None = None
    error: RpcError


class IdeCommand(BaseModel):
    """An IDE command queued by the home server for this process."""

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    id: str | int
    method: str
    params: Any = None  # pyright: ignore[reportExplicitAny]
