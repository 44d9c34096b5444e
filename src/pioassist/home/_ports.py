"""TCP port probing and free port selection."""

from __future__ import annotations

from typing import TYPE_CHECKING

import anyio

from pioassist.exceptions import PortAllocationError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

type PortProbe = Callable[[str, int], Awaitable[bool]]


async def is_port_used(host: str, port: int, *, timeout: float = 1.0) -> bool:
    """Return True if something accepts TCP connections on host:port.

    Any connection error, including a timeout, counts as unused.
    """
    try:
        with anyio.fail_after(timeout):
            stream = await anyio.connect_tcp(host, port)
    except (OSError, TimeoutError):
        return False
    await stream.aclose()
    return True


async def find_free_port(host: str, ports: range, *, probe: PortProbe) -> int:
    """Return the first port in the range that the probe reports as unused.

    Raises:
        PortAllocationError: If every port in the range is in use.
    """
    for port in ports:
        if not await probe(host, port):
            return port
    msg = f"No free port available in range {ports.start}-{ports.stop - 1}"
    raise PortAllocationError(msg, port_begin=ports.start, port_end=ports.stop)
