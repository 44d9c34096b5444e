"""URL helpers for the home server."""

from __future__ import annotations

from typing import TYPE_CHECKING
from urllib.parse import urlencode

if TYPE_CHECKING:
    from collections.abc import Mapping


def construct_server_url(  # noqa: PLR0913
    host: str,
    port: int,
    *,
    session_id: str | None = None,
    scheme: str = "http",
    path: str = "/",
    query: Mapping[str, str] | None = None,
) -> str:
    """Build a home server URL.

    Examples:
        >>> construct_server_url("127.0.0.1", 8010, session_id="abc", path="/wsrpc", scheme="ws")
        'ws://127.0.0.1:8010/session/abc/wsrpc'
        >>> construct_server_url("127.0.0.1", 8011, query={"__shutdown__": "1"})
        'http://127.0.0.1:8011/?__shutdown__=1'
    """
    session = f"/session/{session_id}" if session_id else ""
    url = f"{scheme}://{host}:{port}{session}{path or '/'}"
    if query:
        url = f"{url}?{urlencode(query)}"
    return url
