"""Persisted home dashboard state (``homestate.json``)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import orjson

from pioassist.core import get_core_dir

if TYPE_CHECKING:
    from pathlib import Path

HOME_STATE_FILE = "homestate.json"


def load_state(core_dir: Path | None = None) -> dict[str, Any] | None:  # pyright: ignore[reportExplicitAny]
    """Load the dashboard state, or None if it is missing or unreadable."""
    path = (core_dir or get_core_dir()) / HOME_STATE_FILE
    try:
        data = orjson.loads(path.read_bytes())
    except (OSError, orjson.JSONDecodeError):
        return None
    return data if isinstance(data, dict) else None


def _storage(state: dict[str, Any] | None) -> dict[str, Any]:  # pyright: ignore[reportExplicitAny]
    storage = (state or {}).get("storage")
    return storage if isinstance(storage, dict) else {}


def frontend_query(
    *,
    start: str | None = None,
    theme: str | None = None,
    workspace: str | None = None,
    core_dir: Path | None = None,
) -> dict[str, str]:
    """Return the query parameters for opening the dashboard.

    Persisted theme and workspace take precedence over the given ones;
    unset parameters are dropped.
    """
    storage = _storage(load_state(core_dir))
    params = {
        "start": start or "/",
        "theme": storage.get("theme") or theme,
        "workspace": storage.get("workspace") or workspace,
    }
    return {key: str(value) for key, value in params.items() if value is not None}


def show_at_startup(caller: str, *, core_dir: Path | None = None) -> bool:
    """Return whether the dashboard should open when the caller starts.

    Defaults to True unless the caller was explicitly switched off.
    """
    show_on_startup = _storage(load_state(core_dir)).get("showOnStartup")
    if not isinstance(show_on_startup, dict) or caller not in show_on_startup:
        return True
    return bool(show_on_startup[caller])
