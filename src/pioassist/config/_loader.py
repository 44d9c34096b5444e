# pyright: reportAny=false
"""Settings file loading, merging and validation."""

from __future__ import annotations

import os
import tomllib
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from pioassist.exceptions import ConfigLoadError, ConfigValidationError

from ._defaults import DEFAULT_CONFIG
from ._models import PioAssistConfig

if TYPE_CHECKING:
    from pathlib import Path

ENV_PREFIX = "PIOASSIST_"


def read_toml_file(path: Path) -> dict[str, Any]:  # pyright: ignore[reportExplicitAny]
    """Read and parse a TOML file.

    Raises:
        ConfigLoadError: If the file cannot be read or parsed.
    """
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        msg = f"Failed to parse TOML file: {e}"
        # lineno and colno are only set on Python 3.14+
        line, column = getattr(e, "lineno", None), getattr(e, "colno", None)
        raise ConfigLoadError(msg, path=path, line=line, column=column) from e
    except OSError as e:
        msg = f"Failed to read settings file: {e}"
        raise ConfigLoadError(msg, path=path) from e


def deep_merge(
    base: dict[str, Any],  # pyright: ignore[reportExplicitAny]
    override: dict[str, Any],  # pyright: ignore[reportExplicitAny]
) -> dict[str, Any]:  # pyright: ignore[reportExplicitAny]
    """Deep merge two configuration dictionaries.

    Dictionaries merge recursively; any other value in `override` replaces
    the one in `base`. Neither input is modified.
    """
    result: dict[str, Any] = dict(base)  # pyright: ignore[reportExplicitAny]
    for key, override_val in override.items():
        base_val = result.get(key)
        if isinstance(base_val, dict) and isinstance(override_val, dict):
            result[key] = deep_merge(base_val, override_val)
        else:
            result[key] = override_val
    return result


def set_nested_key(
    data: dict[str, Any],  # pyright: ignore[reportExplicitAny]
    dotted_key: str,
    value: Any,  # pyright: ignore[reportExplicitAny]
) -> None:
    """Set `value` at a dotted path, creating intermediate dicts."""
    parts = dotted_key.split(".")
    current = data
    for part in parts[:-1]:
        child = current.get(part)
        if not isinstance(child, dict):
            child = {}
            current[part] = child
        current = child
    current[parts[-1]] = value


def _parse_env_value(value: str) -> Any:  # pyright: ignore[reportExplicitAny]
    lowered = value.strip().lower()
    if lowered in ("true", "yes", "on"):
        return True
    if lowered in ("false", "no", "off"):
        return False
    for cast in (int, float):
        try:
            return cast(value)
        except ValueError:
            continue
    return value


def parse_env_vars(prefix: str = ENV_PREFIX) -> dict[str, Any]:  # pyright: ignore[reportExplicitAny]
    """Parse environment variables into a nested config dictionary.

    Example: PIOASSIST_HOME__PORT_BEGIN=9000 -> {"home": {"port_begin": 9000}}
    """
    result: dict[str, Any] = {}  # pyright: ignore[reportExplicitAny]
    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue
        config_key = key[len(prefix) :]
        if "__" not in config_key:
            # Flat names such as PIOASSIST_DEBUG are read by the logger directly
            continue
        set_nested_key(result, config_key.replace("__", ".").lower(), _parse_env_value(value))
    return result


def load_config(path: Path | None = None) -> PioAssistConfig:
    """Load settings from defaults, an optional TOML file and the environment.

    Args:
        path: Optional TOML settings file.

    Returns:
        Validated settings.

    Raises:
        ConfigLoadError: If the settings file cannot be read or parsed.
        ConfigValidationError: If the merged settings are invalid.
    """
    merged = DEFAULT_CONFIG
    if path is not None:
        merged = deep_merge(merged, read_toml_file(path))
    merged = deep_merge(merged, parse_env_vars())

    try:
        return PioAssistConfig.model_validate(merged)
    except ValidationError as e:
        error = e.errors()[0]
        key = ".".join(str(part) for part in error.get("loc", ()))
        ctx = error.get("ctx") or {}
        expected = str(ctx.get("expected", error.get("msg", "valid value")))
        msg = f"Invalid configuration value for '{key}'"
        raise ConfigValidationError(
            msg,
            key=key,
            value=error.get("input"),
            expected=expected,
        ) from e
