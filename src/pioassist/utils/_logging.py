"""Logging utilities for pioassist.

Loggers are standalone structlog ``FilteringBoundLogger`` instances that
write JSON or text lines to one file, by default ``<core_dir>/logs/pioassist.log``
next to PlatformIO's own state. Global structlog configuration is never
touched, so a host application keeps its own setup.
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from os import getenv
from pathlib import Path
from typing import TYPE_CHECKING, Literal, cast

import structlog

from pioassist.core import get_core_dir

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger, Processor

LogFormatType = Literal["json", "text"]

LOG_FILE_NAME = "pioassist.log"
DEBUG_ENV = "PIOASSIST_DEBUG"
LEVEL_ENV = "PIOASSIST_LOG_LEVEL"


def get_default_log_file() -> Path:
    """Return the default log file inside the PlatformIO core directory."""
    return get_core_dir() / "logs" / LOG_FILE_NAME


def _resolve_level(level: str | None) -> int:
    """Return the effective level.

    ``PIOASSIST_DEBUG`` wins, then ``level``, then ``PIOASSIST_LOG_LEVEL``.
    Unknown names mean INFO.
    """
    if getenv(DEBUG_ENV):
        return logging.DEBUG
    name = level if level is not None else getenv(LEVEL_ENV, "info")
    return logging.getLevelNamesMapping().get(name.upper(), logging.INFO)


def _rotating_sink(
    log_path: Path, level: int, max_bytes: int, backup_count: int
) -> logging.Logger:
    sink = logging.getLogger(f"pioassist.{log_path.stem}.{id(log_path)}")
    sink.handlers.clear()
    sink.propagate = False
    sink.setLevel(level)

    handler = RotatingFileHandler(log_path, maxBytes=max_bytes, backupCount=backup_count)
    handler.setLevel(level)
    # structlog renders the line
    handler.setFormatter(logging.Formatter("%(message)s"))
    sink.addHandler(handler)
    return sink


def _processors(log_format: LogFormatType) -> list[Processor]:
    processors: list[Processor] = [
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if log_format == "json":
        processors += [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
    else:
        # "timestamp [level] event key=value ..."
        processors.append(structlog.dev.ConsoleRenderer(colors=False))
    return processors


def create_logger(
    *,
    level: str | None = None,
    log_format: LogFormatType = "json",
    log_file: str = "",
    component: str = "",
    max_bytes: int | None = None,
    backup_count: int | None = None,
) -> FilteringBoundLogger:
    """Create a logger for pioassist components.

    The level is taken from ``PIOASSIST_DEBUG`` (forces DEBUG), then
    ``level``, then ``PIOASSIST_LOG_LEVEL``, and defaults to INFO.

    Args:
        level: Log level name (debug, info, warning, error).
        log_format: Output format, either "json" or "text".
        log_file: Path to the log file. Empty means the default log file.
        component: Bound as ``component`` on every entry when given,
            e.g. ``home`` or ``indexer``.
        max_bytes: Size that triggers rotation. Rotation is enabled only
            together with ``backup_count``.
        backup_count: Number of rotated files to keep.

    Returns:
        A FilteringBoundLogger writing to the log file.
    """
    log_path = Path(log_file) if log_file else get_default_log_file()
    log_path.parent.mkdir(parents=True, exist_ok=True)
    effective_level = _resolve_level(level)

    if max_bytes is not None and backup_count is not None:
        sink: logging.Logger | structlog.WriteLogger = _rotating_sink(
            log_path, effective_level, max_bytes, backup_count
        )
    else:
        sink = structlog.WriteLoggerFactory(file=log_path.open("a"))()

    logger = cast(
        "FilteringBoundLogger",
        structlog.wrap_logger(
            sink,
            processors=_processors(log_format),
            wrapper_class=structlog.make_filtering_bound_logger(effective_level),
            context_class=dict,
        ),
    )
    return logger.bind(component=component) if component else logger
