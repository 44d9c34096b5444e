"""Shared utilities for pioassist."""

from ._logging import LogFormatType, create_logger, get_default_log_file

__all__ = ["LogFormatType", "create_logger", "get_default_log_file"]
