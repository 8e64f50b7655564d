"""Utility modules"""

from .logging import LogContext, StructuredLogger, configure_logging, get_logger

__all__ = [
    "LogContext",
    "StructuredLogger",
    "configure_logging",
    "get_logger",
]
