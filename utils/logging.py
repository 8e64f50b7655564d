"""Structured logging utilities.

Wraps the standard library logger with ``key=value`` suffixes and a
contextvar-backed prefix, so every line written while a sheet is being
edited carries its ``sheet_id``.

Usage:
    from utils.logging import get_logger, LogContext

    logger = get_logger(__name__)

    with LogContext(sheet_id=12):
        logger.info("Cell updated", address="B2", type="number")
"""

import logging
from contextvars import ContextVar
from typing import Any, Optional, Union

_request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
_sheet_id_var: ContextVar[Optional[int]] = ContextVar("sheet_id", default=None)
_extra_context_var: ContextVar[Optional[dict[str, Any]]] = ContextVar(
    "extra_context", default=None
)


def get_request_id() -> Optional[str]:
    return _request_id_var.get()


def set_request_id(request_id: Optional[str]) -> None:
    _request_id_var.set(request_id)


def get_sheet_id() -> Optional[int]:
    return _sheet_id_var.get()


def set_sheet_id(sheet_id: Optional[int]) -> None:
    _sheet_id_var.set(sheet_id)


def get_extra_context() -> dict[str, Any]:
    ctx = _extra_context_var.get()
    return ctx if ctx is not None else {}


def set_extra_context(context: dict[str, Any]) -> None:
    _extra_context_var.set(context)


def clear_context() -> None:
    """Clear all context variables."""
    _request_id_var.set(None)
    _sheet_id_var.set(None)
    _extra_context_var.set(None)


class StructuredLogFormatter(logging.Formatter):
    """Formatter that prefixes messages with the current log context."""

    def format(self, record: logging.LogRecord) -> str:
        prefix_parts = []
        request_id = get_request_id()
        sheet_id = get_sheet_id()
        if request_id:
            prefix_parts.append(f"request_id={request_id}")
        if sheet_id is not None:
            prefix_parts.append(f"sheet_id={sheet_id}")
        for key, value in get_extra_context().items():
            prefix_parts.append(f"{key}={value}")

        if not prefix_parts:
            return super().format(record)

        original_msg = record.msg
        record.msg = f"[{' '.join(prefix_parts)}] {original_msg}"
        try:
            return super().format(record)
        finally:
            record.msg = original_msg


class StructuredLogger:
    """Standard logger with structured keyword arguments.

    ``logger.info("Saved", revision=3)`` is written as ``Saved | revision=3``.
    """

    def __init__(self, name: str) -> None:
        self._logger = logging.getLogger(name)

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def _build_message(self, message: str, **kwargs: Any) -> str:
        if not kwargs:
            return message
        parts = [f"{k}={v}" for k, v in kwargs.items()]
        return f"{message} | {', '.join(parts)}"

    def is_enabled_for(self, level: int) -> bool:
        return self._logger.isEnabledFor(level)

    def debug(self, message: str, **kwargs: Any) -> None:
        if self._logger.isEnabledFor(logging.DEBUG):
            self._logger.debug(self._build_message(message, **kwargs))

    def info(self, message: str, **kwargs: Any) -> None:
        self._logger.info(self._build_message(message, **kwargs))

    def warning(self, message: str, **kwargs: Any) -> None:
        self._logger.warning(self._build_message(message, **kwargs))

    def error(self, message: str, exc_info: bool = False, **kwargs: Any) -> None:
        self._logger.error(self._build_message(message, **kwargs), exc_info=exc_info)

    def exception(self, message: str, **kwargs: Any) -> None:
        self._logger.exception(self._build_message(message, **kwargs))


class LogContext:
    """Context manager adding temporary context to every log line.

    Usage:
        with LogContext(sheet_id=3, request_id="abc"):
            logger.info("Recalculating")
    """

    def __init__(self, **kwargs: Any) -> None:
        self._new_context = dict(kwargs)
        self._old_context: dict[str, Any] = {}
        self._old_sheet_id: Optional[int] = None
        self._old_request_id: Optional[str] = None

    def __enter__(self) -> "LogContext":
        self._old_context = get_extra_context().copy()
        self._old_sheet_id = get_sheet_id()
        self._old_request_id = get_request_id()

        context = dict(self._new_context)
        sheet_id = context.pop("sheet_id", None)
        request_id = context.pop("request_id", None)
        if sheet_id is not None:
            set_sheet_id(sheet_id)
        if request_id is not None:
            set_request_id(request_id)

        merged = self._old_context.copy()
        merged.update(context)
        set_extra_context(merged)
        return self

    def __exit__(self, *args: Any) -> None:
        set_extra_context(self._old_context)
        set_sheet_id(self._old_sheet_id)
        set_request_id(self._old_request_id)


def configure_logging(
    level: Union[int, str] = logging.INFO,
    format_string: Optional[str] = None,
) -> None:
    """Install a single structured console handler on the root logger."""
    if isinstance(level, str):
        level = getattr(logging, level.upper())

    if format_string is None:
        format_string = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(StructuredLogFormatter(format_string))
    root_logger.addHandler(handler)


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger for a module (typically ``__name__``)."""
    return StructuredLogger(name)
