# SPDX-License-Identifier: MIT
"""Structured JSON logging for the submission pipeline.

Each logical submission runs under its own correlation identifier so the
interleaved log lines of concurrent submissions can be told apart.
"""
from __future__ import annotations

import json
import logging
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict, Iterator, Optional
from uuid import uuid4


_CORRELATION_ID_VAR: ContextVar[Optional[str]] = ContextVar(
    "submission_correlation_id", default=None
)


def generate_correlation_id() -> str:
    """Generate a new correlation identifier."""

    return uuid4().hex


def get_correlation_id() -> Optional[str]:
    """Return the correlation identifier bound to the current task, if any."""

    return _CORRELATION_ID_VAR.get()


@contextmanager
def correlation_context(correlation_id: Optional[str] = None) -> Iterator[str]:
    """Bind ``correlation_id`` (or a fresh one) for the duration of the block.

    The identifier lives in a :class:`~contextvars.ContextVar`, so it follows
    the asyncio task that entered the block and does not leak into sibling
    submissions running on the same loop.
    """

    resolved = correlation_id or generate_correlation_id()
    token = _CORRELATION_ID_VAR.set(resolved)
    try:
        yield resolved
    finally:
        _CORRELATION_ID_VAR.reset(token)


class JSONFormatter(logging.Formatter):
    """Render log records as single-line JSON documents."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if hasattr(record, "correlation_id"):
            log_data["correlation_id"] = record.correlation_id
        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data, default=str)


class StructuredLogger:
    """Thin wrapper over :mod:`logging` accepting keyword fields."""

    def __init__(self, name: str, correlation_id: Optional[str] = None):
        self.logger = logging.getLogger(name)
        self._correlation_id = correlation_id

    def _resolve_correlation_id(self, explicit: Optional[str] = None) -> Optional[str]:
        return explicit or get_correlation_id() or self._correlation_id

    def _log(self, level: int, msg: str, **kwargs: Any) -> None:
        if not self.logger.isEnabledFor(level):
            return
        correlation_id = self._resolve_correlation_id(kwargs.pop("correlation_id", None))
        extra_data: Dict[str, Any] = {}
        if correlation_id is not None:
            extra_data["correlation_id"] = correlation_id
        if kwargs:
            extra_data["extra_fields"] = kwargs
        self.logger.log(level, msg, extra=extra_data)

    def debug(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.DEBUG, msg, **kwargs)

    def info(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.INFO, msg, **kwargs)

    def warning(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.WARNING, msg, **kwargs)

    def error(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.ERROR, msg, **kwargs)

    @contextmanager
    def operation(
        self, operation_name: str, *, correlation_id: Optional[str] = None, **context: Any
    ) -> Iterator[Dict[str, Any]]:
        """Log the start, completion and duration of an operation.

        The yielded dictionary may be updated by the caller; its contents are
        included in the completion record. A ``status`` key overrides the
        default ``success``/``failure`` label.

        Example:
            >>> logger = get_logger("submissions")
            >>> with logger.operation("submit", identity="a@x.com") as op:
            ...     op["status"] = "succeeded"
        """
        start_time = time.monotonic()
        with correlation_context(self._resolve_correlation_id(correlation_id)):
            op_context: Dict[str, Any] = {"operation": operation_name, **context}
            self.info(f"Starting operation: {operation_name}", **op_context)
            try:
                yield op_context
            except Exception as exc:
                op_context.setdefault("status", "failure")
                self.error(
                    f"Failed operation: {operation_name}",
                    **op_context,
                    duration_seconds=time.monotonic() - start_time,
                    error_type=type(exc).__name__,
                    error_message=str(exc),
                )
                raise
            op_context.setdefault("status", "success")
            self.info(
                f"Completed operation: {operation_name}",
                **op_context,
                duration_seconds=time.monotonic() - start_time,
            )


def configure_logging(
    level: str = "INFO",
    use_json: bool = True,
    stream: Any = None,
) -> None:
    """Configure the root logger with a single stream handler.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        use_json: Emit :class:`JSONFormatter` records instead of plain text.
        stream: Output stream, defaults to ``sys.stderr`` so snapshot output
            on stdout stays machine-readable.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stderr)
    if use_json:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
    root_logger.addHandler(handler)


def get_logger(name: str, correlation_id: Optional[str] = None) -> StructuredLogger:
    """Return a :class:`StructuredLogger` for ``name`` (typically ``__name__``)."""

    return StructuredLogger(name, correlation_id)


__all__ = [
    "JSONFormatter",
    "StructuredLogger",
    "configure_logging",
    "correlation_context",
    "generate_correlation_id",
    "get_correlation_id",
    "get_logger",
]
