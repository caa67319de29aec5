"""Structured logging for the order processing engine.

This module provides structured logging functions that attach key/value
context to every record, so log lines for one order can be correlated
across the validator, the saga runner and the orchestrator.

Example:
    >>> from order_processing import log_info, log_error
    >>>
    >>> log_info("Processing started", {
    ...     "correlation_id": "abc-123",
    ...     "order_id": "ord-456"
    ... })
    >>>
    >>> try:
    ...     process()
    ... except Exception as e:
    ...     log_error(f"Processing failed: {e}", {
    ...         "order_id": "ord-456",
    ...         "error_type": type(e).__name__
    ...     })
"""

from __future__ import annotations

import logging
from typing import Any

from .types import LogContext

LOGGER_NAME = "order_processing"

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

_logger = logging.getLogger(LOGGER_NAME)


def configure_logging(level: str = "info") -> None:
    """Configure root logging for entry points and scripts.

    Library code never calls this; it is meant for ``bin/`` scripts.

    Args:
        level: One of trace, debug, info, warn, error.
    """
    resolved = level.upper()
    if resolved == "WARN":
        resolved = "WARNING"
    logging.basicConfig(
        level=TRACE if resolved == "TRACE" else getattr(logging, resolved, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )


def log_error(message: str, fields: dict[str, Any] | LogContext | None = None) -> None:
    """Log an ERROR level message with structured fields.

    Use this for failures surfaced to the caller, such as a saga step that
    could not be completed.

    Args:
        message: The log message.
        fields: Optional structured fields for context. Can be a dict
                or a LogContext instance.

    Example:
        >>> log_error("Inventory reservation failed", {
        ...     "order_id": "ord-123",
        ...     "error_message": "Insufficient stock"
        ... })
    """
    _emit(logging.ERROR, message, fields)


def log_warn(message: str, fields: dict[str, Any] | LogContext | None = None) -> None:
    """Log a WARN level message with structured fields.

    Use this for degraded operation, such as a failed compensation or a
    best-effort side effect that did not run.

    Args:
        message: The log message.
        fields: Optional structured fields for context.
    """
    _emit(logging.WARNING, message, fields)


def log_info(message: str, fields: dict[str, Any] | LogContext | None = None) -> None:
    """Log an INFO level message with structured fields.

    Use this for lifecycle events and state transitions.

    Args:
        message: The log message.
        fields: Optional structured fields for context.

    Example:
        >>> log_info("Order state changed", {
        ...     "order_id": "ord-456",
        ...     "state": "paid",
        ...     "operation": "process_order"
        ... })
    """
    _emit(logging.INFO, message, fields)


def log_debug(message: str, fields: dict[str, Any] | LogContext | None = None) -> None:
    """Log a DEBUG level message with structured fields.

    Args:
        message: The log message.
        fields: Optional structured fields for context.
    """
    _emit(logging.DEBUG, message, fields)


def log_trace(message: str, fields: dict[str, Any] | LogContext | None = None) -> None:
    """Log a TRACE level message with structured fields.

    Use this for very verbose logging, like individual rule evaluations.
    This level is typically disabled in production.

    Args:
        message: The log message.
        fields: Optional structured fields for context.
    """
    _emit(TRACE, message, fields)


def _emit(
    level: int,
    message: str,
    fields: dict[str, Any] | LogContext | None,
) -> None:
    if not _logger.isEnabledFor(level):
        return
    fields_dict = _normalize_fields(fields)
    if fields_dict:
        rendered = " ".join(f"{k}={v}" for k, v in fields_dict.items())
        _logger.log(level, "%s [%s]", message, rendered, extra={"fields": fields_dict})
    else:
        _logger.log(level, "%s", message)


def _normalize_fields(
    fields: dict[str, Any] | LogContext | None,
) -> dict[str, str] | None:
    """Normalize fields to a dict of strings.

    Args:
        fields: Input fields as dict, LogContext, or None.

    Returns:
        Dict with string values, or None if no fields.
    """
    if fields is None:
        return None

    if isinstance(fields, LogContext):
        # Drop unset context fields
        return {k: str(v) for k, v in fields.model_dump().items() if v is not None}

    return {k: str(v) for k, v in fields.items()}


__all__ = [
    "configure_logging",
    "log_error",
    "log_warn",
    "log_info",
    "log_debug",
    "log_trace",
]
