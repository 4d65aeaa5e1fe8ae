"""Structured logging and tracing helpers.

grekt-core logs through structlog with snake_case event names and keyword
context, and wraps network operations in OpenTelemetry spans. Without an
OpenTelemetry SDK installed the spans are no-ops.

Logs emitted inside an active span carry ``trace_id`` and ``span_id`` once
``configure_logging`` has installed the ``add_trace_context`` processor.

Example:
    >>> from grekt_core.telemetry import configure_logging, get_tracer
    >>> configure_logging(log_level="DEBUG", json_output=False)
    >>> with get_tracer().start_as_current_span("grekt.download"):
    ...     structlog.get_logger().info("downloading")
"""

from __future__ import annotations

import logging
from collections.abc import MutableMapping
from typing import Any

import structlog
from opentelemetry import trace
from opentelemetry.trace import INVALID_SPAN_ID, INVALID_TRACE_ID, Tracer

EventDict = MutableMapping[str, Any]

_TRACER_NAME = "grekt_core"


def get_tracer() -> Tracer:
    """Return the package tracer from the global tracer provider."""
    return trace.get_tracer(_TRACER_NAME)


def add_trace_context(
    logger: Any,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: EventDict,
) -> EventDict:
    """Structlog processor injecting the active span's trace and span ids.

    Args:
        logger: The logger instance (unused, required by structlog processor API).
        method_name: The log method name (unused).
        event_dict: The event dictionary to enrich.

    Returns:
        The event dictionary, with ``trace_id``/``span_id`` when a span is active.
    """
    ctx = trace.get_current_span().get_span_context()
    if ctx.trace_id != INVALID_TRACE_ID and ctx.span_id != INVALID_SPAN_ID:
        event_dict["trace_id"] = format(ctx.trace_id, "032x")
        event_dict["span_id"] = format(ctx.span_id, "016x")
    return event_dict


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """Configure structlog with trace context injection.

    Args:
        log_level: Minimum level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_output: JSON lines when True, human-readable console output otherwise.

    Raises:
        ValueError: If ``log_level`` is not a known level name.
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level}")

    renderer: Any = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            add_trace_context,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=False,
    )


__all__ = ["add_trace_context", "configure_logging", "get_tracer"]
