"""Tracing using Logfire/OpenTelemetry.

Optional distributed tracing for the pipeline. When enabled, Logfire
instruments every PydanticAI agent call and each stage runs inside its own
span, so one generation record shows up as a chain of stage spans with the
model calls nested inside.

Requirements:
    pip install logfire

Enable via configuration:
    ENABLE_LOGFIRE=true
    LOGFIRE_TOKEN=your-token  # Optional for cloud dashboard

Usage:
    >>> from observability.tracing import setup_tracing, trace_operation
    >>> setup_tracing(enabled=True)
    >>> with trace_operation("stage.execute-research", {"generation_id": gid}) as attrs:
    ...     attrs["sources"] = 12
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Generator

logger = logging.getLogger(__name__)

SERVICE_NAME = "press-review-pipeline"


@dataclass
class TracingContext:
    """Tracing state for the process."""
    enabled: bool = False
    service_name: str = SERVICE_NAME
    token: str = ""
    _logfire_configured: bool = field(default=False, init=False)


_context = TracingContext()


def setup_tracing(
    enabled: bool = False,
    service_name: str = SERVICE_NAME,
    token: str = "",
) -> TracingContext:
    """Set up tracing with Logfire.

    Tracing is disabled (with a warning) when logfire is not installed or
    fails to configure; the pipeline runs the same either way.
    """
    _context.enabled = enabled
    _context.service_name = service_name
    _context.token = token

    if not enabled:
        logger.debug("Tracing disabled")
        return _context

    try:
        import logfire

        logfire.configure(
            service_name=service_name,
            token=token if token else None,
        )
        logfire.instrument_pydantic_ai()

        _context._logfire_configured = True
        logger.info("Logfire tracing enabled | service=%s", service_name)

    except ImportError:
        logger.warning("Logfire not installed. Tracing disabled.")
        _context.enabled = False
    except Exception as e:
        logger.error("Failed to configure Logfire: %s", e)
        _context.enabled = False

    return _context


@contextmanager
def trace_operation(
    name: str,
    attributes: dict[str, Any] | None = None,
) -> Generator[dict[str, Any], None, None]:
    """Context manager for tracing an operation.

    Args:
        name: Span name
        attributes: Attributes attached when the span opens

    Yields:
        Dictionary for attributes known only when the operation ends
    """
    span_attrs = attributes or {}
    start_time = datetime.now()

    try:
        if _context.enabled and _context._logfire_configured:
            import logfire

            with logfire.span(name, **span_attrs) as span:
                result_attrs: dict[str, Any] = {}
                yield result_attrs
                for key, value in result_attrs.items():
                    span.set_attribute(key, value)
        else:
            yield {}

    finally:
        duration = (datetime.now() - start_time).total_seconds()
        logger.debug("Operation '%s' completed in %.2fs", name, duration)
