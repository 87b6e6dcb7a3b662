"""Observability infrastructure: logging context and optional tracing.

setup_logging / stage_context:
    Console + rotating file logging; every record carries the generation
    id and stage it was logged from.

setup_tracing / trace_operation:
    Optional Logfire tracing with PydanticAI instrumentation.

Enable tracing via configuration:
    ENABLE_LOGFIRE=true
    LOGFIRE_TOKEN=your-token  # Optional

Example:
    >>> from observability import setup_tracing, trace_operation
    >>> setup_tracing(enabled=True)
    >>> with trace_operation("stage.generate-queries"):
    ...     pass
"""

from observability.logging import setup_logging, stage_context
from observability.tracing import setup_tracing, trace_operation, TracingContext

__all__ = [
    "setup_logging",
    "stage_context",
    "setup_tracing",
    "trace_operation",
    "TracingContext",
]
