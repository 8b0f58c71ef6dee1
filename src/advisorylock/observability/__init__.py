"""
Observability utilities for advisorylock.

Tracing is composition based: every component takes an optional ``Tracer``
and falls back to ``create_tracer(__name__, enable_tracing)``. OpenTelemetry
is an optional dependency; without it every tracer is a ``NullTracer``.

Example:
    >>> from advisorylock.observability import create_tracer, ATTR_LOCK_KEY
    >>>
    >>> tracer = create_tracer(__name__, enable_tracing=True)
    >>> with tracer.span("advisorylock.lock.acquire", {ATTR_LOCK_KEY: "1,2"}):
    ...     pass
"""

from advisorylock.observability.attributes import (
    ATTR_CONNECTION_OUTSTANDING,
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_LOCK_ACQUIRED,
    ATTR_LOCK_KEY,
    ATTR_LOCK_NAME,
)
from advisorylock.observability.tracer import (
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    Tracer,
    create_tracer,
)
from advisorylock.observability.tracing import (
    OTEL_AVAILABLE,
    get_tracer,
    should_trace,
)

__all__ = [
    # Tracing utilities
    "OTEL_AVAILABLE",
    "get_tracer",
    "should_trace",
    # Tracer (composition-based API)
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "create_tracer",
    # Attributes
    "ATTR_DB_SYSTEM",
    "ATTR_DB_OPERATION",
    "ATTR_LOCK_NAME",
    "ATTR_LOCK_KEY",
    "ATTR_LOCK_ACQUIRED",
    "ATTR_CONNECTION_OUTSTANDING",
]
