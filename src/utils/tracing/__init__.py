"""
Distributed tracing using OpenTelemetry.

Instruments:
- Comparison and migration phases
- Batch submissions to the remote record service
- HTTP requests (through the requests instrumentation, when installed)

Tracing is a no-op unless an exporter is configured through
OTLP_ENDPOINT or TRACE_CONSOLE.
"""

from .spans import (
    add_span_attributes,
    add_span_event,
    span_value,
    trace_function,
    trace_operation,
)
from .tracer import (
    get_tracer,
    initialize_tracing,
    instrument_requests,
    shutdown_tracing,
)

__all__ = [
    "initialize_tracing",
    "get_tracer",
    "shutdown_tracing",
    "trace_operation",
    "trace_function",
    "add_span_attributes",
    "add_span_event",
    "span_value",
    "instrument_requests",
]
