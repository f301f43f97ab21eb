"""
Span helpers for comparison and migration runs.

Spans carry the run context (table, phase, batch number, counts) as
attributes. Counts stay numeric so they can be aggregated in the tracing
backend; anything else is stored as its string form.
"""

import functools
from contextlib import contextmanager
from typing import Any, Callable, Iterator

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from .tracer import get_tracer

_PRIMITIVES = (bool, int, float, str)


def span_value(value: Any) -> bool | int | float | str:
    """Convert a value to a type OpenTelemetry accepts as an attribute."""
    if isinstance(value, _PRIMITIVES):
        return value
    if value is None:
        return ""
    return str(value)


def _set_attributes(span: trace.Span, attributes: dict[str, Any]) -> None:
    for key, value in attributes.items():
        span.set_attribute(key, span_value(value))


@contextmanager
def trace_operation(
    operation_name: str,
    kind: trace.SpanKind = trace.SpanKind.INTERNAL,
    **attributes,
) -> Iterator[trace.Span]:
    """
    Run a block inside a new span.

    Exceptions leaving the block mark the span as failed and are re-raised.

    Example:
        >>> with trace_operation("migrate_table", table="account") as span:
        ...     result = migrate_table("account")
        ...     span.set_attribute("records_written", result.upserted)
    """
    with get_tracer().start_as_current_span(
        operation_name,
        kind=kind,
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        _set_attributes(span, attributes)
        try:
            yield span
        except Exception as e:
            span.set_attribute("error.type", type(e).__name__)
            span.record_exception(e)
            span.set_status(Status(StatusCode.ERROR, str(e)))
            raise


def add_span_attributes(**attributes) -> None:
    """Add attributes to the current span, if one is recording."""
    current_span = trace.get_current_span()
    if current_span.is_recording():
        _set_attributes(current_span, attributes)


def add_span_event(name: str, **attributes) -> None:
    """
    Add an event to the current span, if one is recording.

    Example:
        >>> with trace_operation("migrate_table"):
        ...     add_span_event("preparation_completed", flat_writes=12)
    """
    current_span = trace.get_current_span()
    if current_span.is_recording():
        current_span.add_event(
            name,
            attributes={key: span_value(value) for key, value in attributes.items()},
        )


def trace_function(operation_name: str | None = None, **default_attributes) -> Callable:
    """
    Decorator that runs each call of a function inside a span.

    The span is named ``operation_name`` or ``module.qualname`` and carries
    the default attributes plus ``code.function``.

    Example:
        >>> @trace_function("webapi.retrieve_records", component="webapi")
        ... def retrieve_records(self, table_name): ...
    """
    def decorator(func):
        name = operation_name or f"{func.__module__}.{func.__qualname__}"

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            with trace_operation(name, **default_attributes, **{"code.function": func.__name__}):
                return func(*args, **kwargs)

        return wrapper
    return decorator
