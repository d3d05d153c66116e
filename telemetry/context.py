"""
Access to the span that is active for the calling task.

Everything here is task-local: OpenTelemetry keeps the current span in a
context variable, and the stack of active span names used for the ``span`` and
``spans`` log fields is kept the same way. Each asyncio task runs in its own
copy of the context, so concurrent requests never see each other's spans and
suspending at an ``await`` does not change what a task reports as current.

This module is the only place that reads ambient span state.
"""

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional, Tuple

from opentelemetry import trace
from opentelemetry.trace import SpanContext

from telemetry.identifiers import format_span_id, format_trace_id

# Names of the spans entered by the current task, outermost first
span_names_var: ContextVar[Tuple[str, ...]] = ContextVar("span_names", default=())

# Correlation ID of the request being handled by the current task
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


def current_span_context() -> Optional[SpanContext]:
    """
    Get the context of the innermost active span for the calling task.

    Returns:
        The span context, or None when no span is active or the active
        span carries an invalid context (such as the no-op default span)
    """
    span_context = trace.get_current_span().get_span_context()
    if not span_context.is_valid:
        return None
    return span_context


def current_trace_ids() -> Optional[Tuple[str, str]]:
    """
    Get the Datadog-formatted ``(trace_id, span_id)`` pair for the current span.

    Returns:
        The decimal id strings, or None when there is no valid active span
    """
    span_context = current_span_context()
    if span_context is None:
        return None
    return (
        format_trace_id(span_context.trace_id),
        format_span_id(span_context.span_id),
    )


@contextmanager
def span_scope(name: str) -> Iterator[None]:
    """
    Record ``name`` as the innermost span name for the duration of the block.

    The previous stack is restored on exit, including when the block is left
    through cancellation.
    """
    token = span_names_var.set(span_names_var.get() + (name,))
    try:
        yield
    finally:
        span_names_var.reset(token)


def current_span_name() -> Optional[str]:
    """Name of the innermost span entered by the current task, if any."""
    names = span_names_var.get()
    return names[-1] if names else None


def current_span_names() -> Tuple[str, ...]:
    """Names of all spans entered by the current task, outermost first."""
    return span_names_var.get()


def get_request_id() -> str:
    """
    Get the current request ID from context.

    Returns:
        The current request ID, or empty string if not in a request context
    """
    return request_id_var.get()
