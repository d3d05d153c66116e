"""
Telemetry module for trace-correlated structured logging.

This module provides:
- init_telemetry / shutdown_telemetry: tracer provider and logging pipeline lifecycle
- TelemetryHandle: opens spans and hands out trace-correlated loggers
- TraceLogger: logger wrapper that injects Datadog dd.* correlation fields
- current_span_context / current_trace_ids: lookup of the task's active span
- Identifier conversion from OpenTelemetry ids to Datadog decimal ids
"""

from telemetry.context import current_span_context, current_trace_ids
from telemetry.exceptions import (
    TelemetryAlreadyInitializedError,
    TelemetryError,
    TelemetryInitError,
)
from telemetry.identifiers import (
    encode_span_id,
    format_span_id,
    format_trace_id,
    reduce_trace_id,
)
from telemetry.lifecycle import (
    TelemetryHandle,
    TelemetryState,
    get_telemetry_handle,
    get_telemetry_state,
    init_telemetry,
    shutdown_telemetry,
)
from telemetry.pipeline import JSONFormatter
from telemetry.trace_context import ServiceMetadata, TraceLogger, get_trace_logger

__all__ = [
    "JSONFormatter",
    "ServiceMetadata",
    "TelemetryAlreadyInitializedError",
    "TelemetryError",
    "TelemetryHandle",
    "TelemetryInitError",
    "TelemetryState",
    "TraceLogger",
    "current_span_context",
    "current_trace_ids",
    "encode_span_id",
    "format_span_id",
    "format_trace_id",
    "get_telemetry_handle",
    "get_telemetry_state",
    "get_trace_logger",
    "init_telemetry",
    "reduce_trace_id",
    "shutdown_telemetry",
]
