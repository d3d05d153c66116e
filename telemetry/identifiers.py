"""
Trace and span identifier conversion for Datadog log correlation.

OpenTelemetry uses 128-bit trace ids and 64-bit span ids. Datadog correlates
logs with traces through 64-bit unsigned decimal strings, so the trace id is
reduced to its low-order 64 bits and both ids are rendered in base 10.

The reduction is a fixed truncation, not a hash. Producer and consumer must
apply the same rule or correlation silently breaks.
"""

TRACE_ID_BYTES = 16
SPAN_ID_BYTES = 8


def reduce_trace_id(trace_id: bytes) -> int:
    """
    Reduce a 16-byte big-endian trace id to its low-order 64 bits.

    Args:
        trace_id: The trace id as 16 big-endian bytes

    Returns:
        Bytes 8..16 interpreted as a big-endian unsigned 64-bit integer

    Raises:
        ValueError: If trace_id is not exactly 16 bytes long
    """
    if len(trace_id) != TRACE_ID_BYTES:
        raise ValueError(
            f"trace id must be {TRACE_ID_BYTES} bytes, got {len(trace_id)}"
        )
    return int.from_bytes(trace_id[8:], "big", signed=False)


def encode_span_id(span_id: bytes) -> int:
    """
    Interpret an 8-byte big-endian span id as an unsigned 64-bit integer.

    Raises:
        ValueError: If span_id is not exactly 8 bytes long
    """
    if len(span_id) != SPAN_ID_BYTES:
        raise ValueError(
            f"span id must be {SPAN_ID_BYTES} bytes, got {len(span_id)}"
        )
    return int.from_bytes(span_id, "big", signed=False)


def to_decimal(value: int) -> str:
    """Render an unsigned integer as a base-10 string."""
    if value < 0:
        raise ValueError(f"identifier must be unsigned, got {value}")
    return str(value)


def trace_id_to_bytes(trace_id: int) -> bytes:
    """Encode an OpenTelemetry integer trace id as 16 big-endian bytes."""
    return trace_id.to_bytes(TRACE_ID_BYTES, "big", signed=False)


def span_id_to_bytes(span_id: int) -> bytes:
    """Encode an OpenTelemetry integer span id as 8 big-endian bytes."""
    return span_id.to_bytes(SPAN_ID_BYTES, "big", signed=False)


def format_trace_id(trace_id: int) -> str:
    """Datadog decimal form of an OpenTelemetry trace id (low 64 bits)."""
    return to_decimal(reduce_trace_id(trace_id_to_bytes(trace_id)))


def format_span_id(span_id: int) -> str:
    """Datadog decimal form of an OpenTelemetry span id."""
    return to_decimal(encode_span_id(span_id_to_bytes(span_id)))
