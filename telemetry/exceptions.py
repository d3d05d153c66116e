"""
Exception classes for the telemetry subsystem.

Only startup problems are raised to callers. Everything that can go wrong
after startup (missing span context, flush failures on shutdown) degrades
observability and is reported through logging instead.
"""


class TelemetryError(Exception):
    """Base class for telemetry errors."""


class TelemetryInitError(TelemetryError):
    """
    Raised when the tracer provider or exporter cannot be built.

    Startup must not continue: the process exits without binding its listener.
    """


class TelemetryAlreadyInitializedError(TelemetryError):
    """
    Raised when telemetry or the logging pipeline is installed a second time.

    This is a programming error. The process-wide pipeline can only be
    installed once.
    """
