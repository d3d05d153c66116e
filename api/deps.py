"""
FastAPI dependencies.
"""

from fastapi import Request

from telemetry.lifecycle import TelemetryHandle


def get_telemetry(request: Request) -> TelemetryHandle:
    """
    Get the telemetry handle the application was created with.

    Raises:
        RuntimeError: If the application has no telemetry handle
    """
    telemetry = getattr(request.app.state, "telemetry", None)
    if telemetry is None:
        raise RuntimeError("application was created without a telemetry handle")
    return telemetry
