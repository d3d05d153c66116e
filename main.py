"""
Entry point for the Datadog OpenTelemetry demo service.

Startup order matters: telemetry is initialized before the server binds its
listener, and shut down after the server has drained, so every request is
traced and every buffered span is flushed.
"""

import sys
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import router
from config.settings import APP_VERSION, ConfigurationError, get_settings
from errors.handlers import register_exception_handlers
from middleware.tracing import REQUEST_ID_HEADER, TracingMiddleware
from telemetry.exceptions import TelemetryInitError
from telemetry.lifecycle import TelemetryHandle, init_telemetry, shutdown_telemetry


def create_app(telemetry: TelemetryHandle) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        telemetry: The running telemetry handle. The application only borrows
                  it; whoever called init_telemetry() shuts it down.

    Returns:
        The configured application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan context manager for startup and shutdown events."""
        logger = telemetry.get_logger(__name__)
        logger.info("Starting Datadog OpenTelemetry Demo Application", version=APP_VERSION)
        yield
        logger.info("Shutdown signal received, shutting down gracefully...")

    app = FastAPI(title="Datadog OpenTelemetry Demo API", version=APP_VERSION, lifespan=lifespan)
    app.state.telemetry = telemetry

    # Register exception handlers for structured error responses
    register_exception_handlers(app)

    app.add_middleware(TracingMiddleware)

    # Permissive CORS; the demo has no browser frontend of its own
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER],
    )

    app.include_router(router)
    return app


def main() -> None:
    try:
        settings = get_settings()
        telemetry = init_telemetry(settings)
    except (ConfigurationError, TelemetryInitError) as e:
        sys.exit(f"Failed to initialize telemetry: {e}")

    app = create_app(telemetry)
    telemetry.get_logger(__name__).info(
        "Server listening", address=f"0.0.0.0:{settings.port}"
    )

    try:
        # uvicorn handles SIGINT/SIGTERM and returns once in-flight requests
        # have drained; log_config=None keeps the JSON logging pipeline
        uvicorn.run(app, host="0.0.0.0", port=settings.port, log_config=None)
    finally:
        shutdown_telemetry(telemetry)


if __name__ == "__main__":
    main()
