"""
Telemetry bootstrap and shutdown.

init_telemetry() builds the OpenTelemetry tracer provider with an OTLP
exporter pointed at the Datadog agent, registers it as the global provider
and installs the structured logging pipeline. It returns a TelemetryHandle
that the application keeps and passes to whatever needs to open spans or log
with trace context. shutdown_telemetry() flushes buffered spans and closes the
provider; it must be called explicitly before the process exits.

Lifecycle states:
    UNINITIALIZED -> INITIALIZING -> RUNNING -> SHUTTING_DOWN -> SHUTDOWN
"""

import logging
import sys
import threading
from contextlib import contextmanager
from enum import Enum
from typing import Any, Dict, IO, Iterator, Optional

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import (
    DEPLOYMENT_ENVIRONMENT,
    SERVICE_NAME,
    SERVICE_VERSION,
    Resource,
)
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SpanExporter

from config.settings import (
    DEFAULT_LOG_FILTER,
    ConfigurationError,
    Settings,
    get_settings,
)
from telemetry.context import span_scope
from telemetry.exceptions import TelemetryAlreadyInitializedError, TelemetryInitError
from telemetry.pipeline import install_logging_pipeline, uninstall_logging_pipeline
from telemetry.trace_context import ServiceMetadata, TraceLogger

logger = logging.getLogger(__name__)


class TelemetryState(str, Enum):
    """Process-wide telemetry lifecycle state."""
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    SHUTDOWN = "shutdown"


class TelemetryHandle:
    """
    Owner of the tracer provider for the lifetime of the process.

    Attributes:
        settings: The settings telemetry was initialized with
        metadata: Service metadata attached to correlated log events
        provider: The SDK tracer provider
        tracer: Tracer used for spans opened through this handle
    """

    def __init__(self, settings: Settings, metadata: ServiceMetadata, provider: TracerProvider):
        self.settings = settings
        self.metadata = metadata
        self.provider = provider
        self.tracer = provider.get_tracer(settings.service_name, settings.service_version)
        self._shut_down = False

    @property
    def is_shut_down(self) -> bool:
        return self._shut_down

    @contextmanager
    def span(self, name: str, attributes: Optional[Dict[str, Any]] = None) -> Iterator[trace.Span]:
        """
        Run the block inside a new span that becomes the current span.

        The span is a child of whatever span is current for the calling task.
        After shutdown this yields a non-recording span and nothing is exported.

        Args:
            name: Name of the span
            attributes: Optional attributes to add to the span
        """
        if self._shut_down:
            # Mask any outer span so late logs carry no trace ids
            with trace.use_span(trace.INVALID_SPAN):
                yield trace.INVALID_SPAN
            return

        with self.tracer.start_as_current_span(name, attributes=attributes) as span:
            with span_scope(name):
                yield span

    def get_logger(self, name: str) -> TraceLogger:
        """
        Get a trace-correlated logger carrying this handle's service metadata.

        Args:
            name: Name for the logger (typically module name)
        """
        return TraceLogger(logging.getLogger(name), self.metadata)

    def force_flush(self, timeout_seconds: Optional[float] = None) -> bool:
        """
        Export all buffered spans now.

        Returns:
            True if everything was exported within the timeout
        """
        if self._shut_down:
            return True
        if timeout_seconds is None:
            timeout_seconds = self.settings.shutdown_timeout_seconds
        return self.provider.force_flush(timeout_millis=int(timeout_seconds * 1000))

    def shutdown(self) -> None:
        """Flush and close the provider. See shutdown_telemetry()."""
        shutdown_telemetry(self)


_lock = threading.Lock()
_state = TelemetryState.UNINITIALIZED
_handle: Optional[TelemetryHandle] = None


def _announce(message: str) -> None:
    # Lifecycle banners are for humans; stdout carries the JSON log stream
    print(message, file=sys.stderr, flush=True)


def _build_provider(settings: Settings, exporter: Optional[SpanExporter]) -> TracerProvider:
    resource = Resource.create({
        SERVICE_NAME: settings.service_name,
        SERVICE_VERSION: settings.service_version,
        DEPLOYMENT_ENVIRONMENT: settings.environment,
    })

    # Shutdown is explicit; never rely on the atexit hook to flush spans
    provider = TracerProvider(resource=resource, shutdown_on_exit=False)

    if exporter is None:
        endpoint = settings.exporter_endpoint
        exporter = OTLPSpanExporter(
            endpoint=endpoint,
            insecure=endpoint.startswith("http://"),
        )

    provider.add_span_processor(BatchSpanProcessor(exporter))
    return provider


def _register_global_provider(provider: TracerProvider) -> None:
    # OpenTelemetry only accepts one global provider per process
    if isinstance(trace.get_tracer_provider(), trace.ProxyTracerProvider):
        trace.set_tracer_provider(provider)
        return
    logger.warning(
        "A global tracer provider is already registered; "
        "spans opened through the telemetry handle use its own provider"
    )


def init_telemetry(
    settings: Optional[Settings] = None,
    exporter: Optional[SpanExporter] = None,
    stream: Optional[IO[str]] = None,
) -> TelemetryHandle:
    """
    Initialize tracing and the structured logging pipeline.

    Args:
        settings: Application settings, loaded with get_settings() if omitted
        exporter: Span exporter to use instead of the OTLP exporter
        stream: Output stream for JSON logs, stdout by default

    Returns:
        The handle that owns the provider. Keep it for shutdown_telemetry().

    Raises:
        TelemetryInitError: If configuration is invalid or the provider
            cannot be built
        TelemetryAlreadyInitializedError: If telemetry was already initialized
    """
    global _state, _handle

    with _lock:
        if _state is not TelemetryState.UNINITIALIZED:
            raise TelemetryAlreadyInitializedError(
                f"telemetry can only be initialized once (state: {_state.value})"
            )
        _state = TelemetryState.INITIALIZING

    try:
        handle = _initialize(settings, exporter, stream)
    except BaseException:
        with _lock:
            _state = TelemetryState.UNINITIALIZED
        raise

    with _lock:
        _handle = handle
        _state = TelemetryState.RUNNING
    return handle


def _initialize(
    settings: Optional[Settings],
    exporter: Optional[SpanExporter],
    stream: Optional[IO[str]],
) -> TelemetryHandle:
    if settings is None:
        try:
            settings = get_settings()
        except ConfigurationError as e:
            raise TelemetryInitError(str(e)) from e

    _announce("Initializing Datadog APM")
    _announce(f"  Service: {settings.service_name}")
    _announce(f"  Version: {settings.service_version}")
    _announce(f"  Environment: {settings.environment}")
    _announce(f"  Agent Host: {settings.agent_host}")
    _announce(f"  Exporter: {'custom' if exporter is not None else settings.exporter_endpoint}")

    try:
        provider = _build_provider(settings, exporter)
    except Exception as e:
        raise TelemetryInitError(f"Failed to build tracer provider: {e}") from e

    _register_global_provider(provider)

    try:
        install_logging_pipeline(settings.log_filter, DEFAULT_LOG_FILTER, stream)
    except TelemetryAlreadyInitializedError:
        provider.shutdown()
        raise

    handle = TelemetryHandle(settings, ServiceMetadata.from_settings(settings), provider)

    logger.info("Telemetry initialized", extra={
        "extra_data": {
            "service_name": settings.service_name,
            "service_version": settings.service_version,
            "environment": settings.environment,
            "exporter_endpoint": settings.exporter_endpoint,
        }
    })
    _announce("Datadog APM initialized successfully")
    return handle


def shutdown_telemetry(handle: TelemetryHandle) -> None:
    """
    Flush buffered spans and close the tracer provider.

    Blocks until the spans are exported or the configured shutdown timeout
    elapses. Failures are logged, never raised: losing spans on shutdown
    must not stop the process from exiting. A second call does nothing.

    Args:
        handle: The handle returned by init_telemetry()
    """
    global _state

    with _lock:
        if handle.is_shut_down:
            already_shut_down = True
        else:
            already_shut_down = False
            handle._shut_down = True
            if handle is _handle:
                _state = TelemetryState.SHUTTING_DOWN

    if already_shut_down:
        logger.warning("Telemetry shutdown requested more than once; ignoring")
        return

    _announce("Shutting down telemetry...")
    timeout = handle.settings.shutdown_timeout_seconds
    try:
        flushed = handle.provider.force_flush(timeout_millis=int(timeout * 1000))
        if not flushed:
            logger.warning("Timed out flushing spans during shutdown", extra={
                "extra_data": {"timeout_seconds": timeout}
            })
        handle.provider.shutdown()
    except Exception as e:
        logger.error(
            "Error shutting down telemetry",
            extra={"extra_data": {"error": str(e)}},
            exc_info=True,
        )
        _announce(f"Error shutting down telemetry: {e!r}")
    else:
        _announce("Telemetry shutdown complete")
    finally:
        with _lock:
            if handle is _handle:
                _state = TelemetryState.SHUTDOWN


def get_telemetry_state() -> TelemetryState:
    return _state


def get_telemetry_handle() -> Optional[TelemetryHandle]:
    """
    Get the handle of the running telemetry subsystem.

    Returns:
        The handle, or None if telemetry was not initialized
    """
    return _handle


def reset_telemetry_state() -> None:
    """
    Return to UNINITIALIZED, closing any live provider and removing the
    logging pipeline.

    This is primarily useful for testing, where each test initializes
    telemetry with its own exporter.
    """
    global _state, _handle

    with _lock:
        handle = _handle
        _handle = None
        _state = TelemetryState.UNINITIALIZED

    if handle is not None and not handle.is_shut_down:
        handle._shut_down = True
        handle.provider.shutdown()
    uninstall_logging_pipeline()
