"""
Trace-correlated logging.

TraceLogger wraps a stdlib logger. Every call looks up the span active for
the calling task and, when there is a valid one, adds the Datadog correlation
fields before handing the record to the logging pipeline:

- dd.trace_id: low 64 bits of the trace id, decimal
- dd.span_id: span id, decimal
- dd.service, dd.env, dd.version: service metadata

Outside a span the caller's fields are forwarded untouched.

Example:
    logger = telemetry.get_logger(__name__)
    with telemetry.span("get_user"):
        logger.info("Fetching user", user_id=user_id)
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

from config.settings import APP_VERSION, DEFAULT_ENVIRONMENT, DEFAULT_SERVICE_NAME
from telemetry.context import current_trace_ids

DD_TRACE_ID = "dd.trace_id"
DD_SPAN_ID = "dd.span_id"
DD_SERVICE = "dd.service"
DD_ENV = "dd.env"
DD_VERSION = "dd.version"


@dataclass(frozen=True)
class ServiceMetadata:
    """
    Static service identity attached to every correlated log event.

    Attributes:
        service: Service name (DD_SERVICE)
        env: Deployment environment (DD_ENV)
        version: Service version (DD_VERSION)
    """
    service: str
    env: str
    version: str

    @classmethod
    def from_settings(cls, settings: Any) -> "ServiceMetadata":
        """Build metadata from application settings."""
        return cls(
            service=settings.service_name,
            env=settings.environment,
            version=settings.service_version,
        )

    @classmethod
    def from_env(cls) -> "ServiceMetadata":
        """Read metadata from the DD_* environment variables, with defaults."""
        return cls(
            service=os.environ.get("DD_SERVICE", DEFAULT_SERVICE_NAME),
            env=os.environ.get("DD_ENV", DEFAULT_ENVIRONMENT),
            version=os.environ.get("DD_VERSION", APP_VERSION),
        )

    def to_log_fields(self) -> Dict[str, str]:
        return {
            DD_SERVICE: self.service,
            DD_ENV: self.env,
            DD_VERSION: self.version,
        }


def correlation_fields(metadata: Optional[ServiceMetadata] = None) -> Dict[str, str]:
    """
    Build the dd.* fields for the current span.

    Args:
        metadata: Service metadata to attach. Read fresh from the environment
                 when not given.

    Returns:
        The correlation fields, or an empty dict when no valid span is active
    """
    ids = current_trace_ids()
    if ids is None:
        return {}

    trace_id, span_id = ids
    fields = {DD_TRACE_ID: trace_id, DD_SPAN_ID: span_id}
    fields.update((metadata or ServiceMetadata.from_env()).to_log_fields())
    return fields


class TraceLogger:
    """
    Logger wrapper that injects trace context into every event.

    Structured fields are passed as keyword arguments and travel to the JSON
    formatter in the record's ``extra_data`` attribute. Caller fields win over
    injected ones if a caller ever uses a dd.* key itself.
    """

    def __init__(self, logger: logging.Logger, metadata: Optional[ServiceMetadata] = None):
        """
        Initialize the wrapper.

        Args:
            logger: The stdlib logger records are forwarded to
            metadata: Cached service metadata. When omitted, metadata is read
                     from the environment on each correlated call.
        """
        self._logger = logger
        self._metadata = metadata

    @property
    def name(self) -> str:
        return self._logger.name

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def isEnabledFor(self, level: int) -> bool:
        return self._logger.isEnabledFor(level)

    def _emit(self, level: int, msg: str, args: tuple, exc_info: Any,
              fields: Dict[str, Any]) -> None:
        if not self._logger.isEnabledFor(level):
            return

        injected = correlation_fields(self._metadata)
        if injected:
            fields = {**injected, **fields}

        # stacklevel 3 skips _emit and the public method so the record points
        # at the caller
        self._logger.log(
            level,
            msg,
            *args,
            exc_info=exc_info,
            extra={"extra_data": fields},
            stacklevel=3,
        )

    def log(self, level: int, msg: str, /, *args: Any, exc_info: Any = None, **fields: Any) -> None:
        """
        Log ``msg`` at ``level`` with structured ``fields``.

        Args:
            level: stdlib logging level
            msg: Message, %-formatted with args like stdlib logging
            exc_info: Optional exception info, as for stdlib logging
            **fields: Structured fields for the event
        """
        self._emit(level, msg, args, exc_info, fields)

    def debug(self, msg: str, /, *args: Any, **fields: Any) -> None:
        self._emit(logging.DEBUG, msg, args, fields.pop("exc_info", None), fields)

    def info(self, msg: str, /, *args: Any, **fields: Any) -> None:
        self._emit(logging.INFO, msg, args, fields.pop("exc_info", None), fields)

    def warning(self, msg: str, /, *args: Any, **fields: Any) -> None:
        self._emit(logging.WARNING, msg, args, fields.pop("exc_info", None), fields)

    def error(self, msg: str, /, *args: Any, **fields: Any) -> None:
        self._emit(logging.ERROR, msg, args, fields.pop("exc_info", None), fields)

    def exception(self, msg: str, /, *args: Any, **fields: Any) -> None:
        """Log at ERROR with the active exception's traceback."""
        fields.pop("exc_info", None)
        self._emit(logging.ERROR, msg, args, True, fields)


def get_trace_logger(name: str, metadata: Optional[ServiceMetadata] = None) -> TraceLogger:
    """
    Get a trace-correlated logger for ``name``.

    Args:
        name: Logger name (typically the module name)
        metadata: Optional cached service metadata

    Returns:
        TraceLogger wrapping logging.getLogger(name)
    """
    return TraceLogger(logging.getLogger(name), metadata)
