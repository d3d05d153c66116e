"""
The structured logging pipeline.

Records pass through three stages, in order:

1. Level filter: logger levels set from a filter expression such as
   ``info,api=debug``. A bare level sets the root level and ``target=level``
   sets the level of one logger.
2. Span bridge: a handler filter that stamps the record with the current span
   names and records the event on the active OpenTelemetry span, so log lines
   also show up in the trace.
3. JSON sink: one JSON object per line with timestamp, level, target, message,
   thread and span information, plus the record's structured fields.

The pipeline is installed on the root logger once per process.
"""

import json
import logging
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, IO, List, Optional

from opentelemetry import trace

from telemetry.context import current_span_names, get_request_id
from telemetry.exceptions import TelemetryAlreadyInitializedError

logger = logging.getLogger(__name__)

# Level used for the "off" directive: above CRITICAL, so nothing passes
LEVEL_OFF = logging.CRITICAL + 10

# Span fields are only present inside a span
SPAN_KEYS = ("span", "spans")

LEVEL_NAMES: Dict[str, int] = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
    "off": LEVEL_OFF,
}


@dataclass
class LogFilter:
    """
    Parsed log filter expression.

    Attributes:
        default_level: Level for the root logger
        targets: Per-logger levels keyed by logger name
    """
    default_level: int = logging.INFO
    targets: Dict[str, int] = field(default_factory=dict)

    def apply(self, root: Optional[logging.Logger] = None) -> List[logging.Logger]:
        """
        Set logger levels according to this filter.

        Returns:
            The loggers whose level was changed, root first
        """
        root = root or logging.getLogger()
        root.setLevel(self.default_level)
        touched = [root]
        for target, level in self.targets.items():
            target_logger = logging.getLogger(target)
            target_logger.setLevel(level)
            touched.append(target_logger)
        return touched


def _parse_level(value: str, expression: str) -> int:
    level = LEVEL_NAMES.get(value.strip().lower())
    if level is None:
        raise ValueError(f"unknown log level {value!r} in filter {expression!r}")
    return level


def parse_log_filter(expression: str) -> LogFilter:
    """
    Parse a filter expression like ``info,api=debug,uvicorn.access=warn``.

    Directives are comma separated. ``::`` is accepted as a module separator
    and mapped to ``.``.

    Raises:
        ValueError: If the expression is empty or contains an invalid directive
    """
    directives = [d.strip() for d in expression.split(",") if d.strip()]
    if not directives:
        raise ValueError("log filter expression is empty")

    log_filter = LogFilter()
    for directive in directives:
        if "=" in directive:
            target, _, level = directive.partition("=")
            target = target.strip().replace("::", ".")
            if not target:
                raise ValueError(f"missing target in directive {directive!r}")
            log_filter.targets[target] = _parse_level(level, expression)
        else:
            log_filter.default_level = _parse_level(directive, expression)
    return log_filter


def resolve_log_filter(expression: Optional[str], fallback: str) -> LogFilter:
    """
    Parse ``expression``, falling back to ``fallback`` when it is unset or invalid.
    """
    if expression:
        try:
            return parse_log_filter(expression)
        except ValueError as e:
            # The pipeline is not installed yet, so this goes to stderr
            print(f"Invalid log filter {expression!r}: {e}; using {fallback!r}",
                  file=sys.stderr)
    return parse_log_filter(fallback)


class SpanBridgeFilter(logging.Filter):
    """
    Handler filter linking log records to the active span.

    Stamps each record with ``span_names`` and adds the event to the current
    span when that span is recording. Always lets the record through.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.span_names = current_span_names()

        span = trace.get_current_span()
        if span.is_recording():
            try:
                message = record.getMessage()
            except Exception:
                # Bad format args; the JSON sink reports them through handleError
                message = str(record.msg)
            try:
                span.add_event(
                    message,
                    attributes={
                        "level": record.levelname,
                        "target": record.name,
                    },
                )
            except Exception as e:
                # Logging from here would re-enter this filter
                print(f"Failed to record log event on span: {e!r}", file=sys.stderr)
        return True


class JSONFormatter(logging.Formatter):
    """
    Custom log formatter that outputs logs in JSON format.

    Each log entry contains:
    - timestamp: ISO 8601 formatted UTC timestamp
    - level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - target: Name of the logger that produced the entry
    - message: The log message
    - thread_id / thread_name: The emitting thread
    - span / spans: Current span name and all active span names, outermost
      first (only inside a span)
    - request_id: Correlation ID of the in-flight request (only when set)

    Structured fields attached through the 'extra_data' attribute are merged
    into the top level, which is where the dd.* correlation fields end up.
    They never replace the schema keys above.
    """

    def format(self, record: logging.LogRecord) -> str:
        """
        Format a log record as a JSON string.

        Args:
            record: The log record to format

        Returns:
            JSON-formatted string containing the log entry
        """
        # Structured fields go in first so the schema keys below always win
        log_data: Dict[str, Any] = dict(getattr(record, "extra_data", None) or {})
        for key in SPAN_KEYS:
            log_data.pop(key, None)

        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        log_data.update({
            "timestamp": timestamp.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "target": record.name,
            "message": record.getMessage(),
            "thread_id": record.thread,
            "thread_name": record.threadName,
        })

        span_names = getattr(record, "span_names", None)
        if span_names is None:
            span_names = current_span_names()
        if span_names:
            log_data["span"] = span_names[-1]
            log_data["spans"] = list(span_names)

        request_id = get_request_id()
        if request_id:
            log_data["request_id"] = request_id

        # Include exception information if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Include stack trace if present (for non-exception stack info)
        if record.stack_info:
            log_data["stack_trace"] = record.stack_info

        return json.dumps(log_data, default=str)


@dataclass
class InstalledPipeline:
    """What install_logging_pipeline changed, so it can be undone."""
    handler: logging.Handler
    loggers: List[logging.Logger]
    previous_root_level: int


_installed: Optional[InstalledPipeline] = None


def install_logging_pipeline(
    filter_expression: Optional[str],
    fallback_expression: str,
    stream: Optional[IO[str]] = None,
) -> InstalledPipeline:
    """
    Install the pipeline on the root logger.

    Existing root handlers are removed to avoid duplicate output.

    Args:
        filter_expression: Configured filter expression
        fallback_expression: Expression used when the configured one is invalid
        stream: Output stream for the JSON sink, stdout by default

    Raises:
        TelemetryAlreadyInitializedError: If the pipeline is already installed
    """
    global _installed

    if _installed is not None:
        raise TelemetryAlreadyInitializedError(
            "logging pipeline is already installed"
        )

    root_logger = logging.getLogger()
    previous_root_level = root_logger.level

    log_filter = resolve_log_filter(filter_expression, fallback_expression)
    touched = log_filter.apply(root_logger)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.addFilter(SpanBridgeFilter())
    handler.setFormatter(JSONFormatter())
    root_logger.addHandler(handler)

    _installed = InstalledPipeline(
        handler=handler,
        loggers=touched,
        previous_root_level=previous_root_level,
    )
    logger.debug("Logging pipeline installed", extra={
        "extra_data": {
            "default_level": logging.getLevelName(log_filter.default_level),
            "targets": {k: logging.getLevelName(v) for k, v in log_filter.targets.items()},
        }
    })
    return _installed


def uninstall_logging_pipeline() -> None:
    """
    Remove the installed pipeline and restore logger levels.

    This is primarily useful for testing.
    """
    global _installed

    if _installed is None:
        return

    root_logger = logging.getLogger()
    root_logger.removeHandler(_installed.handler)
    for touched in _installed.loggers[1:]:
        touched.setLevel(logging.NOTSET)
    root_logger.setLevel(_installed.previous_root_level)
    _installed = None


def is_logging_pipeline_installed() -> bool:
    return _installed is not None
