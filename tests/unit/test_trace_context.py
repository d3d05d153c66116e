"""
Unit tests for trace-correlated logging.

Tests cover:
- dd.* field injection inside spans
- No injection outside spans
- Caller field precedence
- Level short-circuiting
"""

import logging
import os
from unittest.mock import patch

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st
from opentelemetry import trace

from telemetry.identifiers import format_span_id, format_trace_id
from telemetry.trace_context import (
    DD_ENV,
    DD_SERVICE,
    DD_SPAN_ID,
    DD_TRACE_ID,
    DD_VERSION,
    ServiceMetadata,
    TraceLogger,
    correlation_fields,
    get_trace_logger,
)

DD_KEYS = {DD_TRACE_ID, DD_SPAN_ID, DD_SERVICE, DD_ENV, DD_VERSION}

field_names = st.text(
    alphabet=st.characters(whitelist_categories=("Ll",)), min_size=1, max_size=10
).filter(lambda name: name != "exc_info")


class TestServiceMetadata:
    """Tests for ServiceMetadata."""

    def test_from_settings(self, telemetry_settings):
        metadata = ServiceMetadata.from_settings(telemetry_settings)
        assert metadata == ServiceMetadata("test-service", "test", "1.2.3")

    def test_from_env_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            metadata = ServiceMetadata.from_env()
        assert metadata.service == "rust-datadog-otel"
        assert metadata.env == "development"
        assert metadata.version == "0.1.0"

    def test_to_log_fields(self):
        fields = ServiceMetadata("svc", "prod", "2.0").to_log_fields()
        assert fields == {DD_SERVICE: "svc", DD_ENV: "prod", DD_VERSION: "2.0"}


class TestCorrelationFields:
    """Tests for correlation_fields."""

    def test_empty_outside_span(self):
        assert correlation_fields(ServiceMetadata("svc", "prod", "2.0")) == {}

    def test_empty_for_invalid_span(self):
        with trace.use_span(trace.INVALID_SPAN):
            assert correlation_fields() == {}

    def test_fields_inside_span(self, telemetry):
        with telemetry.span("work") as span:
            fields = correlation_fields(telemetry.metadata)
            span_context = span.get_span_context()

        assert fields[DD_TRACE_ID] == format_trace_id(span_context.trace_id)
        assert fields[DD_SPAN_ID] == format_span_id(span_context.span_id)
        assert fields[DD_SERVICE] == "test-service"
        assert fields[DD_ENV] == "test"
        assert fields[DD_VERSION] == "1.2.3"

    def test_metadata_read_from_env_when_not_given(self, telemetry):
        with telemetry.span("work"):
            with patch.dict(os.environ, {"DD_SERVICE": "other", "DD_ENV": "qa"}):
                fields = correlation_fields()
        assert fields[DD_SERVICE] == "other"
        assert fields[DD_ENV] == "qa"


class TestTraceLogger:
    """Tests for TraceLogger output through the JSON pipeline."""

    def test_injects_fields_in_span(self, telemetry, read_logs):
        logger = telemetry.get_logger("api.test")
        with telemetry.span("work") as span:
            logger.info("inside", user_id="42")
            span_context = span.get_span_context()

        entry = read_logs()[-1]
        assert entry["message"] == "inside"
        assert entry["user_id"] == "42"
        assert entry[DD_TRACE_ID] == format_trace_id(span_context.trace_id)
        assert entry[DD_SPAN_ID] == format_span_id(span_context.span_id)
        assert entry[DD_SERVICE] == "test-service"

    def test_no_injection_outside_span(self, telemetry, read_logs):
        telemetry.get_logger("api.test").info("outside", user_id="42")

        entry = read_logs()[-1]
        assert entry["message"] == "outside"
        assert entry["user_id"] == "42"
        assert not DD_KEYS & entry.keys()

    def test_caller_field_wins(self, telemetry, read_logs):
        with telemetry.span("work"):
            telemetry.get_logger("api.test").info("override", **{DD_SERVICE: "custom"})

        assert read_logs()[-1][DD_SERVICE] == "custom"

    def test_percent_args(self, telemetry, read_logs):
        telemetry.get_logger("api.test").info("user %s has %d orders", "bob", 3)
        assert read_logs()[-1]["message"] == "user bob has 3 orders"

    def test_exception_includes_traceback(self, telemetry, read_logs):
        logger = telemetry.get_logger("api.test")
        try:
            raise ValueError("bad value")
        except ValueError:
            logger.exception("failed", step="parse")

        entry = read_logs()[-1]
        assert entry["level"] == "ERROR"
        assert entry["step"] == "parse"
        assert "ValueError: bad value" in entry["exception"]

    def test_disabled_level_skips_lookup(self, telemetry):
        stdlib_logger = logging.getLogger("quiet.module")
        stdlib_logger.setLevel(logging.WARNING)
        try:
            logger = TraceLogger(stdlib_logger)
            with patch("telemetry.trace_context.current_trace_ids") as lookup:
                with telemetry.span("work"):
                    logger.debug("not emitted")
                lookup.assert_not_called()
        finally:
            stdlib_logger.setLevel(logging.NOTSET)

    def test_record_points_at_caller(self, caplog):
        logger = get_trace_logger("caller.test")
        with caplog.at_level(logging.INFO, logger="caller.test"):
            logger.info("where")

        assert caplog.records[-1].funcName == "test_record_points_at_caller"

    def test_fields_travel_as_extra_data(self, caplog):
        logger = get_trace_logger("extra.test")
        with caplog.at_level(logging.INFO, logger="extra.test"):
            logger.warning("fields", a=1)

        assert caplog.records[-1].extra_data == {"a": 1}

    def test_msg_and_level_usable_as_field_names(self, telemetry, read_logs):
        logger = telemetry.get_logger("api.test")
        logger.info("hello", msg="field", args="more")
        logger.log(logging.WARNING, "again", level="custom")

        first, second = read_logs()[-2:]
        assert first["message"] == "hello"
        assert first["msg"] == "field"
        assert first["args"] == "more"
        assert second["level"] == "WARNING"

    def test_name_and_level_passthrough(self):
        logger = get_trace_logger("passthrough.test")
        assert logger.name == "passthrough.test"
        assert logger.logger is logging.getLogger("passthrough.test")



class _RecordCollector(logging.Handler):
    def __init__(self):
        super().__init__(logging.DEBUG)
        self.records = []

    def emit(self, record):
        self.records.append(record)


@pytest.fixture(scope="module")
def tracer():
    from opentelemetry.sdk.trace import TracerProvider
    return TracerProvider().get_tracer("property-tests")


class TestCorrelationProperties:
    """Property-based tests for log correlation."""

    METADATA = ServiceMetadata("prop-service", "prop", "9.9.9")

    def _collect(self, name):
        stdlib_logger = logging.getLogger(name)
        stdlib_logger.setLevel(logging.DEBUG)
        collector = _RecordCollector()
        stdlib_logger.addHandler(collector)
        return stdlib_logger, collector

    def _release(self, stdlib_logger, collector):
        stdlib_logger.removeHandler(collector)
        stdlib_logger.setLevel(logging.NOTSET)

    @settings(max_examples=50)
    @given(fields=st.dictionaries(field_names, st.integers(), max_size=5))
    def test_span_events_carry_ids_and_caller_fields(self, tracer, fields):
        stdlib_logger, collector = self._collect("prop.inside")
        try:
            with tracer.start_as_current_span("prop") as span:
                TraceLogger(stdlib_logger, self.METADATA).info("event", **fields)
                span_context = span.get_span_context()
        finally:
            self._release(stdlib_logger, collector)

        data = collector.records[-1].extra_data
        assert data[DD_TRACE_ID] == format_trace_id(span_context.trace_id)
        assert data[DD_SPAN_ID] == format_span_id(span_context.span_id)
        assert data[DD_SERVICE] == "prop-service"
        for key, value in fields.items():
            assert data[key] == value

    @settings(max_examples=50)
    @given(fields=st.dictionaries(field_names, st.integers(), max_size=5))
    def test_events_outside_span_are_untouched(self, fields):
        stdlib_logger, collector = self._collect("prop.outside")
        try:
            TraceLogger(stdlib_logger, self.METADATA).info("event", **fields)
        finally:
            self._release(stdlib_logger, collector)

        assert collector.records[-1].extra_data == fields

    @settings(max_examples=25)
    @given(depth=st.integers(min_value=1, max_value=6))
    def test_nested_spans_share_trace_id(self, tracer, depth):
        stdlib_logger, collector = self._collect("prop.nested")
        logger = TraceLogger(stdlib_logger, self.METADATA)
        try:
            self._log_nested(tracer, logger, depth)
        finally:
            self._release(stdlib_logger, collector)

        trace_ids = {r.extra_data[DD_TRACE_ID] for r in collector.records}
        span_ids = [r.extra_data[DD_SPAN_ID] for r in collector.records]
        assert len(trace_ids) == 1
        assert len(set(span_ids)) == depth

    def _log_nested(self, tracer, logger, depth):
        if depth == 0:
            return
        with tracer.start_as_current_span(f"level-{depth}"):
            logger.info("level", depth=depth)
            self._log_nested(tracer, logger, depth - 1)
