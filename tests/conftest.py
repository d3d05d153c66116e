"""
Shared pytest fixtures and configuration for all tests.
"""
import io
import json
import os
from typing import Callable, Generator, List
from unittest.mock import patch

import pytest
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

# Hypothesis configuration for property-based testing
from hypothesis import settings, Verbosity, Phase

from config.settings import Settings, clear_settings_cache
from telemetry.lifecycle import TelemetryHandle, init_telemetry, reset_telemetry_state

# Configure Hypothesis profiles for different environments
# Default profile: balanced for local development
settings.register_profile(
    "default",
    max_examples=100,
    verbosity=Verbosity.normal,
    deadline=None,
    print_blob=True,  # Print failing examples for debugging
)

# CI profile: more thorough testing for continuous integration
settings.register_profile(
    "ci",
    max_examples=200,
    verbosity=Verbosity.verbose,
    deadline=None,
    print_blob=True,
    derandomize=True,  # Reproducible results in CI
)

# Debug profile: minimal examples for quick debugging
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
    print_blob=True,
    phases=[Phase.explicit, Phase.reuse, Phase.generate],  # Skip shrinking for speed
)

# Fast profile: quick smoke tests
settings.register_profile(
    "fast",
    max_examples=20,
    verbosity=Verbosity.normal,
    deadline=None,
)

# Load profile from environment variable HYPOTHESIS_PROFILE, default to "default"
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "default"))


TEST_ENV = {
    "DD_SERVICE": "test-service",
    "DD_ENV": "test",
    "DD_VERSION": "1.2.3",
    "LOG_FILTER": "debug",
}


@pytest.fixture(autouse=True)
def reset_telemetry() -> Generator[None, None, None]:
    """Leave every test with telemetry uninitialized and no cached settings."""
    yield
    reset_telemetry_state()
    clear_settings_cache()


@pytest.fixture
def telemetry_env() -> Generator[dict, None, None]:
    """Replace the environment with a known telemetry configuration."""
    with patch.dict(os.environ, TEST_ENV, clear=True):
        yield dict(TEST_ENV)


@pytest.fixture
def telemetry_settings(telemetry_env) -> Settings:
    return Settings()


@pytest.fixture
def span_exporter() -> InMemorySpanExporter:
    """Span exporter that keeps finished spans in memory."""
    return InMemorySpanExporter()


@pytest.fixture
def log_stream() -> io.StringIO:
    """Stream receiving the JSON log output."""
    return io.StringIO()


@pytest.fixture
def telemetry(telemetry_settings, span_exporter, log_stream) -> TelemetryHandle:
    """Initialized telemetry writing spans and logs to memory."""
    return init_telemetry(telemetry_settings, exporter=span_exporter, stream=log_stream)


@pytest.fixture
def read_logs(log_stream) -> Callable[[], List[dict]]:
    """Return a function parsing every JSON log line written so far."""
    def _read() -> List[dict]:
        return [
            json.loads(line)
            for line in log_stream.getvalue().splitlines()
            if line.strip()
        ]
    return _read
