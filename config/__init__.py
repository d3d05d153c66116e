# Configuration module for the Datadog OpenTelemetry demo service
from .settings import (
    APP_VERSION,
    ConfigurationError,
    Settings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    "APP_VERSION",
    "ConfigurationError",
    "Settings",
    "clear_settings_cache",
    "get_settings",
]
