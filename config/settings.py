"""
Configuration management for the Datadog OpenTelemetry demo service.

This module provides centralized configuration loading and validation using Pydantic settings.
Every value has a documented default, so a bare environment yields a working
development configuration. Values are read from environment variables or .env files.

Environment variables:
- DD_SERVICE: service name (default "rust-datadog-otel")
- DD_VERSION: service version (default: application version)
- DD_ENV: deployment environment (default "development")
- DD_AGENT_HOST, falling back to HOST_IP: Datadog agent host (default "localhost")
- OTLP_PORT: agent OTLP gRPC receiver port (default 4317)
- OTEL_ENDPOINT: full exporter URL, overrides host and port
- LOG_FILTER: log filter expression (default "info,api=debug")
"""

import os
from pathlib import Path
from typing import Optional, List, Tuple

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


APP_VERSION = "0.1.0"

DEFAULT_SERVICE_NAME = "rust-datadog-otel"
DEFAULT_ENVIRONMENT = "development"
DEFAULT_AGENT_HOST = "localhost"
DEFAULT_LOG_FILTER = "info,api=debug"


def _detect_environment() -> str:
    """
    Detect the current deployment environment from the DD_ENV variable.

    Returns:
        str: The environment name, defaults to "development" if not set.
    """
    env_value = os.environ.get("DD_ENV", "").strip()
    return env_value or DEFAULT_ENVIRONMENT


def _get_env_files(environment: str) -> Tuple[str, ...]:
    """
    Get the list of .env files to load for the given environment.

    Files are loaded in order, with later files overriding earlier ones.
    The base .env file is loaded first, then the environment-specific file.

    Args:
        environment: The target environment name.

    Returns:
        Tuple of .env file paths to load.
    """
    return (".env", f".env.{environment}")


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    The Datadog variables (DD_SERVICE, DD_ENV, DD_VERSION, DD_AGENT_HOST) are
    read under their conventional names so the same configuration drives both
    the agent and this service. Only those names are read; generic variables
    such as ENVIRONMENT or SERVICE_NAME are ignored.
    """

    # Service metadata
    service_name: str = Field(
        default=DEFAULT_SERVICE_NAME,
        validation_alias="DD_SERVICE",
        description="Service name attached to traces and correlated logs"
    )
    service_version: str = Field(
        default=APP_VERSION,
        validation_alias="DD_VERSION",
        description="Service version attached to traces and correlated logs"
    )
    environment: str = Field(
        default=DEFAULT_ENVIRONMENT,
        validation_alias="DD_ENV",
        description="Deployment environment (development, staging, production, ...)"
    )

    # Exporter configuration
    agent_host: str = Field(
        default=DEFAULT_AGENT_HOST,
        validation_alias=AliasChoices("DD_AGENT_HOST", "HOST_IP"),
        description="Datadog agent host receiving OTLP traces"
    )
    otlp_port: int = Field(
        default=4317,
        ge=1,
        le=65535,
        description="OTLP gRPC receiver port on the agent"
    )
    otel_endpoint: Optional[str] = Field(
        default=None,
        description="Full OTLP collector endpoint URL, overrides agent_host/otlp_port"
    )
    shutdown_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        le=300,
        description="Upper bound for flushing buffered spans on shutdown"
    )

    # Logging configuration
    log_filter: str = Field(
        default=DEFAULT_LOG_FILTER,
        description="Log filter expression, e.g. 'info,api=debug'"
    )

    # Server configuration
    port: int = Field(
        default=8080,
        ge=1,
        le=65535,
        description="HTTP listen port"
    )

    # Note: model_config is set dynamically via create_settings_for_environment()
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("service_name", "environment", "service_version")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        """Reject blank service metadata values."""
        if not v or not v.strip():
            raise ValueError("value cannot be empty")
        return v.strip()

    @field_validator("agent_host")
    @classmethod
    def validate_agent_host(cls, v: str) -> str:
        """Validate that agent_host is a bare host name or address, not a URL."""
        v = v.strip()
        if not v:
            raise ValueError("agent_host cannot be empty")
        if "://" in v or "/" in v or any(ch.isspace() for ch in v):
            raise ValueError(
                f"agent_host must be a bare host name or IP address, got: {v!r}"
            )
        return v

    @field_validator("otel_endpoint")
    @classmethod
    def validate_otel_endpoint(cls, v: Optional[str]) -> Optional[str]:
        """Validate that otel_endpoint, when given, is a valid HTTP/HTTPS URL."""
        if v is None or not v.strip():
            return None
        v = v.strip()
        if not (v.startswith("http://") or v.startswith("https://")):
            raise ValueError("otel_endpoint must be a valid HTTP/HTTPS URL")
        if len(v.split("://", 1)[1]) == 0:
            raise ValueError("otel_endpoint is missing a host")
        return v

    @property
    def exporter_endpoint(self) -> str:
        """The OTLP endpoint spans are exported to."""
        if self.otel_endpoint:
            return self.otel_endpoint
        return f"http://{self.agent_host}:{self.otlp_port}"


class ConfigurationError(Exception):
    """Exception raised when configuration validation fails."""

    def __init__(self, message: str, missing_fields: Optional[List[str]] = None,
                 invalid_fields: Optional[dict] = None):
        self.message = message
        self.missing_fields = missing_fields or []
        self.invalid_fields = invalid_fields or {}
        super().__init__(self.format_error_message())

    def format_error_message(self) -> str:
        """Format a descriptive error message listing all issues."""
        parts = [self.message]

        if self.missing_fields:
            parts.append(f"\nMissing required fields: {', '.join(self.missing_fields)}")

        if self.invalid_fields:
            invalid_parts = [f"  - {field}: {error}" for field, error in self.invalid_fields.items()]
            parts.append(f"\nInvalid field values:\n" + "\n".join(invalid_parts))

        return "".join(parts)


def create_settings_for_environment(environment: Optional[str] = None) -> Settings:
    """
    Factory function to create Settings for a specific environment.

    This function detects the environment from the DD_ENV variable (if not provided)
    and loads the appropriate environment-specific .env file.

    Args:
        environment: Optional environment override. If not provided, detected from
                    DD_ENV variable.

    Returns:
        Settings: Validated settings for the specified environment.

    Raises:
        ConfigurationError: If settings are invalid.
    """
    if environment is None:
        environment = _detect_environment()

    env_files = [f for f in _get_env_files(environment) if Path(f).exists()]

    try:
        # Create a dynamic Settings class with the correct env_file configuration
        class EnvironmentSettings(Settings):
            model_config = SettingsConfigDict(
                env_file=tuple(env_files) or None,
                env_file_encoding="utf-8",
                case_sensitive=False,
                extra="ignore"
            )

        return EnvironmentSettings()
    except Exception as e:
        # Parse Pydantic validation errors to provide better error messages
        missing_fields = []
        invalid_fields = {}

        if hasattr(e, 'errors'):
            for error in e.errors():
                field_name = '.'.join(str(loc) for loc in error.get('loc', []))
                error_type = error.get('type', '')
                error_msg = error.get('msg', str(error))

                if error_type == 'missing':
                    missing_fields.append(field_name)
                else:
                    invalid_fields[field_name] = error_msg

        raise ConfigurationError(
            f"Failed to load configuration for environment '{environment}'",
            missing_fields=missing_fields,
            invalid_fields=invalid_fields
        ) from e


# Global settings cache
_settings_cache: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the application settings singleton.

    Settings are loaded once and cached for subsequent calls.

    Returns:
        Settings: The validated application settings.

    Raises:
        ConfigurationError: If settings are invalid.
    """
    global _settings_cache

    if _settings_cache is None:
        _settings_cache = create_settings_for_environment()

    return _settings_cache


def clear_settings_cache() -> None:
    """
    Clear the settings cache.

    This is primarily useful for testing to allow reloading settings
    with different environment variables.
    """
    global _settings_cache
    _settings_cache = None
