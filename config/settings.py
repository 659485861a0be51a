"""
Configuration management for the courier tracking backend.

This module provides centralized configuration loading and validation using
Pydantic settings. Secrets (Elasticsearch API key, geocoding API key) are
loaded from environment variables or .env files.

Environment-specific files are layered on top of the base .env file:
.env.development, .env.staging and .env.production, selected by the
ENVIRONMENT variable.
"""

import os
from enum import Enum
from pathlib import Path
from typing import Optional, List, Tuple

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Supported deployment environments."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class PointStoreBackend(str, Enum):
    """Where accepted location reports are persisted."""
    MEMORY = "memory"
    ELASTICSEARCH = "elasticsearch"


class TimestampPolicy(str, Enum):
    """
    Which timestamp the ingestion freshness window is evaluated against.

    - CLIENT_WHEN_PRESENT: the client's recorded_at if supplied, otherwise
      the server receive time
    - SERVER: always the server receive time, which makes the window check
      pass by construction
    """
    CLIENT_WHEN_PRESENT = "client_when_present"
    SERVER = "server"


def _detect_environment() -> Environment:
    """
    Detect the current environment from the ENVIRONMENT variable.

    Returns:
        Environment: The detected environment, defaults to DEVELOPMENT if not set.
    """
    env_value = os.environ.get("ENVIRONMENT", "development").lower().strip()
    try:
        return Environment(env_value)
    except ValueError:
        return Environment.DEVELOPMENT


def _get_env_files(environment: Environment) -> Tuple[str, ...]:
    """
    Get the list of .env files to load for the given environment.

    Files are loaded in order, with later files overriding earlier ones.

    Args:
        environment: The target environment.

    Returns:
        Tuple of .env file paths to load.
    """
    env_file_map = {
        Environment.DEVELOPMENT: ".env.development",
        Environment.STAGING: ".env.staging",
        Environment.PRODUCTION: ".env.production",
    }

    env_specific_file = env_file_map.get(environment, ".env.development")

    return (".env", env_specific_file)


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Nothing is strictly required in development: the in-memory point store
    and the null geocoder are used when Elasticsearch and geocoding
    credentials are absent. Staging and production must configure them.
    """

    # Environment
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Deployment environment (development, staging, production)"
    )

    # Point store
    point_store_backend: PointStoreBackend = Field(
        default=PointStoreBackend.MEMORY,
        description="Point store backend: 'memory' or 'elasticsearch'"
    )
    elastic_endpoint: Optional[str] = Field(
        default=None,
        description="Elasticsearch endpoint URL"
    )
    elastic_api_key: Optional[str] = Field(
        default=None,
        description="Elasticsearch API key for authentication"
    )
    elastic_index: str = Field(
        default="location_reports",
        description="Index holding accepted location reports"
    )
    elastic_history_page_size: int = Field(
        default=5000,
        ge=1,
        le=10000,
        description="Reports fetched per search request when reading a shipment's history"
    )

    # Geocoding
    geocoding_api_key: Optional[str] = Field(
        default=None,
        description="Google Geocoding API key; geocoding is disabled when unset"
    )
    geocoding_base_url: str = Field(
        default="https://maps.googleapis.com/maps/api/geocode/json",
        description="Geocoding endpoint URL"
    )
    geocoding_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        le=30,
        description="Per-lookup timeout for waypoint geocoding"
    )
    facility_proximity_meters: float = Field(
        default=100.0,
        gt=0,
        description="Radius around a pickup or drop-off facility that counts as on site; capped at 500 m"
    )

    # Ingestion thresholds
    max_speed_mph: float = Field(
        default=150.0,
        gt=0,
        description="Implied speed ceiling between consecutive reports"
    )
    short_interval_seconds: float = Field(
        default=2.0,
        ge=0,
        description="Interval below which large jumps are rejected outright"
    )
    short_interval_max_jump_miles: float = Field(
        default=0.1,
        gt=0,
        description="Largest jump tolerated inside the short interval"
    )
    jitter_threshold_miles: float = Field(
        default=0.0093,
        ge=0,
        description="Movement below this distance is GPS noise and is not stored (~15 m)"
    )
    max_report_age_hours: float = Field(
        default=12.0,
        gt=0,
        description="Oldest acceptable report timestamp"
    )
    future_tolerance_seconds: float = Field(
        default=120.0,
        ge=0,
        description="How far in the future a report timestamp may be"
    )
    timestamp_policy: TimestampPolicy = Field(
        default=TimestampPolicy.CLIENT_WHEN_PRESENT,
        description="Timestamp the freshness window is evaluated against"
    )
    ingestion_max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Re-validation attempts when a concurrent write wins the race"
    )

    # Rate Limiting Configuration
    rate_limit_requests_per_minute: int = Field(
        default=100,
        ge=1,
        le=10000,
        description="Maximum API requests per minute per IP"
    )
    rate_limit_location_reports_per_minute: int = Field(
        default=60,
        ge=1,
        le=10000,
        description="Maximum location submissions per minute per caller"
    )

    # Observability Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    otel_endpoint: Optional[str] = Field(
        default=None,
        description="OpenTelemetry collector endpoint URL"
    )
    otel_service_name: str = Field(
        default="courier-tracking",
        description="Service name for OpenTelemetry traces"
    )

    # CORS Configuration
    cors_origins: List[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("elastic_endpoint")
    @classmethod
    def validate_elastic_endpoint(cls, v: Optional[str]) -> Optional[str]:
        """Validate that elastic_endpoint, when given, is an HTTP/HTTPS URL."""
        if v is None:
            return v
        v = v.strip().strip('"')
        if not v:
            return None
        if not (v.startswith("http://") or v.startswith("https://")):
            raise ValueError("elastic_endpoint must be a valid HTTP/HTTPS URL")
        return v

    @field_validator("elastic_api_key", "geocoding_api_key")
    @classmethod
    def strip_secret(cls, v: Optional[str]) -> Optional[str]:
        """Normalise blank secrets to None."""
        if v is None:
            return v
        v = v.strip().strip('"')
        return v or None

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that log_level is a valid logging level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v = v.strip().upper()
        if v not in valid_levels:
            raise ValueError(f"log_level must be one of: {', '.join(sorted(valid_levels))}")
        return v

    @field_validator("cors_origins")
    @classmethod
    def validate_cors_origins(cls, v: List[str]) -> List[str]:
        """Validate CORS origins format and reject wildcard patterns."""
        validated_origins = []
        for origin in v:
            origin = origin.strip()
            if origin == "*" or "*" in origin:
                raise ValueError(
                    f"Wildcard patterns are not allowed in CORS origins: {origin}. "
                    "Specify exact frontend domains for security."
                )
            if not (origin.startswith("http://") or origin.startswith("https://")):
                raise ValueError(
                    f"Invalid CORS origin format: {origin}. "
                    "Must start with http:// or https://"
                )
            validated_origins.append(origin)
        return validated_origins

    @model_validator(mode="after")
    def validate_point_store_config(self) -> "Settings":
        """Validate that the Elasticsearch backend has its endpoint and key."""
        if self.point_store_backend == PointStoreBackend.ELASTICSEARCH:
            missing = [
                name for name, value in (
                    ("elastic_endpoint", self.elastic_endpoint),
                    ("elastic_api_key", self.elastic_api_key),
                ) if not value
            ]
            if missing:
                raise ValueError(
                    f"{', '.join(missing)} required when point_store_backend is 'elasticsearch'"
                )
        return self


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
            parts.append("\nInvalid field values:\n" + "\n".join(invalid_parts))

        return "".join(parts)


def create_settings_for_environment(environment: Optional[Environment] = None) -> Settings:
    """
    Factory function to create Settings for a specific environment.

    Args:
        environment: Optional environment override. If not provided, detected from
                    ENVIRONMENT variable.

    Returns:
        Settings: Validated settings for the specified environment.

    Raises:
        ConfigurationError: If required settings are missing or invalid.
    """
    if environment is None:
        environment = _detect_environment()

    env_files = _get_env_files(environment)

    existing_env_files = [env_file for env_file in env_files if Path(env_file).exists()]
    if not existing_env_files:
        existing_env_files = list(env_files)

    try:
        class EnvironmentSettings(Settings):
            model_config = SettingsConfigDict(
                env_file=tuple(existing_env_files),
                env_file_encoding="utf-8",
                case_sensitive=False,
                extra="ignore"
            )

        return EnvironmentSettings()
    except Exception as e:
        missing_fields = []
        invalid_fields = {}

        # Extract field-level errors from Pydantic ValidationError
        if hasattr(e, "errors"):
            for error in e.errors():
                field_name = ".".join(str(loc) for loc in error.get("loc", [])) or "settings"
                error_type = error.get("type", "")
                error_msg = error.get("msg", str(error))

                if error_type == "missing":
                    missing_fields.append(field_name)
                else:
                    invalid_fields[field_name] = error_msg

        raise ConfigurationError(
            f"Failed to load configuration for environment '{environment.value}'",
            missing_fields=missing_fields,
            invalid_fields=invalid_fields
        ) from e


# Global settings cache
_settings_cache: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the application settings singleton.

    Returns:
        Settings: The validated application settings.

    Raises:
        ConfigurationError: If required settings are missing or invalid.
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


def validate_startup(settings: Optional[Settings] = None) -> None:
    """
    Validate all required settings at application startup.

    Args:
        settings: Settings to check; the cached settings when omitted.

    Raises:
        ConfigurationError: If any required settings are missing or invalid.
    """
    settings = settings or get_settings()

    validation_errors = {}

    if settings.short_interval_max_jump_miles <= settings.jitter_threshold_miles:
        validation_errors["short_interval_max_jump_miles"] = (
            "Must be larger than jitter_threshold_miles"
        )

    if settings.environment != Environment.DEVELOPMENT and not settings.geocoding_api_key:
        validation_errors["geocoding_api_key"] = (
            f"Geocoding API key is required in {settings.environment.value}"
        )

    # In production, ensure CORS origins are explicitly configured (not just localhost)
    if settings.environment == Environment.PRODUCTION:
        if settings.point_store_backend == PointStoreBackend.MEMORY:
            validation_errors["point_store_backend"] = (
                "The in-memory point store does not survive restarts; "
                "use 'elasticsearch' in production"
            )

        localhost_only = all(
            "localhost" in origin or "127.0.0.1" in origin
            for origin in settings.cors_origins
        )
        if localhost_only:
            validation_errors["cors_origins"] = (
                "Production environment requires non-localhost CORS origins. "
                "Configure your production frontend domain(s)."
            )

    if validation_errors:
        raise ConfigurationError(
            "Configuration validation failed during startup",
            invalid_fields=validation_errors
        )
