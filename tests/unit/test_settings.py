"""
Unit tests for the configuration settings module.

Tests cover:
- Default configuration in development
- Point store backend requirements
- Invalid field format validation
- Environment-specific startup validation
"""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from config.settings import (
    ConfigurationError,
    Environment,
    PointStoreBackend,
    Settings,
    TimestampPolicy,
    _detect_environment,
    _get_env_files,
    clear_settings_cache,
    create_settings_for_environment,
    get_settings,
    validate_startup,
)

ELASTIC_ENV = {
    "POINT_STORE_BACKEND": "elasticsearch",
    "ELASTIC_ENDPOINT": "https://elasticsearch.example.com:9200",
    "ELASTIC_API_KEY": "test-api-key-12345",
}


def make_settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


class TestSettings:
    """Tests for the Settings class."""

    def test_default_values_are_applied(self):
        with patch.dict(os.environ, {}, clear=True):
            settings = make_settings()

        assert settings.environment == Environment.DEVELOPMENT
        assert settings.point_store_backend == PointStoreBackend.MEMORY
        assert settings.elastic_index == "location_reports"
        assert settings.elastic_history_page_size == 5000
        assert settings.max_speed_mph == 150.0
        assert settings.short_interval_seconds == 2.0
        assert settings.short_interval_max_jump_miles == 0.1
        assert settings.jitter_threshold_miles == 0.0093
        assert settings.max_report_age_hours == 12.0
        assert settings.future_tolerance_seconds == 120.0
        assert settings.timestamp_policy == TimestampPolicy.CLIENT_WHEN_PRESENT
        assert settings.ingestion_max_attempts == 3
        assert settings.geocoding_timeout_seconds == 5.0
        assert settings.facility_proximity_meters == 100.0
        assert settings.rate_limit_requests_per_minute == 100
        assert settings.rate_limit_location_reports_per_minute == 60
        assert settings.log_level == "INFO"
        assert settings.otel_service_name == "courier-tracking"
        assert settings.cors_origins == ["http://localhost:3000"]

    def test_elasticsearch_backend_loads_from_environment(self):
        with patch.dict(os.environ, ELASTIC_ENV, clear=True):
            settings = make_settings()

        assert settings.point_store_backend == PointStoreBackend.ELASTICSEARCH
        assert settings.elastic_endpoint == "https://elasticsearch.example.com:9200"
        assert settings.elastic_api_key == "test-api-key-12345"

    @pytest.mark.parametrize("missing", ["ELASTIC_ENDPOINT", "ELASTIC_API_KEY"])
    def test_elasticsearch_backend_requires_credentials(self, missing):
        env = {k: v for k, v in ELASTIC_ENV.items() if k != missing}

        with patch.dict(os.environ, env, clear=True):
            with pytest.raises(ValidationError) as exc_info:
                make_settings()

        assert missing.lower() in str(exc_info.value)

    def test_blank_secrets_become_none(self):
        settings = make_settings(geocoding_api_key='  ""  ', elastic_api_key="")

        assert settings.geocoding_api_key is None
        assert settings.elastic_api_key is None

    def test_invalid_elastic_endpoint_url_raises_error(self):
        with pytest.raises(ValidationError):
            make_settings(elastic_endpoint="elasticsearch.example.com:9200")

    def test_log_level_is_normalised(self):
        assert make_settings(log_level=" debug ").log_level == "DEBUG"

    def test_invalid_log_level_raises_error(self):
        with pytest.raises(ValidationError):
            make_settings(log_level="VERBOSE")

    def test_timestamp_policy_from_environment(self):
        with patch.dict(os.environ, {"TIMESTAMP_POLICY": "server"}, clear=True):
            assert make_settings().timestamp_policy == TimestampPolicy.SERVER

    @pytest.mark.parametrize("field,value", [
        ("max_speed_mph", 0),
        ("jitter_threshold_miles", -0.1),
        ("ingestion_max_attempts", 0),
        ("geocoding_timeout_seconds", 0),
        ("elastic_history_page_size", 0),
        ("facility_proximity_meters", 0),
    ])
    def test_threshold_bounds(self, field, value):
        with pytest.raises(ValidationError):
            make_settings(**{field: value})

    @pytest.mark.parametrize("origin", ["*", "https://*.example.com"])
    def test_cors_origins_rejects_wildcards(self, origin):
        with pytest.raises(ValidationError) as exc_info:
            make_settings(cors_origins=[origin])

        assert "Wildcard" in str(exc_info.value)

    def test_cors_origins_rejects_invalid_url_format(self):
        with pytest.raises(ValidationError):
            make_settings(cors_origins=["dispatch.example.com"])


class TestConfigurationError:
    """Tests for the ConfigurationError exception."""

    def test_error_message_with_missing_and_invalid_fields(self):
        error = ConfigurationError(
            "Configuration failed",
            missing_fields=["elastic_endpoint"],
            invalid_fields={"log_level": "Invalid level"},
        )

        message = str(error)
        assert "Configuration failed" in message
        assert "Missing required fields: elastic_endpoint" in message
        assert "log_level: Invalid level" in message


class TestGetSettings:
    """Tests for the get_settings function."""

    def setup_method(self):
        clear_settings_cache()

    def teardown_method(self):
        clear_settings_cache()

    def test_get_settings_is_cached(self):
        with patch.dict(os.environ, {}, clear=True):
            first = get_settings()
            second = get_settings()

        assert isinstance(first, Settings)
        assert first is second

    def test_clear_settings_cache_allows_reload(self):
        with patch.dict(os.environ, {"LOG_LEVEL": "DEBUG"}, clear=True):
            assert get_settings().log_level == "DEBUG"

        clear_settings_cache()

        with patch.dict(os.environ, {"LOG_LEVEL": "ERROR"}, clear=True):
            assert get_settings().log_level == "ERROR"

    def test_invalid_config_raises_configuration_error(self):
        with patch.dict(os.environ, {"POINT_STORE_BACKEND": "elasticsearch"}, clear=True):
            with pytest.raises(ConfigurationError) as exc_info:
                get_settings()

        assert "development" in str(exc_info.value)


class TestValidateStartup:
    """Tests for the validate_startup function."""

    def test_development_defaults_are_valid(self):
        validate_startup(make_settings())

    def test_jump_limit_must_exceed_jitter(self):
        settings = make_settings(short_interval_max_jump_miles=0.005, jitter_threshold_miles=0.0093)

        with pytest.raises(ConfigurationError) as exc_info:
            validate_startup(settings)

        assert "short_interval_max_jump_miles" in exc_info.value.invalid_fields

    def test_staging_requires_geocoding_key(self):
        settings = make_settings(environment=Environment.STAGING)

        with pytest.raises(ConfigurationError) as exc_info:
            validate_startup(settings)

        assert set(exc_info.value.invalid_fields) == {"geocoding_api_key"}

    def test_production_rejects_memory_store_and_localhost_cors(self):
        settings = make_settings(environment=Environment.PRODUCTION, geocoding_api_key="key")

        with pytest.raises(ConfigurationError) as exc_info:
            validate_startup(settings)

        assert set(exc_info.value.invalid_fields) == {"point_store_backend", "cors_origins"}

    def test_production_with_full_config_is_valid(self):
        with patch.dict(os.environ, ELASTIC_ENV, clear=True):
            settings = make_settings(
                environment=Environment.PRODUCTION,
                geocoding_api_key="key",
                cors_origins=["https://dispatch.example.com"],
            )

        validate_startup(settings)


class TestEnvironmentSpecificConfiguration:
    """Tests for environment-specific configuration loading."""

    @pytest.mark.parametrize("value,expected", [
        ("development", Environment.DEVELOPMENT),
        ("staging", Environment.STAGING),
        (" PRODUCTION ", Environment.PRODUCTION),
        ("invalid_env", Environment.DEVELOPMENT),
    ])
    def test_detect_environment(self, value, expected):
        with patch.dict(os.environ, {"ENVIRONMENT": value}, clear=True):
            assert _detect_environment() == expected

    def test_detect_environment_defaults_to_development(self):
        with patch.dict(os.environ, {}, clear=True):
            assert _detect_environment() == Environment.DEVELOPMENT

    @pytest.mark.parametrize("environment,env_file", [
        (Environment.DEVELOPMENT, ".env.development"),
        (Environment.STAGING, ".env.staging"),
        (Environment.PRODUCTION, ".env.production"),
    ])
    def test_get_env_files(self, environment, env_file):
        assert _get_env_files(environment) == (".env", env_file)

    def test_create_settings_auto_detects_environment(self):
        with patch.dict(os.environ, {"ENVIRONMENT": "staging"}, clear=True):
            settings = create_settings_for_environment()

        assert settings.environment == Environment.STAGING
