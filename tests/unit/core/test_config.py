"""Unit tests for tracetour/core/config.py."""

import pytest
import pytest_check
from pydantic import ValidationError

from tracetour.core.config import (
    CacheConfig,
    DatabaseConfig,
    Settings,
    get_settings,
)


@pytest.mark.unit
class TestSettingsDefaults:
    """Default values and environment overrides."""

    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test the development defaults."""
        monkeypatch.delenv("ENVIRONMENT", raising=False)
        settings = Settings(_env_file=None)  # type: ignore[call-arg]

        with pytest_check.check:
            assert settings.app_name == "TraceTour"
        with pytest_check.check:
            assert settings.api_port == 8080
        with pytest_check.check:
            assert settings.environment == "development"
        with pytest_check.check:
            assert settings.problem_type_base == "https://tracetour.example.com/errors"
        with pytest_check.check:
            assert settings.log_config.log_formatter_type == "console"
        with pytest_check.check:
            assert settings.observability_config.exporter_type == "console"
        with pytest_check.check:
            assert settings.observability_config.trace_sample_rate == 1.0
        with pytest_check.check:
            assert settings.cache_config.redis_url == "redis://localhost:6379/0"
        with pytest_check.check:
            assert settings.log_config.excluded_paths == ["/health"]

    def test_nested_env_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that nested settings are read with the '__' delimiter."""
        monkeypatch.setenv("LOG_CONFIG__LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("OBSERVABILITY_CONFIG__ENABLE_TRACING", "false")
        monkeypatch.setenv("CACHE_CONFIG__REDIS_URL", "redis://cache:6379/1")
        monkeypatch.setenv("DEMO_SLOW_DELAY_SECONDS", "0.5")

        settings = Settings(_env_file=None)  # type: ignore[call-arg]

        assert settings.log_config.log_level == "DEBUG"
        assert settings.observability_config.enable_tracing is False
        assert settings.cache_config.redis_url == "redis://cache:6379/1"
        assert settings.demo_slow_delay_seconds == 0.5

    def test_production_auto_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that production switches to JSON logs, OTLP and 10% sampling."""
        monkeypatch.setenv("ENVIRONMENT", "production")

        settings = Settings(_env_file=None)  # type: ignore[call-arg]

        assert settings.log_config.log_formatter_type == "json"
        assert settings.observability_config.exporter_type == "otlp"
        assert settings.observability_config.trace_sample_rate == 0.1

    def test_problem_type_base_trailing_slash_is_stripped(self) -> None:
        """Test that problem type URIs never contain a double slash."""
        settings = Settings(  # type: ignore[call-arg]
            _env_file=None, problem_type_base="https://errors.example.org/"
        )

        assert settings.problem_type_base == "https://errors.example.org"

    def test_empty_docs_url_disables_docs(self) -> None:
        """Test that an empty docs URL becomes None."""
        settings = Settings(_env_file=None, docs_url="")  # type: ignore[call-arg]

        assert settings.docs_url is None

    def test_get_settings_is_cached(self) -> None:
        """Test that get_settings returns the same instance until cleared."""
        assert get_settings() is get_settings()


@pytest.mark.unit
class TestBackendConfigValidation:
    """URL validation for the database and the cache."""

    def test_database_url_requires_asyncpg(self) -> None:
        """Test that a synchronous driver URL is rejected."""
        with pytest.raises(ValidationError, match="asyncpg"):
            DatabaseConfig(database_url="postgresql://u:p@localhost/db")

    def test_redis_url_scheme_is_validated(self) -> None:
        """Test that a non-Redis URL is rejected."""
        with pytest.raises(ValidationError, match="redis://"):
            CacheConfig(redis_url="http://localhost:6379")

    def test_redis_tls_url_is_accepted(self) -> None:
        """Test that rediss:// is a valid scheme."""
        assert CacheConfig(redis_url="rediss://cache:6380/0").redis_url.startswith(
            "rediss://"
        )
