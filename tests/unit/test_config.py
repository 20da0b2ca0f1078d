"""
Tests for runtime settings.

Tests cover:
- Defaults
- Environment overrides with the QUOTAPOOL_ prefix
- Validation of retry parameters
- Retry policy construction
"""

import pytest
from pydantic import ValidationError

from quotapool.config import Settings, get_settings
from quotapool.coordination.retry import RetryPolicy


class TestSettings:
    """Test cases for Settings."""

    def test_defaults(self, monkeypatch):
        """Test the default configuration."""
        monkeypatch.delenv("QUOTAPOOL_DATABASE_URL", raising=False)
        settings = Settings(_env_file=None)

        assert settings.database_url == "sqlite:///./quotapool.db"
        assert settings.log_format == "console"
        assert settings.retry_max_attempts == 4
        assert settings.reconcile_interval == 30.0
        assert settings.enable_metrics is True

    def test_environment_overrides(self, monkeypatch):
        """Test that prefixed environment variables are read."""
        monkeypatch.setenv("QUOTAPOOL_DATABASE_URL", "sqlite:///tmp/pools.db")
        monkeypatch.setenv("QUOTAPOOL_RETRY_MAX_ATTEMPTS", "2")
        monkeypatch.setenv("quotapool_log_format", "json")

        settings = Settings(_env_file=None)

        assert settings.database_url == "sqlite:///tmp/pools.db"
        assert settings.retry_max_attempts == 2
        assert settings.log_format == "json"

    def test_invalid_values(self):
        """Test that nonsensical retry settings are rejected."""
        with pytest.raises(ValidationError):
            Settings(_env_file=None, retry_max_attempts=-1)
        with pytest.raises(ValidationError):
            Settings(_env_file=None, log_format="xml")

    def test_retry_policy(self):
        """Test building the compare-and-swap retry policy."""
        settings = Settings(
            _env_file=None,
            retry_max_attempts=6,
            retry_initial_delay=0.5,
            retry_exponential_base=2.0,
            retry_jitter=False,
        )

        policy = settings.retry_policy()

        assert policy == RetryPolicy(max_retries=6, initial_delay=0.5, exponential_base=2.0, jitter=False)

    def test_get_settings_is_cached(self):
        """Test that settings are built once per process."""
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()
