"""
Settings Unit Tests
===================

Tests for environment-driven configuration.
"""

import pytest
from pydantic import ValidationError as PydanticValidationError

from watchpost.core.config import Settings, get_settings, reset_settings


pytestmark = pytest.mark.unit


class TestSettings:
    """Tests for Settings."""

    def test_environment_prefix(self, monkeypatch):
        monkeypatch.setenv("WATCHPOST_MAX_LOGIN_ATTEMPTS", "7")

        assert Settings().MAX_LOGIN_ATTEMPTS == 7

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("WATCHPOST_MAX_LOGIN_ATTEMPTS", raising=False)
        settings = Settings()

        assert settings.MAX_LOGIN_ATTEMPTS == 5
        assert settings.LOCKOUT_DURATION_MINUTES == 15
        assert settings.MONITOR_CHECK_INTERVAL_MS == 600_000
        assert settings.REPORT_RETENTION_DAYS == 90

    def test_interval_floor(self):
        with pytest.raises(PydanticValidationError):
            Settings(MONITOR_CHECK_INTERVAL_MS=30_000)

    def test_performance_history_is_capped(self):
        assert Settings(PERFORMANCE_HISTORY_SIZE=100).PERFORMANCE_HISTORY_SIZE == 100

        with pytest.raises(PydanticValidationError):
            Settings(PERFORMANCE_HISTORY_SIZE=500)

    def test_log_format_is_normalised(self):
        assert Settings(LOG_FORMAT="CONSOLE").LOG_FORMAT == "console"

    def test_unknown_log_format(self):
        with pytest.raises(PydanticValidationError):
            Settings(LOG_FORMAT="xml")

    @pytest.mark.parametrize("environment,expected", [("production", True), ("Production", True), ("testing", False)])
    def test_is_production(self, environment, expected):
        assert Settings(ENVIRONMENT=environment).is_production is expected


class TestSettingsSingleton:
    """Tests for get_settings / reset_settings."""

    def test_cached_until_reset(self):
        reset_settings()
        first = get_settings()

        assert get_settings() is first

        reset_settings()
        assert get_settings() is not first
        reset_settings()
