"""
Unit tests for configuration objects.
"""

import pytest
from pydantic import ValidationError

from core.config import (
    DATABASE_URL, CalendarConfig, SchedulingConfig, get_calendar_config, get_scheduling_config
)


class TestConfigConstants:

    def test_database_url_points_at_test_database(self):
        assert DATABASE_URL.startswith(("postgresql://", "sqlite://"))

    def test_config_getters_are_cached(self):
        assert get_scheduling_config() is get_scheduling_config()
        assert get_calendar_config() is get_calendar_config()

    def test_scheduling_config_reads_environment(self):
        config = get_scheduling_config()
        assert config.timezone == "America/Mexico_City"
        assert config.default_duration_minutes == 30


class TestConfigObjects:

    def test_configs_are_immutable(self):
        config = SchedulingConfig()
        with pytest.raises(ValidationError):
            config.timezone = "UTC"  # type: ignore[misc]

    def test_calendar_is_configured_only_with_client_credentials(self):
        assert not CalendarConfig().is_configured
        assert not CalendarConfig(client_id="id").is_configured
        assert CalendarConfig(client_id="id", client_secret="secret").is_configured

    def test_defaults(self):
        config = CalendarConfig()
        assert config.request_timeout_seconds == 15.0
        assert config.default_sync_future_days == 30
        assert SchedulingConfig().reminder_hours_before == 24
