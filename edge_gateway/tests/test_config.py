"""
Tests for gateway configuration.
"""

import pytest

from edge_gateway.config.settings import get_settings, load_settings
from edge_gateway.exceptions import ConfigError


class TestSettings:
    """Tests for settings loading and validation."""

    def test_defaults(self):
        """Test default tunables."""
        settings = load_settings()

        assert settings.gateway_id.startswith("gateway-")
        assert settings.sync.batch_size == 50
        assert settings.sync.interval_seconds == 300.0
        assert settings.sync.max_interval_seconds == 3600.0
        assert settings.retention.days == 7
        assert settings.database.url.startswith("sqlite+aiosqlite://")

    def test_environment_overrides(self, monkeypatch):
        """Test sections read their own env prefixes."""
        monkeypatch.setenv("GATEWAY_ID", "gw-roof")
        monkeypatch.setenv("SYNC_BATCH_SIZE", "10")
        monkeypatch.setenv("PROCESSING_DETECT_STUCK_SENSOR", "false")
        monkeypatch.setenv("RETENTION_DAYS", "3")

        settings = load_settings()

        assert settings.gateway_id == "gw-roof"
        assert settings.sync.batch_size == 10
        assert settings.processing.detect_stuck_sensor is False
        assert settings.retention.days == 3

    def test_api_key_is_secret(self, monkeypatch):
        """Test the API key is not exposed in representations."""
        monkeypatch.setenv("SYNC_API_KEY", "super-secret")

        settings = load_settings()

        assert "super-secret" not in repr(settings)
        assert settings.sync.api_key.get_secret_value() == "super-secret"

    @pytest.mark.parametrize("name,value", [
        ("SYNC_BATCH_SIZE", "0"),
        ("SYNC_INTERVAL_SECONDS", "-5"),
        ("SYNC_MAX_INTERVAL_SECONDS", "10"),
        ("PROCESSING_HISTORY_WINDOW", "1"),
        ("RETENTION_DAYS", "0"),
        ("LOG_FORMAT", "xml"),
    ])
    def test_invalid_values_raise_config_error(self, monkeypatch, name, value):
        """Test invalid tunables are fatal at load time."""
        monkeypatch.setenv(name, value)

        with pytest.raises(ConfigError):
            load_settings()

    def test_get_settings_is_cached(self):
        """Test settings are loaded once."""
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()
