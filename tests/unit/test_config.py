"""
Unit tests for configuration loading.
"""

import pytest
from pydantic import ValidationError

from dbaas.jsondrop_server.config import Settings


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self):
        settings = Settings()

        assert settings.port == 8080
        assert settings.data_dir == "./data"
        assert settings.catalog_path == "./data/catalog.db"
        assert settings.cors_origins == ["*"]
        assert settings.default_quota_bytes == 100 * 1024 * 1024
        assert settings.max_idle_seconds == 30 * 24 * 3600
        assert settings.listener_queue_size == 10

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("JSONDROP_PORT", "9090")
        monkeypatch.setenv("JSONDROP_DEFAULT_QUOTA_MB", "50")
        monkeypatch.setenv("JSONDROP_EXPIRY_DAYS", "7")
        monkeypatch.setenv("JSONDROP_CORS_ORIGINS", '["http://localhost:3000"]')

        settings = Settings()

        assert settings.port == 9090
        assert settings.default_quota_bytes == 50 * 1024 * 1024
        assert settings.max_idle_seconds == 7 * 24 * 3600
        assert settings.cors_origins == ["http://localhost:3000"]

    @pytest.mark.parametrize("name", ["JSONDROP_DEFAULT_QUOTA_MB", "JSONDROP_EXPIRY_DAYS"])
    def test_non_positive_rejected(self, monkeypatch, name):
        monkeypatch.setenv(name, "0")

        with pytest.raises(ValidationError):
            Settings()

    def test_non_numeric_rejected(self, monkeypatch):
        monkeypatch.setenv("JSONDROP_DEFAULT_QUOTA_MB", "lots")

        with pytest.raises(ValidationError):
            Settings()

    def test_heartbeat_must_beat_staleness(self):
        with pytest.raises(ValidationError, match="heartbeat_interval_seconds"):
            Settings(heartbeat_interval_seconds=120, stale_listener_seconds=60)
