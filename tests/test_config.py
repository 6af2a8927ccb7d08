"""
Tests for configuration loading.
"""

import logging

import pytest
from pydantic import ValidationError

from udevdb import DeviceStore, StoreConfig, get_config, reload_config, setup_logging


class TestStoreConfig:
    """Test environment-driven configuration."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("UDEVDB_DB_PATH", raising=False)
        config = StoreConfig()
        assert config.db_path == "/var/lib/udevdb/udev.db"
        assert config.file_mode == 0o644
        assert config.prune_stale_entries is True
        assert config.log_level == "INFO"

    def test_environment_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("UDEVDB_DB_PATH", str(tmp_path / "udev.db"))
        monkeypatch.setenv("UDEVDB_PRUNE_STALE_ENTRIES", "false")
        monkeypatch.setenv("UDEVDB_LOG_LEVEL", "debug")

        config = reload_config()
        assert config.db_path == str(tmp_path / "udev.db")
        assert config.prune_stale_entries is False
        assert config.log_level == "DEBUG"
        assert get_config() is config

        store = DeviceStore()
        assert store.engine.db_path == str(tmp_path / "udev.db")

        monkeypatch.delenv("UDEVDB_DB_PATH")
        monkeypatch.delenv("UDEVDB_PRUNE_STALE_ENTRIES")
        monkeypatch.delenv("UDEVDB_LOG_LEVEL")
        reload_config()

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError):
            StoreConfig(log_level="chatty")

    def test_setup_logging(self, monkeypatch):
        calls = {}
        monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: calls.update(kwargs))
        setup_logging("warning")
        assert calls["level"] == logging.WARNING
