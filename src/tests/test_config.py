"""Tests for configuration and ledger settings."""

import pytest

from src.utils.config import Config, LedgerSettings, get_config, get_ledger_settings, reset_config
from src.utils.constants import DEFAULT_BATCH_COUNT_MAX, DEFAULT_BATCH_COUNT_MIN


class TestLedgerSettings:
    def test_defaults(self):
        settings = LedgerSettings()
        assert settings.batch_count_min == DEFAULT_BATCH_COUNT_MIN
        assert settings.batch_count_max == DEFAULT_BATCH_COUNT_MAX
        assert len(settings.holidays) > 0

    def test_rejects_inverted_batch_range(self):
        with pytest.raises(ValueError):
            LedgerSettings(batch_count_min=10, batch_count_max=5)

    def test_rejects_zero_retries(self):
        with pytest.raises(ValueError):
            LedgerSettings(max_conflict_retries=0)

    def test_rejects_negative_backoff(self):
        with pytest.raises(ValueError):
            LedgerSettings(retry_backoff_seconds=-1)


class TestConfig:
    def test_configure_ledger_replaces_settings(self, ledger_config):
        updated = ledger_config.configure_ledger(max_batches_per_consume=3)
        assert updated.max_batches_per_consume == 3
        assert get_ledger_settings().max_batches_per_consume == 3
        # Earlier overrides survive
        assert get_ledger_settings().retry_backoff_seconds == 0

    def test_reset_restores_defaults(self, ledger_config):
        ledger_config.configure_ledger(max_batches_per_consume=3)
        reset_config()
        assert get_ledger_settings().max_batches_per_consume != 3

    def test_database_url_env_override(self, monkeypatch):
        monkeypatch.setenv("BELT_TRACKER_DATABASE_URL", "sqlite:///:memory:")
        reset_config()
        assert get_config().database_url == "sqlite:///:memory:"

    def test_database_url_defaults_to_sqlite_file(self, monkeypatch):
        monkeypatch.delenv("BELT_TRACKER_DATABASE_URL", raising=False)
        config = Config("development")
        assert config.database_url.startswith("sqlite:///")
        assert config.database_url.endswith("belt_tracker.db")
        assert config.is_development
