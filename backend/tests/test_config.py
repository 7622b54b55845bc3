"""Tests for settings validation."""

import pytest
from pydantic import ValidationError

from tests.fakes import make_settings


class TestSettings:

    def test_defaults(self):
        settings = make_settings()

        assert settings.sync_backoff_base_seconds == 1
        assert settings.sync_backoff_cap_seconds == 300
        assert settings.sync_conflict_strategy == "last_write_wins"
        assert settings.retention_days == 30

    def test_trailing_slash_stripped(self):
        assert make_settings(remote_api_url="https://api.pedidolist.test/").remote_api_url == "https://api.pedidolist.test"

    def test_quiet_period_in_seconds(self):
        assert make_settings(connectivity_quiet_period_ms=750).connectivity_quiet_period == 0.75

    def test_cors_origins_list(self):
        settings = make_settings(cors_origins="http://a.test, http://b.test,")
        assert settings.cors_origins_list == ["http://a.test", "http://b.test"]

    @pytest.mark.parametrize("strategy", ["last_write_wins", "server_wins", "client_wins", "manual"])
    def test_conflict_strategies(self, strategy):
        assert make_settings(sync_conflict_strategy=strategy).sync_conflict_strategy == strategy

    @pytest.mark.parametrize("overrides", [
        {"sync_backoff_base_seconds": 10, "sync_backoff_cap_seconds": 5},
        {"sync_backoff_base_seconds": 0},
        {"request_timeout_seconds": 0.5},
        {"sync_conflict_strategy": "newest_wins"},
        {"retention_days": -1},
    ])
    def test_invalid_values_rejected(self, overrides):
        with pytest.raises(ValidationError):
            make_settings(**overrides)
