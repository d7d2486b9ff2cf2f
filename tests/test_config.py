"""Settings validation tests."""

import pytest
from pydantic import ValidationError

from reviewrelay.config import Settings


def test_defaults_match_relay_contract():
    s = Settings()
    assert s.port == 3003
    assert s.max_reconnect_attempts == 3
    assert s.reconnect_base_delay_ms == 1000
    assert s.reconnect_max_delay_ms == 30000
    assert s.poll_interval_ms == 10000


def test_env_prefix(monkeypatch):
    monkeypatch.setenv("RELAY_PORT", "4000")
    monkeypatch.setenv("RELAY_MAX_RECONNECT_ATTEMPTS", "5")
    s = Settings()
    assert s.port == 4000
    assert s.max_reconnect_attempts == 5


def test_production_requires_connection_bound():
    with pytest.raises(ValidationError, match="MAX_CONNECTIONS_PER_CHANNEL"):
        Settings(environment="production")

    s = Settings(environment="production", max_connections_per_channel=500)
    assert s.max_connections_per_channel == 500


def test_backoff_cap_must_exceed_base():
    with pytest.raises(ValidationError):
        Settings(reconnect_base_delay_ms=5000, reconnect_max_delay_ms=1000)


def test_poll_interval_must_be_positive():
    with pytest.raises(ValidationError):
        Settings(poll_interval_ms=0)
