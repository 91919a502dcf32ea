from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from backtest.data_loader import ReplayConsumerConfig
from backtest.engine import ReplayOptions
from shared.config import get_settings, reload_settings


@pytest.fixture
def env(monkeypatch):
    yield monkeypatch
    monkeypatch.undo()
    reload_settings()


def test_settings_from_environment(env) -> None:
    env.setenv("SIGNAL_API_URL", "https://signals.example.com/")
    env.setenv("SIGNAL_API_API_KEY", "secret")
    env.setenv("SIGNAL_API_PAGE_SIZE", "250")
    env.setenv("REPLAY_FEE_RATE", "0.01")
    env.setenv("REPLAY_SPEED", "fast")
    env.setenv("LOG_LEVEL", "debug")
    env.setenv("STRATEGIES_DIR", "/tmp/strategies")

    settings = reload_settings()

    assert settings.signal_api.url == "https://signals.example.com"
    assert settings.signal_api.api_key == "secret"
    assert settings.signal_api.page_size == 250
    assert settings.replay.fee_rate == Decimal("0.01")
    assert settings.replay.speed == "fast"
    assert settings.logging.log_level == "DEBUG"
    assert settings.strategy.strategies_dir == "/tmp/strategies"
    assert get_settings() is settings


def test_replay_defaults_come_from_settings(env) -> None:
    env.setenv("REPLAY_FEE_RATE", "0.03")
    env.setenv("REPLAY_PACE_SECONDS", "0.5")
    reload_settings()

    options = ReplayOptions.from_settings(speed="verbose")

    assert options.fee_rate == Decimal("0.03")
    assert options.pace_seconds == 0.5
    assert options.speed == "verbose"


def test_consumer_config_from_settings(env) -> None:
    env.setenv("SIGNAL_API_URL", "https://signals.example.com")
    env.setenv("SIGNAL_API_API_KEY", "k")
    env.setenv("SIGNAL_API_TIMEOUT_SECONDS", "5")
    reload_settings()
    start = datetime(2025, 1, 1, tzinfo=timezone.utc)

    config = ReplayConsumerConfig.from_settings(start, start, venues=["kalshi"])

    assert config.api_url == "https://signals.example.com"
    assert config.api_key == "k"
    assert config.timeout_seconds == 5.0
    assert config.venues == ["kalshi"]
