"""
Centralized Configuration for the Signal Pipeline
Uses Pydantic Settings with .env loading.
"""

from decimal import Decimal
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ReplaySpeed = Literal["fast", "normal", "verbose"]


class SignalApiSettings(BaseSettings):
    """Upstream signal service settings."""
    model_config = SettingsConfigDict(env_prefix="SIGNAL_API_", extra="ignore")

    url: str = "https://api.pumpamp.com"
    api_key: str = ""
    page_size: int = Field(default=1000, gt=0)
    timeout_seconds: float = Field(default=30.0, gt=0)

    @field_validator("url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize base URL."""
        return v.rstrip("/")


class ReplaySettings(BaseSettings):
    """Replay/backtest defaults."""
    model_config = SettingsConfigDict(env_prefix="REPLAY_", extra="ignore")

    fee_rate: Decimal = Field(default=Decimal("0.02"), ge=0)
    speed: ReplaySpeed = "normal"
    pace_seconds: float = Field(default=0.0, ge=0)


class StrategySettings(BaseSettings):
    """Strategy config locations."""
    model_config = SettingsConfigDict(extra="ignore")

    config_path: str = Field(default="strategy.json", alias="STRATEGY_CONFIG_PATH")
    strategies_dir: str = Field(default="strategies", alias="STRATEGIES_DIR")


class LoggingSettings(BaseSettings):
    """Logging settings."""
    model_config = SettingsConfigDict(extra="ignore")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(
        default="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        alias="LOG_FORMAT",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        """Accept lower-case level names."""
        return str(v).upper()


class PipelineSettings(BaseSettings):
    """Main settings."""
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Sub-settings (loaded from same .env)
    signal_api: SignalApiSettings = Field(default_factory=SignalApiSettings)
    replay: ReplaySettings = Field(default_factory=ReplaySettings)
    strategy: StrategySettings = Field(default_factory=StrategySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


@lru_cache()
def get_settings() -> PipelineSettings:
    """Get cached settings instance."""
    return PipelineSettings()


def reload_settings() -> PipelineSettings:
    """Force reload settings (clears cache)."""
    get_settings.cache_clear()
    return get_settings()
