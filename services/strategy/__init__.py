"""Rule-based strategy: config schema, market id resolution and rule matching."""

from services.strategy.dedup import SignalDeduplicator
from services.strategy.engine import StrategyEngine, StrategyMatch
from services.strategy.market_id_mapper import MarketIdMapper
from services.strategy.strategy_config import (
    RiskLimits,
    StrategyAction,
    StrategyConfig,
    StrategyRule,
    load_strategy_config,
    parse_strategy_config,
)

__all__ = [
    "MarketIdMapper",
    "RiskLimits",
    "SignalDeduplicator",
    "StrategyAction",
    "StrategyConfig",
    "StrategyEngine",
    "StrategyMatch",
    "StrategyRule",
    "load_strategy_config",
    "parse_strategy_config",
]
