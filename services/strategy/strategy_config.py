"""
Strategy Config
Schema and loader for rule-based strategy documents.

A strategy document is JSON with ``rules``, ``market_mappings`` and
``risk_limits``. Invalid documents are rejected at load time, before any
signal is processed.
"""

import json
import logging
from decimal import Decimal
from pathlib import Path
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from shared.errors import StrategyConfigError
from shared.models import OrderType, Severity, SignalDirection, SignalType, TradeAction

logger = logging.getLogger(__name__)


class RiskLimits(BaseModel):
    """Admission-control limits."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    max_trades_per_minute: int = Field(default=5, gt=0)
    market_cooldown_seconds: int = Field(default=30, ge=0)
    # Used by signal-level dedup only, not by the risk manager.
    signal_dedup_window_seconds: int = Field(default=300, ge=0)
    max_position_size_per_market: Optional[Decimal] = Field(default=None, gt=0)
    max_total_exposure_usd: Optional[Decimal] = Field(default=None, gt=0)


class StrategyAction(BaseModel):
    """Trade template applied when a rule matches."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    side: Literal["buy", "sell", "from_signal"]
    size: Decimal = Field(gt=0)
    order_type: OrderType = OrderType.MARKET
    action: TradeAction = TradeAction.OPEN
    limit_price_offset_bps: Optional[Decimal] = None


class StrategyRule(BaseModel):
    """One ordered entry of a strategy's rule list."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(min_length=1)
    enabled: bool = True
    signal_types: frozenset[SignalType] = Field(min_length=1)
    signal_names: Optional[frozenset[str]] = None
    venues: Optional[frozenset[str]] = None
    symbols: Optional[frozenset[str]] = None
    min_confidence: Optional[Decimal] = Field(default=None, ge=0, le=100)
    min_severity: Optional[Severity] = None
    directions: Optional[frozenset[SignalDirection]] = None
    action: StrategyAction


class StrategyConfig(BaseModel):
    """Complete strategy document."""
    model_config = ConfigDict(frozen=True, extra="allow")

    name: Optional[str] = None
    enabled: bool = True
    dry_run: bool = True
    rules: tuple[StrategyRule, ...]
    market_mappings: dict[str, str] = Field(default_factory=dict)
    risk_limits: RiskLimits = Field(default_factory=RiskLimits)

    @property
    def display_name(self) -> str:
        """Human-readable name (falls back to the _description key)."""
        description = (self.model_extra or {}).get("_description")
        return self.name or description or "unnamed"

    @property
    def enabled_rules(self) -> list[StrategyRule]:
        return [rule for rule in self.rules if rule.enabled]


def parse_strategy_config(data: Any, source: str = "<memory>") -> StrategyConfig:
    """
    Validate a decoded strategy document.

    Raises:
        StrategyConfigError: If the document does not match the schema
    """
    if isinstance(data, StrategyConfig):
        return data
    try:
        return StrategyConfig.model_validate(data)
    except ValidationError as e:
        raise StrategyConfigError(f"Invalid strategy config {source}: {e}") from e


def load_strategy_config(path: Union[str, Path]) -> StrategyConfig:
    """
    Load and validate a strategy config file.

    Args:
        path: Path to a JSON strategy document

    Returns:
        Validated StrategyConfig

    Raises:
        StrategyConfigError: If the file is missing, unparsable or invalid
    """
    file_path = Path(path)
    logger.info(f"Loading strategy config: {file_path}")

    if not file_path.is_file():
        raise StrategyConfigError(
            f"Strategy config not found: {file_path}. "
            "Copy a template from strategies/ or set STRATEGY_CONFIG_PATH."
        )

    try:
        data = json.loads(file_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise StrategyConfigError(f"Strategy config {file_path} is not valid JSON: {e}") from e

    config = parse_strategy_config(data, source=str(file_path))
    logger.info(
        f"Strategy config loaded: rules={len(config.rules)}, "
        f"dry_run={config.dry_run}, enabled={config.enabled}"
    )
    return config
