"""
Strategy Rule Engine
Matches incoming signals against an ordered rule list and builds trade commands.

The engine is pure: output depends only on the signal and the configured
rules/mappings, so replaying a signal always yields identical commands.
"""

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional

from shared.models import (
    ArbitragePayload,
    OrderSide,
    OrderType,
    Severity,
    Signal,
    SignalDirection,
    TradeAction,
    TradeCommand,
    command_id,
    extract_payload_price,
    is_prediction_venue,
    outcome_side,
)

from .market_id_mapper import MarketIdMapper
from .strategy_config import StrategyConfig, StrategyRule

logger = logging.getLogger(__name__)

BUY_LEG = "buy"
SELL_LEG = "sell"
SINGLE_LEG = "single"

_LONG_DIRECTIONS = {SignalDirection.LONG, SignalDirection.ABOVE}
_SHORT_DIRECTIONS = {SignalDirection.SHORT, SignalDirection.BELOW}
_CENT = Decimal("0.01")


@dataclass(frozen=True)
class StrategyMatch:
    """A matched rule and the commands it produced for one signal."""
    rule: StrategyRule
    commands: tuple[TradeCommand, ...]
    arbitrage: Optional[ArbitragePayload] = None


def venue_market_id(venue: str, market_id: str) -> str:
    """Prefix a native market id with its venue unless already prefixed."""
    if market_id.lower().startswith(f"{venue.lower()}:"):
        return market_id
    return f"{venue}:{market_id}"


class StrategyEngine:
    """
    First-match-wins rule engine.

    Rules are scanned in declaration order; the first enabled rule whose
    filters all accept the signal fires, and no other rule is applied.
    """

    def __init__(
        self,
        config: StrategyConfig,
        mapper: Optional[MarketIdMapper] = None,
    ) -> None:
        """
        Initialize strategy engine.

        Args:
            config: Validated strategy config
            mapper: Market id resolver (built from config mappings when omitted)
        """
        self._config = config
        self._mapper = mapper or MarketIdMapper(config.market_mappings)

    @property
    def config(self) -> StrategyConfig:
        return self._config

    @property
    def mapper(self) -> MarketIdMapper:
        return self._mapper

    def reload(self, config: StrategyConfig) -> None:
        """Swap rules and replace the mapping table wholesale."""
        self._config = config
        self._mapper.load_mappings(config.market_mappings)

    def handle_signal(self, signal: Signal) -> Optional[List[TradeCommand]]:
        """
        Convert a signal to trade commands.

        Returns:
            Commands for the first matching rule, or None on no match
        """
        match = self.evaluate(signal)
        if match is None:
            return None
        return list(match.commands)

    def evaluate(self, signal: Signal) -> Optional[StrategyMatch]:
        """
        Match a signal and build its commands, keeping the matched rule.

        Returns None when no rule matches, or when the matched rule cannot
        produce a routable command.
        """
        rule = self.match_rule(signal)
        if rule is None:
            return None

        arbitrage = ArbitragePayload.from_signal(signal)
        if arbitrage is not None:
            return StrategyMatch(
                rule=rule,
                commands=self._build_arbitrage_commands(signal, rule, arbitrage),
                arbitrage=arbitrage,
            )

        resolved = self._mapper.resolve(signal.market_id)
        if resolved is None:
            logger.warning(
                f"No market mapping for {signal.market_id} "
                f"(signal={signal.id}, rule={rule.name})"
            )
            return None

        command = self._build_command(signal, rule, resolved)
        if command is None:
            return None
        return StrategyMatch(rule=rule, commands=(command,))

    def match_rule(self, signal: Signal) -> Optional[StrategyRule]:
        """Return the first enabled rule accepting the signal."""
        for rule in self._config.rules:
            if rule.enabled and self._rule_accepts(rule, signal):
                return rule
        return None

    @staticmethod
    def _rule_accepts(rule: StrategyRule, signal: Signal) -> bool:
        if signal.signal_type not in rule.signal_types:
            return False
        if rule.signal_names is not None and signal.signal_name not in rule.signal_names:
            return False
        if rule.venues is not None and signal.venue not in rule.venues:
            return False
        if rule.symbols is not None and signal.symbol not in rule.symbols:
            return False
        if rule.min_confidence is not None and signal.confidence_value < rule.min_confidence:
            return False
        if rule.min_severity is not None:
            signal_rank = (signal.severity or Severity.LOW).rank
            if signal_rank < rule.min_severity.rank:
                return False
        if rule.directions is not None and signal.direction is not None:
            if signal.direction not in rule.directions:
                return False
        return True

    def _build_arbitrage_commands(
        self,
        signal: Signal,
        rule: StrategyRule,
        payload: ArbitragePayload,
    ) -> tuple[TradeCommand, TradeCommand]:
        # Both legs always open; super-hedge legs buy complementary outcomes.
        if payload.is_super_hedge:
            buy_side = outcome_side(payload.buy_outcome)
            sell_side = outcome_side(payload.sell_outcome)
        else:
            buy_side, sell_side = OrderSide.BUY, OrderSide.SELL

        action = rule.action
        buy = TradeCommand(
            id=command_id(signal.id, BUY_LEG),
            market_id=venue_market_id(payload.buy_venue, payload.buy_market_id),
            venue=payload.buy_venue,
            side=buy_side,
            action=TradeAction.OPEN,
            size=action.size,
            order_type=action.order_type,
        )
        sell = TradeCommand(
            id=command_id(signal.id, SELL_LEG),
            market_id=venue_market_id(payload.sell_venue, payload.sell_market_id),
            venue=payload.sell_venue,
            side=sell_side,
            action=TradeAction.OPEN,
            size=action.size,
            order_type=action.order_type,
        )
        return buy, sell

    def _build_command(
        self,
        signal: Signal,
        rule: StrategyRule,
        market_id: str,
    ) -> Optional[TradeCommand]:
        venue, sep, _ = market_id.partition(":")
        if not sep:
            venue = signal.venue

        side = self._derive_side(rule, signal, venue)
        if side is None:
            logger.debug(f"Rule {rule.name} has no side for signal {signal.id}")
            return None

        limit_price = None
        offset_bps = rule.action.limit_price_offset_bps
        if offset_bps is not None and rule.action.order_type == OrderType.LIMIT:
            base_price = extract_payload_price(signal)
            if base_price is not None:
                multiplier = 1 + offset_bps / Decimal("10000")
                limit_price = (base_price * multiplier).quantize(_CENT, rounding=ROUND_HALF_UP)

        return TradeCommand(
            id=command_id(signal.id, SINGLE_LEG),
            market_id=market_id,
            venue=venue,
            side=side,
            action=rule.action.action,
            size=rule.action.size,
            order_type=rule.action.order_type,
            limit_price=limit_price,
        )

    @staticmethod
    def _derive_side(rule: StrategyRule, signal: Signal, venue: str) -> Optional[OrderSide]:
        if rule.action.side != "from_signal":
            return OrderSide(rule.action.side)

        prediction = is_prediction_venue(venue)
        if signal.direction in _LONG_DIRECTIONS:
            return OrderSide.YES if prediction else OrderSide.BUY
        if signal.direction in _SHORT_DIRECTIONS:
            return OrderSide.NO if prediction else OrderSide.SELL
        # neutral, cross or no direction
        return None
