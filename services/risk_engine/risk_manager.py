"""
Risk Manager
Admission control for trade commands: rate limit, per-market cooldown,
position-size cap and total exposure cap.
"""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Callable, Deque, Dict, Optional, Sequence

from services.strategy.strategy_config import RiskLimits
from shared.models import Position, TradeCommand

logger = logging.getLogger(__name__)

RATE_WINDOW_SECONDS = 60.0


def _notional(command: TradeCommand) -> Decimal:
    price = command.limit_price if command.limit_price is not None else Decimal("1")
    return command.size * price


class RejectReason(str, Enum):
    """Reason codes for rejected trades, in check order."""
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    COOLDOWN_ACTIVE = "cooldown_active"
    MAX_POSITION_EXCEEDED = "max_position_exceeded"
    MAX_EXPOSURE_EXCEEDED = "max_exposure_exceeded"


@dataclass(frozen=True)
class RiskResult:
    """Outcome of an admission check."""
    allowed: bool
    reason: Optional[RejectReason] = None

    @classmethod
    def ok(cls) -> "RiskResult":
        return cls(allowed=True)

    @classmethod
    def reject(cls, reason: RejectReason) -> "RiskResult":
        return cls(allowed=False, reason=reason)


@dataclass
class RiskState:
    """
    Mutable trade history owned by one RiskManager.

    Holds at most one rate window of timestamps after each record.
    """
    trade_timestamps: Deque[float] = field(default_factory=deque)
    last_trade_by_market: Dict[str, float] = field(default_factory=dict)

    def reset(self) -> None:
        """Forget all recorded trades."""
        self.trade_timestamps.clear()
        self.last_trade_by_market.clear()


class RiskManager:
    """
    Gate proposed trades against configured limits.

    ``evaluate`` is read-only; state changes only through ``record_trade``,
    which the caller invokes after the trade is actually submitted. Callers
    that evaluate and record from several tasks must serialize the
    evaluate -> submit -> record sequence themselves.
    """

    def __init__(
        self,
        limits: RiskLimits,
        state: Optional[RiskState] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize risk manager.

        Args:
            limits: Risk limits to enforce
            state: Trade history (a fresh one is created when omitted)
            clock: Seconds-resolution monotonic clock
        """
        self._limits = limits
        self._state = state if state is not None else RiskState()
        self._clock = clock
        self._lock = threading.Lock()

    @property
    def limits(self) -> RiskLimits:
        """Get current limits."""
        return self._limits

    @property
    def state(self) -> RiskState:
        """Get owned trade history."""
        return self._state

    def evaluate(
        self,
        command: TradeCommand,
        positions: Sequence[Position],
        pending: Sequence[TradeCommand] = (),
    ) -> RiskResult:
        """
        Run all checks against a proposed trade.

        Checks short-circuit, so the reason is always the first violated limit.

        Args:
            command: Proposed trade
            positions: Current open positions (read only)
            pending: Commands already admitted in the same batch but not yet
                recorded; they count as trades made now

        Returns:
            RiskResult
        """
        limits = self._limits
        now = self._clock()

        with self._lock:
            window_start = now - RATE_WINDOW_SECONDS
            recent = sum(1 for t in self._state.trade_timestamps if t > window_start)
            last_trade = self._state.last_trade_by_market.get(command.market_id)

        if recent + len(pending) >= limits.max_trades_per_minute:
            return RiskResult.reject(RejectReason.RATE_LIMIT_EXCEEDED)

        same_market = [p for p in pending if p.market_id == command.market_id]
        if same_market and limits.market_cooldown_seconds > 0:
            return RiskResult.reject(RejectReason.COOLDOWN_ACTIVE)
        if last_trade is not None and now - last_trade < limits.market_cooldown_seconds:
            return RiskResult.reject(RejectReason.COOLDOWN_ACTIVE)

        if limits.max_position_size_per_market is not None:
            existing = next(
                (p.size for p in positions if p.market_id == command.market_id),
                Decimal("0"),
            )
            existing += sum((p.size for p in same_market), Decimal("0"))
            if existing + command.size > limits.max_position_size_per_market:
                return RiskResult.reject(RejectReason.MAX_POSITION_EXCEEDED)

        if limits.max_total_exposure_usd is not None:
            total_exposure = sum((p.notional_value for p in positions), Decimal("0"))
            total_exposure += sum((_notional(p) for p in pending), Decimal("0"))
            if total_exposure + _notional(command) > limits.max_total_exposure_usd:
                return RiskResult.reject(RejectReason.MAX_EXPOSURE_EXCEEDED)

        return RiskResult.ok()

    def record_trade(self, market_id: str) -> None:
        """
        Record a submitted trade (updates rate window and cooldown).

        Args:
            market_id: Venue-native market id of the trade
        """
        now = self._clock()
        with self._lock:
            timestamps = self._state.trade_timestamps
            timestamps.append(now)
            self._state.last_trade_by_market[market_id] = now

            window_start = now - RATE_WINDOW_SECONDS
            while timestamps and timestamps[0] <= window_start:
                timestamps.popleft()

    def update_config(self, limits: RiskLimits) -> None:
        """Swap limits (config reload); recorded history is kept."""
        self._limits = limits
        logger.info(
            f"Risk limits updated: max_trades_per_minute={limits.max_trades_per_minute}, "
            f"cooldown={limits.market_cooldown_seconds}s"
        )

    def reset(self) -> None:
        """Clear recorded trade history."""
        with self._lock:
            self._state.reset()
