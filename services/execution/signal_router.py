"""
Signal Router
Live orchestration from signal to submitted trade commands.

Order of operations per signal:
1. Enabled check and signal dedup/expiry
2. Rule matching (market ids are resolved inside the strategy engine)
3. Admission control for every leg, counting earlier legs of the same
   signal as trades; one rejected leg rejects all legs
4. Dry-run logging, or submission to the venue executor
5. record_trade for every leg the executor accepted

Steps 3-5 run under a single lock so that concurrent signals cannot both
pass admission before either is recorded.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict

from services.risk_engine.risk_manager import RejectReason, RiskManager
from services.strategy.dedup import SignalDeduplicator
from services.strategy.engine import StrategyEngine
from services.strategy.strategy_config import StrategyConfig
from shared.models import Position, Signal, TradeCommand

from .base import ExecutionResult, VenueExecutor

logger = logging.getLogger(__name__)


class RouteOutcome(str, Enum):
    """What happened to a routed signal."""
    DISABLED = "disabled"
    DROPPED = "dropped"
    NO_MATCH = "no_match"
    REJECTED = "rejected"
    DRY_RUN = "dry_run"
    SUBMITTED = "submitted"
    FAILED = "failed"


@dataclass(frozen=True)
class RouteResult:
    """Result of routing one signal."""
    outcome: RouteOutcome
    commands: tuple[TradeCommand, ...] = ()
    reason: Optional[RejectReason] = None
    executions: tuple[ExecutionResult, ...] = field(default_factory=tuple)


class StrategyStatus(BaseModel):
    """Router status for heartbeats."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    state: str
    rules_count: int
    rules_enabled: int
    signals_received: int
    signals_matched: int
    trades_generated: int
    trades_rejected_by_risk: int
    dry_run_trades: int
    signals_dropped_stale_or_duplicate: int


class SignalRouter:
    """
    Routes live signals through strategy, risk and execution.

    Owns its RiskManager and SignalDeduplicator, so several routers can run
    side by side without sharing rate or cooldown state.
    """

    def __init__(
        self,
        config: StrategyConfig,
        executor: VenueExecutor,
        positions: Callable[[], Sequence[Position]] = lambda: [],
        risk_manager: Optional[RiskManager] = None,
        deduplicator: Optional[SignalDeduplicator] = None,
    ) -> None:
        """
        Initialize signal router.

        Args:
            config: Validated strategy config
            executor: Venue executor for live submissions
            positions: Callable returning current open positions
            risk_manager: Admission controller (built from config when omitted)
            deduplicator: Signal dedup filter (built from config when omitted)
        """
        self._config = config
        self._executor = executor
        self._positions = positions
        self._engine = StrategyEngine(config)
        self._risk = risk_manager or RiskManager(config.risk_limits)
        self._dedup = deduplicator or SignalDeduplicator(
            config.risk_limits.signal_dedup_window_seconds
        )
        self._enabled = config.enabled
        self._lock = asyncio.Lock()

        self._signals_received = 0
        self._signals_matched = 0
        self._trades_generated = 0
        self._trades_rejected_by_risk = 0
        self._dry_run_trades = 0
        self._signals_dropped = 0

    @property
    def engine(self) -> StrategyEngine:
        return self._engine

    @property
    def risk_manager(self) -> RiskManager:
        return self._risk

    @property
    def is_enabled(self) -> bool:
        return self._enabled

    def enable(self) -> None:
        self._enabled = True

    def disable(self) -> None:
        self._enabled = False

    def reload(self, config: StrategyConfig) -> None:
        """Apply a new strategy config without losing risk history."""
        self._config = config
        self._engine.reload(config)
        self._risk.update_config(config.risk_limits)
        self._dedup.set_window(config.risk_limits.signal_dedup_window_seconds)
        self._enabled = config.enabled
        logger.info(f"Strategy reloaded: {config.display_name} ({len(config.rules)} rules)")

    async def handle_signal(self, signal: Signal) -> RouteResult:
        """
        Route one signal.

        Never raises for per-signal conditions; the outcome says what happened.
        """
        if not self._enabled:
            return RouteResult(RouteOutcome.DISABLED)

        self._signals_received += 1

        if not self._dedup.accept(signal):
            self._signals_dropped += 1
            return RouteResult(RouteOutcome.DROPPED)

        match = self._engine.evaluate(signal)
        if match is None:
            return RouteResult(RouteOutcome.NO_MATCH)

        self._signals_matched += 1
        commands = match.commands

        async with self._lock:
            positions = list(self._positions())
            admitted: List[TradeCommand] = []
            for command in commands:
                risk = self._risk.evaluate(command, positions, pending=admitted)
                if not risk.allowed:
                    self._trades_rejected_by_risk += 1
                    logger.info(
                        f"Risk check failed ({risk.reason.value}) for {command.market_id}; "
                        f"rejecting {len(commands)} leg(s) of signal {signal.id}"
                    )
                    return RouteResult(RouteOutcome.REJECTED, commands, reason=risk.reason)
                admitted.append(command)

            if self._config.dry_run:
                self._dry_run_trades += len(commands)
                for command in commands:
                    logger.info(
                        f"[DRY RUN] Would execute {command.side.value} {command.size} "
                        f"{command.market_id} on {command.venue}"
                    )
                return RouteResult(RouteOutcome.DRY_RUN, commands)

            executions = await self._submit(commands)

        outcome = (
            RouteOutcome.SUBMITTED
            if all(result.success for result in executions)
            else RouteOutcome.FAILED
        )
        return RouteResult(outcome, commands, executions=tuple(executions))

    async def _submit(self, commands: Sequence[TradeCommand]) -> List[ExecutionResult]:
        executions: List[ExecutionResult] = []
        for command in commands:
            try:
                result = await self._executor.submit(command)
            except Exception as e:
                logger.error(f"Order submission failed for {command.id}: {e}")
                result = ExecutionResult(command_id=command.id, success=False, error=str(e))

            if result.success:
                self._risk.record_trade(command.market_id)
                self._trades_generated += 1
            else:
                logger.warning(f"Venue rejected {command.id}: {result.error}")
            executions.append(result)
        return executions

    def status(self) -> StrategyStatus:
        """Get current router status."""
        return StrategyStatus(
            state=self._state_string(),
            rules_count=len(self._config.rules),
            rules_enabled=len(self._config.enabled_rules),
            signals_received=self._signals_received,
            signals_matched=self._signals_matched,
            trades_generated=self._trades_generated,
            trades_rejected_by_risk=self._trades_rejected_by_risk,
            dry_run_trades=self._dry_run_trades,
            signals_dropped_stale_or_duplicate=self._signals_dropped,
        )

    def _state_string(self) -> str:
        if not self._enabled:
            return "disabled"
        if self._config.dry_run:
            return "active:dry_run"
        return "active"
