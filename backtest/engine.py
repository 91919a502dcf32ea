"""
Signal Replay Engine
Drives historical signals through the strategy rule engine and reports
hypothetical performance.

Key guarantees:
- Signals are processed strictly in arrival order
- The strategy engine is pure, so a replay is deterministic
- compare() fetches history once and replays the buffer per strategy
- Pacing and progress reporting never change the computed report
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, List, Optional, Sequence, Union

from services.strategy.engine import BUY_LEG, SELL_LEG, SINGLE_LEG, StrategyEngine, StrategyMatch
from services.strategy.strategy_config import StrategyConfig, parse_strategy_config
from shared.config import ReplaySpeed, get_settings
from shared.errors import ReplayAbortedError
from shared.models import Signal

from .data_loader import BufferedSignalSource, ReplayConsumer, ReplayConsumerConfig, SignalSource
from .report import ReplayReport, ReportConfig, TradeRecord, generate_report

logger = logging.getLogger(__name__)

LOG_EVERY_SIGNALS = 10000


@dataclass
class ReplayProgress:
    """Running counters for one replay."""
    signals_processed: int = 0
    signals_matched: int = 0
    trades_generated: int = 0
    pages_completed: int = 0
    current_date: Optional[datetime] = None


@dataclass(frozen=True)
class ReplayOptions:
    """Replay knobs that do not affect which commands are produced."""
    fee_rate: Decimal = Decimal("0.02")
    speed: ReplaySpeed = "normal"
    pace_seconds: float = 0.0
    on_progress: Optional[Callable[[ReplayProgress], None]] = None

    @classmethod
    def from_settings(cls, **overrides: Any) -> "ReplayOptions":
        """Defaults from REPLAY_* settings."""
        settings = get_settings().replay
        options = cls(
            fee_rate=settings.fee_rate,
            speed=settings.speed,
            pace_seconds=settings.pace_seconds,
        )
        return replace(options, **overrides)


@dataclass
class ReplayConfig:
    """Replay configuration."""
    strategy: StrategyConfig
    consumer: Optional[ReplayConsumerConfig] = None
    options: ReplayOptions = field(default_factory=ReplayOptions)

    def __post_init__(self) -> None:
        # Reject malformed strategies before any signal is fetched.
        self.strategy = parse_strategy_config(self.strategy)


@dataclass(frozen=True)
class NamedStrategy:
    """A strategy entered into a comparison."""
    name: str
    config: Union[StrategyConfig, dict]


@dataclass(frozen=True)
class ComparisonResult:
    """One strategy's report from compare()."""
    name: str
    report: ReplayReport

    def to_json_dict(self) -> dict:
        return {"name": self.name, "report": self.report.to_json_dict()}


def trace_match(signal: Signal, match: StrategyMatch, sequence: Optional[int] = None) -> List[TradeRecord]:
    """Trace records for one matched signal, tagged with their leg."""
    if match.arbitrage is not None:
        legs = (BUY_LEG, SELL_LEG)
    else:
        legs = (SINGLE_LEG,) * len(match.commands)
    return [
        TradeRecord(
            signal_id=signal.id,
            signal_time=signal.timestamp,
            rule_name=match.rule.name,
            command=command,
            payload=signal.payload,
            leg=leg,
            sequence=sequence,
        )
        for leg, command in zip(legs, match.commands)
    ]


class _ReplayRun:
    """Trace and counters owned by a single replay invocation."""

    def __init__(self, engine: StrategyEngine, verbose: bool = False) -> None:
        self.engine = engine
        self.verbose = verbose
        self.trace: List[TradeRecord] = []
        self.progress = ReplayProgress()

    def process(self, signal: Signal) -> None:
        progress = self.progress
        progress.signals_processed += 1
        progress.current_date = signal.timestamp

        match = self.engine.evaluate(signal)
        if match is None or not match.commands:
            return

        progress.signals_matched += 1
        self.trace.extend(trace_match(signal, match, sequence=progress.signals_processed))
        progress.trades_generated += len(match.commands)

        if self.verbose:
            logger.info(
                f"{signal.timestamp.isoformat()} {signal.signal_name} -> "
                f"{match.rule.name}: {len(match.commands)} command(s)"
            )
        if progress.signals_processed % LOG_EVERY_SIGNALS == 0:
            logger.info(f"Processed {progress.signals_processed} signals...")


class ReplayEngine:
    """
    Replay historical signals through one strategy.

    The signal source is consumed once per run. Pass a source explicitly to
    replay buffered or synthetic data; otherwise a ReplayConsumer is built
    from the consumer config.
    """

    def __init__(self, config: ReplayConfig, source: Optional[SignalSource] = None) -> None:
        """
        Initialize replay engine.

        Args:
            config: Replay configuration
            source: Signal source (defaults to an HTTP ReplayConsumer)
        """
        self._config = config
        self._source = source
        self._abort_requested = False

    @property
    def config(self) -> ReplayConfig:
        return self._config

    def abort(self) -> None:
        """Request cancellation at the next batch boundary."""
        self._abort_requested = True

    def _checkpoint(self) -> None:
        if self._abort_requested:
            raise ReplayAbortedError("Replay aborted; partial results discarded")

    def _resolve_source(self) -> SignalSource:
        if self._source is not None:
            return self._source
        if self._config.consumer is None:
            raise ValueError("ReplayConfig.consumer is required when no signal source is given")
        return ReplayConsumer(self._config.consumer)

    async def run(self) -> ReplayReport:
        """
        Run the replay to completion.

        Returns:
            ReplayReport for the run

        Raises:
            SignalFetchError: If fetching history fails
            ReplayAbortedError: If abort() was called mid-run
        """
        config = self._config
        options = config.options
        source = self._resolve_source()
        run = _ReplayRun(StrategyEngine(config.strategy), verbose=options.speed == "verbose")
        interactive = options.speed != "fast"

        logger.info(f"Starting replay: {config.strategy.display_name}")
        self._checkpoint()

        async for batch in source.fetch_signals():
            self._checkpoint()
            for signal in batch:
                run.process(signal)
            run.progress.pages_completed += 1

            if interactive:
                if options.on_progress is not None:
                    options.on_progress(replace(run.progress))
                if options.pace_seconds > 0:
                    await asyncio.sleep(options.pace_seconds)

        self._checkpoint()
        report = self._build_report(run, signals_skipped=source.signals_skipped)
        logger.info(
            f"Replay complete: {report.summary.total_signals} signals, "
            f"{report.summary.trades_generated} trades, "
            f"pnl={report.pnl.total_realized_pnl:.2f}"
        )
        return report

    def _build_report(self, run: _ReplayRun, signals_skipped: int = 0) -> ReplayReport:
        consumer = self._config.consumer
        return generate_report(
            run.trace,
            total_signals=run.progress.signals_processed + signals_skipped,
            signals_matched=run.progress.signals_matched,
            fee_rate=self._config.options.fee_rate,
            pages_completed=run.progress.pages_completed,
            signals_skipped=signals_skipped,
            config=ReportConfig(
                strategy=self._config.strategy.display_name,
                start=consumer.start if consumer else None,
                end=consumer.end if consumer else None,
            ),
        )

    @staticmethod
    async def compare(
        strategies: Sequence[NamedStrategy],
        consumer_config: Optional[ReplayConsumerConfig],
        options: Optional[ReplayOptions] = None,
        source: Optional[SignalSource] = None,
    ) -> List[ComparisonResult]:
        """
        Replay one signal range through several strategies.

        History is fetched exactly once and buffered; every strategy then
        replays the same batches with its own engine and trace.

        Args:
            strategies: Named strategy configs, in output order
            consumer_config: Range/filters for the single fetch
            options: Replay options shared by every strategy
            source: Signal source (defaults to an HTTP ReplayConsumer)

        Returns:
            One ComparisonResult per strategy, in input order
        """
        options = replace(options or ReplayOptions(), speed="fast", on_progress=None)
        configs = [
            ReplayConfig(strategy=entry.config, consumer=consumer_config, options=options)
            for entry in strategies
        ]

        if source is None:
            if consumer_config is None:
                raise ValueError("consumer_config is required when no signal source is given")
            source = ReplayConsumer(consumer_config)
        buffered = await BufferedSignalSource.capture(source)

        results: List[ComparisonResult] = []
        for entry, config in zip(strategies, configs):
            report = await ReplayEngine(config, source=buffered).run()
            results.append(ComparisonResult(name=entry.name, report=report))
        return results
