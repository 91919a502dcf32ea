"""
Signal Replay CLI
Command-line interface for replaying strategies against historical signals.

Usage:
    python -m cli.replay replay --strategy strategies/cross_venue_arb.json --from 2025-01-01 --to 2025-01-31
    python -m cli.replay compare --strategies a.json b.json --from 2025-01-01 --to 2025-01-31
    python -m cli.replay strategies --dir strategies
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import List, Optional, Sequence

from backtest.data_loader import ReplayConsumerConfig
from backtest.engine import (
    ComparisonResult,
    NamedStrategy,
    ReplayConfig,
    ReplayEngine,
    ReplayOptions,
    ReplayProgress,
)
from backtest.report import format_dollar, format_report_table
from services.strategy.strategy_config import StrategyConfig, load_strategy_config
from shared.config import get_settings
from shared.errors import StrategyConfigError, TradingError

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    """Configure root logging from LOG_LEVEL / LOG_FORMAT."""
    settings = get_settings().logging
    logging.basicConfig(level=settings.log_level, format=settings.log_format)


def parse_date(value: str) -> datetime:
    """Parse an ISO date or datetime; naive values are taken as UTC."""
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid date: {value}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_fee_rate(value: str) -> Decimal:
    try:
        rate = Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"Invalid fee rate: {value}")
    if not rate.is_finite() or rate < 0:
        raise argparse.ArgumentTypeError(f"Fee rate must be a non-negative number: {value}")
    return rate


def strategy_label(config: StrategyConfig, path: Path) -> str:
    """Display name for a loaded strategy file."""
    name = config.display_name
    return path.stem if name == "unnamed" else name


def format_comparison_table(results: Sequence[ComparisonResult]) -> str:
    """Render compare() results side by side."""
    header = (
        f"{'Strategy':<28} {'Signals':>8} {'Matched':>8} {'Trades':>8} "
        f"{'P&L':>14} {'Win':>7} {'MaxDD':>12}"
    )
    lines = [
        "=" * len(header),
        "STRATEGY COMPARISON",
        "=" * len(header),
        header,
        "-" * len(header),
    ]
    for result in results:
        report = result.report
        lines.append(
            f"{result.name[:28]:<28} "
            f"{report.summary.total_signals:>8,} "
            f"{report.summary.signals_matched:>8,} "
            f"{report.summary.trades_generated:>8,} "
            f"{format_dollar(report.pnl.total_realized_pnl):>14} "
            f"{report.win_rate.win_rate * 100:>6.1f}% "
            f"{format_dollar(-report.risk.max_drawdown):>12}"
        )
    lines.append("=" * len(header))
    return "\n".join(lines)


def write_output(path: str, data) -> None:
    Path(path).write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    logger.info(f"Report written to {path}")


def _log_progress(progress: ReplayProgress) -> None:
    date = progress.current_date.date() if progress.current_date else "-"
    logger.info(
        f"Page {progress.pages_completed}: {progress.signals_processed:,} signals, "
        f"{progress.trades_generated:,} trades (at {date})"
    )


def _consumer_config(args) -> ReplayConsumerConfig:
    return ReplayConsumerConfig.from_settings(start=args.start, end=args.end)


def _option_overrides(args) -> dict:
    overrides = {}
    if getattr(args, "speed", None):
        overrides["speed"] = args.speed
    if args.fee_rate is not None:
        overrides["fee_rate"] = args.fee_rate
    return overrides


def run_replay(args) -> int:
    """Replay one strategy."""
    config = load_strategy_config(args.strategy)
    options = ReplayOptions.from_settings(on_progress=_log_progress, **_option_overrides(args))

    engine = ReplayEngine(
        ReplayConfig(strategy=config, consumer=_consumer_config(args), options=options)
    )
    report = asyncio.run(engine.run())

    print()
    print(format_report_table(report))
    print()

    if args.output:
        write_output(args.output, report.to_json_dict())
    return 0


def run_compare(args) -> int:
    """Replay several strategies over one fetched signal range."""
    strategies: List[NamedStrategy] = []
    for raw_path in args.strategies:
        path = Path(raw_path)
        config = load_strategy_config(path)
        strategies.append(NamedStrategy(name=strategy_label(config, path), config=config))

    options = ReplayOptions.from_settings(**_option_overrides(args))

    results = asyncio.run(
        ReplayEngine.compare(strategies, _consumer_config(args), options=options)
    )

    print()
    print(format_comparison_table(results))
    print()

    if args.output:
        write_output(args.output, [result.to_json_dict() for result in results])
    return 0


def list_strategies(directory: Path) -> List[tuple[Path, StrategyConfig]]:
    """Load every valid *.json strategy in a directory, skipping invalid ones."""
    found: List[tuple[Path, StrategyConfig]] = []
    for path in sorted(directory.glob("*.json")):
        try:
            found.append((path, load_strategy_config(path)))
        except StrategyConfigError as e:
            logger.warning(f"Skipping {path.name}: {e}")
    return found


def run_strategies(args) -> int:
    """List available strategy templates."""
    directory = Path(args.dir or get_settings().strategy.strategies_dir)
    if not directory.is_dir():
        logger.error(f"Strategies directory not found: {directory}")
        return 1

    templates = list_strategies(directory)
    if not templates:
        print(f"No strategy templates in {directory}")
        return 0

    print(f"{'File':<32} {'Name':<28} {'Rules':>5}  Mode")
    print("-" * 76)
    for path, config in templates:
        mode = "dry-run" if config.dry_run else "live"
        if not config.enabled:
            mode += " (disabled)"
        print(f"{path.name:<32} {strategy_label(config, path):<28} {len(config.rules):>5}  {mode}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Signal Replay Runner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Replay command
    rp_parser = subparsers.add_parser("replay", help="Replay one strategy")
    rp_parser.add_argument("--strategy", required=True, help="Strategy config path")
    rp_parser.add_argument("--from", dest="start", required=True, type=parse_date, help="Start (ISO date)")
    rp_parser.add_argument("--to", dest="end", required=True, type=parse_date, help="End (ISO date)")
    rp_parser.add_argument("--output", help="Write JSON report to this path")
    rp_parser.add_argument("--speed", choices=["fast", "normal", "verbose"], help="Replay speed")
    rp_parser.add_argument("--fee-rate", type=parse_fee_rate, help="Fee fraction per leg (e.g. 0.02)")
    rp_parser.set_defaults(func=run_replay)

    # Compare command
    cmp_parser = subparsers.add_parser("compare", help="Compare strategies on one signal range")
    cmp_parser.add_argument("--strategies", nargs="+", required=True, help="Strategy config paths")
    cmp_parser.add_argument("--from", dest="start", required=True, type=parse_date, help="Start (ISO date)")
    cmp_parser.add_argument("--to", dest="end", required=True, type=parse_date, help="End (ISO date)")
    cmp_parser.add_argument("--output", help="Write JSON results to this path")
    cmp_parser.add_argument("--fee-rate", type=parse_fee_rate, help="Fee fraction per leg (e.g. 0.02)")
    cmp_parser.set_defaults(func=run_compare)

    # Strategies command
    st_parser = subparsers.add_parser("strategies", help="List strategy templates")
    st_parser.add_argument("--dir", help="Templates directory (default: STRATEGIES_DIR)")
    st_parser.set_defaults(func=run_strategies)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    configure_logging()
    try:
        return args.func(args)
    except TradingError as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
