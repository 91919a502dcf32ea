"""
Replay Report
Performance metrics over a replay trade trace, plus table rendering.

Only priced pairs enter PnL: a buy leg and a sell leg from the same signal
whose payload carries parsable buy_price/sell_price. Every other command is
counted but not priced.
"""

import statistics
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Annotated, Any, Dict, List, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer
from pydantic.alias_generators import to_camel

from services.strategy.engine import BUY_LEG, SELL_LEG, SINGLE_LEG
from shared.models import TradeCommand, parse_decimal

# Decimals are kept exact in memory and written as JSON numbers.
Number = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]

ZERO = Decimal("0")
DAYS_PER_YEAR = Decimal("365")


@dataclass(frozen=True)
class TradeRecord:
    """One command in the replay trace, tagged with its originating signal."""
    signal_id: str
    signal_time: datetime
    rule_name: str
    command: TradeCommand
    payload: Optional[Mapping[str, Any]] = None
    leg: str = SINGLE_LEG
    # Position of the originating signal in the stream
    sequence: Optional[int] = None


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Report Models
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class _ReportSection(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )


class ReportConfig(_ReportSection):
    strategy: str = "unnamed"
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    fee_rate: Number = Decimal("0.02")


class ReportSummary(_ReportSection):
    total_signals: int = 0
    signals_matched: int = 0
    trades_generated: int = 0
    pages_completed: int = 0


class ReportPnl(_ReportSection):
    total_realized_pnl: Number = ZERO
    total_fees: Number = ZERO


class ReportWinRate(_ReportSection):
    priced_pairs: int = 0
    wins: int = 0
    losses: int = 0
    win_rate: Number = ZERO


class ReportRisk(_ReportSection):
    max_drawdown: Number = ZERO
    largest_win: Number = ZERO
    largest_loss: Number = ZERO
    sharpe_ratio: Optional[Number] = None


class ReportBreakdown(_ReportSection):
    trades: int = 0
    priced_pairs: int = 0
    realized_pnl: Number = ZERO
    win_rate: Number = ZERO
    signals_matched: int = 0


class ReportDataQuality(_ReportSection):
    payload_priced_trades: int = 0
    unpriced_trades: int = 0
    exact_price_rate: Number = ZERO
    signals_skipped: int = 0


class ReplayReport(_ReportSection):
    """Summary of one replay run."""
    config: ReportConfig = Field(default_factory=ReportConfig)
    summary: ReportSummary = Field(default_factory=ReportSummary)
    pnl: ReportPnl = Field(default_factory=ReportPnl)
    win_rate: ReportWinRate = Field(default_factory=ReportWinRate)
    risk: ReportRisk = Field(default_factory=ReportRisk)
    by_route: Dict[str, ReportBreakdown] = Field(default_factory=dict)
    by_rule: Dict[str, ReportBreakdown] = Field(default_factory=dict)
    data_quality: ReportDataQuality = Field(default_factory=ReportDataQuality)

    def to_json_dict(self) -> Dict[str, Any]:
        """camelCase JSON-ready dict."""
        return self.model_dump(mode="json", by_alias=True)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Report Generation
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass
class _SignalLegs:
    signal_id: str
    signal_time: datetime
    rule_name: str
    payload: Optional[Mapping[str, Any]]
    buy: Optional[TradeCommand] = None
    sell: Optional[TradeCommand] = None


@dataclass(frozen=True)
class PricedPair:
    """A buy/sell pair with payload prices and its realized PnL."""
    signal_id: str
    signal_time: datetime
    rule_name: str
    route: str
    size: Decimal
    buy_price: Decimal
    sell_price: Decimal
    fees: Decimal
    pnl: Decimal


def realized_pnl(
    size: Decimal,
    buy_price: Decimal,
    sell_price: Decimal,
    fee_rate: Decimal,
) -> tuple[Decimal, Decimal]:
    """Spread captured on a pair net of fees on both legs' notional. Returns (pnl, fees)."""
    fees = fee_rate * size * (buy_price + sell_price)
    return size * (sell_price - buy_price) - fees, fees


def _occurrence(record: TradeRecord) -> Any:
    return record.sequence if record.sequence is not None else record.signal_id


def price_pairs(trace: Sequence[TradeRecord], fee_rate: Decimal) -> List[PricedPair]:
    """
    Group the trace by processed signal and price every complete pair.

    Records are grouped per signal occurrence (``sequence``), so a signal id
    seen twice in one stream yields two pairs. Pairs come out in processing
    order.
    """
    legs: Dict[Any, _SignalLegs] = {}
    for record in trace:
        key = _occurrence(record)
        entry = legs.get(key)
        if entry is None:
            entry = _SignalLegs(record.signal_id, record.signal_time, record.rule_name, record.payload)
            legs[key] = entry
        if record.leg == BUY_LEG and entry.buy is None:
            entry.buy = record.command
        elif record.leg == SELL_LEG and entry.sell is None:
            entry.sell = record.command

    pairs: List[PricedPair] = []
    for entry in legs.values():
        if entry.buy is None or entry.sell is None or not entry.payload:
            continue
        buy_price = parse_decimal(entry.payload.get("buy_price"))
        sell_price = parse_decimal(entry.payload.get("sell_price"))
        if buy_price is None or sell_price is None:
            continue
        size = entry.buy.size
        pnl, fees = realized_pnl(size, buy_price, sell_price, fee_rate)
        pairs.append(
            PricedPair(
                signal_id=entry.signal_id,
                signal_time=entry.signal_time,
                rule_name=entry.rule_name,
                route=f"{entry.buy.venue}->{entry.sell.venue}",
                size=size,
                buy_price=buy_price,
                sell_price=sell_price,
                fees=fees,
                pnl=pnl,
            )
        )
    return pairs


def max_drawdown(pnls: Sequence[Decimal]) -> Decimal:
    """Largest peak-to-trough fall of cumulative PnL (peak starts at zero)."""
    cumulative = ZERO
    peak = ZERO
    worst = ZERO
    for pnl in pnls:
        cumulative += pnl
        if cumulative > peak:
            peak = cumulative
        drawdown = peak - cumulative
        if drawdown > worst:
            worst = drawdown
    return worst


def sharpe_ratio(pairs: Sequence[PricedPair]) -> Optional[Decimal]:
    """Annualized Sharpe ratio of daily-bucketed PnL; None with fewer than two days."""
    daily: Dict[date, Decimal] = defaultdict(lambda: ZERO)
    for pair in pairs:
        daily[pair.signal_time.astimezone(timezone.utc).date()] += pair.pnl

    returns = list(daily.values())
    if len(returns) < 2:
        return None
    stddev = statistics.stdev(returns)
    if stddev == 0:
        return None
    mean = sum(returns, ZERO) / len(returns)
    return mean / stddev * DAYS_PER_YEAR.sqrt()


def _win_rate(wins: int, total: int) -> Decimal:
    if total == 0:
        return ZERO
    return Decimal(wins) / Decimal(total)


def _breakdown(pairs: Sequence[PricedPair], trades: int = 0, signals_matched: int = 0) -> ReportBreakdown:
    wins = sum(1 for p in pairs if p.pnl > 0)
    return ReportBreakdown(
        trades=trades,
        priced_pairs=len(pairs),
        realized_pnl=sum((p.pnl for p in pairs), ZERO),
        win_rate=_win_rate(wins, len(pairs)),
        signals_matched=signals_matched,
    )


def generate_report(
    trace: Sequence[TradeRecord],
    total_signals: int,
    signals_matched: int,
    fee_rate: Decimal = Decimal("0.02"),
    pages_completed: int = 0,
    config: Optional[ReportConfig] = None,
    signals_skipped: int = 0,
) -> ReplayReport:
    """
    Build a ReplayReport from a trade trace.

    Args:
        trace: Commands in processing order
        total_signals: Signals received by the run
        signals_matched: Signals that produced at least one command
        fee_rate: Fee fraction charged on each leg's notional
        pages_completed: Batches consumed by the run
        config: Run metadata echoed in the report
        signals_skipped: Records dropped before processing (already in total_signals)

    Returns:
        ReplayReport
    """
    fee_rate = Decimal(str(fee_rate))
    pairs = price_pairs(trace, fee_rate)
    pnls = [pair.pnl for pair in pairs]

    wins = sum(1 for pnl in pnls if pnl > 0)
    priced_trades = 2 * len(pairs)
    trades_generated = len(trace)

    route_pairs: Dict[str, List[PricedPair]] = defaultdict(list)
    for pair in pairs:
        route_pairs[pair.route].append(pair)

    rule_pairs: Dict[str, List[PricedPair]] = defaultdict(list)
    for pair in pairs:
        rule_pairs[pair.rule_name].append(pair)
    rule_trades: Dict[str, int] = defaultdict(int)
    rule_signals: Dict[str, set] = defaultdict(set)
    for record in trace:
        rule_trades[record.rule_name] += 1
        rule_signals[record.rule_name].add(_occurrence(record))

    return ReplayReport(
        config=(config or ReportConfig()).model_copy(update={"fee_rate": fee_rate}),
        summary=ReportSummary(
            total_signals=total_signals,
            signals_matched=signals_matched,
            trades_generated=trades_generated,
            pages_completed=pages_completed,
        ),
        pnl=ReportPnl(
            total_realized_pnl=sum(pnls, ZERO),
            total_fees=sum((pair.fees for pair in pairs), ZERO),
        ),
        win_rate=ReportWinRate(
            priced_pairs=len(pairs),
            wins=wins,
            losses=len(pairs) - wins,
            win_rate=_win_rate(wins, len(pairs)),
        ),
        risk=ReportRisk(
            max_drawdown=max(max_drawdown(pnls), ZERO),
            largest_win=max(pnls + [ZERO]),
            largest_loss=min(pnls + [ZERO]),
            sharpe_ratio=sharpe_ratio(pairs),
        ),
        by_route={
            route: _breakdown(items, trades=2 * len(items), signals_matched=len(items))
            for route, items in route_pairs.items()
        },
        by_rule={
            rule: _breakdown(
                rule_pairs.get(rule, []),
                trades=count,
                signals_matched=len(rule_signals[rule]),
            )
            for rule, count in rule_trades.items()
        },
        data_quality=ReportDataQuality(
            payload_priced_trades=priced_trades,
            unpriced_trades=trades_generated - priced_trades,
            exact_price_rate=_win_rate(priced_trades, trades_generated),
            signals_skipped=signals_skipped,
        ),
    )


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Rendering
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def format_dollar(amount: Decimal) -> str:
    sign = "+" if amount >= 0 else "-"
    return f"{sign}${abs(amount):,.2f}"


def format_report_table(report: ReplayReport) -> str:
    """Render a report for the terminal."""
    cfg = report.config
    period = "n/a"
    if cfg.start and cfg.end:
        period = f"{cfg.start.date()} to {cfg.end.date()}"
    sharpe = report.risk.sharpe_ratio
    rule_line = "-" * 60

    lines = [
        "=" * 60,
        "SIGNAL REPLAY REPORT",
        "=" * 60,
        f"Strategy:          {cfg.strategy}",
        f"Period:            {period}",
        f"Fee rate:          {cfg.fee_rate * 100:.1f}% per leg",
        rule_line,
        f"Total signals:     {report.summary.total_signals:,}",
        f"Signals matched:   {report.summary.signals_matched:,}",
        f"Trades generated:  {report.summary.trades_generated:,}",
        rule_line,
        f"Realized P&L:      {format_dollar(report.pnl.total_realized_pnl)}",
        f"Total fees:        {format_dollar(report.pnl.total_fees)}",
        f"Win rate:          {report.win_rate.win_rate * 100:.1f}% "
        f"({report.win_rate.wins}/{report.win_rate.priced_pairs})",
        f"Max drawdown:      {format_dollar(-report.risk.max_drawdown)}",
        f"Largest win:       {format_dollar(report.risk.largest_win)}",
        f"Largest loss:      {format_dollar(report.risk.largest_loss)}",
        f"Sharpe ratio:      {f'{sharpe:.2f}' if sharpe is not None else 'N/A'}",
    ]

    if report.by_route:
        lines.append(rule_line)
        lines.append("By route")
        for route, data in report.by_route.items():
            lines.append(
                f"  {route:<28} {data.priced_pairs} pairs, "
                f"{format_dollar(data.realized_pnl)}, {data.win_rate * 100:.0f}% win"
            )

    if report.by_rule:
        lines.append(rule_line)
        lines.append("By rule")
        for rule, data in report.by_rule.items():
            lines.append(
                f"  {rule:<28} {data.trades} trades, "
                f"{format_dollar(data.realized_pnl)}, {data.win_rate * 100:.0f}% win"
            )

    dq = report.data_quality
    lines.extend([
        rule_line,
        f"Payload-priced:    {dq.payload_priced_trades}/{report.summary.trades_generated} "
        f"({dq.exact_price_rate * 100:.1f}%)",
        "=" * 60,
    ])
    return "\n".join(lines)

