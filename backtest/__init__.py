"""Signal replay: historical fetch, strategy replay and performance reports."""

from backtest.data_loader import BufferedSignalSource, ReplayConsumer, ReplayConsumerConfig, SignalSource
from backtest.engine import (
    ComparisonResult,
    NamedStrategy,
    ReplayConfig,
    ReplayEngine,
    ReplayOptions,
    ReplayProgress,
    trace_match,
)
from backtest.report import ReplayReport, TradeRecord, format_report_table, generate_report

__all__ = [
    "BufferedSignalSource",
    "ComparisonResult",
    "NamedStrategy",
    "ReplayConfig",
    "ReplayConsumer",
    "ReplayConsumerConfig",
    "ReplayEngine",
    "ReplayOptions",
    "ReplayProgress",
    "ReplayReport",
    "SignalSource",
    "TradeRecord",
    "format_report_table",
    "generate_report",
    "trace_match",
]
