from __future__ import annotations

import argparse
import json
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

import pytest

from backtest.engine import ComparisonResult, trace_match
from backtest.report import ReportConfig, generate_report
from cli.replay import (
    format_comparison_table,
    list_strategies,
    main,
    parse_date,
    parse_fee_rate,
)
from services.strategy.engine import StrategyEngine

from tests.factories import arb_config, arb_signal, rule


def _report(name: str, signals):
    engine = StrategyEngine(arb_config())
    trace = []
    for sequence, signal in enumerate(signals, start=1):
        trace.extend(trace_match(signal, engine.evaluate(signal), sequence))
    return generate_report(trace, len(signals), len(signals), config=ReportConfig(strategy=name))


def test_parse_date_accepts_dates_and_datetimes() -> None:
    assert parse_date("2025-01-01") == datetime(2025, 1, 1, tzinfo=timezone.utc)
    assert parse_date("2025-01-01T12:00:00Z") == datetime(2025, 1, 1, 12, tzinfo=timezone.utc)

    with pytest.raises(argparse.ArgumentTypeError):
        parse_date("yesterday")


def test_parse_fee_rate() -> None:
    assert parse_fee_rate("0.01") == Decimal("0.01")

    with pytest.raises(argparse.ArgumentTypeError):
        parse_fee_rate("-0.1")
    with pytest.raises(argparse.ArgumentTypeError):
        parse_fee_rate("abc")


def test_format_comparison_table() -> None:
    results = [
        ComparisonResult("aggressive", _report("aggressive", [arb_signal("1"), arb_signal("2")])),
        ComparisonResult("idle", generate_report([], 2, 0)),
    ]

    table = format_comparison_table(results)

    assert "STRATEGY COMPARISON" in table
    lines = table.splitlines()
    aggressive = next(line for line in lines if line.startswith("aggressive"))
    idle = next(line for line in lines if line.startswith("idle"))
    assert "+$2.62" in aggressive
    assert "100.0%" in aggressive
    assert "+$0.00" in idle


def test_comparison_result_json() -> None:
    result = ComparisonResult("arb", _report("arb", [arb_signal("1")]))

    data = result.to_json_dict()

    assert data["name"] == "arb"
    assert data["report"]["summary"]["tradesGenerated"] == 2


def test_list_strategies_skips_invalid(tmp_path: Path) -> None:
    (tmp_path / "good.json").write_text(json.dumps({"name": "good", "rules": [rule()]}), encoding="utf-8")
    (tmp_path / "bad.json").write_text(json.dumps({"rules": [{"name": ""}]}), encoding="utf-8")
    (tmp_path / "notes.txt").write_text("ignored", encoding="utf-8")

    found = list_strategies(tmp_path)

    assert [path.name for path, _ in found] == ["good.json"]


def test_strategies_command_lists_templates(tmp_path: Path, capsys) -> None:
    (tmp_path / "arb.json").write_text(
        json.dumps({"name": "arb", "dry_run": False, "rules": [rule(), rule("second")]}),
        encoding="utf-8",
    )

    exit_code = main(["strategies", "--dir", str(tmp_path)])

    out = capsys.readouterr().out
    assert exit_code == 0
    assert "arb.json" in out
    assert "live" in out


def test_strategies_command_missing_dir(tmp_path: Path) -> None:
    assert main(["strategies", "--dir", str(tmp_path / "nope")]) == 1


def test_replay_with_missing_strategy_exits_with_error(tmp_path: Path) -> None:
    exit_code = main([
        "replay",
        "--strategy", str(tmp_path / "missing.json"),
        "--from", "2025-01-01",
        "--to", "2025-01-02",
    ])

    assert exit_code == 1


def test_no_command_prints_help(capsys) -> None:
    assert main([]) == 1
    assert "usage" in capsys.readouterr().out
