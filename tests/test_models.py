from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError

from shared.models import (
    ArbitragePayload,
    OrderSide,
    Severity,
    TradeCommand,
    command_id,
    extract_payload_price,
    is_prediction_venue,
    outcome_side,
    parse_decimal,
    parse_timestamp,
)

from tests.factories import arb_payload, make_signal


def test_signal_ignores_unknown_fields_and_exposes_symbol() -> None:
    signal = make_signal(confidence="87.5", unknown="x")

    assert signal.symbol == "BTC/USDT"
    assert signal.confidence_value == Decimal("87.5")
    assert signal.timestamp == signal.created_at


def test_arbitrage_payload_accepts_numeric_prices() -> None:
    payload = ArbitragePayload.from_signal(make_signal(payload=arb_payload(0.4, 0.55)))

    assert payload is not None
    assert payload.buy_price_value == Decimal("0.4")
    assert payload.sell_price_value == Decimal("0.55")


@pytest.mark.parametrize("missing", ["buy_venue", "sell_venue", "buy_market_id", "sell_market_id"])
def test_incomplete_arbitrage_payload_is_not_two_legged(missing: str) -> None:
    payload = arb_payload()
    payload[missing] = ""

    assert ArbitragePayload.from_signal(make_signal(payload=payload)) is None


def test_extract_payload_price_order() -> None:
    signal = make_signal(payload={"price": "0.7", "trigger_price": "bad", "last_price": "0.9"})

    assert extract_payload_price(signal) == Decimal("0.7")
    assert extract_payload_price(make_signal()) is None


@pytest.mark.parametrize("value", [None, "", "abc", "NaN", "Infinity", True])
def test_parse_decimal_rejects_non_finite(value) -> None:
    assert parse_decimal(value) is None


def test_severity_rank_order() -> None:
    assert Severity.LOW.rank < Severity.MEDIUM.rank < Severity.HIGH.rank < Severity.CRITICAL.rank


def test_prediction_venues() -> None:
    assert is_prediction_venue("Kalshi")
    assert is_prediction_venue("polymarket")
    assert not is_prediction_venue("binance")


def test_trade_command_requires_positive_size() -> None:
    with pytest.raises(ValidationError):
        TradeCommand(id=command_id("s", "buy"), market_id="m", venue="v", side=OrderSide.BUY, size=Decimal("0"))

    assert command_id("s1", "sell") == "sig-s1-sell"


def test_outcome_side() -> None:
    assert outcome_side("Yes") == OrderSide.YES
    assert outcome_side(" NO ") == OrderSide.NO
    assert outcome_side("Up") is None
    assert outcome_side(None) is None


def test_parse_timestamp_defaults_to_utc() -> None:
    assert parse_timestamp("2025-01-01T00:00:00Z") == datetime(2025, 1, 1, tzinfo=timezone.utc)
    assert parse_timestamp("2025-01-01T00:00:00") == datetime(2025, 1, 1, tzinfo=timezone.utc)
    assert parse_timestamp("later") is None


def test_super_hedge_needs_both_outcomes() -> None:
    signal = make_signal(payload=arb_payload(strategy="super_hedge", buy_outcome="Yes", sell_outcome="No"))
    partial = make_signal(payload=arb_payload(strategy="super_hedge", buy_outcome="Yes"))

    assert ArbitragePayload.from_signal(signal).is_super_hedge is True
    assert ArbitragePayload.from_signal(partial).is_super_hedge is False


def test_execution_cutoff_from_window_end() -> None:
    payload = ArbitragePayload.model_validate(arb_payload(window_end_utc="2025-01-01T00:15:00Z"))

    assert payload.execution_cutoff == datetime(2025, 1, 1, 0, 14, 45, tzinfo=timezone.utc)
