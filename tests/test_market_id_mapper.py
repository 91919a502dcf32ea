from __future__ import annotations

import pytest

from services.strategy.market_id_mapper import MarketIdMapper


def test_explicit_mapping_wins_over_convention() -> None:
    mapper = MarketIdMapper({"binance:BTC/USDT": "binance:XBTUSDT"})

    assert mapper.resolve("binance:BTC/USDT") == "binance:XBTUSDT"


def test_crypto_pair_slash_is_stripped() -> None:
    mapper = MarketIdMapper()

    assert mapper.resolve("binance:BTC/USDT") == "binance:BTCUSDT"


def test_native_id_passes_through() -> None:
    mapper = MarketIdMapper()

    assert mapper.resolve("hyperliquid:BTC-PERP") == "hyperliquid:BTC-PERP"


@pytest.mark.parametrize(
    "market_id",
    ["kalshi:KXBTC-25JAN01", "polymarket:btc-up", "Kalshi:BTC/USD", "POLYMARKET:x"],
)
def test_prediction_venues_require_explicit_mapping(market_id: str) -> None:
    assert MarketIdMapper().resolve(market_id) is None


def test_prediction_venue_with_mapping_resolves() -> None:
    mapper = MarketIdMapper({"kalshi:BTC-UP": "kalshi:KXBTC15M-T100000"})

    assert mapper.resolve("kalshi:BTC-UP") == "kalshi:KXBTC15M-T100000"


@pytest.mark.parametrize("market_id", ["", "BTCUSDT", ":BTCUSDT", "binance:"])
def test_unparsable_ids_do_not_resolve(market_id: str) -> None:
    assert MarketIdMapper().resolve(market_id) is None


def test_load_mappings_replaces_whole_table() -> None:
    mapper = MarketIdMapper({"kalshi:A": "kalshi:NATIVE-A"})

    mapper.load_mappings({"kalshi:B": "kalshi:NATIVE-B"})

    assert mapper.resolve("kalshi:A") is None
    assert mapper.resolve("kalshi:B") == "kalshi:NATIVE-B"
    assert mapper.mappings == {"kalshi:B": "kalshi:NATIVE-B"}


def test_mappings_property_is_a_copy() -> None:
    mapper = MarketIdMapper({"kalshi:A": "kalshi:NATIVE-A"})

    mapper.mappings["kalshi:B"] = "kalshi:NATIVE-B"

    assert mapper.resolve("kalshi:B") is None
