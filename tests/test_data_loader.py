from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import aiohttp
import pytest

from backtest.data_loader import BufferedSignalSource, ReplayConsumer, ReplayConsumerConfig
from shared.errors import SignalFetchError

from tests.factories import FakeResponse, FakeSession, FakeSignalSource, api_record, arb_signal


def _config(**extra) -> ReplayConsumerConfig:
    data = {
        "api_url": "https://signals.example.com/",
        "api_key": "k-123",
        "start": datetime(2025, 1, 1, tzinfo=timezone.utc),
        "end": datetime(2025, 1, 2),
        "page_size": 2,
    }
    data.update(extra)
    return ReplayConsumerConfig(**data)


async def _collect(consumer: ReplayConsumer) -> list[list[str]]:
    return [[s.id for s in batch] async for batch in consumer.fetch_signals()]


def test_build_params_formats_range_and_filters() -> None:
    consumer = ReplayConsumer(_config(signal_names=["a", "b"], venues=["kalshi"], min_confidence=70.0))

    params = consumer.build_params(cursor="c-1")

    assert params == {
        "start": "2025-01-01T00:00:00Z",
        "end": "2025-01-02T00:00:00Z",
        "limit": "2",
        "signal_names": "a,b",
        "min_confidence": "70.0",
        "venues": "kalshi",
        "cursor": "c-1",
    }


@pytest.mark.asyncio
async def test_follows_cursor_until_has_more_is_false() -> None:
    session = FakeSession([
        FakeResponse(200, {"signals": [api_record("1"), api_record("2")], "next_cursor": "c2", "has_more": True}),
        FakeResponse(200, {"signals": [api_record("3")], "next_cursor": None, "has_more": False}),
    ])
    consumer = ReplayConsumer(_config(), session=session)

    batches = await _collect(consumer)

    assert batches == [["1", "2"], ["3"]]
    assert consumer.signals_fetched == 3
    assert session.requests[0]["url"] == "https://signals.example.com/api/v1/public/signals/replay"
    assert session.requests[0]["headers"]["X-API-Key"] == "k-123"
    assert "cursor" not in session.requests[0]["params"]
    assert session.requests[1]["params"]["cursor"] == "c2"


@pytest.mark.asyncio
async def test_stops_when_cursor_missing() -> None:
    session = FakeSession([
        FakeResponse(200, {"signals": [api_record("1")], "has_more": True}),
    ])

    assert await _collect(ReplayConsumer(_config(), session=session)) == [["1"]]


@pytest.mark.asyncio
async def test_malformed_records_are_skipped() -> None:
    bad = {"id": "bad", "signal_type": "not-a-type"}
    session = FakeSession([
        FakeResponse(200, {"signals": [api_record("1"), bad], "has_more": False}),
    ])
    consumer = ReplayConsumer(_config(), session=session)

    assert await _collect(consumer) == [["1"]]
    assert consumer.signals_skipped == 1


@pytest.mark.asyncio
async def test_http_error_raises_with_status() -> None:
    session = FakeSession([FakeResponse(401, {"error": "unauthorized"})])

    with pytest.raises(SignalFetchError) as exc_info:
        await _collect(ReplayConsumer(_config(), session=session))

    assert exc_info.value.status == 401


@pytest.mark.asyncio
async def test_error_on_later_page_propagates() -> None:
    session = FakeSession([
        FakeResponse(200, {"signals": [api_record("1")], "next_cursor": "c2", "has_more": True}),
        FakeResponse(503, "unavailable"),
    ])

    with pytest.raises(SignalFetchError):
        await _collect(ReplayConsumer(_config(), session=session))


@pytest.mark.asyncio
async def test_transport_error_is_wrapped() -> None:
    session = FakeSession([aiohttp.ClientConnectionError("refused")])

    with pytest.raises(SignalFetchError, match="request failed"):
        await _collect(ReplayConsumer(_config(), session=session))


@pytest.mark.asyncio
async def test_timeout_is_wrapped() -> None:
    session = FakeSession([asyncio.TimeoutError()])

    with pytest.raises(SignalFetchError, match="request failed") as exc_info:
        await _collect(ReplayConsumer(_config(), session=session))

    assert isinstance(exc_info.value.__cause__, asyncio.TimeoutError)


@pytest.mark.asyncio
async def test_invalid_json_body_is_wrapped() -> None:
    session = FakeSession([FakeResponse(200, None, json_error=ValueError("Expecting value"))])

    with pytest.raises(SignalFetchError, match="invalid JSON"):
        await _collect(ReplayConsumer(_config(), session=session))


@pytest.mark.asyncio
async def test_unexpected_shape_raises() -> None:
    session = FakeSession([FakeResponse(200, ["not", "an", "object"])])

    with pytest.raises(SignalFetchError, match="unexpected response shape"):
        await _collect(ReplayConsumer(_config(), session=session))


@pytest.mark.asyncio
async def test_buffered_source_replays_captured_batches() -> None:
    source = FakeSignalSource([[arb_signal("1"), arb_signal("2")], [arb_signal("3")]])

    buffered = await BufferedSignalSource.capture(source)
    first = [[s.id for s in b] async for b in buffered.fetch_signals()]
    second = [[s.id for s in b] async for b in buffered.fetch_signals()]

    assert source.fetch_calls == 1
    assert first == second == [["1", "2"], ["3"]]
    assert buffered.total_signals == 3


@pytest.mark.asyncio
async def test_buffered_source_keeps_skipped_count() -> None:
    unknown_type = dict(api_record("2"), signal_type="market_update")
    session = FakeSession([
        FakeResponse(200, {"signals": [api_record("1"), unknown_type], "has_more": False}),
    ])

    buffered = await BufferedSignalSource.capture(ReplayConsumer(_config(), session=session))

    assert buffered.total_signals == 1
    assert buffered.signals_skipped == 1
