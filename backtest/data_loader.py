"""
Replay Data Loader
Fetches historical signals for replay as a lazy, forward-only stream of pages.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol, Sequence

import aiohttp
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from shared.config import get_settings
from shared.errors import SignalFetchError
from shared.models import Signal

logger = logging.getLogger(__name__)

REPLAY_PATH = "/api/v1/public/signals/replay"


class SignalSource(Protocol):
    """
    One-shot producer of ordered signal batches.

    ``signals_skipped`` counts received records that could not be turned
    into signals; they still count as received.
    """

    @property
    def signals_skipped(self) -> int:
        """Records received but not yielded."""

    def fetch_signals(self) -> AsyncIterator[List[Signal]]:
        """Yield batches of signals in time order."""


class ReplayConsumerConfig(BaseModel):
    """Time range and filters for a historical signal fetch."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    api_url: str
    api_key: str
    start: datetime
    end: datetime
    signal_names: Optional[List[str]] = None
    signal_type: Optional[str] = None
    min_confidence: Optional[float] = None
    severities: Optional[List[str]] = None
    venues: Optional[List[str]] = None
    page_size: int = Field(default=1000, gt=0)
    timeout_seconds: float = Field(default=30.0, gt=0)

    @classmethod
    def from_settings(cls, start: datetime, end: datetime, **filters: Any) -> "ReplayConsumerConfig":
        """Build a config from SIGNAL_API_* settings."""
        api = get_settings().signal_api
        return cls(
            api_url=api.url,
            api_key=api.api_key,
            start=start,
            end=end,
            page_size=api.page_size,
            timeout_seconds=api.timeout_seconds,
            **filters,
        )


def _iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class ReplayConsumer:
    """
    HTTP client for cursor-paginated signal replay.

    Each response page becomes one batch. Pages are requested lazily, so a
    consumer that stops iterating stops fetching.
    """

    def __init__(
        self,
        config: ReplayConsumerConfig,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        """
        Initialize replay consumer.

        Args:
            config: Fetch range and filters
            session: Existing HTTP session (one is opened per fetch when omitted)
        """
        self._config = config
        self._session = session
        self._total_fetched = 0
        self._skipped = 0

    @property
    def signals_fetched(self) -> int:
        """Signals received so far."""
        return self._total_fetched

    @property
    def signals_skipped(self) -> int:
        """Records dropped because they did not parse as signals."""
        return self._skipped

    def build_params(self, cursor: Optional[str] = None) -> Dict[str, str]:
        """Query parameters for one page request."""
        config = self._config
        params = {
            "start": _iso(config.start),
            "end": _iso(config.end),
            "limit": str(config.page_size),
        }
        if config.signal_names:
            params["signal_names"] = ",".join(config.signal_names)
        if config.signal_type:
            params["signal_type"] = config.signal_type
        if config.min_confidence is not None:
            params["min_confidence"] = str(config.min_confidence)
        if config.severities:
            params["severities"] = ",".join(config.severities)
        if config.venues:
            params["venues"] = ",".join(config.venues)
        if cursor:
            params["cursor"] = cursor
        return params

    async def fetch_signals(self) -> AsyncIterator[List[Signal]]:
        """
        Stream signal pages for the configured range.

        Yields:
            Lists of signals, one per page, in time order

        Raises:
            SignalFetchError: On HTTP or transport failure
        """
        logger.info(
            f"Fetching signals from {_iso(self._config.start)} to {_iso(self._config.end)}"
        )
        if self._session is not None:
            async for page in self._paginate(self._session):
                yield page
            return

        timeout = aiohttp.ClientTimeout(total=self._config.timeout_seconds)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async for page in self._paginate(session):
                yield page

    async def _paginate(self, session: aiohttp.ClientSession) -> AsyncIterator[List[Signal]]:
        url = f"{self._config.api_url.rstrip('/')}{REPLAY_PATH}"
        headers = {
            "X-API-Key": self._config.api_key,
            "Accept": "application/json",
        }
        cursor: Optional[str] = None
        has_more = True
        page_number = 0

        while has_more:
            data = await self._fetch_page(session, url, headers, cursor)
            page_number += 1

            signals = self._parse_signals(data.get("signals") or [])
            self._total_fetched += len(signals)
            logger.debug(f"Page {page_number}: {len(signals)} signals")

            yield signals

            cursor = data.get("next_cursor")
            has_more = bool(data.get("has_more")) and cursor is not None

    async def _fetch_page(
        self,
        session: aiohttp.ClientSession,
        url: str,
        headers: Dict[str, str],
        cursor: Optional[str],
    ) -> Dict[str, Any]:
        try:
            async with session.get(url, params=self.build_params(cursor), headers=headers) as response:
                if not 200 <= response.status < 300:
                    body = await response.text()
                    raise SignalFetchError(
                        f"Replay API error {response.status}: {body}",
                        status=response.status,
                    )
                data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise SignalFetchError(f"Replay API request failed: {e!r}") from e
        except ValueError as e:
            raise SignalFetchError(f"Replay API returned invalid JSON: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get("signals", []), list):
            raise SignalFetchError("Replay API returned an unexpected response shape")
        return data

    def _parse_signals(self, records: Sequence[Any]) -> List[Signal]:
        signals: List[Signal] = []
        for record in records:
            try:
                signals.append(Signal.model_validate(record))
            except ValidationError as e:
                self._skipped += 1
                record_id = record.get("id") if isinstance(record, dict) else None
                logger.warning(f"Skipping malformed signal {record_id}: {e.error_count()} error(s)")
        return signals


class BufferedSignalSource:
    """
    Replays an already-fetched sequence of batches.

    Iteration is read-only and repeatable, so one fetch can serve any
    number of replays.
    """

    def __init__(self, batches: Sequence[Sequence[Signal]], signals_skipped: int = 0) -> None:
        self._batches = tuple(tuple(batch) for batch in batches)
        self._skipped = signals_skipped

    @property
    def batches(self) -> tuple[tuple[Signal, ...], ...]:
        return self._batches

    @property
    def signals_skipped(self) -> int:
        return self._skipped

    @property
    def total_signals(self) -> int:
        return sum(len(batch) for batch in self._batches)

    async def fetch_signals(self) -> AsyncIterator[List[Signal]]:
        for batch in self._batches:
            yield list(batch)

    @classmethod
    async def capture(cls, source: SignalSource) -> "BufferedSignalSource":
        """Drain a one-shot source into memory, preserving batch order."""
        batches: List[List[Signal]] = []
        async for batch in source.fetch_signals():
            batches.append(batch)
        logger.info(f"Buffered {sum(len(b) for b in batches)} signals in {len(batches)} batches")
        return cls(batches, signals_skipped=source.signals_skipped)
