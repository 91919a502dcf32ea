"""
Signal Deduplicator
Drops expired signals, arbitrage signals past their execution cutoff, and
repeats of a signal id within the dedup window.
Used on the live path only; replay feeds every historical signal through.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict

from shared.models import ArbitragePayload, Signal

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def _as_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SignalDeduplicator:
    """Signal-level dedup keyed by signal id."""

    def __init__(
        self,
        window_seconds: int,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._window = timedelta(seconds=window_seconds)
        self._now = now
        self._seen: Dict[str, datetime] = {}

    @property
    def window_seconds(self) -> int:
        return int(self._window.total_seconds())

    def set_window(self, window_seconds: int) -> None:
        """Change the dedup window (config reload)."""
        self._window = timedelta(seconds=window_seconds)

    def accept(self, signal: Signal) -> bool:
        """
        Check a signal and remember its id.

        Returns:
            False if the signal is expired, past its cutoff, or a duplicate
            within the window
        """
        now = self._now()

        if signal.expires_at is not None and _as_aware(signal.expires_at) <= now:
            logger.debug(f"Expired signal dropped: {signal.id}")
            return False

        arbitrage = ArbitragePayload.from_signal(signal)
        cutoff = arbitrage.execution_cutoff if arbitrage is not None else None
        if cutoff is not None and now >= cutoff:
            logger.debug(f"Signal past execution cutoff dropped: {signal.id}")
            return False

        previous = self._seen.get(signal.id)
        if previous is not None and now - previous < self._window:
            logger.debug(f"Duplicate signal dropped: {signal.id}")
            return False

        self._seen[signal.id] = now
        self._prune(now)
        return True

    def _prune(self, now: datetime) -> None:
        cutoff = now - self._window
        stale = [signal_id for signal_id, seen_at in self._seen.items() if seen_at < cutoff]
        for signal_id in stale:
            del self._seen[signal_id]

    def __len__(self) -> int:
        return len(self._seen)
