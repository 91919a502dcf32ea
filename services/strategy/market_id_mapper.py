"""
Market Identifier Resolver
Maps abstract signal market references to venue-native trading symbols.
"""

import logging
from typing import Mapping, Optional

from shared.models import is_prediction_venue

logger = logging.getLogger(__name__)


class MarketIdMapper:
    """
    Resolve a signal ``market_id`` to a venue-native ``venue:symbol`` id.

    Resolution order:
    1. Explicit mapping table (required for prediction markets)
    2. Convention: strip "/" from crypto pairs (BTC/USDT -> BTCUSDT)
    3. Pass through ids that are already native

    Prediction-market venues never fall back to convention.
    """

    def __init__(self, mappings: Optional[Mapping[str, str]] = None) -> None:
        self._mappings: dict[str, str] = dict(mappings or {})

    @property
    def mappings(self) -> dict[str, str]:
        """Copy of the explicit mapping table."""
        return dict(self._mappings)

    def resolve(self, signal_market_id: str) -> Optional[str]:
        """
        Resolve a signal market id.

        Args:
            signal_market_id: Abstract market reference, e.g. ``binance:BTC/USDT``

        Returns:
            Venue-native market id, or None when it cannot be resolved
        """
        if not signal_market_id:
            return None

        explicit = self._mappings.get(signal_market_id)
        if explicit:
            return explicit

        venue, sep, symbol = signal_market_id.partition(":")
        if not sep or not venue or not symbol:
            return None

        if is_prediction_venue(venue):
            logger.debug(f"No explicit mapping for prediction market {signal_market_id}")
            return None

        if "/" in symbol:
            return f"{venue}:{symbol.replace('/', '', 1)}"

        return signal_market_id

    def load_mappings(self, mappings: Mapping[str, str]) -> None:
        """Replace the whole mapping table (config reload)."""
        self._mappings = dict(mappings)
        logger.info(f"Loaded {len(self._mappings)} market mappings")
