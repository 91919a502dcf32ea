"""
Shared Models for the Signal Pipeline
Pydantic schemas for signals, trade commands and positions.

This module is the SINGLE SOURCE OF TRUTH for all data models.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Enums
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class SignalType(str, Enum):
    """Signal type enum."""
    ALERT = "alert"
    STRATEGY = "strategy"
    CROSS_VENUE_ARBITRAGE = "cross_venue_arbitrage"


class SignalDirection(str, Enum):
    """Directional hint carried by some signals."""
    ABOVE = "above"
    BELOW = "below"
    CROSS = "cross"
    LONG = "long"
    SHORT = "short"
    NEUTRAL = "neutral"


class Severity(str, Enum):
    """Alert severity enum."""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}


class OrderSide(str, Enum):
    """Order side enum. YES/NO are outcome sides on prediction venues."""
    BUY = "buy"
    SELL = "sell"
    YES = "yes"
    NO = "no"


class TradeAction(str, Enum):
    """Whether a command opens or closes a position."""
    OPEN = "open"
    CLOSE = "close"


class OrderType(str, Enum):
    """Order type enum."""
    MARKET = "market"
    LIMIT = "limit"


# Venues whose native market identifiers cannot be derived by convention.
PREDICTION_VENUES = frozenset({"kalshi", "polymarket"})


def is_prediction_venue(venue: str) -> bool:
    """Check whether a venue requires explicit market mappings."""
    return venue.lower() in PREDICTION_VENUES


def parse_decimal(value: Any) -> Optional[Decimal]:
    """Parse a decimal string (or number) leniently, returning None on failure."""
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not parsed.is_finite():
        return None
    return parsed


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO 8601 timestamp leniently; naive values are taken as UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def outcome_side(outcome: Optional[str]) -> Optional[OrderSide]:
    """Map a prediction-market outcome ("Yes"/"No") to an order side."""
    if not outcome:
        return None
    side = outcome.strip().lower()
    if side == OrderSide.YES.value:
        return OrderSide.YES
    if side == OrderSide.NO.value:
        return OrderSide.NO
    return None


SUPER_HEDGE = "super_hedge"

# Ephemeral pairs stop trading this long before window_end_utc.
SETTLEMENT_MARGIN = timedelta(seconds=15)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Signal Models
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class Signal(BaseModel):
    """Market signal received from the upstream signal service."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    signal_type: SignalType
    signal_name: str
    market_id: str
    venue: str
    base_currency: str = ""
    quote_currency: str = ""
    created_at: datetime
    triggered_at: Optional[datetime] = None
    description: str = ""
    payload: Optional[dict[str, Any]] = None
    severity: Optional[Severity] = None
    direction: Optional[SignalDirection] = None
    confidence: Optional[str] = None  # Decimal as string
    expires_at: Optional[datetime] = None
    triggered_signal_ids: list[str] = Field(default_factory=list)

    @property
    def timestamp(self) -> datetime:
        """Time the signal fired (falls back to creation time)."""
        return self.triggered_at or self.created_at

    @property
    def symbol(self) -> str:
        """Pair symbol in BASE/QUOTE form."""
        return f"{self.base_currency}/{self.quote_currency}"

    @property
    def confidence_value(self) -> Decimal:
        """Numeric confidence (0 when absent or unparsable)."""
        return parse_decimal(self.confidence) or Decimal("0")


class ArbitragePayload(BaseModel):
    """Cross-venue arbitrage payload (schema version 1)."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    version: Optional[int] = None
    buy_venue: str = Field(min_length=1)
    sell_venue: str = Field(min_length=1)
    buy_market_id: str = Field(min_length=1)
    sell_market_id: str = Field(min_length=1)
    buy_price: Optional[str] = None
    sell_price: Optional[str] = None
    pair_id: Optional[str] = None
    pair_name: Optional[str] = None
    strategy: Optional[str] = None
    buy_outcome: Optional[str] = None
    sell_outcome: Optional[str] = None
    window_end_utc: Optional[str] = None
    signal_cutoff_utc: Optional[str] = None

    @field_validator("buy_price", "sell_price", mode="before")
    @classmethod
    def price_as_string(cls, v: Any) -> Optional[str]:
        """Accept numeric prices alongside decimal strings."""
        if v is None or isinstance(v, str):
            return v
        return str(v)

    @field_validator("window_end_utc", "signal_cutoff_utc", mode="before")
    @classmethod
    def timestamp_as_string(cls, v: Any) -> Optional[str]:
        """Keep cutoff timestamps as raw strings; they are parsed leniently."""
        if v is None or isinstance(v, str):
            return v
        if isinstance(v, datetime):
            return v.isoformat()
        return str(v)

    @property
    def buy_price_value(self) -> Optional[Decimal]:
        return parse_decimal(self.buy_price)

    @property
    def sell_price_value(self) -> Optional[Decimal]:
        return parse_decimal(self.sell_price)

    @property
    def is_super_hedge(self) -> bool:
        """Both legs buy complementary outcomes instead of buy/sell."""
        return (
            self.strategy == SUPER_HEDGE
            and outcome_side(self.buy_outcome) is not None
            and outcome_side(self.sell_outcome) is not None
        )

    @property
    def execution_cutoff(self) -> Optional[datetime]:
        """
        Last moment the opportunity may be acted on.

        ``signal_cutoff_utc`` wins; otherwise ``window_end_utc`` minus a
        settlement margin. None when neither parses.
        """
        cutoff = parse_timestamp(self.signal_cutoff_utc)
        if cutoff is not None:
            return cutoff
        window_end = parse_timestamp(self.window_end_utc)
        if window_end is not None:
            return window_end - SETTLEMENT_MARGIN
        return None

    @classmethod
    def from_signal(cls, signal: Signal) -> Optional["ArbitragePayload"]:
        """
        Extract a two-legged payload from a signal.

        Returns None unless the payload carries all four venue/market fields
        as non-empty strings.
        """
        payload = signal.payload
        if not payload:
            return None
        for key in ("buy_venue", "sell_venue", "buy_market_id", "sell_market_id"):
            value = payload.get(key)
            if not isinstance(value, str) or not value:
                return None
        try:
            return cls.model_validate(payload)
        except ValidationError:
            return None


# Payload fields consulted (in order) for a single-leg reference price.
PRICE_FIELDS = ("current_price", "trigger_price", "price", "yes_price", "last_price")


def extract_payload_price(signal: Signal) -> Optional[Decimal]:
    """Return the first parsable price found in the signal payload."""
    if not signal.payload:
        return None
    for field_name in PRICE_FIELDS:
        price = parse_decimal(signal.payload.get(field_name))
        if price is not None:
            return price
    return None


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Command Models
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class TradeCommand(BaseModel):
    """Instruction to open or close a position on a venue."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    type: Literal["trade"] = "trade"
    id: str
    market_id: str
    venue: str
    side: OrderSide
    action: TradeAction = TradeAction.OPEN
    size: Decimal = Field(gt=0)
    order_type: OrderType = OrderType.MARKET
    limit_price: Optional[Decimal] = None


def command_id(signal_id: str, leg: str) -> str:
    """Deterministic command id for one leg of a signal."""
    return f"sig-{signal_id}-{leg}"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Position Models
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class Position(BaseModel):
    """Open position as reported by the external position tracker."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    market_id: str
    size: Decimal
    entry_price: Decimal
    current_price: Optional[Decimal] = None
    venue: Optional[str] = None
    side: Optional[str] = None

    @property
    def notional_value(self) -> Decimal:
        """Calculate notional value of position."""
        price = self.current_price if self.current_price is not None else self.entry_price
        return self.size * price
