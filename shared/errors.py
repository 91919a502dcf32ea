"""Typed errors for strategy loading and signal replay."""

from typing import Optional


class TradingError(Exception):
    """Base class for pipeline errors."""


class StrategyConfigError(TradingError):
    """Raised when a strategy or risk configuration is malformed."""


class SignalFetchError(TradingError):
    """Raised when historical signals cannot be fetched."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        self.status = status
        super().__init__(message)


class ReplayAbortedError(TradingError):
    """Raised when a replay run is aborted at a batch boundary."""
