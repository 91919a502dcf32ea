"""Live routing of strategy commands to venue executors."""

from services.execution.base import ExecutionResult, RecordingExecutor, VenueExecutor
from services.execution.signal_router import RouteOutcome, RouteResult, SignalRouter, StrategyStatus

__all__ = [
    "ExecutionResult",
    "RecordingExecutor",
    "RouteOutcome",
    "RouteResult",
    "SignalRouter",
    "StrategyStatus",
    "VenueExecutor",
]
