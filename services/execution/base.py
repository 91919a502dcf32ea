"""
Venue Executor Interface
Boundary between the decision pipeline and venue-specific adapters.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from shared.models import TradeCommand

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome reported by an executor for one command."""
    command_id: str
    success: bool
    venue_order_id: Optional[str] = None
    error: Optional[str] = None


class VenueExecutor(ABC):
    """
    Accepts trade commands and reports success or failure.

    Request signing, order formatting and lifecycle reconciliation belong to
    the concrete venue adapters.
    """

    @abstractmethod
    async def submit(self, command: TradeCommand) -> ExecutionResult:
        """
        Submit a trade command.

        Args:
            command: Venue-native trade command

        Returns:
            ExecutionResult for the command
        """
        pass


class RecordingExecutor(VenueExecutor):
    """Executor that accepts every command and keeps it in memory."""

    def __init__(self) -> None:
        self.commands: List[TradeCommand] = []

    async def submit(self, command: TradeCommand) -> ExecutionResult:
        self.commands.append(command)
        logger.info(
            f"Accepted {command.side.value} {command.size} {command.market_id} "
            f"({command.order_type.value})"
        )
        return ExecutionResult(command_id=command.id, success=True)
