"""
Base connector class and the error taxonomy shared by the polling pipeline.

Connectors fetch raw task records from a tracker, normalize them, and honour
a CancellationToken so a superseded fetch cycle stops as soon as it resumes.
"""

from abc import ABC, abstractmethod
import logging
from typing import Any, Optional

from config import DashboardConfig
from connectors.models import TaskRecord


logger = logging.getLogger(__name__)


class DashboardError(RuntimeError):
    """Base class for failures that surface in the poll lifecycle."""

    kind: str = "unexpected"


class ConfigurationError(DashboardError):
    """Raised when the credential or list id is missing."""

    kind = "configuration"


class TransportError(DashboardError):
    """Raised when the upstream API cannot be reached."""

    kind = "transport"


class UpstreamError(DashboardError):
    """Raised when the upstream API answers with a non-success response."""

    kind = "upstream"

    def __init__(self, status_code: int, body: str, source_system: str = "ClickUp") -> None:
        super().__init__(f"{source_system} API error ({status_code}): {body}")
        self.status_code = status_code
        self.body = body


class FetchCancelledError(RuntimeError):
    """Raised when a fetch cycle was superseded or the controller stopped."""


class CancellationToken:
    """Cancellation flag for one fetch cycle."""

    def __init__(self, cycle_id: int = 0) -> None:
        self.cycle_id = cycle_id
        self._cancelled: bool = False
        self._reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, reason: str = "superseded") -> None:
        if not self._cancelled:
            self._cancelled = True
            self._reason = reason

    def raise_if_cancelled(self, stage: str) -> None:
        if self._cancelled:
            raise FetchCancelledError(
                f"fetch cycle {self.cycle_id} {self._reason} ({stage})"
            )

    def __repr__(self) -> str:
        state = f"cancelled:{self._reason}" if self._cancelled else "active"
        return f"CancellationToken(cycle_id={self.cycle_id}, {state})"


class BaseConnector(ABC):
    """Abstract base class for task tracker connectors."""

    # Override in subclasses
    source_system: str = "unknown"

    def __init__(self, config: DashboardConfig) -> None:
        """
        Initialize the connector.

        Args:
            config: Resolved dashboard configuration
        """
        self.config = config

    def ensure_fetch_active(self, token: CancellationToken, stage: str) -> None:
        """Stop an in-flight fetch when its cycle has been superseded."""
        if token.cancelled:
            logger.info(
                "Fetch cancelled",
                extra={
                    "provider": self.source_system,
                    "cycle_id": token.cycle_id,
                    "stage": stage,
                },
            )
        token.raise_if_cancelled(stage)

    @abstractmethod
    async def fetch_all(self, token: CancellationToken) -> list[dict[str, Any]]:
        """Fetch every raw task record for the configured list."""
        pass

    @abstractmethod
    async def fetch_tasks(self, token: CancellationToken) -> tuple[TaskRecord, ...]:
        """Fetch and normalize every task for the configured list."""
        pass
