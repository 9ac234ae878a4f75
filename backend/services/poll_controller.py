"""
Poll Controller for the task dashboard.

Owns the refresh lifecycle of one tracker list:
- Runs an immediate fetch cycle and a recurring refresh timer
- Supersedes the in-flight cycle whenever a new one starts
- Maps cycle outcomes onto idle / loading / success / error
- Publishes an immutable snapshot to subscribers after every change

Subscribers are fed from their own delivery tasks through a one-slot
mailbox that always holds the newest snapshot, so a slow consumer only
ever lags itself and never the fetch cycle.

At most one fetch cycle is in flight. A cycle only touches state while its
cancellation token is current and the controller is running, so results of
a superseded or stopped cycle are dropped.
"""

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Coroutine, Optional

from pydantic import BaseModel, ConfigDict, field_serializer

from config import DashboardConfig, to_iso8601
from connectors.base import (
    BaseConnector,
    CancellationToken,
    ConfigurationError,
    DashboardError,
    FetchCancelledError,
    UpstreamError,
)
from connectors.clickup import ClickUpConnector
from connectors.models import TaskRecord

logger = logging.getLogger(__name__)


# Type alias for subscriber callbacks
SnapshotCallback = Callable[["PollSnapshot"], Coroutine[Any, Any, None]]
ConnectorFactory = Callable[[DashboardConfig], BaseConnector]


class PollStatus(str, Enum):
    """Load lifecycle of the task list."""

    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


class ErrorDetail(BaseModel):
    """Display-safe description of the last failure."""

    model_config = ConfigDict(frozen=True)

    kind: str
    message: str
    status_code: Optional[int] = None
    body: Optional[str] = None

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ErrorDetail":
        if isinstance(exc, UpstreamError):
            return cls(
                kind=exc.kind,
                message=str(exc),
                status_code=exc.status_code,
                body=exc.body,
            )
        if isinstance(exc, DashboardError):
            return cls(kind=exc.kind, message=str(exc))
        return cls(kind="unexpected", message=str(exc) or exc.__class__.__name__)


class PollSnapshot(BaseModel):
    """Read-only view of the poll state handed to consumers."""

    model_config = ConfigDict(frozen=True)

    tasks: tuple[TaskRecord, ...] = ()
    status: PollStatus = PollStatus.IDLE
    error: Optional[ErrorDetail] = None
    last_success_at: Optional[datetime] = None

    @field_serializer("last_success_at")
    def _serialize_timestamp(self, value: Optional[datetime]) -> Optional[str]:
        return to_iso8601(value)


class _Subscription:
    """One subscriber and the latest snapshot waiting to be delivered to it."""

    def __init__(self, callback: SnapshotCallback) -> None:
        self.callback = callback
        self.mailbox: asyncio.Queue[PollSnapshot] = asyncio.Queue(maxsize=1)
        self.task: Optional[asyncio.Task[None]] = None

    def offer(self, snapshot: PollSnapshot) -> None:
        # Replace an undelivered snapshot; only the newest state matters.
        if self.mailbox.full():
            self.mailbox.get_nowait()
        self.mailbox.put_nowait(snapshot)


class PollController:
    """
    Polls one tracker list and keeps the latest normalized tasks.

    One instance per subscription; create on mount, ``stop()`` on unmount.
    """

    def __init__(
        self,
        config: DashboardConfig,
        connector_factory: ConnectorFactory = ClickUpConnector,
    ) -> None:
        self._config = config
        self._connector_factory = connector_factory

        self._tasks: tuple[TaskRecord, ...] = ()
        self._status: PollStatus = PollStatus.IDLE
        self._error: Optional[BaseException] = None
        self._last_success_at: Optional[datetime] = None
        self._has_loaded_once: bool = False
        self._snapshot: PollSnapshot = PollSnapshot()

        self._active: bool = False
        self._cycle_counter: int = 0
        self._current_token: Optional[CancellationToken] = None
        self._cycle_task: Optional[asyncio.Task[None]] = None
        self._timer_task: Optional[asyncio.Task[None]] = None

        self._subscriptions: dict[SnapshotCallback, _Subscription] = {}

    # ------------------------------------------------------------------
    # Read-only accessors
    # ------------------------------------------------------------------

    @property
    def snapshot(self) -> PollSnapshot:
        return self._snapshot

    @property
    def is_running(self) -> bool:
        return self._active

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """
        Validate configuration, fetch immediately and arm the refresh timer.

        Missing configuration sets the error state and schedules nothing.
        """
        if self._active:
            return

        missing = self._config.missing_settings()
        if missing:
            error = ConfigurationError(
                "Missing ClickUp configuration. "
                f"Set {' and '.join(missing)} in your environment."
            )
            logger.error("Poll controller not started: %s", error)
            self._apply_error(error)
            return

        self._active = True
        logger.info(
            "Poll controller started",
            extra={
                "list_id": self._config.list_id,
                "interval_seconds": self._config.refresh_interval_seconds,
            },
        )
        self.refresh()
        self._timer_task = asyncio.create_task(self._run_timer())

    def refresh(self) -> asyncio.Task[None]:
        """
        Start a new fetch cycle, superseding any cycle still in flight.

        Returns:
            The asyncio task running the cycle
        """
        if not self._active:
            raise RuntimeError("Poll controller is not running")

        self._cancel_cycle("superseded")
        self._cycle_counter += 1
        token = CancellationToken(self._cycle_counter)
        self._current_token = token
        cycle_task = asyncio.create_task(self._run_cycle(token))
        self._cycle_task = cycle_task
        return cycle_task

    async def stop(self) -> None:
        """Cancel the timer, any in-flight cycle and all deliveries; safe to call repeatedly."""
        was_active = self._active
        self._active = False

        subscriptions = list(self._subscriptions.values())
        self._subscriptions.clear()
        for subscription in subscriptions:
            if subscription.task is not None:
                subscription.task.cancel()

        timer_task = self._timer_task
        cycle_task = self._cycle_task
        self._timer_task = None
        if timer_task is not None and not timer_task.done():
            timer_task.cancel()
        self._cancel_cycle("stopped")

        current = asyncio.current_task()
        candidates = [timer_task, cycle_task, *(s.task for s in subscriptions)]
        pending = [t for t in candidates if t is not None and t is not current]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        if was_active:
            logger.info("Poll controller stopped", extra={"list_id": self._config.list_id})

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, callback: SnapshotCallback) -> None:
        """Receive the newest snapshot after state changes.

        Must be called from a running event loop; each subscriber gets its
        own delivery task.
        """
        if callback in self._subscriptions:
            return
        subscription = _Subscription(callback)
        subscription.task = asyncio.create_task(self._deliver(subscription))
        self._subscriptions[callback] = subscription

    def unsubscribe(self, callback: SnapshotCallback) -> None:
        subscription = self._subscriptions.pop(callback, None)
        if subscription is not None and subscription.task is not None:
            subscription.task.cancel()

    def _publish(self) -> None:
        snapshot = self._snapshot
        for subscription in list(self._subscriptions.values()):
            subscription.offer(snapshot)

    async def _deliver(self, subscription: _Subscription) -> None:
        while True:
            snapshot = await subscription.mailbox.get()
            try:
                await subscription.callback(snapshot)
            except Exception:
                logger.warning("Dropping failed snapshot subscriber", exc_info=True)
                if self._subscriptions.get(subscription.callback) is subscription:
                    del self._subscriptions[subscription.callback]
                return

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _cancel_cycle(self, reason: str) -> None:
        token = self._current_token
        cycle_task = self._cycle_task
        self._current_token = None
        self._cycle_task = None

        if token is not None and not token.cancelled:
            token.cancel(reason)
            logger.debug("Fetch cycle %d %s", token.cycle_id, reason)
        if cycle_task is not None and not cycle_task.done():
            cycle_task.cancel()

    def _is_current(self, token: CancellationToken) -> bool:
        return self._active and token is self._current_token and not token.cancelled

    async def _run_timer(self) -> None:
        interval = self._config.refresh_interval_seconds
        while self._active:
            await asyncio.sleep(interval)
            if not self._active:
                break
            self.refresh()

    async def _run_cycle(self, token: CancellationToken) -> None:
        """Fetch, normalize and apply one full task list.

        The connector call is the only suspension point.
        """
        if not self._is_current(token):
            return
        if not self._has_loaded_once:
            self._apply_loading()

        logger.info("Fetch cycle %d started", token.cycle_id)
        connector = self._connector_factory(self._config)
        try:
            tasks = await connector.fetch_tasks(token)
        except (FetchCancelledError, asyncio.CancelledError):
            logger.debug("Fetch cycle %d cancelled", token.cycle_id)
            return
        except DashboardError as exc:
            if not self._is_current(token):
                return
            logger.warning("Fetch cycle %d failed: %s", token.cycle_id, exc)
            self._apply_error(exc)
            return
        except Exception as exc:
            if not self._is_current(token):
                return
            logger.exception("Fetch cycle %d failed unexpectedly", token.cycle_id)
            self._apply_error(exc)
            return

        if not self._is_current(token):
            logger.info("Discarding results of superseded fetch cycle %d", token.cycle_id)
            return

        self._apply_success(tasks)
        logger.info("Fetch cycle %d completed with %d tasks", token.cycle_id, len(tasks))

    def _rebuild_snapshot(self) -> None:
        self._snapshot = PollSnapshot(
            tasks=self._tasks,
            status=self._status,
            error=ErrorDetail.from_exception(self._error) if self._error is not None else None,
            last_success_at=self._last_success_at,
        )

    def _apply_loading(self) -> None:
        self._status = PollStatus.LOADING
        self._error = None
        self._rebuild_snapshot()
        self._publish()

    def _apply_success(self, tasks: tuple[TaskRecord, ...]) -> None:
        self._tasks = tasks
        self._status = PollStatus.SUCCESS
        self._error = None
        self._has_loaded_once = True
        self._last_success_at = datetime.now(timezone.utc)
        self._rebuild_snapshot()
        self._publish()

    def _apply_error(self, error: BaseException) -> None:
        # Keeps the last good task list.
        self._status = PollStatus.ERROR
        self._error = error
        self._rebuild_snapshot()
        self._publish()
