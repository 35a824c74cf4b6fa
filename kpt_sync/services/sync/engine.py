"""
Per-view synchronization engine.

Owns everything one view needs to stay fresh: the API client, the
notification store and mutation coordinator, the stats feed, and one polling
scheduler for each of the latter two. Created when the view opens and torn
down with ``async with`` so every exit path stops polling and closes the
HTTP client.

Usage:
    async with SyncEngine() as engine:
        async with engine.running(PollingConfig(interval=30, max_duration=60)):
            await engine.mark_as_read("n-1")
            state = engine.notifications_state()
"""
import asyncio
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

import structlog
from structlog.contextvars import bound_contextvars

from kpt_sync.schemas.dashboard import DashboardStats, StatsQuery
from kpt_sync.schemas.notification import FilterSpec, Notification, NotificationStats
from kpt_sync.schemas.polling import PollingConfig
from kpt_sync.services.api_client import KptApiClient
from kpt_sync.services.dashboard.stats import DashboardStatsFeed
from kpt_sync.services.notifications.mutations import OptimisticMutationCoordinator
from kpt_sync.services.notifications.stats import NotificationStatsFeed
from kpt_sync.services.notifications.store import (
    FetchResult,
    NotificationListState,
    NotificationListStore,
    PendingFetch,
)
from kpt_sync.services.notifications.watcher import NewNotificationWatcher
from kpt_sync.services.polling.connection import ConnectionState, ConnectionStateTracker
from kpt_sync.services.polling.retry import FixedIntervalRetry, RetryPolicy
from kpt_sync.services.polling.scheduler import PollingScheduler, TickOutcome

logger = structlog.get_logger()


class SyncEngine:
    """Explicit owner of the sync state for one view."""

    def __init__(
        self,
        api: Optional[KptApiClient] = None,
        *,
        view: str = "default",
        filters: Optional[FilterSpec] = None,
        stats_query: Optional[StatsQuery] = None,
        per_page: Optional[int] = None,
        on_new_notification: Optional[Callable[[Notification], None]] = None,
        retry_policy_factory: Callable[[], RetryPolicy] = FixedIntervalRetry,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.view = view
        self.api = api or KptApiClient()
        self._owns_api = api is None

        self.store = NotificationListStore(self.api, per_page=per_page, filters=filters)
        self.mutations = OptimisticMutationCoordinator(self.store, self.api)
        self.stats = DashboardStatsFeed(self.api, stats_query)
        self.notification_stats = NotificationStatsFeed(self.api)
        self.watcher = NewNotificationWatcher(on_new_notification) if on_new_notification else None

        self.notification_poller: PollingScheduler[PendingFetch] = PollingScheduler(
            fetch=self._request_notifications,
            on_success=self._apply_notifications,
            name="notifications",
            tracker=ConnectionStateTracker("notifications"),
            retry_policy=retry_policy_factory(),
            clock=clock,
            sleep=sleep,
        )
        self.stats_poller: PollingScheduler[DashboardStats] = PollingScheduler(
            fetch=self.stats.request,
            on_success=self.stats.apply,
            name="dashboard_stats",
            tracker=ConnectionStateTracker("dashboard_stats"),
            retry_policy=retry_policy_factory(),
            clock=clock,
            sleep=sleep,
        )
        self._closed = False

    @property
    def connection_state(self) -> ConnectionState:
        return self.notification_poller.tracker.status

    @property
    def is_connected(self) -> bool:
        return self.notification_poller.tracker.is_connected

    @property
    def errors(self) -> dict[str, Optional[str]]:
        """Per-consumer error values."""
        return {
            "notifications": self.store.error,
            "notification_polling": self.notification_poller.last_error,
            "mutations": self.mutations.error,
            "stats": self.stats.error,
            "stats_polling": self.stats_poller.last_error,
            "notification_stats": self.notification_stats.error,
        }

    # Lifecycle

    def start(self, config: Optional[PollingConfig] = None, *, stats: bool = True):
        """Start (or update) polling for notifications and, optionally, stats."""
        config = config or PollingConfig.from_settings()
        # Polling tasks inherit the view tag for every event they log
        with bound_contextvars(view=self.view):
            self.notification_poller.start(config)
            if stats:
                self.stats_poller.start(config)

    def stop(self, reason: str = "manual"):
        self.notification_poller.stop(reason)
        self.stats_poller.stop(reason)

    def reconfigure(self, **changes: Any):
        """Apply a partial config change to both schedulers."""
        self.notification_poller.reconfigure(**changes)
        self.stats_poller.reconfigure(**changes)

    @asynccontextmanager
    async def running(
        self,
        config: Optional[PollingConfig] = None,
        *,
        stats: bool = True,
    ) -> AsyncIterator["SyncEngine"]:
        """Scoped polling; stops on every exit path, including errors."""
        self.start(config, stats=stats)
        try:
            yield self
        finally:
            self.stop(reason="teardown")

    async def close(self):
        if self._closed:
            return
        self._closed = True
        self.stop(reason="teardown")
        await self.notification_poller.drain()
        await self.stats_poller.drain()
        if self._owns_api:
            await self.api.close()
        logger.debug("Sync engine closed", view=self.view)

    async def __aenter__(self) -> "SyncEngine":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # Notifications

    def notifications_state(self) -> NotificationListState:
        return self.store.snapshot()

    async def set_filters(self, filters: Optional[FilterSpec]) -> Optional[FetchResult]:
        """Switch filters; a change invalidates the cache and loads page 1."""
        return await self.store.fetch(filters or FilterSpec(), page=1)

    async def load_more(self) -> Optional[FetchResult]:
        return await self.store.load_more()

    async def refresh(self) -> TickOutcome:
        """
        Manual refresh. Goes through the scheduler's in-flight guard while
        polling is active, otherwise fetches page 1 directly.
        """
        if self.notification_poller.is_active:
            return await self.notification_poller.tick_now()
        if await self.store.refresh() is not None:
            return TickOutcome.SUCCESS
        return TickOutcome.FAILURE if self.store.error else TickOutcome.DISCARDED

    async def mark_as_read(self, notification_id: str) -> bool:
        return await self.mutations.mark_as_read(notification_id)

    async def mark_all_as_read(self) -> bool:
        return await self.mutations.mark_all_as_read()

    async def delete(self, notification_id: str) -> bool:
        return await self.mutations.delete(notification_id)

    # Dashboard stats

    async def refresh_stats(self) -> TickOutcome:
        if self.stats_poller.is_active:
            return await self.stats_poller.tick_now()
        if await self.stats.fetch() is None:
            return TickOutcome.FAILURE
        return TickOutcome.SUCCESS

    async def refresh_notification_stats(self, days: Optional[int] = None) -> Optional[NotificationStats]:
        """Fetch notification statistics, optionally switching the window."""
        return await self.notification_stats.fetch(days)

    async def recalculate_stats(self, period: Optional[str] = None, force: bool = False) -> bool:
        return await self.stats.recalculate(period=period, force=force)

    async def _request_notifications(self) -> PendingFetch:
        return await self.store.request(self.store.requested_filters, page=1)

    def _apply_notifications(self, pending: PendingFetch):
        result = self.store.apply(pending)
        if result is not None and self.watcher is not None:
            self.watcher.observe(result.items)
