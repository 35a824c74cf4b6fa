"""
Notification statistics feed.

Read rates, per-type and per-priority counts and daily trends over a window
of recent days. Fetched on demand; not driven by a polling scheduler.
"""
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

import structlog

from kpt_sync.core.config import settings
from kpt_sync.core.exceptions import SyncError
from kpt_sync.schemas.notification import NotificationStats

if TYPE_CHECKING:
    from kpt_sync.services.api_client import KptApiClient

logger = structlog.get_logger()


class NotificationStatsFeed:
    """Latest notification statistics snapshot for a window of ``days``."""

    def __init__(self, api: "KptApiClient", days: Optional[int] = None):
        self._api = api
        self.days = settings.notification_stats_days if days is None else days
        self.latest: Optional[NotificationStats] = None
        self.fetched_at: Optional[datetime] = None
        self.error: Optional[str] = None
        self.loading = False

    async def fetch(self, days: Optional[int] = None) -> Optional[NotificationStats]:
        """
        Fetch statistics, switching the window first when ``days`` is given.

        Returns:
            The new snapshot, or None on failure (``error`` holds the message
            and the previous snapshot is kept)
        """
        if days is not None:
            if days < 1:
                self.error = f"Invalid days {days!r}: must be at least 1"
                return None
            self.days = days

        self.loading = True
        self.error = None
        try:
            stats = await self._api.get_notification_stats(self.days)
        except SyncError as e:
            self.error = str(e)
            logger.warning("Notification stats fetch failed", days=self.days, error=self.error)
            return None
        finally:
            self.loading = False

        self.latest = stats
        self.fetched_at = datetime.now(timezone.utc)
        logger.debug(
            "Notification stats updated",
            days=self.days,
            total=stats.summary.total_notifications,
        )
        return stats

    async def refresh(self) -> Optional[NotificationStats]:
        """Refetch the current window."""
        return await self.fetch()
