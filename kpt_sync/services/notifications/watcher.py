"""
New-notification detection for polled pages.
"""
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional

import structlog

from kpt_sync.core.config import settings
from kpt_sync.schemas.notification import Notification

logger = structlog.get_logger()


class NewNotificationWatcher:
    """
    Calls ``callback`` once per notification that shows up in a poll and was
    created within the recent window (default 5 minutes).
    """

    def __init__(
        self,
        callback: Callable[[Notification], None],
        window_minutes: Optional[float] = None,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._callback = callback
        self._window = timedelta(
            minutes=settings.new_notification_window_minutes if window_minutes is None else window_minutes
        )
        self._now = now
        # id -> created_at, only for ids still inside the window
        self._seen: dict[str, datetime] = {}

    @property
    def seen_count(self) -> int:
        return len(self._seen)

    def observe(self, notifications: Iterable[Notification]) -> list[Notification]:
        """Report unseen, recently created notifications. Returns the ones reported."""
        cutoff = self._now() - self._window
        self._seen = {k: created for k, created in self._seen.items() if created >= cutoff}

        fresh = []
        for notification in notifications:
            created_at = notification.created_at
            if created_at.tzinfo is None:
                created_at = created_at.replace(tzinfo=timezone.utc)
            if created_at < cutoff or notification.id in self._seen:
                continue
            self._seen[notification.id] = created_at
            fresh.append(notification)

        for notification in fresh:
            try:
                self._callback(notification)
            except Exception as e:
                logger.error(
                    "New notification callback failed",
                    notification_id=notification.id,
                    error=str(e),
                )
        return fresh
