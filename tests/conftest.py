"""
Pytest configuration and fixtures.

Provides fixtures for:
- A fake monotonic clock with an async sleep that advances it
- Notification and page payload builders
- A mocked API client (AsyncMock) for store, mutation and engine tests
"""
import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from kpt_sync.schemas.notification import (
    MarkAllReadResult,
    Notification,
    NotificationPage,
    NotificationPriority,
    NotificationStats,
    NotificationType,
    PageWindow,
    StatsWindow,
    Summary,
)

BASE_TIME = datetime(2024, 12, 20, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Monotonic clock whose sleep advances time instead of waiting."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds

    async def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds
        # Let other tasks run, like a real timer would
        await asyncio.sleep(0)


def make_notification(
    notification_id: str,
    is_read: bool = False,
    created_at: Optional[datetime] = None,
    **overrides,
) -> Notification:
    created = created_at or BASE_TIME
    data = {
        "id": notification_id,
        "type": NotificationType.KPT_REMINDER,
        "title": f"Notification {notification_id}",
        "message": "Time for your weekly KPT retrospective",
        "priority": NotificationPriority.NORMAL,
        "is_read": is_read,
        "read_at": created + timedelta(minutes=1) if is_read else None,
        "metadata": {},
        "created_at": created,
        "updated_at": created,
    }
    data.update(overrides)
    return Notification(**data)


def make_page(
    notifications: list[Notification],
    current_page: int = 1,
    total_pages: int = 1,
    per_page: int = 20,
    total_count: Optional[int] = None,
    unread_count: Optional[int] = None,
    today_count: int = 0,
    priority_counts: Optional[dict[str, int]] = None,
) -> NotificationPage:
    return NotificationPage(
        notifications=notifications,
        pagination=PageWindow(
            current_page=current_page,
            per_page=per_page,
            total_pages=total_pages,
            total_count=len(notifications) if total_count is None else total_count,
        ),
        summary=Summary(
            unread_count=(
                sum(1 for n in notifications if not n.is_read)
                if unread_count is None
                else unread_count
            ),
            today_count=today_count,
            priority_counts=priority_counts or {},
        ),
    )


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def mock_api():
    """API client double; each endpoint is an AsyncMock."""
    api = MagicMock()
    api.list_notifications = AsyncMock(return_value=make_page([]))
    api.get_notification = AsyncMock()
    api.get_notification_stats = AsyncMock(return_value=NotificationStats(period=StatsWindow(days=30)))
    api.mark_as_read = AsyncMock()
    api.mark_all_as_read = AsyncMock(return_value=MarkAllReadResult(updated_count=0, remaining_unread=0))
    api.delete_notification = AsyncMock()
    api.get_stats = AsyncMock()
    api.recalculate_stats = AsyncMock(return_value={})
    api.close = AsyncMock()
    return api


@pytest.fixture
def notification_factory():
    """Build Notification instances: notification_factory("n-1", is_read=True)."""
    return make_notification


@pytest.fixture
def page_factory():
    """Build NotificationPage payloads with a summary derived from the items."""
    return make_page
