"""
Pydantic schemas for API payloads and sync configuration.
"""
from kpt_sync.schemas.dashboard import DashboardStats, StatsQuery
from kpt_sync.schemas.notification import (
    DailyTrend,
    DeleteResult,
    FilterSpec,
    MarkAllReadResult,
    Notification,
    NotificationPage,
    NotificationPriority,
    NotificationStats,
    NotificationStatsSummary,
    NotificationType,
    PageWindow,
    StatsWindow,
    Summary,
)
from kpt_sync.schemas.polling import PollingConfig, PollingSession, SessionStatus

__all__ = [
    # Dashboard
    "DashboardStats",
    "StatsQuery",
    # Notifications
    "DailyTrend",
    "DeleteResult",
    "FilterSpec",
    "MarkAllReadResult",
    "Notification",
    "NotificationPage",
    "NotificationPriority",
    "NotificationStats",
    "NotificationStatsSummary",
    "NotificationType",
    "PageWindow",
    "StatsWindow",
    "Summary",
    # Polling
    "PollingConfig",
    "PollingSession",
    "SessionStatus",
]
