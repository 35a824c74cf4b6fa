"""
Notification-related Pydantic schemas.

These mirror the payloads of the notifications API. Instances are frozen:
the list store replaces items with ``model_copy`` rather than mutating them,
so snapshots handed to readers never change underneath them.
"""
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class NotificationType(str, Enum):
    """Types of notifications the backend produces."""

    KPT_REMINDER = "kpt_reminder"
    ITEM_DUE = "item_due"
    KPT_SESSION_COMPLETED = "kpt_session_completed"
    WEEKLY_SUMMARY = "weekly_summary"
    ACHIEVEMENT = "achievement"
    SYSTEM = "system"


class NotificationPriority(str, Enum):
    """Priority levels for notifications."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class Notification(BaseModel):
    """A notification as cached on the client (possibly stale)."""

    id: str
    type: NotificationType
    title: str
    message: str
    priority: NotificationPriority = NotificationPriority.NORMAL
    is_read: bool = False
    read_at: Optional[datetime] = None
    action_url: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    expires_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(frozen=True, extra="ignore")


class PageWindow(BaseModel):
    """Describes the currently loaded slice, not the whole collection."""

    current_page: int = 1
    per_page: int = 20
    total_pages: int = 1
    total_count: int = 0

    model_config = ConfigDict(frozen=True)


class Summary(BaseModel):
    """Server-computed aggregates over the entire collection."""

    unread_count: int = 0
    today_count: int = 0
    priority_counts: dict[str, int] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)


class NotificationPage(BaseModel):
    """Payload of the notification list endpoint."""

    notifications: list[Notification]
    pagination: PageWindow
    summary: Summary


class MarkAllReadResult(BaseModel):
    """Payload of the mark-all-read endpoint."""

    updated_count: int = 0
    remaining_unread: int = 0


class DeleteResult(BaseModel):
    """Response of the delete endpoint."""

    success: bool
    message: str = ""


class FilterSpec(BaseModel):
    """
    Filter for the notification list.

    All fields unset means "no filter". Compared structurally: any field-level
    difference invalidates the cached list.
    """

    type: Optional[NotificationType] = None
    is_read: Optional[bool] = None
    priority: Optional[NotificationPriority] = None

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def is_empty(self) -> bool:
        return self.type is None and self.is_read is None and self.priority is None


class StatsWindow(BaseModel):
    """Date range a notification statistics snapshot covers."""

    days: int
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class NotificationStatsSummary(BaseModel):
    total_notifications: int = 0
    unread_notifications: int = 0
    read_rate: float = 0.0
    average_response_time: float = 0.0


class DailyTrend(BaseModel):
    day: date = Field(alias="date")
    total: int = 0
    unread: int = 0
    by_type: dict[str, int] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True)


class NotificationStats(BaseModel):
    """Payload of the notification statistics endpoint."""

    period: StatsWindow
    summary: NotificationStatsSummary = Field(default_factory=NotificationStatsSummary)
    by_type: dict[str, int] = Field(default_factory=dict)
    by_priority: dict[str, int] = Field(default_factory=dict)
    daily_trends: list[DailyTrend] = Field(default_factory=list)
