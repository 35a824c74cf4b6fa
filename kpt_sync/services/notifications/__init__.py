"""
Notification list services: filters, cached store, optimistic mutations
and the statistics feed.
"""
from kpt_sync.services.notifications.filters import (
    compile_filters,
    filters_changed,
    parse_filters,
)
from kpt_sync.services.notifications.mutations import OptimisticMutationCoordinator
from kpt_sync.services.notifications.stats import NotificationStatsFeed
from kpt_sync.services.notifications.store import (
    FetchResult,
    NotificationListState,
    NotificationListStore,
    PendingFetch,
)
from kpt_sync.services.notifications.watcher import NewNotificationWatcher

__all__ = [
    "compile_filters",
    "filters_changed",
    "parse_filters",
    "FetchResult",
    "NotificationListState",
    "NotificationListStore",
    "PendingFetch",
    "OptimisticMutationCoordinator",
    "NotificationStatsFeed",
    "NewNotificationWatcher",
]
