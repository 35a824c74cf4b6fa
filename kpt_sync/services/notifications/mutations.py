"""
Optimistic notification mutations.

Each operation changes the cached list first, then calls the API and either
keeps, reconciles or rolls back the local change:

- mark_as_read: full rollback on failure
- mark_all_as_read: the server's remaining_unread overwrites the optimistic
  zero (unread items may sit on pages that are not loaded); rollback on failure
- delete: the local removal stands even if the API call fails; the failure is
  only surfaced through ``error``
"""
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, Optional

import structlog

from kpt_sync.core.exceptions import ReconciliationConflict, SyncError
from kpt_sync.services.notifications.store import NotificationListStore

if TYPE_CHECKING:
    from kpt_sync.services.api_client import KptApiClient

logger = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OptimisticMutationCoordinator:
    """Applies user actions to the store ahead of server acknowledgment."""

    def __init__(
        self,
        store: NotificationListStore,
        api: "KptApiClient",
        now: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self._api = api
        self._now = now
        self.error: Optional[str] = None
        self.last_conflict: Optional[ReconciliationConflict] = None

    async def mark_as_read(self, notification_id: str) -> bool:
        self.error = None
        rollback = self.store.mark_read_local(notification_id, self._now())

        try:
            updated = await self._api.mark_as_read(notification_id)
        except SyncError as e:
            if rollback is not None:
                self.store.revert_read(rollback)
            return self._fail("mark_as_read", e, notification_id=notification_id)

        self.store.replace_item(updated)
        return True

    async def mark_all_as_read(self) -> bool:
        self.error = None
        rollback = self.store.mark_all_read_local(self._now())
        local = self.store.summary.unread_count

        try:
            result = await self._api.mark_all_as_read()
        except SyncError as e:
            self.store.revert_mark_all(rollback)
            return self._fail("mark_all_as_read", e)

        self.store.set_unread_count(result.remaining_unread)
        if result.remaining_unread != local:
            self.last_conflict = ReconciliationConflict(
                "unread_count", local, result.remaining_unread
            )
            logger.info(
                "Unread count reconciled with server",
                local=local,
                remaining_unread=result.remaining_unread,
                updated_count=result.updated_count,
            )
        return True

    async def delete(self, notification_id: str) -> bool:
        self.error = None
        self.store.remove_local(notification_id)

        try:
            await self._api.delete_notification(notification_id)
        except SyncError as e:
            # Removal is not rolled back
            return self._fail("delete", e, notification_id=notification_id)
        return True

    def _fail(self, operation: str, error: SyncError, **context) -> bool:
        self.error = str(error)
        logger.warning("Notification mutation failed", operation=operation, error=self.error, **context)
        return False
