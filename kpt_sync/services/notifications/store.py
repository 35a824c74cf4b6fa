"""
Paginated, filtered local cache of notifications.

The store is the single shared mutable resource of the sync core. Two paths
write to it: fetches (scheduled or explicit) through ``apply`` and optimistic
mutations through the ``*_local`` methods. Every write is synchronous, so a
commit can never interleave with another on the event loop and readers only
ever see committed state.

Staleness handling:
- every commit bumps ``version``; a fetch remembers the version it was
  issued at and a monotonically increasing request sequence
- optimistic writes stamp the touched ids with the new version; a response
  issued before that stamp keeps the local copy of the item
- optimistic unread-count changes are logged; a response issued before them
  has them replayed on top of its server summary
- ids deleted locally after a request was issued are dropped from its response
- a response for a filter that has since been superseded is discarded
- a page-1 response requested before the last applied page-1 snapshot is
  discarded

Stamps, tombstones and logged count changes are pruned once no outstanding
request was issued before them.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Optional

import structlog

from kpt_sync.core.config import settings
from kpt_sync.core.exceptions import SyncError, ValidationError
from kpt_sync.schemas.notification import (
    FilterSpec,
    Notification,
    NotificationPage,
    PageWindow,
    Summary,
)
from kpt_sync.services.notifications.filters import filters_changed

if TYPE_CHECKING:
    from kpt_sync.services.api_client import KptApiClient

logger = structlog.get_logger()


@dataclass(frozen=True)
class PendingFetch:
    """A fetched page that has not been merged into the cache yet."""

    filters: FilterSpec
    page: int
    issued_version: int
    page_data: NotificationPage
    sequence: int = 0


@dataclass(frozen=True)
class FetchResult:
    """What a fetch contributed: its items plus the window and summary."""

    items: tuple[Notification, ...]
    page_window: PageWindow
    summary: Summary


@dataclass(frozen=True)
class NotificationListState:
    """Immutable snapshot of committed store state for readers."""

    items: tuple[Notification, ...]
    filters: FilterSpec
    page_window: PageWindow
    summary: Summary
    version: int
    error: Optional[str] = None
    loading: bool = False

    @property
    def has_more(self) -> bool:
        return self.page_window.current_page < self.page_window.total_pages

    @property
    def unread_count(self) -> int:
        return self.summary.unread_count


@dataclass(frozen=True)
class ReadRollback:
    previous: Notification
    unread_delta: int


@dataclass(frozen=True)
class MarkAllRollback:
    previous: dict[str, Notification] = field(default_factory=dict)
    unread_delta: int = 0


@dataclass(frozen=True)
class UnreadChange:
    """A local unread-count change: ``set`` to a value or add a ``delta``."""

    version: int
    kind: str
    value: int


class NotificationListStore:
    """
    Cached notification list with server-reported summary counts.

    Displayed counts always come from the latest Summary the server sent,
    with local changes the server had not seen yet replayed on top. They are
    never recomputed from the loaded items, which are only a subset of the
    collection.
    """

    def __init__(
        self,
        api: "KptApiClient",
        per_page: Optional[int] = None,
        filters: Optional[FilterSpec] = None,
    ):
        self._api = api
        self.per_page = per_page or settings.per_page

        self._items: list[Notification] = []
        self._filters = filters or FilterSpec()
        self._requested_filters = self._filters
        self._page_window = PageWindow(current_page=0, per_page=self.per_page, total_pages=0)
        self._summary = Summary()
        self._version = 0

        self._sequence = 0
        self._applied_sequence = 0
        # sequence -> (issued_version, page) for requests not applied yet
        self._outstanding: dict[int, tuple[int, int]] = {}
        self._stamps: dict[str, int] = {}
        self._tombstones: dict[str, int] = {}
        self._unread_log: list[UnreadChange] = []

        self.error: Optional[str] = None
        self.loading = False

    # Reads

    @property
    def items(self) -> tuple[Notification, ...]:
        return tuple(self._items)

    @property
    def filters(self) -> FilterSpec:
        return self._filters

    @property
    def requested_filters(self) -> FilterSpec:
        """Filters of the most recent request, committed or not."""
        return self._requested_filters

    @property
    def page_window(self) -> PageWindow:
        return self._page_window

    @property
    def summary(self) -> Summary:
        return self._summary

    @property
    def version(self) -> int:
        return self._version

    @property
    def has_more(self) -> bool:
        return self._page_window.current_page < self._page_window.total_pages

    @property
    def tracked_versions(self) -> int:
        """Number of stamps, tombstones and logged count changes still held."""
        return len(self._stamps) + len(self._tombstones) + len(self._unread_log)

    def get(self, notification_id: str) -> Optional[Notification]:
        for item in self._items:
            if item.id == notification_id:
                return item
        return None

    def snapshot(self) -> NotificationListState:
        return NotificationListState(
            items=tuple(self._items),
            filters=self._filters,
            page_window=self._page_window,
            summary=self._summary,
            version=self._version,
            error=self.error,
            loading=self.loading,
        )

    # Fetch path

    async def fetch(
        self,
        filters: Optional[FilterSpec] = None,
        page: int = 1,
    ) -> Optional[FetchResult]:
        """
        Fetch a page and merge it into the cache.

        Page 1 replaces the cached list; later pages append, de-duplicated by
        id. A filter different from the current one forces page 1.

        Returns:
            The merged result, or None if the fetch failed (see ``error``) or
            its response was discarded as stale
        """
        self.loading = True
        self.error = None
        try:
            pending = await self.request(filters, page)
        except SyncError as e:
            self.error = str(e)
            logger.warning("Notification fetch failed", page=page, error=self.error)
            return None
        finally:
            self.loading = False
        return self.apply(pending)

    async def load_more(self) -> Optional[FetchResult]:
        """Fetch the page after the last loaded one, if there is one."""
        if not self.has_more or self.loading:
            return None
        return await self.fetch(self._filters, self._page_window.current_page + 1)

    async def refresh(self) -> Optional[FetchResult]:
        """Refetch page 1 with the current filters."""
        return await self.fetch(self._filters, 1)

    async def request(self, filters: Optional[FilterSpec] = None, page: int = 1) -> PendingFetch:
        """
        Network half of a fetch. Does not touch the cache.

        Raises:
            ValidationError: If page is not positive
            NetworkError: If the request fails
        """
        if page < 1:
            raise ValidationError(f"Page must be >= 1, got {page}", field="page")

        filters = self._filters if filters is None else filters
        if filters_changed(self._filters, filters) and page != 1:
            logger.debug("Filter change forces page 1", requested_page=page)
            page = 1

        self._requested_filters = filters
        self._sequence += 1
        sequence = self._sequence
        issued_version = self._version
        self._outstanding[sequence] = (issued_version, page)

        page_data = None
        try:
            page_data = await self._api.list_notifications(filters, page=page, per_page=self.per_page)
        finally:
            if page_data is None:
                self._outstanding.pop(sequence, None)

        return PendingFetch(
            filters=filters,
            page=page,
            issued_version=issued_version,
            page_data=page_data,
            sequence=sequence,
        )

    def apply(self, pending: PendingFetch) -> Optional[FetchResult]:
        """
        Merge half of a fetch.

        Returns:
            The merged result, or None if the response was for a superseded
            filter or an older page-1 snapshot than the one already applied
        """
        self._outstanding.pop(pending.sequence, None)

        if filters_changed(pending.filters, self._requested_filters):
            logger.debug("Discarding notifications for superseded filters", page=pending.page)
            return None

        if pending.page == 1 and pending.sequence < self._applied_sequence:
            logger.debug(
                "Discarding out-of-order page 1",
                sequence=pending.sequence,
                applied_sequence=self._applied_sequence,
            )
            return None

        incoming: dict[str, Notification] = {}
        for notification in pending.page_data.notifications:
            if self._tombstones.get(notification.id, -1) > pending.issued_version:
                continue
            incoming[notification.id] = self._reconcile(notification, pending.issued_version)

        if pending.page == 1:
            self._items = list(incoming.values())
            self._applied_sequence = pending.sequence
        else:
            positions = {item.id: i for i, item in enumerate(self._items)}
            for notification in incoming.values():
                if notification.id in positions:
                    self._items[positions[notification.id]] = notification
                else:
                    positions[notification.id] = len(self._items)
                    self._items.append(notification)

        summary = pending.page_data.summary
        unread = self._replay_unread(summary.unread_count, pending.issued_version)
        if unread != summary.unread_count:
            summary = summary.model_copy(update={"unread_count": unread})

        self._filters = pending.filters
        self._page_window = pending.page_data.pagination
        self._summary = summary
        self.error = None
        self._commit()

        if pending.page == 1:
            self._prune(pending.sequence, pending.issued_version)

        return FetchResult(
            items=tuple(incoming.values()),
            page_window=self._page_window,
            summary=self._summary,
        )

    def _reconcile(self, notification: Notification, issued_version: int) -> Notification:
        if self._stamps.get(notification.id, -1) > issued_version:
            local = self.get(notification.id)
            if local is not None:
                return local
        return notification

    def _replay_unread(self, server_count: int, issued_version: int) -> int:
        count = server_count
        for change in self._unread_log:
            if change.version <= issued_version:
                continue
            count = change.value if change.kind == "set" else count + change.value
        return max(0, count)

    def _prune(self, sequence: int, issued_version: int):
        # Older page-1 requests will be discarded when they land
        for stale in [s for s, (_, page) in self._outstanding.items() if page == 1 and s < sequence]:
            del self._outstanding[stale]

        floor = min([issued_version, *(v for v, _ in self._outstanding.values())])
        self._stamps = {k: v for k, v in self._stamps.items() if v > floor}
        self._tombstones = {k: v for k, v in self._tombstones.items() if v > floor}
        self._unread_log = [c for c in self._unread_log if c.version > floor]

    # Optimistic write path

    def mark_read_local(self, notification_id: str, read_at: datetime) -> Optional[ReadRollback]:
        """Flag one cached item read and decrement the unread count."""
        item = self.get(notification_id)
        if item is None:
            return None

        delta = 0
        if not item.is_read:
            self._replace(item.model_copy(update={"is_read": True, "read_at": read_at}))
            delta = min(1, self._summary.unread_count)
            self._adjust_unread(-delta)
        self._stamp(notification_id)
        self._log_unread("delta", -delta)
        return ReadRollback(previous=item, unread_delta=delta)

    def revert_read(self, rollback: ReadRollback):
        current = self.get(rollback.previous.id)
        if current is not None:
            self._replace(current.model_copy(update={
                "is_read": rollback.previous.is_read,
                "read_at": rollback.previous.read_at,
            }))
        self._adjust_unread(rollback.unread_delta)
        self._stamp(rollback.previous.id)
        self._log_unread("delta", rollback.unread_delta)

    def mark_all_read_local(self, read_at: datetime) -> MarkAllRollback:
        """Flag every loaded item read and zero the unread count."""
        previous = {}
        for item in self._items:
            if not item.is_read:
                previous[item.id] = item
                self._replace(item.model_copy(update={"is_read": True, "read_at": read_at}))
        delta = self._summary.unread_count
        self._summary = self._summary.model_copy(update={"unread_count": 0})
        self._stamp(*previous)
        self._log_unread("set", 0)
        return MarkAllRollback(previous=previous, unread_delta=delta)

    def revert_mark_all(self, rollback: MarkAllRollback):
        for notification_id, item in rollback.previous.items():
            current = self.get(notification_id)
            if current is not None:
                self._replace(current.model_copy(update={
                    "is_read": item.is_read,
                    "read_at": item.read_at,
                }))
        self._adjust_unread(rollback.unread_delta)
        self._stamp(*rollback.previous)
        self._log_unread("delta", rollback.unread_delta)

    def set_unread_count(self, count: int):
        """Overwrite the unread count with an authoritative value."""
        count = max(0, count)
        self._summary = self._summary.model_copy(update={"unread_count": count})
        self._commit()
        self._log_unread("set", count)

    def replace_item(self, notification: Notification):
        """Swap in a server-confirmed copy of a cached item."""
        if self._replace(notification):
            self._stamp(notification.id)

    def remove_local(self, notification_id: str) -> Optional[Notification]:
        """
        Drop an item from the cache and adjust counts.

        The id is tombstoned so responses issued before the removal cannot
        bring it back.
        """
        item = self.get(notification_id)
        was_unread = item is not None and not item.is_read
        if item is not None:
            self._items = [i for i in self._items if i.id != notification_id]
            self._page_window = self._page_window.model_copy(
                update={"total_count": max(0, self._page_window.total_count - 1)}
            )
            if was_unread:
                self._adjust_unread(-1)
        self._tombstones[notification_id] = self._commit()
        if was_unread:
            self._log_unread("delta", -1)
        return item

    def _replace(self, notification: Notification) -> bool:
        for i, item in enumerate(self._items):
            if item.id == notification.id:
                self._items[i] = notification
                return True
        return False

    def _adjust_unread(self, delta: int):
        count = max(0, self._summary.unread_count + delta)
        self._summary = self._summary.model_copy(update={"unread_count": count})

    def _log_unread(self, kind: str, value: int):
        if kind == "delta" and value == 0:
            return
        self._unread_log.append(UnreadChange(version=self._version, kind=kind, value=value))

    def _stamp(self, *notification_ids: str):
        version = self._commit()
        for notification_id in notification_ids:
            self._stamps[notification_id] = version

    def _commit(self) -> int:
        self._version += 1
        return self._version
