"""
Tests for the paginated notification cache.
"""
from datetime import datetime, timezone

import pytest

from kpt_sync.core.exceptions import NetworkError, ValidationError
from kpt_sync.schemas.notification import FilterSpec, NotificationPriority
from kpt_sync.services.notifications.store import NotificationListStore

READ_AT = datetime(2024, 12, 20, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def store(mock_api):
    return NotificationListStore(mock_api, per_page=2)


class TestFetch:
    @pytest.mark.asyncio
    async def test_page_one_replaces_list(self, store, mock_api, notification_factory, page_factory):
        mock_api.list_notifications.return_value = page_factory(
            [notification_factory("n-1"), notification_factory("n-2")]
        )
        await store.fetch()

        mock_api.list_notifications.return_value = page_factory([notification_factory("n-3")])
        result = await store.fetch(page=1)

        assert [n.id for n in store.items] == ["n-3"]
        assert [n.id for n in result.items] == ["n-3"]

    @pytest.mark.asyncio
    async def test_later_page_appends_deduplicated(self, store, mock_api, notification_factory, page_factory):
        mock_api.list_notifications.return_value = page_factory(
            [notification_factory("n-1"), notification_factory("n-2")],
            current_page=1,
            total_pages=2,
        )
        await store.fetch()

        mock_api.list_notifications.return_value = page_factory(
            [notification_factory("n-2", title="Updated"), notification_factory("n-3")],
            current_page=2,
            total_pages=2,
        )
        await store.fetch(page=2)

        assert [n.id for n in store.items] == ["n-1", "n-2", "n-3"]
        assert store.get("n-2").title == "Updated"
        assert not store.has_more

    @pytest.mark.asyncio
    async def test_summary_overwrites_local_counts(self, store, mock_api, notification_factory, page_factory):
        """Counts come from the server summary, never from loaded items."""
        mock_api.list_notifications.return_value = page_factory(
            [notification_factory("n-1"), notification_factory("n-2")],
            total_pages=10,
            total_count=20,
            unread_count=17,
            today_count=4,
            priority_counts={"urgent": 2},
        )

        await store.fetch()

        state = store.snapshot()
        assert state.unread_count == 17
        assert state.summary.today_count == 4
        assert state.summary.priority_counts == {"urgent": 2}
        assert state.page_window.total_count == 20
        assert state.has_more

    @pytest.mark.asyncio
    async def test_load_more_requests_next_page(self, store, mock_api, notification_factory, page_factory):
        mock_api.list_notifications.return_value = page_factory(
            [notification_factory("n-1"), notification_factory("n-2")],
            current_page=1,
            total_pages=3,
        )
        await store.fetch()

        mock_api.list_notifications.return_value = page_factory(
            [notification_factory("n-3")], current_page=2, total_pages=3
        )
        await store.load_more()

        _, kwargs = mock_api.list_notifications.call_args
        assert kwargs["page"] == 2
        assert kwargs["per_page"] == 2
        assert store.page_window.current_page == 2
        assert store.has_more

    @pytest.mark.asyncio
    async def test_load_more_without_more_pages_is_noop(self, store, mock_api, notification_factory, page_factory):
        mock_api.list_notifications.return_value = page_factory([notification_factory("n-1")])
        await store.fetch()
        mock_api.list_notifications.reset_mock()

        assert await store.load_more() is None
        mock_api.list_notifications.assert_not_called()

    @pytest.mark.asyncio
    async def test_filter_change_forces_page_one(self, store, mock_api, notification_factory, page_factory):
        await store.fetch()

        unread = FilterSpec(is_read=False)
        await store.fetch(unread, page=3)

        args, kwargs = mock_api.list_notifications.call_args
        assert args[0] == unread
        assert kwargs["page"] == 1
        assert store.filters == unread

    @pytest.mark.asyncio
    async def test_invalid_page_rejected(self, store):
        with pytest.raises(ValidationError) as exc_info:
            await store.request(page=0)

        assert exc_info.value.field == "page"

    @pytest.mark.asyncio
    async def test_failure_sets_error_and_keeps_cache(self, store, mock_api, notification_factory, page_factory):
        mock_api.list_notifications.return_value = page_factory([notification_factory("n-1")])
        await store.fetch()

        mock_api.list_notifications.side_effect = NetworkError("HTTP error! status: 500", status_code=500)
        result = await store.fetch()

        assert result is None
        assert store.error == "HTTP error! status: 500"
        assert [n.id for n in store.items] == ["n-1"]
        assert not store.loading

    @pytest.mark.asyncio
    async def test_success_clears_error(self, store, mock_api, notification_factory, page_factory):
        mock_api.list_notifications.side_effect = NetworkError("offline")
        await store.fetch()
        assert store.error == "offline"

        mock_api.list_notifications.side_effect = None
        await store.fetch()

        assert store.error is None


class TestStaleResponses:
    @pytest.mark.asyncio
    async def test_superseded_filter_response_discarded(self, store, mock_api, notification_factory, page_factory):
        """The latest filter wins, whatever order responses land in."""
        mock_api.list_notifications.return_value = page_factory([notification_factory("old")])
        stale = await store.request(FilterSpec(priority=NotificationPriority.LOW))

        mock_api.list_notifications.return_value = page_factory([notification_factory("new")])
        latest = await store.request(FilterSpec(priority=NotificationPriority.HIGH))

        assert store.apply(latest) is not None
        assert store.apply(stale) is None
        assert [n.id for n in store.items] == ["new"]
        assert store.filters.priority is NotificationPriority.HIGH

    @pytest.mark.asyncio
    async def test_optimistic_write_survives_older_response(self, store, mock_api, notification_factory, page_factory):
        mock_api.list_notifications.return_value = page_factory([notification_factory("n-1")])
        await store.fetch()

        pending = await store.request()
        store.mark_read_local("n-1", READ_AT)
        store.apply(pending)

        assert store.get("n-1").is_read

    @pytest.mark.asyncio
    async def test_newer_response_wins_over_optimistic_write(self, store, mock_api, notification_factory, page_factory):
        mock_api.list_notifications.return_value = page_factory([notification_factory("n-1")])
        await store.fetch()
        store.mark_read_local("n-1", READ_AT)

        await store.fetch()

        assert not store.get("n-1").is_read

    @pytest.mark.asyncio
    async def test_deleted_item_not_resurrected(self, store, mock_api, notification_factory, page_factory):
        mock_api.list_notifications.return_value = page_factory(
            [notification_factory("n-1"), notification_factory("n-2")]
        )
        await store.fetch()

        pending = await store.request()
        store.remove_local("n-2")
        store.apply(pending)

        assert [n.id for n in store.items] == ["n-1"]

    @pytest.mark.asyncio
    async def test_older_response_replays_local_read(self, store, mock_api, notification_factory, page_factory):
        """The unread count agrees with the item that is still shown as read."""
        mock_api.list_notifications.return_value = page_factory(
            [notification_factory("n-1")], unread_count=5
        )
        await store.fetch()

        pending = await store.request()
        store.mark_read_local("n-1", READ_AT)
        store.apply(pending)

        assert store.get("n-1").is_read
        assert store.summary.unread_count == 4

    @pytest.mark.asyncio
    async def test_older_response_keeps_mark_all_zero(self, store, mock_api, notification_factory, page_factory):
        mock_api.list_notifications.return_value = page_factory(
            [notification_factory("n-1"), notification_factory("n-2")], unread_count=7
        )
        await store.fetch()

        pending = await store.request()
        store.mark_all_read_local(READ_AT)
        store.apply(pending)

        assert store.summary.unread_count == 0
        assert all(n.is_read for n in store.items)

    @pytest.mark.asyncio
    async def test_older_page_one_does_not_replace_newer(self, store, mock_api, notification_factory, page_factory):
        mock_api.list_notifications.return_value = page_factory([notification_factory("old")])
        older = await store.request()

        mock_api.list_notifications.return_value = page_factory([notification_factory("new")])
        newer = await store.request()

        assert store.apply(newer) is not None
        assert store.apply(older) is None
        assert [n.id for n in store.items] == ["new"]

    @pytest.mark.asyncio
    async def test_page_one_apply_prunes_version_tracking(self, store, mock_api, notification_factory, page_factory):
        mock_api.list_notifications.return_value = page_factory(
            [notification_factory("n-1"), notification_factory("n-2")], unread_count=2
        )
        await store.fetch()
        store.mark_read_local("n-1", READ_AT)
        store.remove_local("n-2")
        store.set_unread_count(3)
        assert store.tracked_versions > 0

        mock_api.list_notifications.return_value = page_factory([notification_factory("n-1", is_read=True)])
        await store.fetch()

        assert store.tracked_versions == 0

    @pytest.mark.asyncio
    async def test_outstanding_request_keeps_its_tombstone(self, store, mock_api, notification_factory, page_factory):
        mock_api.list_notifications.return_value = page_factory(
            [notification_factory("n-1"), notification_factory("n-2")], total_pages=2
        )
        await store.fetch()

        mock_api.list_notifications.return_value = page_factory(
            [notification_factory("n-3")], current_page=2, total_pages=2
        )
        page_two = await store.request(page=2)
        store.remove_local("n-3")

        mock_api.list_notifications.return_value = page_factory(
            [notification_factory("n-1"), notification_factory("n-2")], total_pages=2
        )
        await store.fetch()
        assert store.tracked_versions == 1

        store.apply(page_two)

        assert [n.id for n in store.items] == ["n-1", "n-2"]


class TestLocalWrites:
    @pytest.mark.asyncio
    async def test_mark_read_local_decrements_unread(self, store, mock_api, notification_factory, page_factory):
        mock_api.list_notifications.return_value = page_factory(
            [notification_factory("n-1")], unread_count=5
        )
        await store.fetch()
        version = store.version

        rollback = store.mark_read_local("n-1", READ_AT)

        assert store.get("n-1").is_read
        assert store.get("n-1").read_at == READ_AT
        assert store.summary.unread_count == 4
        assert store.version > version
        assert rollback.unread_delta == 1

    @pytest.mark.asyncio
    async def test_mark_read_local_already_read_keeps_count(self, store, mock_api, notification_factory, page_factory):
        mock_api.list_notifications.return_value = page_factory(
            [notification_factory("n-1", is_read=True)], unread_count=2
        )
        await store.fetch()

        store.mark_read_local("n-1", READ_AT)

        assert store.summary.unread_count == 2

    def test_mark_read_local_unknown_id(self, store):
        assert store.mark_read_local("missing", READ_AT) is None

    @pytest.mark.asyncio
    async def test_revert_read_restores_item_and_count(self, store, mock_api, notification_factory, page_factory):
        mock_api.list_notifications.return_value = page_factory([notification_factory("n-1")])
        await store.fetch()

        rollback = store.mark_read_local("n-1", READ_AT)
        store.revert_read(rollback)

        assert not store.get("n-1").is_read
        assert store.get("n-1").read_at is None
        assert store.summary.unread_count == 1

    @pytest.mark.asyncio
    async def test_mark_all_read_local_zeroes_unread(self, store, mock_api, notification_factory, page_factory):
        mock_api.list_notifications.return_value = page_factory(
            [notification_factory("n-1"), notification_factory("n-2", is_read=True)],
            unread_count=9,
        )
        await store.fetch()

        rollback = store.mark_all_read_local(READ_AT)

        assert all(n.is_read for n in store.items)
        assert store.summary.unread_count == 0
        assert set(rollback.previous) == {"n-1"}
        assert rollback.unread_delta == 9

        store.revert_mark_all(rollback)

        assert not store.get("n-1").is_read
        assert store.get("n-2").is_read
        assert store.summary.unread_count == 9

    @pytest.mark.asyncio
    async def test_remove_local_adjusts_counts(self, store, mock_api, notification_factory, page_factory):
        mock_api.list_notifications.return_value = page_factory(
            [notification_factory("n-1"), notification_factory("n-2", is_read=True)],
            total_count=12,
            unread_count=3,
        )
        await store.fetch()

        store.remove_local("n-1")
        store.remove_local("n-2")

        assert store.items == ()
        assert store.page_window.total_count == 10
        assert store.summary.unread_count == 2

    def test_counts_never_negative(self, store):
        store.set_unread_count(-4)

        assert store.summary.unread_count == 0
