"""
Dashboard statistics feed.

Holds the latest statistics snapshot for a view. The polling scheduler drives
``request`` / ``apply``; ``fetch`` is the one-shot equivalent.
"""
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

import structlog
from pydantic import ValidationError as SchemaValidationError

from kpt_sync.core.exceptions import SyncError, ValidationError
from kpt_sync.schemas.dashboard import DashboardStats, StatsQuery

if TYPE_CHECKING:
    from kpt_sync.services.api_client import KptApiClient

logger = structlog.get_logger()

VALID_PERIODS = ("day", "week", "month", "quarter", "year")


def build_stats_query(**params) -> StatsQuery:
    """
    Validate stats parameters before dispatch.

    Accepts the StatsQuery fields (period, start_date, end_date, metrics,
    group_by); dates may be ``YYYY-MM-DD`` strings.

    Raises:
        ValidationError: On an unknown period or grouping, malformed dates,
            a reversed range, or a range longer than a year
    """
    try:
        return StatsQuery(**{k: v for k, v in params.items() if v is not None})
    except SchemaValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        raise ValidationError(f"Invalid stats query: {first['msg']}", field=field) from e


class DashboardStatsFeed:
    """Latest dashboard statistics snapshot plus the recalculate trigger."""

    def __init__(self, api: "KptApiClient", query: Optional[StatsQuery] = None):
        self._api = api
        self.query = query or StatsQuery()
        self.latest: Optional[DashboardStats] = None
        self.fetched_at: Optional[datetime] = None
        self.error: Optional[str] = None

    def set_query(self, query: StatsQuery):
        """Change the query; the next fetch or tick uses it."""
        self.query = query

    async def request(self) -> DashboardStats:
        """Network half of a refresh. Raises NetworkError on failure."""
        return await self._api.get_stats(self.query, realtime=True)

    def apply(self, stats: DashboardStats):
        self.latest = stats
        self.fetched_at = datetime.now(timezone.utc)
        self.error = None

    async def fetch(self) -> Optional[DashboardStats]:
        try:
            stats = await self.request()
        except SyncError as e:
            self.error = str(e)
            logger.warning("Dashboard stats fetch failed", period=self.query.period, error=self.error)
            return None
        self.apply(stats)
        return stats

    async def recalculate(self, period: Optional[str] = None, force: bool = False) -> bool:
        """Trigger a server-side recompute. Does not touch the snapshot."""
        if period is not None and period not in VALID_PERIODS:
            self.error = f"Invalid period {period!r}. Valid periods: {', '.join(VALID_PERIODS)}"
            return False
        try:
            await self._api.recalculate_stats(period=period, force=force)
        except SyncError as e:
            self.error = str(e)
            logger.warning("Stats recalculation failed", period=period, error=self.error)
            return False
        logger.info("Stats recalculation requested", period=period, force=force)
        return True
