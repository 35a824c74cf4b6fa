"""
Dashboard statistics services.
"""
from kpt_sync.services.dashboard.stats import DashboardStatsFeed, build_stats_query

__all__ = ["DashboardStatsFeed", "build_stats_query"]
