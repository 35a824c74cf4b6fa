"""
Dashboard statistics schemas.

The stats endpoint speaks camelCase; models accept either spelling.
"""
from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

StatsPeriod = Literal["day", "week", "month", "quarter", "year"]
StatsGroupBy = Literal["day", "week", "month"]

# Longest start_date..end_date span the backend accepts
MAX_RANGE_DAYS = 365


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class SessionStats(_CamelModel):
    total: int = 0
    completed: int = 0
    completion_rate: float = 0.0


class ItemStats(_CamelModel):
    total: int = 0
    active: int = 0
    keep: int = 0
    problem: int = 0
    try_: int = Field(default=0, alias="try")
    average_emotion_score: Optional[float] = None
    average_impact_score: Optional[float] = None


class DailyBreakdown(_CamelModel):
    day: date = Field(alias="date")
    sessions_count: int = 0
    items_count: int = 0
    completed_items: int = 0


class DashboardStats(_CamelModel):
    """A dashboard statistics snapshot."""

    period: str
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    sessions: SessionStats = Field(default_factory=SessionStats)
    items: ItemStats = Field(default_factory=ItemStats)
    daily_breakdown: Optional[list[DailyBreakdown]] = None
    last_updated: Optional[datetime] = None


class StatsQuery(BaseModel):
    """Parameters for the stats endpoint."""

    period: StatsPeriod = "week"
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    metrics: Optional[list[str]] = None
    group_by: Optional[StatsGroupBy] = None

    model_config = ConfigDict(frozen=True, extra="forbid")

    @model_validator(mode="after")
    def check_range(self) -> "StatsQuery":
        if self.start_date and self.end_date:
            if self.start_date > self.end_date:
                raise ValueError("start_date must not be after end_date")
            if (self.end_date - self.start_date).days > MAX_RANGE_DAYS:
                raise ValueError(f"date range must not exceed {MAX_RANGE_DAYS} days")
        return self

    def to_params(self, realtime: bool = False) -> list[tuple[str, str]]:
        """Render as query parameters; metrics repeat as ``metrics[]``."""
        params: list[tuple[str, str]] = [("period", self.period)]
        if self.start_date:
            params.append(("start_date", self.start_date.isoformat()))
        if self.end_date:
            params.append(("end_date", self.end_date.isoformat()))
        if self.group_by:
            params.append(("group_by", self.group_by))
        if realtime:
            params.append(("realtime", "true"))
        for metric in self.metrics or []:
            params.append(("metrics[]", metric))
        return params
