"""
Pydantic models for click analytics data.
"""
import math
from datetime import date, datetime, timedelta, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

# Smallest representable step between two datetimes
TICK = timedelta(microseconds=1)

# =============================================================================
# Raw Data Models
# =============================================================================

class ClickEvent(BaseModel):
    """A single recorded click on an affiliate link. Never mutated."""
    model_config = ConfigDict(frozen=True)

    id: str
    link_id: str
    timestamp: datetime  # UTC

    # Unique visitor counting only
    session_id: str | None = None

    # Descriptive context captured at click time
    user_agent: str | None = None
    referrer: str | None = None
    ip_address: str | None = None
    country_code: str | None = None


class LinkProjection(BaseModel):
    """The slice of an affiliate link the analytics engine reads."""
    id: str
    title: str
    commission_rate: float | None = Field(default=None, ge=0, le=100)
    status: Literal["active", "inactive", "pending"] = "active"


# =============================================================================
# Time Window
# =============================================================================

class TimeWindow(BaseModel):
    """Query window. Both bounds are inclusive, aware UTC datetimes."""
    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    @property
    def is_empty(self) -> bool:
        """A window whose start lies after its end contains no clicks."""
        return self.start > self.end

    @property
    def period_days(self) -> int:
        """Length of the window in whole days, rounded up."""
        seconds = (self.end - self.start).total_seconds()
        return max(0, math.ceil(seconds / 86400))

    def previous(self) -> "TimeWindow":
        """The comparison window of equal length ending just before this one."""
        previous_end = self.start - TICK
        return TimeWindow(
            start=previous_end - timedelta(days=self.period_days),
            end=previous_end,
        )

    def as_dict(self) -> dict[str, str]:
        """ISO formatted bounds for response bodies."""
        return {
            "start_date": _iso(self.start),
            "end_date": _iso(self.end),
        }


def _iso(value: datetime) -> str:
    """Format as ISO 8601 UTC with millisecond precision and a Z suffix."""
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


# =============================================================================
# Aggregated Stats Models
# =============================================================================

class DayBucket(BaseModel):
    """Clicks on a single calendar day (UTC)."""
    date: date
    clicks: int = 0


class HourBucket(BaseModel):
    """Clicks in one hour of the day (0-23, UTC), summed across the window."""
    hour: int = Field(ge=0, le=23)
    clicks: int = 0


class LinkClicks(BaseModel):
    """A ranked row from the click store."""
    link_id: str
    title: str
    clicks: int


class RankedLink(BaseModel):
    """A ranked link annotated with its estimated revenue."""
    link_id: str
    title: str
    clicks: int
    commission_rate: float = 0
    revenue: float = 0


class AnalyticsSummary(BaseModel):
    """Headline numbers for a window."""
    total_clicks: int  # Lifetime, not windowed
    clicks_in_range: int
    unique_sessions: int
    estimated_revenue: float  # Over the fetched top links only
    estimated_conversions: int
    conversion_rate: float  # Percentage, heuristic
    average_clicks_per_day: float
    date_range: dict[str, str]


class TrendComparison(BaseModel):
    """Click totals for a window against the preceding window of equal length."""
    current_period_clicks: int
    previous_period_clicks: int
    clicks_trend_percentage: float
    previous_range: dict[str, str]


# =============================================================================
# Response Models
# =============================================================================

class AggregationResult(BaseModel):
    """Complete summary response."""
    summary: AnalyticsSummary
    clicks_by_date: list[DayBucket]
    clicks_by_hour: list[HourBucket]
    top_links: list[RankedLink]
    trend: TrendComparison | None = None


class LinkMetrics(BaseModel):
    """Windowed metrics for one link, alongside its lifetime total."""
    total_clicks: int
    clicks_in_range: int
    unique_sessions: int
    average_clicks_per_day: float
    estimated_revenue: float
    date_range: dict[str, str]


class LinkAnalytics(BaseModel):
    """Per-link analytics response."""
    link: LinkProjection
    metrics: LinkMetrics
    clicks_by_date: list[DayBucket]
    clicks_by_hour: list[HourBucket]


class TierStats(BaseModel):
    """Aggregate for one performance tier."""
    count: int = 0
    total_clicks: int = 0


class PerformanceCategories(BaseModel):
    """Top links partitioned by absolute click count."""
    high_performers: TierStats
    medium_performers: TierStats
    low_performers: TierStats


class PerformanceOverview(BaseModel):
    current_period_clicks: int
    previous_period_clicks: int
    clicks_trend_percentage: float
    total_links_tracked: int
    date_range: dict[str, str]
    previous_range: dict[str, str]


class PerformanceReport(BaseModel):
    """Trend and tier report."""
    overview: PerformanceOverview
    performance_categories: PerformanceCategories
    revenue_by_link: list[RankedLink]
    clicks_trend: list[DayBucket]  # Current period, for sparklines


class AnalyticsExport(BaseModel):
    """Data included in an analytics export."""
    generated_at: datetime
    date_range: dict[str, str]
    top_links: list[LinkClicks]
    clicks_by_date: list[DayBucket]


class ExportResult(BaseModel):
    """A rendered export ready to be sent as a download."""
    format: Literal["json", "csv"]
    filename: str
    media_type: str
    content: str
