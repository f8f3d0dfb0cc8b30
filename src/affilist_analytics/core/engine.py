"""
Click analytics aggregation engine.

Composes store reads into summaries, per-link reports, trend/tier reports
and exports. Stateless: every call recomputes from the current store state.
"""
import asyncio
import logging
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Awaitable, Optional, TypeVar

from ..config import MAX_LIMIT, MIN_LIMIT
from ..errors import NotFoundError, StoreUnavailableError, ValidationError
from .export import export_filename, render_csv, render_json
from .models import (
    AggregationResult, AnalyticsExport, AnalyticsSummary, DayBucket,
    ExportResult, LinkAnalytics, LinkClicks, LinkMetrics,
    PerformanceCategories, PerformanceOverview, PerformanceReport,
    RankedLink, TierStats, TimeWindow, TrendComparison,
)
from .ports import ClickEventStore, LinkStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Placeholder heuristic: no real conversion data is observed, so a fixed
# share of clicks is assumed to convert.
ESTIMATED_CONVERSION_RATE = Decimal("0.05")

# Performance tiers by absolute clicks in the window:
#   high:   clicks > HIGH_PERFORMER_MIN_CLICKS
#   medium: MEDIUM_PERFORMER_MIN_CLICKS <= clicks <= HIGH_PERFORMER_MIN_CLICKS
#   low:    clicks < MEDIUM_PERFORMER_MIN_CLICKS
HIGH_PERFORMER_MIN_CLICKS = 100
MEDIUM_PERFORMER_MIN_CLICKS = 10

PERFORMANCE_TOP_LINKS = 20
REVENUE_BREAKDOWN_SIZE = 10
DEFAULT_TOP_N = 10
DEFAULT_EXPORT_LIMIT = 100
EXPORT_FORMATS = ("json", "csv")


def round_half_up(value: float, places: int = 2) -> float:
    """Round half away from zero, unlike the built-in banker's rounding."""
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def link_revenue(clicks: int, commission_rate: Optional[float]) -> float:
    """Estimated revenue for a link: clicks x commission rate, 0 without a rate."""
    if not commission_rate:
        return 0.0
    return clicks * commission_rate


def estimate_conversions(clicks_in_range: int) -> tuple[int, float]:
    """Heuristic conversions and conversion rate (percent) for a click total.

    Returns:
        Tuple of (estimated_conversions, conversion_rate). Both are 0 when
        there are no clicks.
    """
    if clicks_in_range <= 0:
        return 0, 0.0
    conversions = int(
        (Decimal(clicks_in_range) * ESTIMATED_CONVERSION_RATE).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    )
    rate = conversions / clicks_in_range * 100
    return conversions, round_half_up(rate)


def average_per_day(days: list[DayBucket]) -> float:
    """Clicks per non-empty day bucket, 0 when there are none."""
    if not days:
        return 0.0
    return round_half_up(sum(d.clicks for d in days) / max(1, len(days)))


def trend_percentage(current: int, previous: int) -> float:
    """Percent change from previous to current. Saturates to 0 when previous is 0."""
    if previous == 0:
        return 0.0
    return round_half_up((current - previous) / previous * 100)


def categorize(links: list[LinkClicks]) -> PerformanceCategories:
    """Partition links into high/medium/low tiers. Every link lands in exactly one."""
    tiers = {"high": TierStats(), "medium": TierStats(), "low": TierStats()}
    for link in links:
        if link.clicks > HIGH_PERFORMER_MIN_CLICKS:
            key = "high"
        elif link.clicks >= MEDIUM_PERFORMER_MIN_CLICKS:
            key = "medium"
        else:
            key = "low"
        tiers[key].count += 1
        tiers[key].total_clicks += link.clicks

    return PerformanceCategories(
        high_performers=tiers["high"],
        medium_performers=tiers["medium"],
        low_performers=tiers["low"],
    )


def _check_limit(name: str, value: int) -> None:
    if not isinstance(value, int) or not MIN_LIMIT <= value <= MAX_LIMIT:
        raise ValidationError({name: f"Must be an integer between {MIN_LIMIT} and {MAX_LIMIT}"})


class AggregationEngine:
    """Aggregates click events for a time window.

    Args:
        click_store: Read primitives over click events
        link_store: Link lookups for commission rates and existence checks
        query_timeout: Seconds each individual store read may take
    """

    def __init__(
        self,
        click_store: ClickEventStore,
        link_store: LinkStore,
        query_timeout: float = 10.0,
    ):
        self.click_store = click_store
        self.link_store = link_store
        self.query_timeout = query_timeout

    # =========================================================================
    # STORE ACCESS
    # =========================================================================

    async def _read(self, name: str, aw: Awaitable[T]) -> T:
        """Await a single store read with the per-read timeout."""
        try:
            return await asyncio.wait_for(aw, timeout=self.query_timeout)
        except asyncio.TimeoutError:
            raise StoreUnavailableError(
                f"Store read '{name}' timed out after {self.query_timeout}s"
            ) from None

    async def _parallel_reads(self, **reads: Awaitable) -> dict:
        """Run independent store reads concurrently and join them.

        The first failure cancels the remaining reads and fails the whole call;
        partial results are never returned.
        """
        try:
            async with asyncio.TaskGroup() as group:
                tasks = {
                    name: group.create_task(self._read(name, aw))
                    for name, aw in reads.items()
                }
        except ExceptionGroup as eg:
            raise eg.exceptions[0]
        return {name: task.result() for name, task in tasks.items()}

    async def _rank_with_revenue(self, links: list[LinkClicks]) -> list[RankedLink]:
        """Look up commission rates concurrently and annotate each link."""
        lookups = await self._parallel_reads(**{
            f"link:{link.link_id}": self.link_store.get_link(link.link_id) for link in links
        })
        projections = [lookups[f"link:{link.link_id}"] for link in links]

        ranked = []
        for link, projection in zip(links, projections):
            rate = projection.commission_rate if projection else None
            ranked.append(RankedLink(
                link_id=link.link_id,
                title=link.title,
                clicks=link.clicks,
                commission_rate=rate or 0,
                revenue=round_half_up(link_revenue(link.clicks, rate)),
            ))
        return ranked

    # =========================================================================
    # SUMMARY
    # =========================================================================

    async def get_summary(
        self,
        window: TimeWindow,
        link_id: Optional[str] = None,
        top_n: int = DEFAULT_TOP_N,
        compare: bool = False,
    ) -> AggregationResult:
        """Totals, series and top links for a window.

        Args:
            window: Resolved time window
            link_id: Restrict counts and series to one link. Top links are
                always ranked across all links.
            top_n: Number of top links to rank (1-100)
            compare: Also compute the trend against the preceding window

        Note:
            estimated_revenue sums only the fetched top links, so it is a
            lower bound when more than top_n links were clicked.
        """
        _check_limit("limit", top_n)

        if window.is_empty:
            return AggregationResult(
                summary=self._empty_summary(window),
                clicks_by_date=[],
                clicks_by_hour=[],
                top_links=[],
                trend=self._empty_trend(window) if compare else None,
            )

        reads = dict(
            total=self.click_store.total_clicks(link_id),
            by_day=self.click_store.clicks_by_day(window.start, window.end, link_id),
            sessions=self.click_store.unique_sessions(window.start, window.end, link_id),
            by_hour=self.click_store.clicks_by_hour(window.start, window.end, link_id),
            top=self.click_store.top_links_by_clicks(window.start, window.end, top_n),
        )
        previous = window.previous()
        if compare:
            reads["previous_by_day"] = self.click_store.clicks_by_day(previous.start, previous.end, link_id)
        data = await self._parallel_reads(**reads)

        top_links = await self._rank_with_revenue(data["top"])
        clicks_in_range = sum(d.clicks for d in data["by_day"])
        conversions, conversion_rate = estimate_conversions(clicks_in_range)
        revenue = sum(link_revenue(link.clicks, link.commission_rate) for link in top_links)

        summary = AnalyticsSummary(
            total_clicks=data["total"],
            clicks_in_range=clicks_in_range,
            unique_sessions=data["sessions"],
            estimated_revenue=round_half_up(revenue),
            estimated_conversions=conversions,
            conversion_rate=conversion_rate,
            average_clicks_per_day=average_per_day(data["by_day"]),
            date_range=window.as_dict(),
        )

        trend = None
        if compare:
            previous_clicks = sum(d.clicks for d in data["previous_by_day"])
            trend = TrendComparison(
                current_period_clicks=clicks_in_range,
                previous_period_clicks=previous_clicks,
                clicks_trend_percentage=trend_percentage(clicks_in_range, previous_clicks),
                previous_range=previous.as_dict(),
            )

        logger.info(
            f"Analytics summary for {window.start.isoformat()} to {window.end.isoformat()}: "
            f"{clicks_in_range} clicks in range, {data['total']} total, link={link_id}"
        )

        return AggregationResult(
            summary=summary,
            clicks_by_date=data["by_day"],
            clicks_by_hour=data["by_hour"],
            top_links=top_links,
            trend=trend,
        )

    def _empty_summary(self, window: TimeWindow) -> AnalyticsSummary:
        return AnalyticsSummary(
            total_clicks=0,
            clicks_in_range=0,
            unique_sessions=0,
            estimated_revenue=0,
            estimated_conversions=0,
            conversion_rate=0,
            average_clicks_per_day=0,
            date_range=window.as_dict(),
        )

    def _empty_trend(self, window: TimeWindow) -> TrendComparison:
        return TrendComparison(
            current_period_clicks=0,
            previous_period_clicks=0,
            clicks_trend_percentage=0,
            previous_range=window.previous().as_dict(),
        )

    # =========================================================================
    # SINGLE LINK
    # =========================================================================

    async def get_link_analytics(self, link_id: str, window: TimeWindow) -> LinkAnalytics:
        """Windowed analytics for one link plus its lifetime total.

        Raises:
            NotFoundError: If the link store has no such link
        """
        link = await self._read("link", self.link_store.get_link(link_id))
        if link is None:
            raise NotFoundError("Link", link_id)

        if window.is_empty:
            return LinkAnalytics(
                link=link,
                metrics=LinkMetrics(
                    total_clicks=0,
                    clicks_in_range=0,
                    unique_sessions=0,
                    average_clicks_per_day=0,
                    estimated_revenue=0,
                    date_range=window.as_dict(),
                ),
                clicks_by_date=[],
                clicks_by_hour=[],
            )

        data = await self._parallel_reads(
            total=self.click_store.total_clicks(link_id),
            by_day=self.click_store.clicks_by_day(window.start, window.end, link_id),
            by_hour=self.click_store.clicks_by_hour(window.start, window.end, link_id),
            sessions=self.click_store.unique_sessions(window.start, window.end, link_id),
        )

        clicks_in_range = sum(d.clicks for d in data["by_day"])

        logger.info(
            f"Link analytics for {link_id} ({link.title}): "
            f"{clicks_in_range} clicks in range, {data['total']} total"
        )

        return LinkAnalytics(
            link=link,
            metrics=LinkMetrics(
                total_clicks=data["total"],
                clicks_in_range=clicks_in_range,
                unique_sessions=data["sessions"],
                average_clicks_per_day=average_per_day(data["by_day"]),
                estimated_revenue=round_half_up(link_revenue(clicks_in_range, link.commission_rate)),
                date_range=window.as_dict(),
            ),
            clicks_by_date=data["by_day"],
            clicks_by_hour=data["by_hour"],
        )

    # =========================================================================
    # PERFORMANCE & TRENDS
    # =========================================================================

    async def get_performance_trends(self, window: TimeWindow) -> PerformanceReport:
        """Trend against the preceding window, performance tiers and revenue by link."""
        previous = window.previous()

        if window.is_empty:
            top, by_day, previous_by_day = [], [], []
        else:
            data = await self._parallel_reads(
                top=self.click_store.top_links_by_clicks(window.start, window.end, PERFORMANCE_TOP_LINKS),
                by_day=self.click_store.clicks_by_day(window.start, window.end),
                previous_by_day=self.click_store.clicks_by_day(previous.start, previous.end),
            )
            top, by_day, previous_by_day = data["top"], data["by_day"], data["previous_by_day"]

        current_clicks = sum(d.clicks for d in by_day)
        previous_clicks = sum(d.clicks for d in previous_by_day)
        trend = trend_percentage(current_clicks, previous_clicks)
        revenue_by_link = await self._rank_with_revenue(top[:REVENUE_BREAKDOWN_SIZE])

        logger.info(
            f"Performance analytics for {window.start.isoformat()} to {window.end.isoformat()}: "
            f"{current_clicks} clicks, trend {trend:.2f}%"
        )

        return PerformanceReport(
            overview=PerformanceOverview(
                current_period_clicks=current_clicks,
                previous_period_clicks=previous_clicks,
                clicks_trend_percentage=trend,
                total_links_tracked=len(top),
                date_range=window.as_dict(),
                previous_range=previous.as_dict(),
            ),
            performance_categories=categorize(top),
            revenue_by_link=revenue_by_link,
            clicks_trend=by_day,
        )

    # =========================================================================
    # EXPORT
    # =========================================================================

    async def export_analytics(
        self,
        window: TimeWindow,
        format: str = "json",
        limit: int = DEFAULT_EXPORT_LIMIT,
        generated_at: Optional[datetime] = None,
    ) -> ExportResult:
        """Top links and the day series as a downloadable JSON or CSV document.

        Raises:
            ValidationError: If the format is unknown or the limit out of range
        """
        if format not in EXPORT_FORMATS:
            raise ValidationError({"format": "Must be one of: json, csv"})
        _check_limit("limit", limit)

        if window.is_empty:
            top, by_day = [], []
        else:
            data = await self._parallel_reads(
                top=self.click_store.top_links_by_clicks(window.start, window.end, limit),
                by_day=self.click_store.clicks_by_day(window.start, window.end),
            )
            top, by_day = data["top"], data["by_day"]

        export = AnalyticsExport(
            generated_at=generated_at or datetime.now(timezone.utc),
            date_range=window.as_dict(),
            top_links=top,
            clicks_by_date=by_day,
        )

        if format == "csv":
            content, media_type = render_csv(export), "text/csv"
        else:
            content, media_type = render_json(export), "application/json"

        logger.info(
            f"Analytics exported as {format} for {window.start.isoformat()} to {window.end.isoformat()}"
        )

        return ExportResult(
            format=format,
            filename=export_filename(window, format),
            media_type=media_type,
            content=content,
        )
