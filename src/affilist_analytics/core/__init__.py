"""
Core analytics module.

Contains the data models, store interfaces, store implementations and the
aggregation engine.
"""

from .client import AnalyticsClient
from .engine import AggregationEngine
from .memory import InMemoryClickStore
from .models import (
    AggregationResult,
    AnalyticsExport,
    AnalyticsSummary,
    ClickEvent,
    DayBucket,
    ExportResult,
    HourBucket,
    LinkAnalytics,
    LinkClicks,
    LinkProjection,
    PerformanceReport,
    RankedLink,
    TimeWindow,
    TrendComparison,
)
from .ports import ClickEventStore, LinkStore
from .window import resolve_window

__all__ = [
    "ClickEvent", "LinkProjection", "TimeWindow",
    "DayBucket", "HourBucket", "LinkClicks", "RankedLink",
    "AnalyticsSummary", "TrendComparison", "AggregationResult",
    "LinkAnalytics", "PerformanceReport", "AnalyticsExport", "ExportResult",
    "ClickEventStore", "LinkStore",
    "AnalyticsClient", "InMemoryClickStore",
    "AggregationEngine", "resolve_window",
]
