"""
Store interfaces consumed by the aggregation engine.

Each storage backend provides one concrete implementation. The engine only
reads through these methods and never learns how click events are persisted.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from .models import DayBucket, HourBucket, LinkClicks, LinkProjection


class ClickEventStore(ABC):
    """Read primitives over persisted click events.

    Range bounds are inclusive. Implementations raise StoreUnavailableError
    when the underlying store can't be read.
    """

    @abstractmethod
    async def total_clicks(self, link_id: Optional[str] = None) -> int:
        """Lifetime click count, optionally for a single link."""
        pass

    @abstractmethod
    async def clicks_by_day(
        self,
        start: datetime,
        end: datetime,
        link_id: Optional[str] = None,
    ) -> list[DayBucket]:
        """
        Clicks grouped by UTC calendar day, ascending.

        Days without clicks may be omitted; callers must not assume a dense series.
        """
        pass

    @abstractmethod
    async def clicks_by_hour(
        self,
        start: datetime,
        end: datetime,
        link_id: Optional[str] = None,
    ) -> list[HourBucket]:
        """Clicks grouped by UTC hour of day (0-23), ascending."""
        pass

    @abstractmethod
    async def unique_sessions(
        self,
        start: datetime,
        end: datetime,
        link_id: Optional[str] = None,
    ) -> int:
        """Number of distinct non-null session ids in range."""
        pass

    @abstractmethod
    async def top_links_by_clicks(
        self,
        start: datetime,
        end: datetime,
        limit: int = 10,
    ) -> list[LinkClicks]:
        """
        Links ranked by clicks in range.

        Ordered by clicks descending, ties broken by link id ascending.
        """
        pass


class LinkStore(ABC):
    """Lookup of affiliate link projections."""

    @abstractmethod
    async def get_link(self, link_id: str) -> Optional[LinkProjection]:
        """
        Get a link by id.

        Returns:
            The link projection or None if no such link exists
        """
        pass
