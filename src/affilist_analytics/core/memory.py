"""
In-process click store for tests and local development.
"""
import uuid
from collections import Counter
from datetime import datetime, timezone
from threading import Lock
from typing import Iterable, Optional

from .models import ClickEvent, DayBucket, HourBucket, LinkClicks, LinkProjection
from .ports import ClickEventStore, LinkStore


def _utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class InMemoryClickStore(ClickEventStore, LinkStore):
    """Holds links and click events in memory.

    Reads follow the same ordering rules as the D1 client. Thread-safe.
    """

    def __init__(
        self,
        links: Iterable[LinkProjection] = (),
        events: Iterable[ClickEvent] = (),
    ):
        self._links: dict[str, LinkProjection] = {link.id: link for link in links}
        self._events: list[ClickEvent] = list(events)
        self._lock = Lock()

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def add_link(self, link: LinkProjection) -> None:
        with self._lock:
            self._links[link.id] = link

    def record_click(
        self,
        link_id: str,
        timestamp: Optional[datetime] = None,
        session_id: Optional[str] = None,
        user_agent: Optional[str] = None,
        referrer: Optional[str] = None,
        ip_address: Optional[str] = None,
        country_code: Optional[str] = None,
    ) -> ClickEvent:
        """Append a click event and return it. Events are never modified afterwards."""
        event = ClickEvent(
            id=str(uuid.uuid4()),
            link_id=link_id,
            timestamp=_utc(timestamp or datetime.now(timezone.utc)),
            session_id=session_id,
            user_agent=user_agent,
            referrer=referrer,
            ip_address=ip_address,
            country_code=country_code,
        )
        with self._lock:
            self._events.append(event)
        return event

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def _in_range(
        self,
        start: datetime,
        end: datetime,
        link_id: Optional[str] = None,
    ) -> list[ClickEvent]:
        start, end = _utc(start), _utc(end)
        with self._lock:
            events = list(self._events)
        return [
            e for e in events
            if start <= _utc(e.timestamp) <= end
            and (link_id is None or e.link_id == link_id)
        ]

    async def total_clicks(self, link_id: Optional[str] = None) -> int:
        with self._lock:
            return sum(1 for e in self._events if link_id is None or e.link_id == link_id)

    async def clicks_by_day(
        self,
        start: datetime,
        end: datetime,
        link_id: Optional[str] = None,
    ) -> list[DayBucket]:
        counts = Counter(_utc(e.timestamp).date() for e in self._in_range(start, end, link_id))
        return [DayBucket(date=day, clicks=counts[day]) for day in sorted(counts)]

    async def clicks_by_hour(
        self,
        start: datetime,
        end: datetime,
        link_id: Optional[str] = None,
    ) -> list[HourBucket]:
        counts = Counter(_utc(e.timestamp).hour for e in self._in_range(start, end, link_id))
        return [HourBucket(hour=hour, clicks=counts[hour]) for hour in sorted(counts)]

    async def unique_sessions(
        self,
        start: datetime,
        end: datetime,
        link_id: Optional[str] = None,
    ) -> int:
        return len({
            e.session_id for e in self._in_range(start, end, link_id)
            if e.session_id is not None
        })

    async def top_links_by_clicks(
        self,
        start: datetime,
        end: datetime,
        limit: int = 10,
    ) -> list[LinkClicks]:
        counts = Counter(e.link_id for e in self._in_range(start, end))
        with self._lock:
            links = dict(self._links)

        # Clicks on unknown links are dropped, matching the JOIN in SQL stores
        ranked = sorted(
            ((link_id, clicks) for link_id, clicks in counts.items() if link_id in links),
            key=lambda item: (-item[1], item[0]),
        )
        return [
            LinkClicks(link_id=link_id, title=links[link_id].title, clicks=clicks)
            for link_id, clicks in ranked[:limit]
        ]

    async def get_link(self, link_id: str) -> Optional[LinkProjection]:
        with self._lock:
            return self._links.get(link_id)
