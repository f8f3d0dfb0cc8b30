"""
HTTP client for querying the Cloudflare D1 click analytics database.

Implements both store interfaces over the ``click_events`` and
``affiliate_links`` tables.
"""
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Optional, TypeVar

import httpx

from ..errors import StoreUnavailableError
from .models import DayBucket, HourBucket, LinkClicks, LinkProjection
from .ports import ClickEventStore, LinkStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Normalized timestamp expression so stored values compare as text
_TS = "strftime('%Y-%m-%d %H:%M:%f', {column})"


def _ts_param(value: datetime, round_up: bool = False) -> str:
    """Format a bound the same way _TS formats stored timestamps.

    Stored values carry milliseconds only. Lower bounds round up and upper
    bounds truncate, so adjacent windows never share a millisecond.
    """
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    sub_millis = value.microsecond % 1000
    if round_up and sub_millis:
        value += timedelta(microseconds=1000 - sub_millis)
    return value.strftime("%Y-%m-%d %H:%M:%S.") + f"{value.microsecond // 1000:03d}"


class AnalyticsClient(ClickEventStore, LinkStore):
    """Client for querying click analytics from Cloudflare D1."""

    def __init__(
        self,
        d1_database_id: str,
        cf_account_id: str,
        cf_api_token: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.database_id = d1_database_id
        self.account_id = cf_account_id
        self.api_token = cf_api_token
        self.timeout = timeout
        self.transport = transport
        self.base_url = f"https://api.cloudflare.com/client/v4/accounts/{cf_account_id}/d1/database/{d1_database_id}"

    async def _query(self, sql: str, params: Optional[list] = None) -> list[dict]:
        """Execute a SQL query against D1.

        Raises:
            StoreUnavailableError: If the request fails or D1 reports an error
        """
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    f"{self.base_url}/query",
                    headers={
                        "Authorization": f"Bearer {self.api_token}",
                        "Content-Type": "application/json",
                    },
                    json={"sql": sql, "params": params or []},
                )
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error(f"D1 request to {self.database_id} failed: {exc}")
            raise StoreUnavailableError(f"D1 request failed: {exc}") from exc

        if not data.get("success"):
            logger.error(f"D1 query on {self.database_id} failed: {data.get('errors')}")
            raise StoreUnavailableError(f"D1 query failed: {data.get('errors')}")

        results = data.get("result", [])
        if results and len(results) > 0:
            return results[0].get("results", [])
        return []

    def _range_sql(self, start: datetime, end: datetime, link_id: Optional[str], alias: str = "") -> tuple[str, list]:
        """Build the WHERE clause for a timestamp range and optional link filter."""
        column = f"{alias}timestamp"
        sql = f"{_TS.format(column=column)} >= ? AND {_TS.format(column=column)} <= ?"
        params: list = [_ts_param(start, round_up=True), _ts_param(end)]
        if link_id:
            sql += f" AND {alias}link_id = ?"
            params.append(link_id)
        return sql, params

    def _parse_rows(self, results: list[dict], parse: Callable[[dict[str, Any]], T]) -> list[T]:
        """Map result rows to models.

        Raises:
            StoreUnavailableError: If a row is missing a column or holds a bad value
        """
        try:
            return [parse(row) for row in results]
        except (KeyError, TypeError, ValueError) as exc:
            logger.error(f"Malformed D1 row from {self.database_id}: {exc!r}")
            raise StoreUnavailableError(f"Malformed D1 row: {exc!r}") from exc

    # =========================================================================
    # COUNTS
    # =========================================================================

    async def total_clicks(self, link_id: Optional[str] = None) -> int:
        """Lifetime click count, optionally for a single link."""
        sql = "SELECT COUNT(*) as total FROM click_events"
        params = []
        if link_id:
            sql += " WHERE link_id = ?"
            params.append(link_id)

        results = await self._query(sql, params)
        return (results[0].get("total") or 0) if results else 0

    async def unique_sessions(
        self,
        start: datetime,
        end: datetime,
        link_id: Optional[str] = None,
    ) -> int:
        """Distinct non-null session ids in range."""
        where_sql, params = self._range_sql(start, end, link_id)

        results = await self._query(
            f"""
            SELECT COUNT(DISTINCT session_id) as unique_sessions
            FROM click_events
            WHERE {where_sql} AND session_id IS NOT NULL
            """,
            params,
        )
        return (results[0].get("unique_sessions") or 0) if results else 0

    # =========================================================================
    # TIME SERIES
    # =========================================================================

    async def clicks_by_day(
        self,
        start: datetime,
        end: datetime,
        link_id: Optional[str] = None,
    ) -> list[DayBucket]:
        """Clicks per UTC day. Days without clicks are not returned."""
        where_sql, params = self._range_sql(start, end, link_id)

        results = await self._query(
            f"""
            SELECT
                date(timestamp) as day,
                COUNT(*) as clicks
            FROM click_events
            WHERE {where_sql}
            GROUP BY date(timestamp)
            ORDER BY day ASC
            """,
            params,
        )

        return self._parse_rows(
            results,
            lambda r: DayBucket(date=date.fromisoformat(r["day"]), clicks=r["clicks"]),
        )

    async def clicks_by_hour(
        self,
        start: datetime,
        end: datetime,
        link_id: Optional[str] = None,
    ) -> list[HourBucket]:
        """Clicks per hour of day, summed across every day in range."""
        where_sql, params = self._range_sql(start, end, link_id)

        results = await self._query(
            f"""
            SELECT
                CAST(strftime('%H', timestamp) AS INTEGER) as hour,
                COUNT(*) as clicks
            FROM click_events
            WHERE {where_sql}
            GROUP BY strftime('%H', timestamp)
            ORDER BY hour ASC
            """,
            params,
        )

        return self._parse_rows(results, lambda r: HourBucket(hour=r["hour"], clicks=r["clicks"]))

    # =========================================================================
    # RANKING
    # =========================================================================

    async def top_links_by_clicks(
        self,
        start: datetime,
        end: datetime,
        limit: int = 10,
    ) -> list[LinkClicks]:
        """Top links by clicks. Equal counts are ordered by link id."""
        where_sql, params = self._range_sql(start, end, None, alias="ce.")

        results = await self._query(
            f"""
            SELECT
                ce.link_id as link_id,
                al.title as title,
                COUNT(*) as clicks
            FROM click_events ce
            JOIN affiliate_links al ON ce.link_id = al.id
            WHERE {where_sql}
            GROUP BY ce.link_id, al.title
            ORDER BY clicks DESC, ce.link_id ASC
            LIMIT ?
            """,
            params + [limit],
        )

        return self._parse_rows(
            results,
            lambda r: LinkClicks(link_id=r["link_id"], title=r["title"], clicks=r["clicks"]),
        )

    # =========================================================================
    # LINKS
    # =========================================================================

    async def get_link(self, link_id: str) -> Optional[LinkProjection]:
        """Get the analytics projection of a link, or None."""
        results = await self._query(
            """
            SELECT id, title, commission_rate, status
            FROM affiliate_links
            WHERE id = ?
            """,
            [link_id],
        )
        if not results:
            return None

        return self._parse_rows(results[:1], lambda row: LinkProjection(
            id=row["id"],
            title=row["title"],
            commission_rate=row.get("commission_rate"),
            status=row.get("status") or "active",
        ))[0]
