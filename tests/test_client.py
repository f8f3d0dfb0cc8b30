"""Tests for the D1-backed store client."""

import asyncio
import json
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock

import httpx
import pytest

from affilist_analytics.core.client import AnalyticsClient
from affilist_analytics.core.models import TimeWindow
from affilist_analytics.errors import StoreUnavailableError

START = datetime(2024, 1, 1, tzinfo=timezone.utc)
END = datetime(2024, 1, 7, 23, 59, 59, 999000, tzinfo=timezone.utc)


def run_async(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def _get_client(**kwargs):
    return AnalyticsClient(
        d1_database_id="test-db",
        cf_account_id="test-account",
        cf_api_token="test-token",
        **kwargs,
    )


class TestQueries:
    """Test SQL and parameters sent for each read."""

    def test_total_clicks_all_links(self):
        client = _get_client()
        client._query = AsyncMock(return_value=[{"total": 42}])

        assert run_async(client.total_clicks()) == 42
        sql, params = client._query.call_args[0]
        assert "WHERE" not in sql
        assert params == []

    def test_total_clicks_filtered(self):
        client = _get_client()
        client._query = AsyncMock(return_value=[{"total": 3}])

        run_async(client.total_clicks("link-1"))
        sql, params = client._query.call_args[0]
        assert "link_id = ?" in sql
        assert params == ["link-1"]

    def test_total_clicks_handles_empty_result(self):
        client = _get_client()
        client._query = AsyncMock(return_value=[])
        assert run_async(client.total_clicks()) == 0

    def test_range_params_formatted_as_utc(self):
        client = _get_client()
        client._query = AsyncMock(return_value=[])

        run_async(client.clicks_by_day(START, END, "link-1"))
        params = client._query.call_args[0][1]
        assert params == ["2024-01-01 00:00:00.000", "2024-01-07 23:59:59.999", "link-1"]

    def test_adjacent_windows_do_not_share_a_millisecond(self):
        """Sub-millisecond starts round up, so the previous window's end stays below it."""
        window = TimeWindow(
            start=datetime(2024, 1, 1, 12, 0, 0, 123456, tzinfo=timezone.utc),
            end=datetime(2024, 1, 8, 12, 0, 0, 123456, tzinfo=timezone.utc),
        )
        previous = window.previous()
        client = _get_client()
        client._query = AsyncMock(return_value=[])

        run_async(client.clicks_by_day(window.start, window.end))
        current_low, current_high = client._query.call_args[0][1]
        run_async(client.clicks_by_day(previous.start, previous.end))
        previous_low, previous_high = client._query.call_args[0][1]

        assert current_low == "2024-01-01 12:00:00.124"
        assert current_high == "2024-01-08 12:00:00.123"
        assert previous_high == "2024-01-01 12:00:00.123"
        assert previous_high < current_low

    def test_clicks_by_day_parses_rows(self):
        client = _get_client()
        client._query = AsyncMock(return_value=[
            {"day": "2024-01-01", "clicks": 10},
            {"day": "2024-01-03", "clicks": 5},
        ])

        days = run_async(client.clicks_by_day(START, END))
        assert [(d.date, d.clicks) for d in days] == [
            (date(2024, 1, 1), 10),
            (date(2024, 1, 3), 5),
        ]

    def test_clicks_by_hour_parses_rows(self):
        client = _get_client()
        client._query = AsyncMock(return_value=[{"hour": 0, "clicks": 2}, {"hour": 13, "clicks": 7}])

        hours = run_async(client.clicks_by_hour(START, END))
        assert [(h.hour, h.clicks) for h in hours] == [(0, 2), (13, 7)]

    def test_unique_sessions_excludes_null(self):
        client = _get_client()
        client._query = AsyncMock(return_value=[{"unique_sessions": None}])

        assert run_async(client.unique_sessions(START, END)) == 0
        sql = client._query.call_args[0][0]
        assert "session_id IS NOT NULL" in sql
        assert "COUNT(DISTINCT session_id)" in sql

    def test_top_links_order_and_limit(self):
        client = _get_client()
        client._query = AsyncMock(return_value=[
            {"link_id": "a", "title": "Alpha", "clicks": 9},
            {"link_id": "b", "title": "Beta", "clicks": 9},
        ])

        top = run_async(client.top_links_by_clicks(START, END, 5))
        sql, params = client._query.call_args[0]
        assert "ORDER BY clicks DESC, ce.link_id ASC" in sql
        assert params[-1] == 5
        assert [t.link_id for t in top] == ["a", "b"]

    def test_get_link(self):
        client = _get_client()
        client._query = AsyncMock(return_value=[
            {"id": "a", "title": "Alpha", "commission_rate": 8.5, "status": "active"},
        ])

        link = run_async(client.get_link("a"))
        assert link.commission_rate == 8.5
        assert link.status == "active"

    def test_get_link_missing(self):
        client = _get_client()
        client._query = AsyncMock(return_value=[])
        assert run_async(client.get_link("missing")) is None


class TestMalformedRows:
    """Bad rows from D1 surface as StoreUnavailableError."""

    def test_null_day(self):
        client = _get_client()
        client._query = AsyncMock(return_value=[{"day": None, "clicks": 3}])

        with pytest.raises(StoreUnavailableError) as exc_info:
            run_async(client.clicks_by_day(START, END))
        assert isinstance(exc_info.value.__cause__, TypeError)

    def test_missing_column(self):
        client = _get_client()
        client._query = AsyncMock(return_value=[{"link_id": "a", "clicks": 9}])

        with pytest.raises(StoreUnavailableError) as exc_info:
            run_async(client.top_links_by_clicks(START, END, 5))
        assert isinstance(exc_info.value.__cause__, KeyError)

    def test_hour_out_of_range(self):
        client = _get_client()
        client._query = AsyncMock(return_value=[{"hour": 24, "clicks": 1}])

        with pytest.raises(StoreUnavailableError):
            run_async(client.clicks_by_hour(START, END))

    def test_link_without_title(self):
        client = _get_client()
        client._query = AsyncMock(return_value=[{"id": "a", "commission_rate": 3}])

        with pytest.raises(StoreUnavailableError):
            run_async(client.get_link("a"))


class TestTransport:
    """Test the HTTP layer against a mock D1 API."""

    def test_posts_sql_and_returns_results(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "success": True,
                "result": [{"results": [{"total": 7}]}],
            })

        client = _get_client(transport=httpx.MockTransport(handler))

        assert run_async(client.total_clicks("link-1")) == 7
        assert seen["url"].endswith("/accounts/test-account/d1/database/test-db/query")
        assert seen["auth"] == "Bearer test-token"
        assert seen["body"]["params"] == ["link-1"]

    def test_http_error_raises_store_unavailable(self):
        client = _get_client(transport=httpx.MockTransport(lambda request: httpx.Response(500)))

        with pytest.raises(StoreUnavailableError):
            run_async(client.total_clicks())

    def test_d1_failure_raises_store_unavailable(self):
        client = _get_client(transport=httpx.MockTransport(
            lambda request: httpx.Response(200, json={"success": False, "errors": ["no such table"]})
        ))

        with pytest.raises(StoreUnavailableError) as exc_info:
            run_async(client.total_clicks())
        assert "no such table" in str(exc_info.value)

    def test_connection_error_raises_store_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        client = _get_client(transport=httpx.MockTransport(handler))

        with pytest.raises(StoreUnavailableError) as exc_info:
            run_async(client.get_link("a"))
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)
