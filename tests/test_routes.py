"""Tests for the analytics API routes."""

import csv
from datetime import datetime, timedelta, timezone
from io import StringIO
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI, Header, HTTPException
from fastapi.testclient import TestClient

from affilist_analytics.config import AnalyticsConfig
from affilist_analytics.core.engine import AggregationEngine
from affilist_analytics.core.memory import InMemoryClickStore
from affilist_analytics.core.models import LinkProjection
from affilist_analytics.errors import StoreUnavailableError
from affilist_analytics.routes import create_analytics_router

LINK_A = "3f2c1b9e-8d7a-4c6b-9e5f-1a2b3c4d5e6f"
LINK_B = "7a6b5c4d-3e2f-4a1b-8c9d-0e1f2a3b4c5d"
UNKNOWN_LINK = "11111111-2222-4333-8444-555555555555"


def _config(**kwargs) -> AnalyticsConfig:
    return AnalyticsConfig(
        d1_database_id="test-db",
        cf_account_id="test-account",
        cf_api_token="test-token",
        **kwargs,
    )


@pytest.fixture
def store():
    store = InMemoryClickStore(links=[
        LinkProjection(id=LINK_A, title='Standing Desk, "Pro"', commission_rate=4),
        LinkProjection(id=LINK_B, title="Monitor Arm", commission_rate=None),
    ])
    now = datetime.now(timezone.utc)
    for i in range(3):
        store.record_click(LINK_A, timestamp=now - timedelta(days=1, minutes=i), session_id=f"s{i}")
    store.record_click(LINK_B, timestamp=now - timedelta(days=2), session_id="s0")
    return store


def _client(store, auth_dependency=None, **config) -> TestClient:
    engine = AggregationEngine(click_store=store, link_store=store)
    app = FastAPI()
    app.include_router(
        create_analytics_router(engine, _config(**config), auth_dependency=auth_dependency),
        prefix="/api/admin",
    )
    return TestClient(app)


class TestSummaryRoute:
    """GET /analytics"""

    def test_default_window(self, store):
        response = _client(store).get("/api/admin/analytics")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        summary = body["data"]["summary"]
        assert summary["total_clicks"] == 4
        assert summary["clicks_in_range"] == 4
        assert summary["unique_sessions"] == 3
        assert summary["estimated_revenue"] == 12.0
        assert body["data"]["top_links"][0]["link_id"] == LINK_A
        assert body["data"]["trend"] is None

    def test_link_filter(self, store):
        response = _client(store).get("/api/admin/analytics", params={"link_id": LINK_B})
        assert response.json()["data"]["summary"]["clicks_in_range"] == 1

    def test_limit(self, store):
        response = _client(store).get("/api/admin/analytics", params={"limit": "1"})
        assert len(response.json()["data"]["top_links"]) == 1

    def test_compare(self, store):
        response = _client(store).get("/api/admin/analytics", params={"compare": "true", "days": "7"})
        trend = response.json()["data"]["trend"]
        assert trend["current_period_clicks"] == 4
        assert trend["previous_period_clicks"] == 0
        assert trend["clicks_trend_percentage"] == 0

    def test_reversed_dates_give_zero_counts(self, store):
        response = _client(store).get(
            "/api/admin/analytics",
            params={"start_date": "2024-02-01T00:00:00Z", "end_date": "2024-01-01T00:00:00Z"},
        )
        assert response.status_code == 200
        summary = response.json()["data"]["summary"]
        assert summary["total_clicks"] == 0
        assert summary["clicks_in_range"] == 0

    @pytest.mark.parametrize("params,field", [
        ({"link_id": "not-a-uuid"}, "link_id"),
        ({"days": "0"}, "days"),
        ({"days": "366"}, "days"),
        ({"days": "seven"}, "days"),
        ({"limit": "0"}, "limit"),
        ({"limit": "101"}, "limit"),
        ({"format": "xml"}, "format"),
        ({"start_date": "garbage", "end_date": "2024-01-01"}, "start_date"),
    ])
    def test_invalid_parameters_return_400(self, store, params, field):
        response = _client(store).get("/api/admin/analytics", params=params)

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["error"] == "Invalid query parameters"
        assert field in detail["fields"]

    def test_invalid_compare_returns_400(self, store):
        response = _client(store).get("/api/admin/analytics", params={"compare": "maybe"})

        assert response.status_code == 400
        assert response.json()["detail"]["fields"]["compare"] == "Must be true or false"

    def test_compare_false(self, store):
        response = _client(store).get("/api/admin/analytics", params={"compare": "false"})

        assert response.status_code == 200
        assert response.json()["data"]["trend"] is None

    def test_multiple_errors_reported_together(self, store):
        response = _client(store).get("/api/admin/analytics", params={"days": "0", "limit": "500"})
        assert set(response.json()["detail"]["fields"]) == {"days", "limit"}

    def test_store_failure_returns_503(self, store):
        store.unique_sessions = AsyncMock(side_effect=StoreUnavailableError("D1 down"))
        response = _client(store).get("/api/admin/analytics")

        assert response.status_code == 503
        assert response.json()["detail"]["error"] == "Service unavailable"


class TestExportRoute:
    """GET /analytics/export"""

    def test_json_is_default(self, store):
        response = _client(store).get(
            "/api/admin/analytics/export",
            params={"start_date": "2024-01-01", "end_date": "2024-01-31"},
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/json")
        assert response.headers["content-disposition"] == (
            'attachment; filename="analytics-2024-01-01-to-2024-01-31.json"'
        )
        assert "top_links" in response.json()

    def test_csv(self, store):
        response = _client(store).get("/api/admin/analytics/export", params={"format": "csv"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert response.headers["content-disposition"].endswith('.csv"')

        lines = response.text.split("\n")
        assert lines[0] == "# Top Links"
        assert lines[1] == "link_id,title,clicks"
        assert "# Clicks by Date" in lines

        row = next(csv.reader(StringIO(lines[2])))
        assert row == [LINK_A, 'Standing Desk, "Pro"', "3"]

    def test_invalid_format(self, store):
        response = _client(store).get("/api/admin/analytics/export", params={"format": "pdf"})
        assert response.status_code == 400


class TestLinkRoute:
    """GET /analytics/links/{link_id}"""

    def test_link_analytics(self, store):
        response = _client(store).get(f"/api/admin/analytics/links/{LINK_A}")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["link"]["id"] == LINK_A
        assert data["metrics"]["total_clicks"] == 3
        assert data["metrics"]["clicks_in_range"] == 3
        assert data["metrics"]["estimated_revenue"] == 12.0

    def test_unknown_link_returns_404(self, store):
        response = _client(store).get(f"/api/admin/analytics/links/{UNKNOWN_LINK}")

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "Link not found"

    def test_malformed_link_id_returns_400(self, store):
        response = _client(store).get("/api/admin/analytics/links/123")

        assert response.status_code == 400
        assert "link_id" in response.json()["detail"]["fields"]


class TestPerformanceRoute:
    """GET /analytics/performance"""

    def test_report(self, store):
        response = _client(store).get("/api/admin/analytics/performance", params={"days": "30"})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["overview"]["current_period_clicks"] == 4
        assert data["overview"]["total_links_tracked"] == 2
        assert data["performance_categories"]["low_performers"]["count"] == 2
        assert data["revenue_by_link"][0]["revenue"] == 12.0
        assert data["revenue_by_link"][1]["commission_rate"] == 0

    def test_invalid_days(self, store):
        response = _client(store).get("/api/admin/analytics/performance", params={"days": "1000"})
        assert response.status_code == 400


class TestAuthDependency:
    """The optional auth dependency guards every route."""

    @staticmethod
    def _require_admin(x_admin_token: str | None = Header(None)):
        if x_admin_token != "secret":
            raise HTTPException(status_code=401, detail="Unauthorized")

    def test_rejects_without_credentials(self, store):
        client = _client(store, auth_dependency=self._require_admin)

        assert client.get("/api/admin/analytics").status_code == 401
        assert client.get("/api/admin/analytics/performance").status_code == 401

    def test_allows_with_credentials(self, store):
        client = _client(store, auth_dependency=self._require_admin)
        response = client.get("/api/admin/analytics", headers={"X-Admin-Token": "secret"})
        assert response.status_code == 200
