"""
Click analytics for the Affilist affiliate-link directory.

Usage:
    from affilist_analytics import setup_analytics

    analytics = setup_analytics(
        d1_database_id="your-d1-id",
        cf_account_id="your-account-id",
        cf_api_token="your-api-token",
    )

    # Include API routes
    app.include_router(analytics.router, prefix="/api/admin")

    # Or query the engine directly
    result = await analytics.engine.get_summary(resolve_window(days=7))
"""
from typing import Any, Callable

from .config import AnalyticsConfig
from .core.client import AnalyticsClient
from .core.engine import AggregationEngine
from .core.window import resolve_window
from .errors import AnalyticsError, NotFoundError, StoreUnavailableError, ValidationError
from .routes import create_analytics_router

__version__ = "0.1.0"
__all__ = [
    "setup_analytics", "Analytics", "AnalyticsConfig", "AnalyticsClient",
    "AggregationEngine", "resolve_window",
    "AnalyticsError", "ValidationError", "NotFoundError", "StoreUnavailableError",
]


class Analytics:
    """Main analytics interface: the D1 client, the engine and the API router."""

    def __init__(
        self,
        config: AnalyticsConfig,
        auth_dependency: Callable[..., Any] | None = None,
    ):
        self.config = config
        self.client = AnalyticsClient(
            d1_database_id=config.d1_database_id,
            cf_account_id=config.cf_account_id,
            cf_api_token=config.cf_api_token,
            timeout=config.http_timeout_seconds,
        )
        self.engine = AggregationEngine(
            click_store=self.client,
            link_store=self.client,
            query_timeout=config.query_timeout_seconds,
        )
        self.router = create_analytics_router(
            self.engine, config, auth_dependency=auth_dependency
        )


def setup_analytics(
    d1_database_id: str,
    cf_account_id: str,
    cf_api_token: str,
    auth_dependency: Callable[..., Any] | None = None,
    **options: Any,
) -> Analytics:
    """
    Set up click analytics backed by Cloudflare D1.

    Args:
        d1_database_id: Cloudflare D1 database ID
        cf_account_id: Cloudflare account ID
        cf_api_token: Cloudflare API token with D1 read access
        auth_dependency: Optional FastAPI dependency protecting the routes
        **options: Any other AnalyticsConfig field (default_days, query_timeout_seconds, ...)

    Returns:
        Analytics instance with client, engine and router
    """
    config = AnalyticsConfig(
        d1_database_id=d1_database_id,
        cf_account_id=cf_account_id,
        cf_api_token=cf_api_token,
        **options,
    )
    return Analytics(config, auth_dependency=auth_dependency)
