"""
Analytics API routes for Affilist.

Query parameters arrive as raw strings and are validated here so every
problem is reported as a 400 naming the offending fields.
"""

import logging
import uuid
from typing import Any, Callable

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response

from ..config import MAX_DAYS, MAX_LIMIT, MIN_DAYS, MIN_LIMIT, AnalyticsConfig
from ..core.engine import EXPORT_FORMATS, AggregationEngine
from ..core.models import TimeWindow
from ..core.window import resolve_window
from ..errors import NotFoundError, StoreUnavailableError, ValidationError

logger = logging.getLogger(__name__)

_TRUE_VALUES = ("true", "1", "yes", "on")
_FALSE_VALUES = ("false", "0", "no", "off")


def _parse_int(value: str | None, field: str, low: int, high: int, errors: dict[str, str]) -> int | None:
    """Coerce an integer query parameter, recording a range error if needed."""
    if value is None or value == "":
        return None
    try:
        number = int(value)
    except ValueError:
        errors[field] = f"Must be an integer between {low} and {high}"
        return None
    if not low <= number <= high:
        errors[field] = f"Must be an integer between {low} and {high}"
        return None
    return number


def _parse_flag(value: str | None, field: str, errors: dict[str, str]) -> bool:
    """Coerce a boolean query parameter. Missing means False."""
    if value is None or value == "":
        return False
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    errors[field] = "Must be true or false"
    return False


def _parse_link_id(value: str | None, field: str, errors: dict[str, str]) -> str | None:
    """Validate a UUID parameter and return it in canonical form."""
    if value is None or value == "":
        return None
    try:
        return str(uuid.UUID(value))
    except ValueError:
        errors[field] = "Must be a valid UUID"
        return None


def _parse_window(
    start_date: str | None,
    end_date: str | None,
    days: str | None,
    default_days: int,
    errors: dict[str, str],
) -> TimeWindow | None:
    """Resolve the window, collecting errors instead of raising."""
    parsed_days = _parse_int(days, "days", MIN_DAYS, MAX_DAYS, errors)
    try:
        return resolve_window(start_date, end_date, parsed_days, default_days=default_days)
    except ValidationError as exc:
        errors.update(exc.fields)
        return None


def _bad_request(errors: dict[str, str]) -> HTTPException:
    return HTTPException(
        status_code=400,
        detail={"error": "Invalid query parameters", "fields": errors},
    )


def _store_unavailable(exc: StoreUnavailableError, request: Request) -> HTTPException:
    """Log a store failure with request context and build the 503 response."""
    logger.exception(
        f"Store unavailable while handling {request.method} {request.url.path} "
        f"(query: {request.url.query or '-'}): {exc}"
    )
    return HTTPException(
        status_code=503,
        detail={"error": "Service unavailable", "message": "Failed to retrieve analytics data."},
    )


def _envelope(value: Any) -> dict:
    return {"success": True, "data": value.model_dump(mode="json")}


def create_analytics_router(
    engine: AggregationEngine,
    config: AnalyticsConfig,
    auth_dependency: Callable[..., Any] | None = None,
) -> APIRouter:
    """Create the analytics API router.

    Args:
        engine: Aggregation engine to serve
        config: Analytics configuration (defaults for window and limits)
        auth_dependency: Optional FastAPI dependency that verifies the caller.
            It is attached to every route.
    """
    dependencies = [Depends(auth_dependency)] if auth_dependency else []
    router = APIRouter(tags=["analytics"], dependencies=dependencies)

    @router.get("/analytics")
    async def get_analytics(
        request: Request,
        start_date: str | None = Query(None, description="Window start (ISO 8601)"),
        end_date: str | None = Query(None, description="Window end (ISO 8601)"),
        days: str | None = Query(None, description="Trailing window length (1-365)"),
        link_id: str | None = Query(None, description="Restrict to one link (UUID)"),
        limit: str | None = Query(None, description="Top links to return (1-100)"),
        format: str | None = Query(None, description="json or csv"),
        compare: str | None = Query(None, description="Include trend against the previous period"),
    ):
        """Summary, day/hour series and top links for a window."""
        errors: dict[str, str] = {}
        window = _parse_window(start_date, end_date, days, config.default_days, errors)
        parsed_link_id = _parse_link_id(link_id, "link_id", errors)
        top_n = _parse_int(limit, "limit", MIN_LIMIT, MAX_LIMIT, errors)
        include_trend = _parse_flag(compare, "compare", errors)
        # format is validated for parity with /analytics/export; the summary is always JSON
        if format is not None and format not in EXPORT_FORMATS:
            errors["format"] = "Must be one of: json, csv"
        if errors:
            raise _bad_request(errors)

        try:
            result = await engine.get_summary(
                window,
                link_id=parsed_link_id,
                top_n=top_n or config.default_limit,
                compare=include_trend,
            )
        except ValidationError as exc:
            raise _bad_request(exc.fields) from None
        except StoreUnavailableError as exc:
            raise _store_unavailable(exc, request) from None

        return _envelope(result)

    @router.get("/analytics/export")
    async def export_analytics(
        request: Request,
        start_date: str | None = Query(None),
        end_date: str | None = Query(None),
        days: str | None = Query(None),
        link_id: str | None = Query(None),
        limit: str | None = Query(None),
        format: str | None = Query(None),
    ):
        """Download top links and clicks by date as JSON or CSV."""
        errors: dict[str, str] = {}
        window = _parse_window(start_date, end_date, days, config.default_days, errors)
        # Exports always cover every link; link_id is validated but not applied
        _parse_link_id(link_id, "link_id", errors)
        export_limit = _parse_int(limit, "limit", MIN_LIMIT, MAX_LIMIT, errors)
        export_format = format or "json"
        if export_format not in EXPORT_FORMATS:
            errors["format"] = "Must be one of: json, csv"
        if errors:
            raise _bad_request(errors)

        try:
            export = await engine.export_analytics(
                window,
                format=export_format,
                limit=export_limit or config.export_limit,
            )
        except ValidationError as exc:
            raise _bad_request(exc.fields) from None
        except StoreUnavailableError as exc:
            raise _store_unavailable(exc, request) from None

        return Response(
            content=export.content,
            media_type=export.media_type,
            headers={"Content-Disposition": f'attachment; filename="{export.filename}"'},
        )

    @router.get("/analytics/links/{link_id}")
    async def get_link_analytics(
        request: Request,
        link_id: str,
        start_date: str | None = Query(None),
        end_date: str | None = Query(None),
        days: str | None = Query(None),
    ):
        """Analytics for a single link."""
        errors: dict[str, str] = {}
        parsed_link_id = _parse_link_id(link_id, "link_id", errors)
        window = _parse_window(start_date, end_date, days, config.default_days, errors)
        if errors:
            raise _bad_request(errors)

        try:
            result = await engine.get_link_analytics(parsed_link_id, window)
        except NotFoundError:
            raise HTTPException(
                status_code=404,
                detail={"error": "Link not found", "message": "The specified affiliate link does not exist."},
            ) from None
        except StoreUnavailableError as exc:
            raise _store_unavailable(exc, request) from None

        return _envelope(result)

    @router.get("/analytics/performance")
    async def get_performance(
        request: Request,
        start_date: str | None = Query(None),
        end_date: str | None = Query(None),
        days: str | None = Query(None),
    ):
        """Trend against the previous period, performance tiers and revenue by link."""
        errors: dict[str, str] = {}
        window = _parse_window(start_date, end_date, days, config.default_days, errors)
        if errors:
            raise _bad_request(errors)

        try:
            result = await engine.get_performance_trends(window)
        except StoreUnavailableError as exc:
            raise _store_unavailable(exc, request) from None

        return _envelope(result)

    return router
