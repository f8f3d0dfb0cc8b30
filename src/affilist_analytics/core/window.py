"""
Resolve query parameters into a time window.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

from ..errors import ValidationError
from .models import TimeWindow

DEFAULT_WINDOW_DAYS = 30


def parse_timestamp(value: str, field: str) -> datetime:
    """Parse an ISO 8601 date or datetime string. Naive values are taken as UTC.

    Raises:
        ValidationError: If the value can't be parsed
    """
    try:
        parsed = datetime.fromisoformat(value.strip())
    except (ValueError, AttributeError):
        raise ValidationError({
            field: "Invalid date format. Use ISO 8601 (e.g., 2024-01-15 or 2024-01-15T00:00:00Z)"
        }) from None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def resolve_window(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    days: Optional[int] = None,
    now: Optional[datetime] = None,
    default_days: int = DEFAULT_WINDOW_DAYS,
) -> TimeWindow:
    """Resolve raw query parameters into a window.

    Args:
        start_date: Window start, used only together with end_date
        end_date: Window end, used only together with start_date
        days: Trailing window length ending at now
        now: Reference time, defaults to the current UTC time
        default_days: Trailing window length when nothing else is given

    Returns:
        The resolved window. Explicit dates are used verbatim, so the window
        may be empty (start after end).

    Raises:
        ValidationError: If an explicit date can't be parsed
    """
    if start_date and end_date:
        errors = {}
        bounds = {}
        for field, value in (("start_date", start_date), ("end_date", end_date)):
            try:
                bounds[field] = parse_timestamp(value, field)
            except ValidationError as exc:
                errors.update(exc.fields)
        if errors:
            raise ValidationError(errors)
        return TimeWindow(start=bounds["start_date"], end=bounds["end_date"])

    now = now or datetime.now(timezone.utc)
    span = days if days else default_days
    return TimeWindow(start=now - timedelta(days=span), end=now)
