"""
Export formatting for analytics data.

CSV exports hold two tables, top links and clicks by date, each preceded by a
``#`` heading line and separated by an empty line.
"""
import csv
from io import StringIO
from typing import Any, Iterable, Mapping, Sequence

from .models import AnalyticsExport, TimeWindow

TOP_LINKS_HEADERS = ["link_id", "title", "clicks"]
CLICKS_BY_DATE_HEADERS = ["date", "clicks"]


def format_csv(rows: Iterable[Mapping[str, Any]], headers: Sequence[str]) -> str:
    """Format rows as CSV with a header line, lines joined by newlines.

    A field containing a comma or double quote is wrapped in double quotes
    with embedded quotes doubled. None becomes an empty field.
    """
    output = StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(headers)
    for row in rows:
        writer.writerow([row.get(header) for header in headers])
    return output.getvalue().rstrip("\n")


def render_csv(export: AnalyticsExport) -> str:
    """Render an export as the two-table CSV document."""
    top_links = format_csv(
        (link.model_dump() for link in export.top_links),
        TOP_LINKS_HEADERS,
    )
    clicks_by_date = format_csv(
        ({"date": day.date.isoformat(), "clicks": day.clicks} for day in export.clicks_by_date),
        CLICKS_BY_DATE_HEADERS,
    )
    return "\n".join([
        "# Top Links",
        top_links,
        "",
        "# Clicks by Date",
        clicks_by_date,
    ])


def render_json(export: AnalyticsExport) -> str:
    """Render an export as a JSON document."""
    return export.model_dump_json(indent=2)


def export_filename(window: TimeWindow, ext: str) -> str:
    """Download filename, e.g. ``analytics-2024-01-01-to-2024-01-31.csv``."""
    return f"analytics-{window.start.date().isoformat()}-to-{window.end.date().isoformat()}.{ext}"
