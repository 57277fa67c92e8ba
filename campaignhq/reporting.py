"""
Report exports built from analytics snapshots.
"""
import csv
import io
from typing import Iterable

from .schemas.analytics import AnalyticsSnapshot, TimelinePoint

TIMELINE_HEADER = ["date", "impressions", "clicks", "engagement"]


def timeline_rows(points: Iterable[TimelinePoint]):
    """Yield the header row, then one row per day in ascending date order."""
    yield TIMELINE_HEADER
    for point in sorted(points, key=lambda p: p.date):
        yield [point.date.isoformat(), point.impressions, point.clicks, point.engagement]


def timeline_to_csv(snapshot: AnalyticsSnapshot, delimiter: str = ",") -> str:
    """Render the snapshot's timeline as delimited text."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, delimiter=delimiter, lineterminator="\n")
    writer.writerows(timeline_rows(snapshot.timeline))
    return buffer.getvalue()


def export_filename(campaign_id=None) -> str:
    if campaign_id:
        return f"analytics-report-{campaign_id}.csv"
    return "analytics-report.csv"
