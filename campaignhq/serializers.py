"""
Plain-dict views of core entities for API responses and the journal.
"""
from datetime import date, datetime
from typing import Any, Optional

from .models.campaign import Campaign
from .models.content import Content
from .models.schedule_entry import ScheduleEntry


def _iso(value: Optional[Any]) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat().replace("+00:00", "Z")
    return value.isoformat()


def campaign_to_dict(campaign: Campaign) -> dict:
    """Convert a Campaign to a dictionary response."""
    return {
        "id": campaign.id,
        "name": campaign.name,
        "start_date": _iso(campaign.start_date),
        "end_date": _iso(campaign.end_date),
        "goals": campaign.goals,
        "channels": list(campaign.channels),
        "status": campaign.status.value,
        "metrics": {
            "impressions": campaign.metrics.impressions,
            "clicks": campaign.metrics.clicks,
            "engagement": campaign.metrics.engagement,
            "conversions": campaign.metrics.conversions,
        },
        "created_at": _iso(campaign.created_at),
        "activated_at": _iso(campaign.activated_at),
    }


def content_to_dict(content: Content) -> dict:
    """Convert a Content item to a dictionary response."""
    return {
        "id": content.id,
        "campaign_id": content.campaign_id,
        "type": content.type.value,
        "title": content.title,
        "body": content.body,
        "channels": list(content.channels),
        "status": content.status.value,
        "scheduled_at": _iso(content.scheduled_at),
        "published_at": _iso(content.published_at),
        "metrics": content.metrics.to_dict(),
        "created_at": _iso(content.created_at),
    }


def entry_to_dict(entry: ScheduleEntry) -> dict:
    """Convert a ScheduleEntry to a dictionary response."""
    return {
        "id": entry.id,
        "content_id": entry.content_id,
        "channel": entry.channel,
        "scheduled_at": _iso(entry.scheduled_at),
        "dispatch_status": entry.dispatch_status.value,
        "attempts": entry.attempts,
        "terminal": entry.terminal,
        "last_error": entry.last_error,
        "external_id": entry.external_id,
        "dispatched_at": _iso(entry.dispatched_at),
    }


def entity_to_dict(entity: Any) -> Optional[dict]:
    """Serialize any core entity, or None."""
    if entity is None:
        return None
    if isinstance(entity, Campaign):
        return campaign_to_dict(entity)
    if isinstance(entity, Content):
        return content_to_dict(entity)
    if isinstance(entity, ScheduleEntry):
        return entry_to_dict(entity)
    raise TypeError(f"Cannot serialize {type(entity).__name__}")


def parse_date(value: Any) -> date:
    """Accept a date, a datetime or an ISO string and return a date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value[:10])
    raise ValueError(f"Not a date: {value!r}")
