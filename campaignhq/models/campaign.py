"""
Campaign entity and its time-derived status.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import List, Optional


class CampaignStatus(str, Enum):
    """Campaign lifecycle states"""
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    ACTIVE = "active"
    COMPLETED = "completed"


@dataclass
class CampaignMetrics:
    """Aggregate snapshot attached to a campaign on read"""
    impressions: int = 0
    clicks: int = 0
    engagement: int = 0
    conversions: int = 0


@dataclass
class Campaign:
    id: str
    name: str
    start_date: date
    end_date: date
    channels: List[str]
    goals: str = ""
    created_at: Optional[datetime] = None
    activated_at: Optional[datetime] = None  # None while draft
    status: CampaignStatus = CampaignStatus.DRAFT  # filled in on read
    metrics: CampaignMetrics = field(default_factory=CampaignMetrics)


def derive_campaign_status(campaign: Campaign, now: datetime) -> CampaignStatus:
    """
    Compute the campaign status from the activation flag and the date window.

    Draft is a manual state; once a campaign is activated its status follows
    the calendar: scheduled before start, active within [start, end],
    completed after end.
    """
    if campaign.activated_at is None:
        return CampaignStatus.DRAFT
    today = now.date()
    if today < campaign.start_date:
        return CampaignStatus.SCHEDULED
    if today > campaign.end_date:
        return CampaignStatus.COMPLETED
    return CampaignStatus.ACTIVE
