from .analytics import AnalyticsOverview, AnalyticsSnapshot, PlatformBreakdown, TimelinePoint, TopContentItem
from .campaign import CampaignCreate, CampaignUpdate
from .content import ContentCreate, ContentUpdate, MetricsUpdate
from .schedule import ScheduleBatch, ScheduleItem

__all__ = [
    "AnalyticsOverview", "AnalyticsSnapshot", "PlatformBreakdown", "TimelinePoint", "TopContentItem",
    "CampaignCreate", "CampaignUpdate",
    "ContentCreate", "ContentUpdate", "MetricsUpdate",
    "ScheduleBatch", "ScheduleItem",
]
