from .campaign import Campaign, CampaignMetrics, CampaignStatus, derive_campaign_status
from .content import Content, ContentMetrics, ContentStatus, ContentType, can_transition
from .schedule_entry import DispatchStatus, ScheduleEntry
from .events import ChangeEvent, ChangeKind, EntityType

__all__ = [
    "Campaign",
    "CampaignMetrics",
    "CampaignStatus",
    "derive_campaign_status",
    "Content",
    "ContentMetrics",
    "ContentStatus",
    "ContentType",
    "can_transition",
    "DispatchStatus",
    "ScheduleEntry",
    "ChangeEvent",
    "ChangeKind",
    "EntityType",
]
