from pydantic import BaseModel
from datetime import date
from typing import List, Optional


class AnalyticsOverview(BaseModel):
    total_impressions: int = 0
    total_clicks: int = 0
    total_engagement: int = 0
    total_conversions: int = 0
    ctr: float = 0.0
    conversion_rate: float = 0.0


class PlatformBreakdown(BaseModel):
    channel: str
    impressions: int = 0
    clicks: int = 0
    engagement: int = 0


class TimelinePoint(BaseModel):
    date: date
    impressions: int = 0
    clicks: int = 0
    engagement: int = 0


class AnalyticsSnapshot(BaseModel):
    campaign_id: Optional[str] = None
    overview: AnalyticsOverview = AnalyticsOverview()
    by_platform: List[PlatformBreakdown] = []
    timeline: List[TimelinePoint] = []

    def is_reconciled(self) -> bool:
        """Overview totals equal the by-platform sums and the timeline sums."""
        totals = (
            self.overview.total_impressions,
            self.overview.total_clicks,
            self.overview.total_engagement,
        )
        platform_sums = (
            sum(p.impressions for p in self.by_platform),
            sum(p.clicks for p in self.by_platform),
            sum(p.engagement for p in self.by_platform),
        )
        timeline_sums = (
            sum(t.impressions for t in self.timeline),
            sum(t.clicks for t in self.timeline),
            sum(t.engagement for t in self.timeline),
        )
        return totals == platform_sums == timeline_sums


class TopContentItem(BaseModel):
    id: str
    title: str
    campaign_id: Optional[str] = None
    channels: List[str]
    impressions: int
    clicks: int
    engagement: int
    score: int
