"""
Analytics Aggregator

Keeps running totals for the global scope and for each campaign, each with a
by-channel and a by-day accumulator, updated from the store's change events
inside the same write critical section as the mutation. Queries read the
accumulators; ratios are computed at query time.
"""
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Set

from .errors import InvariantViolation
from .logging_config import analytics_logger as logger
from .models.campaign import CampaignMetrics
from .models.content import Content, ContentMetrics, ContentStatus
from .models.events import ChangeEvent, ChangeKind, EntityType
from .schemas.analytics import (
    AnalyticsOverview,
    AnalyticsSnapshot,
    PlatformBreakdown,
    TimelinePoint,
    TopContentItem,
)


def split_evenly(amount: int, channels: List[str]) -> Dict[str, int]:
    """
    Split an integer across channels so the parts sum to ``amount``.

    The remainder goes one unit at a time to channels in name order.
    """
    ordered = sorted(channels)
    base, remainder = divmod(amount, len(ordered))
    return {channel: base + (1 if i < remainder else 0) for i, channel in enumerate(ordered)}


def _ratio(numerator: int, denominator: int) -> float:
    if denominator == 0:
        return 0.0
    return numerator / denominator


@dataclass
class _Bucket:
    impressions: int = 0
    clicks: int = 0
    engagement: int = 0

    def add(self, impressions: int, clicks: int, engagement: int):
        self.impressions += impressions
        self.clicks += clicks
        self.engagement += engagement


@dataclass
class _Scope:
    totals: _Bucket = field(default_factory=_Bucket)
    conversions: int = 0
    by_channel: Dict[str, _Bucket] = field(default_factory=dict)
    by_day: Dict[date, _Bucket] = field(default_factory=dict)

    def register_channels(self, channels: List[str]):
        for channel in channels:
            self.by_channel.setdefault(channel, _Bucket())

    def apply(self, delta: ContentMetrics, channels: List[str], day: date):
        engagement = delta.engagement
        self.totals.add(delta.impressions, delta.clicks, engagement)
        self.conversions += delta.conversions

        impressions = split_evenly(delta.impressions, channels)
        clicks = split_evenly(delta.clicks, channels)
        engaged = split_evenly(engagement, channels)
        for channel in channels:
            self.by_channel.setdefault(channel, _Bucket()).add(
                impressions[channel], clicks[channel], engaged[channel]
            )

        self.by_day.setdefault(day, _Bucket()).add(delta.impressions, delta.clicks, engagement)

    def reconciled(self) -> bool:
        totals = (self.totals.impressions, self.totals.clicks, self.totals.engagement)
        for buckets in (self.by_channel.values(), self.by_day.values()):
            sums = (
                sum(b.impressions for b in buckets),
                sum(b.clicks for b in buckets),
                sum(b.engagement for b in buckets),
            )
            if sums != totals:
                return False
        return True


class AnalyticsAggregator:
    """Incremental metrics for all campaigns and for each campaign."""

    def __init__(self, store):
        self.store = store
        self._global = _Scope()
        self._campaigns: Dict[str, _Scope] = {}
        self._metrics_started: Set[str] = set()
        store.subscribe(self.apply)

    # ============================================================
    # EVENT HANDLING (runs under the store write lock)
    # ============================================================

    def apply(self, event: ChangeEvent):
        if event.entity_type == EntityType.CAMPAIGN:
            if event.kind == ChangeKind.CREATED:
                self._campaigns[event.entity_id] = _Scope()
            elif event.kind == ChangeKind.DELETED:
                self._campaigns.pop(event.entity_id, None)
            return

        if event.entity_type != EntityType.CONTENT:
            return

        if event.kind == ChangeKind.DELETED:
            self._metrics_started.discard(event.entity_id)
            return
        if event.kind != ChangeKind.UPDATED:
            return

        before: Content = event.before
        after: Content = event.after
        if after.status != ContentStatus.PUBLISHED:
            return

        scopes = self._scopes_for(after.campaign_id)

        if before.status != ContentStatus.PUBLISHED:
            for scope in scopes:
                scope.register_channels(after.channels)
            logger.debug("Metrics collection started", content_id=after.id, channels=after.channels)

        delta = after.metrics.minus(before.metrics)
        if delta.is_zero():
            return
        negative = [name for name, value in delta.to_dict().items() if value < 0]
        if negative:
            raise InvariantViolation(
                f"Metrics decreased for content '{after.id}'",
                {"content_id": after.id, "fields": negative},
            )

        if after.id in self._metrics_started:
            day = event.at.date()
        else:
            day = (after.published_at or event.at).date()
            self._metrics_started.add(after.id)

        for scope in scopes:
            scope.apply(delta, after.channels, day)

    def _scopes_for(self, campaign_id: Optional[str]) -> List[_Scope]:
        scopes = [self._global]
        if campaign_id is not None and campaign_id in self._campaigns:
            scopes.append(self._campaigns[campaign_id])
        return scopes

    # ============================================================
    # QUERIES
    # ============================================================

    def _scope(self, campaign_id: Optional[str]) -> _Scope:
        if campaign_id is None:
            return self._global
        self.store.require_campaign(campaign_id)
        return self._campaigns.get(campaign_id) or _Scope()

    def snapshot(self, campaign_id: Optional[str] = None) -> AnalyticsSnapshot:
        """Overview, per-platform breakdown and daily timeline for a scope."""
        with self.store.lock.read():
            scope = self._scope(campaign_id)
            totals = scope.totals
            overview = AnalyticsOverview(
                total_impressions=totals.impressions,
                total_clicks=totals.clicks,
                total_engagement=totals.engagement,
                total_conversions=scope.conversions,
                ctr=_ratio(totals.clicks, totals.impressions),
                conversion_rate=_ratio(scope.conversions, totals.clicks),
            )
            by_platform = [
                PlatformBreakdown(
                    channel=channel,
                    impressions=bucket.impressions,
                    clicks=bucket.clicks,
                    engagement=bucket.engagement,
                )
                for channel, bucket in sorted(scope.by_channel.items())
            ]
            timeline = [
                TimelinePoint(
                    date=day,
                    impressions=bucket.impressions,
                    clicks=bucket.clicks,
                    engagement=bucket.engagement,
                )
                for day, bucket in sorted(scope.by_day.items())
            ]
        return AnalyticsSnapshot(
            campaign_id=campaign_id,
            overview=overview,
            by_platform=by_platform,
            timeline=timeline,
        )

    def campaign_metrics(self, campaign_id: str) -> CampaignMetrics:
        with self.store.lock.read():
            scope = self._scope(campaign_id)
            return CampaignMetrics(
                impressions=scope.totals.impressions,
                clicks=scope.totals.clicks,
                engagement=scope.totals.engagement,
                conversions=scope.conversions,
            )

    def top_content(self, limit: int = 5, campaign_id: Optional[str] = None) -> List[TopContentItem]:
        """
        Published content ranked by impressions + clicks, highest first.

        Ties are broken by id ascending.
        """
        if limit < 0:
            limit = 0
        if campaign_id is not None:
            with self.store.lock.read():
                self.store.require_campaign(campaign_id)
        published = self.store.list_content(campaign_id=campaign_id, status=ContentStatus.PUBLISHED)
        ranked = sorted(
            published,
            key=lambda c: (-(c.metrics.impressions + c.metrics.clicks), c.id),
        )
        return [
            TopContentItem(
                id=c.id,
                title=c.title,
                campaign_id=c.campaign_id,
                channels=list(c.channels),
                impressions=c.metrics.impressions,
                clicks=c.metrics.clicks,
                engagement=c.metrics.engagement,
                score=c.metrics.impressions + c.metrics.clicks,
            )
            for c in ranked[:limit]
        ]

    def check_reconciliation(self) -> bool:
        """True when every scope's totals match its channel and day sums."""
        with self.store.lock.read():
            scopes = [self._global, *self._campaigns.values()]
            ok = all(scope.reconciled() for scope in scopes)
        if not ok:
            logger.error("Analytics reconciliation failed")
        return ok
