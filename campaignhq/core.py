"""
Command / query surface of the campaign core.

One CampaignCore wires a store, its analytics aggregator, a scheduling engine
and a channel gateway together. Nothing here is global: tests and the API
each build their own instance.
"""
from datetime import datetime
from typing import Iterable, List, Optional

from .analytics import AnalyticsAggregator
from .clock import IdGenerator
from .errors import GatewayError
from .gateway import ChannelGateway, HealthStatus, build_gateway
from .journal import Journal, NullJournal, SqlJournal
from .logging_config import get_logger
from .models.campaign import Campaign
from .models.content import Content
from .models.schedule_entry import ScheduleEntry
from .reporting import timeline_to_csv
from .scheduler import SchedulingEngine, SweepReport
from .schemas.analytics import AnalyticsSnapshot, TopContentItem
from .store import DeletePolicy, EntityStore

logger = get_logger("core")


class CampaignCore:

    def __init__(
        self,
        gateway: ChannelGateway,
        clock=None,
        ids: Optional[IdGenerator] = None,
        journal: Optional[Journal] = None,
        delete_policy: str = DeletePolicy.ORPHAN,
        max_attempts: int = 3,
        dispatch_timeout: float = 10.0,
        max_workers: int = 4,
    ):
        self.store = EntityStore(clock=clock, ids=ids, journal=journal or NullJournal(), delete_policy=delete_policy)
        self.analytics = AnalyticsAggregator(self.store)
        self.gateway = gateway
        self.scheduler = SchedulingEngine(
            self.store,
            gateway,
            max_attempts=max_attempts,
            dispatch_timeout=dispatch_timeout,
            max_workers=max_workers,
        )

    @classmethod
    def from_settings(cls, settings, clock=None, gateway: Optional[ChannelGateway] = None) -> "CampaignCore":
        """Build a core configured from application settings."""
        journal = None
        if settings.journal_database_url:
            from .database import create_session_factory

            journal = SqlJournal(create_session_factory(settings.journal_database_url))
        core = cls(
            gateway=gateway or build_gateway(settings),
            clock=clock,
            journal=journal,
            delete_policy=settings.campaign_delete_policy,
            max_attempts=settings.dispatch_max_attempts,
            dispatch_timeout=settings.dispatch_timeout_seconds,
            max_workers=settings.dispatch_workers,
        )
        logger.info(
            "Campaign core ready",
            gateway=type(core.gateway).__name__,
            delete_policy=core.store.delete_policy.value,
            journal=type(core.store.journal).__name__,
        )
        return core

    @property
    def clock(self):
        return self.store.clock

    # ============================================================
    # CAMPAIGNS
    # ============================================================

    def _with_metrics(self, campaign: Campaign) -> Campaign:
        campaign.metrics = self.analytics.campaign_metrics(campaign.id)
        return campaign

    def create_campaign(self, **fields) -> Campaign:
        return self._with_metrics(self.store.create_campaign(**fields))

    def update_campaign(self, campaign_id: str, **patch) -> Campaign:
        return self._with_metrics(self.store.update_campaign(campaign_id, **patch))

    def activate_campaign(self, campaign_id: str) -> Campaign:
        return self._with_metrics(self.store.activate_campaign(campaign_id))

    def delete_campaign(self, campaign_id: str) -> List[str]:
        return self.store.delete_campaign(campaign_id)

    def get_campaign(self, campaign_id: str) -> Campaign:
        with self.store.lock.read():
            return self._with_metrics(self.store.get_campaign(campaign_id))

    def list_campaigns(self, status: Optional[str] = None) -> List[Campaign]:
        with self.store.lock.read():
            return [self._with_metrics(c) for c in self.store.list_campaigns(status=status)]

    # ============================================================
    # CONTENT
    # ============================================================

    def create_content(self, **fields) -> Content:
        return self.store.create_content(**fields)

    def update_content(self, content_id: str, **patch) -> Content:
        return self.store.update_content(content_id, **patch)

    def delete_content(self, content_id: str):
        self.store.delete_content(content_id)

    def get_content(self, content_id: str) -> Content:
        return self.store.get_content(content_id)

    def list_content(self, campaign_id: Optional[str] = None, status: Optional[str] = None) -> List[Content]:
        return self.store.list_content(campaign_id=campaign_id, status=status)

    def record_metrics(self, content_id: str, **values: int) -> Content:
        return self.store.record_metrics(content_id, **values)

    def add_metrics(self, content_id: str, **delta: int) -> Content:
        return self.store.add_metrics(content_id, **delta)

    # ============================================================
    # SCHEDULING
    # ============================================================

    def schedule_content(self, content_id: str, channel: str, scheduled_at: datetime) -> ScheduleEntry:
        return self.scheduler.schedule_content(content_id, channel, scheduled_at)

    def schedule_many(self, items: Iterable) -> List[ScheduleEntry]:
        return self.scheduler.schedule_many(items)

    def unschedule_content(self, content_id: str, channel: str) -> ScheduleEntry:
        return self.scheduler.unschedule(content_id, channel)

    def list_schedule(self, content_id: Optional[str] = None, status: Optional[str] = None) -> List[ScheduleEntry]:
        return self.scheduler.list_entries(content_id=content_id, status=status)

    def run_sweep(self, now: Optional[datetime] = None) -> SweepReport:
        return self.scheduler.sweep(now)

    # ============================================================
    # ANALYTICS
    # ============================================================

    def get_analytics(self, campaign_id: Optional[str] = None) -> AnalyticsSnapshot:
        return self.analytics.snapshot(campaign_id)

    def top_content(self, limit: int = 5, campaign_id: Optional[str] = None) -> List[TopContentItem]:
        return self.analytics.top_content(limit=limit, campaign_id=campaign_id)

    def export_timeline_csv(self, campaign_id: Optional[str] = None) -> str:
        return timeline_to_csv(self.get_analytics(campaign_id))

    def check_reconciliation(self) -> bool:
        return self.analytics.check_reconciliation()

    # ============================================================
    # GATEWAY
    # ============================================================

    def test_connection(self) -> HealthStatus:
        """Ask the channel gateway whether it is reachable."""
        try:
            status = self.gateway.check_health()
        except GatewayError as e:
            status = HealthStatus(healthy=False, message=e.message)
        logger.info("Connection test", healthy=status.healthy, message=status.message)
        return status
