"""
Entity Store

Owns Campaign, Content and ScheduleEntry records and is the only writer of
entity state. Every mutation:

- is validated completely before anything changes,
- is applied inside a ``transaction()`` under the store's write lock,
- has all of its ChangeEvents journaled as one unit, then broadcast to
  subscribers in commit order before the lock is released.

If the journal rejects a command's events, every table is restored to its
state before the command.

Campaign status is derived from the clock on every read. Content status is
stored and moves along the transition table in ``models.content``.
"""
import copy
from contextlib import contextmanager
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from .clock import IdGenerator, SystemClock, ensure_utc
from .errors import NotFoundError, ValidationError
from .journal import Journal, NullJournal
from .locks import ReadWriteLock
from .logging_config import store_logger as logger
from .models.campaign import Campaign, CampaignStatus, derive_campaign_status
from .models.content import (
    METRIC_NAMES,
    Content,
    ContentMetrics,
    ContentStatus,
    ContentType,
    can_transition,
)
from .models.events import ChangeEvent, ChangeKind, EntityType
from .models.schedule_entry import DispatchStatus, ScheduleEntry
from .serializers import parse_date

Listener = Callable[[ChangeEvent], None]

CAMPAIGN_FIELDS = {"name", "start_date", "end_date", "goals", "channels", "status"}
CONTENT_FIELDS = {"title", "body", "type", "channels", "campaign_id"}

_MISSING = object()


class DeletePolicy(str, Enum):
    """What happens to content when its campaign is deleted"""
    ORPHAN = "orphan"    # keep content, clear campaign_id
    CASCADE = "cascade"  # delete content and its schedule entries


def _clean_text(value: Any, field_name: str, required: bool = True) -> str:
    if value is None:
        value = ""
    if not isinstance(value, str):
        raise ValidationError(f"{field_name} must be a string", {"field": field_name})
    value = value.strip()
    if required and not value:
        raise ValidationError(f"{field_name} is required", {"field": field_name})
    return value


def _clean_channels(channels: Optional[Iterable[str]]) -> List[str]:
    if channels is None or isinstance(channels, str):
        raise ValidationError("channels must be a list of channel names", {"field": "channels"})
    cleaned: List[str] = []
    for channel in channels:
        if not isinstance(channel, str) or not channel.strip():
            raise ValidationError("channel names must be non-empty strings", {"field": "channels"})
        name = channel.strip()
        if name not in cleaned:
            cleaned.append(name)
    if not cleaned:
        raise ValidationError("at least one channel is required", {"field": "channels"})
    return cleaned


def _clean_date(value: Any, field_name: str) -> date:
    if value is None:
        raise ValidationError(f"{field_name} is required", {"field": field_name})
    try:
        return parse_date(value)
    except ValueError:
        raise ValidationError(f"{field_name} is not a valid date", {"field": field_name, "value": str(value)})


def _reject_unknown(patch: Dict[str, Any], allowed: set, entity: str):
    unknown = sorted(set(patch) - allowed)
    if unknown:
        raise ValidationError(f"Unknown {entity} fields: {unknown}", {"fields": unknown})


class EntityStore:
    """In-memory store for campaigns, content and schedule entries."""

    def __init__(
        self,
        clock=None,
        ids: Optional[IdGenerator] = None,
        journal: Optional[Journal] = None,
        delete_policy: Union[DeletePolicy, str] = DeletePolicy.ORPHAN,
    ):
        self.clock = clock or SystemClock()
        self.ids = ids or IdGenerator()
        self.journal = journal or NullJournal()
        try:
            self.delete_policy = DeletePolicy(delete_policy)
        except ValueError:
            raise ValidationError(f"Unknown delete policy: {delete_policy}")
        self.lock = ReadWriteLock()

        self._campaigns: Dict[str, Campaign] = {}
        self._content: Dict[str, Content] = {}
        self._entries: Dict[Tuple[str, str], ScheduleEntry] = {}
        self._listeners: List[Listener] = []
        self._seq = 0
        self._undo: Optional[list] = None
        self._pending: Optional[List[ChangeEvent]] = None

    # ============================================================
    # EVENTS
    # ============================================================

    def subscribe(self, listener: Listener):
        """Register a listener called synchronously for every committed change."""
        with self.lock.write():
            self._listeners.append(listener)

    @contextmanager
    def transaction(self):
        """
        Write section that commits as one unit.

        Changes made inside are visible to the writing thread right away. When
        the outermost section exits, all of its events go to the journal in
        one call and are then broadcast in order. An exception, from the
        command or from the journal, restores every table and the sequence
        number to their state at entry.
        """
        with self.lock.write():
            if self._undo is not None:
                yield
                return

            seq = self._seq
            self._undo, self._pending = [], []
            try:
                yield
                events = self._pending
                if events:
                    self.journal.record_many(events)
            except BaseException:
                for table, key, previous in reversed(self._undo):
                    if previous is _MISSING:
                        table.pop(key, None)
                    else:
                        table[key] = previous
                self._seq = seq
                raise
            finally:
                self._undo, self._pending = None, None

            for event in events:
                for listener in self._listeners:
                    listener(event)
                logger.debug(
                    f"{event.entity_type.value} {event.kind.value}",
                    seq=event.seq,
                    entity_id=event.entity_id,
                )

    def _commit(
        self,
        entity_type: EntityType,
        entity_id: str,
        kind: ChangeKind,
        table: dict,
        key: Any,
        before: Any,
        after: Any,
    ) -> ChangeEvent:
        """Apply one change to ``table[key]`` (delete when ``after`` is None) and stage its event."""
        if not self.lock.write_held or self._undo is None:
            raise RuntimeError("mutations require an open store transaction")
        event = ChangeEvent(
            seq=self._seq + 1,
            entity_type=entity_type,
            entity_id=entity_id,
            kind=kind,
            at=self.clock.now(),
            before=self._snapshot(before),
            after=self._snapshot(after),
        )
        self._undo.append((table, key, table.get(key, _MISSING)))
        if after is None:
            del table[key]
        else:
            table[key] = after
        self._seq = event.seq
        self._pending.append(event)
        return event

    def _snapshot(self, entity: Any) -> Any:
        if isinstance(entity, Campaign):
            return self._present_campaign(entity)
        return copy.deepcopy(entity)

    @property
    def last_seq(self) -> int:
        return self._seq

    # ============================================================
    # CAMPAIGNS
    # ============================================================

    def _present_campaign(self, campaign: Campaign) -> Campaign:
        view = copy.deepcopy(campaign)
        view.status = derive_campaign_status(campaign, self.clock.now())
        return view

    def _require_campaign(self, campaign_id: str) -> Campaign:
        campaign = self._campaigns.get(campaign_id)
        if campaign is None:
            raise NotFoundError("Campaign", campaign_id)
        return campaign

    def create_campaign(
        self,
        name: str,
        start_date: Any,
        end_date: Any,
        channels: Iterable[str],
        goals: str = "",
    ) -> Campaign:
        name = _clean_text(name, "name")
        start = _clean_date(start_date, "start_date")
        end = _clean_date(end_date, "end_date")
        if end < start:
            raise ValidationError(
                "end_date must not be before start_date",
                {"start_date": start.isoformat(), "end_date": end.isoformat()},
            )
        channel_list = _clean_channels(channels)
        goals = _clean_text(goals, "goals", required=False)

        with self.transaction():
            campaign = Campaign(
                id=self.ids.new_id("cmp"),
                name=name,
                start_date=start,
                end_date=end,
                channels=channel_list,
                goals=goals,
                created_at=self.clock.now(),
            )
            self._commit(
                EntityType.CAMPAIGN, campaign.id, ChangeKind.CREATED,
                self._campaigns, campaign.id, None, campaign,
            )
            logger.info("Campaign created", campaign_id=campaign.id, channels=channel_list)
            return self._present_campaign(campaign)

    def update_campaign(self, campaign_id: str, **patch) -> Campaign:
        _reject_unknown(patch, CAMPAIGN_FIELDS, "campaign")

        with self.transaction():
            current = self._require_campaign(campaign_id)
            updated = copy.deepcopy(current)

            if "name" in patch:
                updated.name = _clean_text(patch["name"], "name")
            if "goals" in patch:
                updated.goals = _clean_text(patch["goals"], "goals", required=False)
            if "start_date" in patch:
                updated.start_date = _clean_date(patch["start_date"], "start_date")
            if "end_date" in patch:
                updated.end_date = _clean_date(patch["end_date"], "end_date")
            if updated.end_date < updated.start_date:
                raise ValidationError(
                    "end_date must not be before start_date",
                    {"start_date": updated.start_date.isoformat(), "end_date": updated.end_date.isoformat()},
                )
            if "channels" in patch:
                updated.channels = _clean_channels(patch["channels"])
                in_use = self._channels_in_use(campaign_id)
                dropped = sorted(in_use - set(updated.channels))
                if dropped:
                    raise ValidationError(
                        f"Channels still used by campaign content: {dropped}",
                        {"field": "channels", "channels": dropped},
                    )
            if patch.get("status") is not None:
                self._apply_status_request(current, updated, patch["status"])

            if updated == current:
                return self._present_campaign(current)

            self._commit(
                EntityType.CAMPAIGN, campaign_id, ChangeKind.UPDATED,
                self._campaigns, campaign_id, current, updated,
            )
            return self._present_campaign(updated)

    def _apply_status_request(self, current: Campaign, updated: Campaign, requested: Any):
        try:
            requested = CampaignStatus(requested)
        except ValueError:
            raise ValidationError(f"Unknown campaign status: {requested}", {"field": "status"})

        if requested == CampaignStatus.DRAFT:
            if current.activated_at is not None:
                raise ValidationError("An activated campaign cannot return to draft", {"field": "status"})
            return

        if updated.activated_at is None:
            updated.activated_at = self.clock.now()
        derived = derive_campaign_status(updated, self.clock.now())
        if derived != requested:
            raise ValidationError(
                f"Campaign status is derived from its dates; it would be '{derived.value}'",
                {"field": "status", "requested": requested.value, "derived": derived.value},
            )

    def _channels_in_use(self, campaign_id: str) -> set:
        used = set()
        for content in self._content.values():
            if content.campaign_id == campaign_id:
                used.update(content.channels)
        return used

    def activate_campaign(self, campaign_id: str) -> Campaign:
        """Move a draft campaign out of draft. No-op when already activated."""
        with self.transaction():
            current = self._require_campaign(campaign_id)
            if current.activated_at is not None:
                return self._present_campaign(current)
            updated = copy.deepcopy(current)
            updated.activated_at = self.clock.now()
            self._commit(
                EntityType.CAMPAIGN, campaign_id, ChangeKind.UPDATED,
                self._campaigns, campaign_id, current, updated,
            )
            logger.info("Campaign activated", campaign_id=campaign_id)
            return self._present_campaign(updated)

    def delete_campaign(self, campaign_id: str) -> List[str]:
        """
        Delete a campaign, applying the delete policy to its content.

        Returns the ids of the content items that were orphaned or deleted.
        """
        with self.transaction():
            campaign = self._require_campaign(campaign_id)
            owned = [c.id for c in self._content.values() if c.campaign_id == campaign_id]

            for content_id in owned:
                if self.delete_policy == DeletePolicy.CASCADE:
                    self._delete_content_locked(content_id)
                else:
                    current = self._content[content_id]
                    orphan = copy.deepcopy(current)
                    orphan.campaign_id = None
                    self._commit(
                        EntityType.CONTENT, content_id, ChangeKind.UPDATED,
                        self._content, content_id, current, orphan,
                    )

            self._commit(
                EntityType.CAMPAIGN, campaign_id, ChangeKind.DELETED,
                self._campaigns, campaign_id, campaign, None,
            )
            logger.info(
                "Campaign deleted",
                campaign_id=campaign_id,
                policy=self.delete_policy.value,
                affected_content=len(owned),
            )
            return owned

    def get_campaign(self, campaign_id: str) -> Campaign:
        with self.lock.read():
            return self._present_campaign(self._require_campaign(campaign_id))

    def list_campaigns(self, status: Optional[Union[CampaignStatus, str]] = None) -> List[Campaign]:
        if status is not None:
            try:
                status = CampaignStatus(status)
            except ValueError:
                raise ValidationError(f"Unknown campaign status: {status}", {"field": "status"})
        with self.lock.read():
            campaigns = [self._present_campaign(c) for c in self._campaigns.values()]
        if status is not None:
            campaigns = [c for c in campaigns if c.status == status]
        return campaigns

    def campaign_exists(self, campaign_id: str) -> bool:
        with self.lock.read():
            return campaign_id in self._campaigns

    # ============================================================
    # CONTENT
    # ============================================================

    def _require_content(self, content_id: str) -> Content:
        content = self._content.get(content_id)
        if content is None:
            raise NotFoundError("Content", content_id)
        return content

    def _check_campaign_channels(self, campaign_id: Optional[str], channels: List[str]):
        if campaign_id is None:
            return
        campaign = self._campaigns.get(campaign_id)
        if campaign is None:
            raise ValidationError(
                f"Campaign '{campaign_id}' does not exist",
                {"field": "campaign_id", "campaign_id": campaign_id},
            )
        outside = [c for c in channels if c not in campaign.channels]
        if outside:
            raise ValidationError(
                f"Channels {outside} are not part of campaign '{campaign_id}'",
                {"field": "channels", "channels": outside, "campaign_channels": list(campaign.channels)},
            )

    @staticmethod
    def _clean_type(value: Any) -> ContentType:
        try:
            return ContentType(value)
        except ValueError:
            raise ValidationError(f"Unknown content type: {value}", {"field": "type"})

    def create_content(
        self,
        title: str,
        body: str,
        channels: Iterable[str],
        type: Union[ContentType, str] = ContentType.POST,
        campaign_id: Optional[str] = None,
    ) -> Content:
        title = _clean_text(title, "title")
        body = _clean_text(body, "body")
        channel_list = _clean_channels(channels)
        content_type = self._clean_type(type)
        campaign_id = campaign_id or None

        with self.transaction():
            self._check_campaign_channels(campaign_id, channel_list)
            content = Content(
                id=self.ids.new_id("cnt"),
                type=content_type,
                title=title,
                body=body,
                channels=channel_list,
                campaign_id=campaign_id,
                created_at=self.clock.now(),
            )
            self._commit(
                EntityType.CONTENT, content.id, ChangeKind.CREATED,
                self._content, content.id, None, content,
            )
            logger.info("Content created", content_id=content.id, campaign_id=campaign_id)
            return copy.deepcopy(content)

    def update_content(self, content_id: str, **patch) -> Content:
        _reject_unknown(patch, CONTENT_FIELDS, "content")

        with self.transaction():
            current = self._require_content(content_id)
            updated = copy.deepcopy(current)

            if "title" in patch:
                updated.title = _clean_text(patch["title"], "title")
            if "body" in patch:
                updated.body = _clean_text(patch["body"], "body")
            if "type" in patch:
                updated.type = self._clean_type(patch["type"])
            if "channels" in patch:
                updated.channels = _clean_channels(patch["channels"])
            if "campaign_id" in patch:
                updated.campaign_id = patch["campaign_id"] or None

            relinked = (
                updated.channels != current.channels
                or updated.campaign_id != current.campaign_id
            )
            if relinked and current.status != ContentStatus.DRAFT:
                raise ValidationError(
                    "channels and campaign can only change while content is a draft",
                    {"status": current.status.value},
                )
            self._check_campaign_channels(updated.campaign_id, updated.channels)

            if updated == current:
                return copy.deepcopy(current)

            self._commit(
                EntityType.CONTENT, content_id, ChangeKind.UPDATED,
            self._content, content_id, current, updated,
            )
            return copy.deepcopy(updated)

    def delete_content(self, content_id: str):
        with self.transaction():
            self._require_content(content_id)
            self._delete_content_locked(content_id)
            logger.info("Content deleted", content_id=content_id)

    def _delete_content_locked(self, content_id: str):
        for key in [k for k in self._entries if k[0] == content_id]:
            entry = self._entries[key]
            self._commit(
                EntityType.SCHEDULE_ENTRY, entry.id, ChangeKind.DELETED,
                self._entries, key, entry, None,
            )
        content = self._content[content_id]
        self._commit(
            EntityType.CONTENT, content_id, ChangeKind.DELETED,
            self._content, content_id, content, None,
        )

    def get_content(self, content_id: str) -> Content:
        with self.lock.read():
            return copy.deepcopy(self._require_content(content_id))

    def list_content(
        self,
        campaign_id: Optional[str] = None,
        status: Optional[Union[ContentStatus, str]] = None,
    ) -> List[Content]:
        if status is not None:
            try:
                status = ContentStatus(status)
            except ValueError:
                raise ValidationError(f"Unknown content status: {status}", {"field": "status"})
        with self.lock.read():
            items = [
                c for c in self._content.values()
                if (campaign_id is None or c.campaign_id == campaign_id)
                and (status is None or c.status == status)
            ]
            return copy.deepcopy(items)

    # ============================================================
    # METRICS
    # ============================================================

    def record_metrics(self, content_id: str, **values: int) -> Content:
        """
        Set absolute metric values for published content.

        Omitted counters keep their value. Lower values than the current
        ones are rejected because metrics never decrease.
        """
        _reject_unknown(values, set(METRIC_NAMES), "metric")
        for name, value in values.items():
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise ValidationError(f"{name} must be a non-negative integer", {"field": name})

        with self.transaction():
            current = self._require_content(content_id)
            if current.status != ContentStatus.PUBLISHED:
                raise ValidationError(
                    "Metrics can only be recorded for published content",
                    {"status": current.status.value},
                )
            new_metrics = copy.deepcopy(current.metrics)
            for name, value in values.items():
                setattr(new_metrics, name, value)
            regressed = new_metrics.regressed_fields(current.metrics)
            if regressed:
                raise ValidationError(
                    f"Metrics cannot decrease: {regressed}",
                    {"fields": regressed},
                )
            if new_metrics == current.metrics:
                return copy.deepcopy(current)

            updated = copy.deepcopy(current)
            updated.metrics = new_metrics
            self._commit(
                EntityType.CONTENT, content_id, ChangeKind.UPDATED,
            self._content, content_id, current, updated,
            )
            return copy.deepcopy(updated)

    def add_metrics(self, content_id: str, **delta: int) -> Content:
        """Increment metrics of published content by non-negative amounts."""
        _reject_unknown(delta, set(METRIC_NAMES), "metric")
        for name, value in delta.items():
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise ValidationError(f"{name} increment must be a non-negative integer", {"field": name})

        with self.transaction():
            current = self._require_content(content_id)
            totals = current.metrics.plus(ContentMetrics(**delta))
            return self.record_metrics(content_id, **totals.to_dict())

    # ============================================================
    # SCHEDULE ENTRIES AND CONTENT TRANSITIONS
    # Used by the scheduling engine; callers hold ``transaction()``.
    # ============================================================

    def get_schedule_entry(self, content_id: str, channel: str) -> Optional[ScheduleEntry]:
        with self.lock.read():
            entry = self._entries.get((content_id, channel))
            return copy.deepcopy(entry)

    def list_schedule_entries(
        self,
        content_id: Optional[str] = None,
        status: Optional[Union[DispatchStatus, str]] = None,
    ) -> List[ScheduleEntry]:
        if status is not None:
            try:
                status = DispatchStatus(status)
            except ValueError:
                raise ValidationError(f"Unknown dispatch status: {status}", {"field": "status"})
        with self.lock.read():
            entries = [
                e for e in self._entries.values()
                if (content_id is None or e.content_id == content_id)
                and (status is None or e.dispatch_status == status)
            ]
            entries.sort(key=lambda e: (e.scheduled_at, e.id))
            return copy.deepcopy(entries)

    def due_schedule_entries(self, now: datetime) -> List[ScheduleEntry]:
        """Entries ready for dispatch at ``now``, oldest first."""
        now = ensure_utc(now)
        with self.lock.read():
            due = [e for e in self._entries.values() if e.is_due(now)]
            due.sort(key=lambda e: (e.scheduled_at, e.id))
            return copy.deepcopy(due)

    def save_schedule_entry(self, entry: ScheduleEntry) -> ScheduleEntry:
        current = self._entries.get(entry.key)
        if current == entry:
            return copy.deepcopy(current)
        kind = ChangeKind.CREATED if current is None else ChangeKind.UPDATED
        stored = copy.deepcopy(entry)
        self._commit(
            EntityType.SCHEDULE_ENTRY, entry.id, kind,
            self._entries, entry.key, current, stored,
        )
        return copy.deepcopy(stored)

    def remove_schedule_entry(self, content_id: str, channel: str) -> ScheduleEntry:
        key = (content_id, channel)
        current = self._entries.get(key)
        if current is None:
            raise NotFoundError("ScheduleEntry", f"{content_id}/{channel}")
        self._commit(
            EntityType.SCHEDULE_ENTRY, current.id, ChangeKind.DELETED,
            self._entries, key, current, None,
        )
        return copy.deepcopy(current)

    def earliest_schedule_time(self, content_id: str) -> Optional[datetime]:
        times = [e.scheduled_at for e in self._entries.values() if e.content_id == content_id]
        return min(times) if times else None

    def transition_content(
        self,
        content_id: str,
        target: ContentStatus,
        scheduled_at: Optional[datetime] = None,
        published_at: Optional[datetime] = None,
    ) -> Content:
        """
        Move content along its state machine.

        ``published_at`` is only applied the first time content is published.
        Leaving ``scheduled`` for ``draft`` clears ``scheduled_at``.
        """
        current = self._require_content(content_id)
        if not can_transition(current.status, target):
            raise ValidationError(
                f"Content cannot move from {current.status.value} to {target.value}",
                {"from": current.status.value, "to": target.value},
            )

        updated = copy.deepcopy(current)
        updated.status = target
        if target == ContentStatus.DRAFT:
            updated.scheduled_at = None
        elif scheduled_at is not None and current.status != ContentStatus.PUBLISHED:
            updated.scheduled_at = scheduled_at
        if target == ContentStatus.PUBLISHED and updated.published_at is None:
            updated.published_at = published_at or self.clock.now()

        if updated == current:
            return copy.deepcopy(current)
        self._commit(
            EntityType.CONTENT, content_id, ChangeKind.UPDATED,
            self._content, content_id, current, updated,
        )
        return copy.deepcopy(updated)

    def require_content(self, content_id: str) -> Content:
        """Detached copy of the content, or NotFoundError. Caller holds the lock."""
        return copy.deepcopy(self._require_content(content_id))

    def require_campaign(self, campaign_id: str) -> Campaign:
        """Detached copy of the stored campaign, or NotFoundError. Caller holds the lock."""
        return copy.deepcopy(self._require_campaign(campaign_id))
