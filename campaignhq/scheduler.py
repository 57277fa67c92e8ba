"""
Scheduling Engine

Turns (content, channel, time) requests into schedule entries and, on each
sweep, dispatches due entries through the channel gateway.

A sweep never holds the store lock while talking to the gateway:

1. snapshot due entries under the read lock
2. dispatch them on a few daemon worker threads; each call gets its own
   deadline from the moment a worker starts it, and calls that never start
   because every worker is stuck are deferred to the next sweep
3. commit each outcome under the write lock, skipping entries that were
   rescheduled or removed in the meantime

The sweep does not schedule itself; an external driver calls it
(see ``worker.sweeper``).
"""
import copy
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from queue import Empty, Queue
from typing import Iterable, List, Optional, Tuple, Union

from .clock import ensure_utc
from .errors import ConflictError, GatewayError, NotFoundError, ValidationError
from .gateway import ChannelGateway, PublishResult
from .logging_config import scheduler_logger as logger, timed
from .models.content import Content, ContentStatus
from .models.schedule_entry import DispatchStatus, ScheduleEntry
from .serializers import entry_to_dict
from .store import EntityStore


@dataclass
class ScheduleRequest:
    content_id: str
    channel: str
    scheduled_at: datetime


@dataclass
class _Dispatch:
    """One publish call handed to a dispatch worker."""
    entry: ScheduleEntry
    content: Content
    started: Optional[float] = None
    result: Optional[PublishResult] = None
    finished: bool = False
    cancelled: bool = False

    @property
    def running(self) -> bool:
        return self.started is not None and self.result is None


@dataclass
class SweepReport:
    """What one sweep did. ``exhausted`` entries will not be retried automatically."""
    swept_at: Optional[datetime] = None
    skipped: bool = False  # another sweep was already running
    dispatched: List[ScheduleEntry] = field(default_factory=list)
    failed: List[ScheduleEntry] = field(default_factory=list)
    exhausted: List[ScheduleEntry] = field(default_factory=list)
    stale: List[ScheduleEntry] = field(default_factory=list)
    deferred: List[ScheduleEntry] = field(default_factory=list)  # never reached the gateway

    @property
    def has_failures(self) -> bool:
        return bool(self.failed or self.exhausted)

    def to_dict(self) -> dict:
        return {
            "swept_at": self.swept_at.isoformat() if self.swept_at else None,
            "skipped": self.skipped,
            "dispatched": [entry_to_dict(e) for e in self.dispatched],
            "failed": [entry_to_dict(e) for e in self.failed],
            "exhausted": [entry_to_dict(e) for e in self.exhausted],
            "stale": [entry_to_dict(e) for e in self.stale],
            "deferred": [entry_to_dict(e) for e in self.deferred],
        }


class SchedulingEngine:
    """Schedules content onto channels and dispatches due entries."""

    def __init__(
        self,
        store: EntityStore,
        gateway: ChannelGateway,
        max_attempts: int = 3,
        dispatch_timeout: float = 10.0,
        max_workers: int = 4,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if dispatch_timeout <= 0:
            raise ValueError("dispatch_timeout must be positive")
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.store = store
        self.gateway = gateway
        self.max_attempts = max_attempts
        self.dispatch_timeout = dispatch_timeout
        self.max_workers = max_workers
        self._sweep_lock = threading.Lock()

    # ============================================================
    # SCHEDULING COMMANDS
    # ============================================================

    def _validate(self, content_id: str, channel: str, scheduled_at: datetime) -> Tuple[Content, Optional[ScheduleEntry]]:
        content = self.store.require_content(content_id)
        if scheduled_at < self.store.clock.now():
            raise ValidationError(
                "scheduled_at is in the past",
                {"field": "scheduled_at", "scheduled_at": scheduled_at.isoformat()},
            )
        if channel not in content.channels:
            raise ValidationError(
                f"Channel '{channel}' is not one of the content's channels",
                {"field": "channel", "channel": channel, "channels": list(content.channels)},
            )
        existing = self.store.get_schedule_entry(content_id, channel)
        if existing is not None and existing.dispatch_status == DispatchStatus.DISPATCHED:
            raise ConflictError(
                f"Content '{content_id}' was already dispatched to '{channel}'",
                {"content_id": content_id, "channel": channel},
            )
        if content.status == ContentStatus.PUBLISHED:
            raise ValidationError(
                "Published content cannot be scheduled",
                {"content_id": content_id, "status": content.status.value},
            )
        return content, existing

    def _apply(self, content: Content, existing: Optional[ScheduleEntry], channel: str, scheduled_at: datetime) -> ScheduleEntry:
        if existing is None:
            entry = ScheduleEntry(
                id=self.store.ids.new_id("sch"),
                content_id=content.id,
                channel=channel,
                scheduled_at=scheduled_at,
            )
        else:
            entry = copy.deepcopy(existing)
            entry.scheduled_at = scheduled_at
            entry.dispatch_status = DispatchStatus.PENDING
            entry.attempts = 0
            entry.terminal = False
            entry.last_error = None
            entry.revision += 1

        saved = self.store.save_schedule_entry(entry)
        self.store.transition_content(
            content.id,
            ContentStatus.SCHEDULED,
            scheduled_at=self.store.earliest_schedule_time(content.id),
        )
        if content.campaign_id is not None:
            self.store.activate_campaign(content.campaign_id)

        logger.info(
            "Content scheduled",
            content_id=content.id,
            channel=channel,
            scheduled_at=scheduled_at.isoformat(),
            rescheduled=existing is not None,
        )
        return saved

    def schedule_content(self, content_id: str, channel: str, scheduled_at: datetime) -> ScheduleEntry:
        """
        Schedule ``content_id`` on ``channel`` at ``scheduled_at``.

        Scheduling an existing (content, channel) pair again moves it to the
        new time and resets it to pending.
        """
        scheduled_at = ensure_utc(scheduled_at)
        with self.store.transaction():
            content, existing = self._validate(content_id, channel, scheduled_at)
            return self._apply(content, existing, channel, scheduled_at)

    def schedule_many(self, items: Iterable[Union[ScheduleRequest, dict]]) -> List[ScheduleEntry]:
        """Schedule a batch. Every item is validated before any is applied."""
        requests_ = []
        for item in items:
            if isinstance(item, dict):
                item = ScheduleRequest(**item)
            requests_.append(ScheduleRequest(item.content_id, item.channel, ensure_utc(item.scheduled_at)))
        if not requests_:
            raise ValidationError("At least one item is required", {"field": "items"})

        with self.store.transaction():
            for request in requests_:
                self._validate(request.content_id, request.channel, request.scheduled_at)
            saved = []
            for request in requests_:
                content, existing = self._validate(request.content_id, request.channel, request.scheduled_at)
                saved.append(self._apply(content, existing, request.channel, request.scheduled_at))
            return saved

    def unschedule(self, content_id: str, channel: str) -> ScheduleEntry:
        """
        Remove a pending or failed entry.

        Content with no entries left goes back to draft.
        """
        with self.store.transaction():
            content = self.store.require_content(content_id)
            entry = self.store.get_schedule_entry(content_id, channel)
            if entry is None:
                raise NotFoundError("ScheduleEntry", f"{content_id}/{channel}")
            if entry.dispatch_status == DispatchStatus.DISPATCHED:
                raise ConflictError(
                    f"Content '{content_id}' was already dispatched to '{channel}'",
                    {"content_id": content_id, "channel": channel},
                )

            removed = self.store.remove_schedule_entry(content_id, channel)
            if content.status == ContentStatus.SCHEDULED:
                earliest = self.store.earliest_schedule_time(content_id)
                if earliest is None:
                    self.store.transition_content(content_id, ContentStatus.DRAFT)
                else:
                    self.store.transition_content(content_id, ContentStatus.SCHEDULED, scheduled_at=earliest)

            logger.info("Content unscheduled", content_id=content_id, channel=channel)
            return removed

    def list_entries(self, content_id: Optional[str] = None, status: Optional[str] = None) -> List[ScheduleEntry]:
        return self.store.list_schedule_entries(content_id=content_id, status=status)

    # ============================================================
    # SWEEP
    # ============================================================

    @timed(logger)
    def sweep(self, now: Optional[datetime] = None) -> SweepReport:
        """Dispatch every entry due at ``now`` (default: the store clock)."""
        if not self._sweep_lock.acquire(blocking=False):
            logger.warning("Sweep already in progress, skipping")
            return SweepReport(skipped=True)

        try:
            now = ensure_utc(now) if now else self.store.clock.now()
            report = SweepReport(swept_at=now)

            with self.store.lock.read():
                jobs = [
                    (entry, self.store.require_content(entry.content_id))
                    for entry in self.store.due_schedule_entries(now)
                ]
            if not jobs:
                return report

            logger.info("Sweep dispatching entries", due=len(jobs))
            results, deferred = self._dispatch_all(jobs)
            for entry, result in results:
                self._commit_outcome(entry, result, now, report)
            if deferred:
                report.deferred.extend(deferred)
                logger.warning(
                    "Dispatch deferred, every worker is stuck",
                    deferred=len(deferred),
                    entry_ids=[e.id for e in deferred],
                )

            logger.info(
                "Sweep finished",
                dispatched=len(report.dispatched),
                failed=len(report.failed),
                exhausted=len(report.exhausted),
                stale=len(report.stale),
                deferred=len(report.deferred),
            )
            return report
        finally:
            self._sweep_lock.release()

    def _dispatch_all(
        self, jobs: List[Tuple[ScheduleEntry, Content]]
    ) -> Tuple[List[Tuple[ScheduleEntry, PublishResult]], List[ScheduleEntry]]:
        """
        Publish ``jobs`` on daemon worker threads.

        Each call gets ``dispatch_timeout`` from the moment a worker picks it
        up. A call still running past that is abandoned and reported as timed
        out, and its worker is left to finish on its own. Once every worker is
        stuck on an abandoned call, jobs that never started are handed back as
        deferred.
        """
        tasks = [_Dispatch(entry, content) for entry, content in jobs]
        backlog: Queue = Queue()
        for task in tasks:
            backlog.put(task)
        cond = threading.Condition()

        def work():
            while True:
                try:
                    task = backlog.get_nowait()
                except Empty:
                    return
                with cond:
                    if task.cancelled:
                        continue
                    task.started = time.monotonic()
                    cond.notify_all()
                result = self._dispatch_one(task.entry, task.content)
                with cond:
                    task.finished = True
                    if task.result is None:
                        task.result = result
                    cond.notify_all()

        workers = min(self.max_workers, len(tasks))
        for i in range(workers):
            threading.Thread(target=work, name=f"dispatch-{i}", daemon=True).start()

        abandoned: List[_Dispatch] = []
        with cond:
            while True:
                now = time.monotonic()
                for task in tasks:
                    if task.running and now - task.started >= self.dispatch_timeout:
                        logger.warning("Dispatch timed out", entry_id=task.entry.id, channel=task.entry.channel)
                        task.result = PublishResult(success=False, error="dispatch timed out")
                        abandoned.append(task)

                waiting = [t for t in tasks if t.started is None and not t.cancelled]
                running = [t for t in tasks if t.running]
                if not waiting and not running:
                    break
                stuck = sum(1 for t in abandoned if not t.finished)
                if waiting and not running and stuck >= workers:
                    for task in waiting:
                        task.cancelled = True
                    break

                deadlines = [t.started + self.dispatch_timeout - now for t in running]
                cond.wait(min(deadlines) if deadlines else self.dispatch_timeout)

        results = [(t.entry, t.result) for t in tasks if t.result is not None]
        deferred = [t.entry for t in tasks if t.cancelled]
        return results, deferred

    def _dispatch_one(self, entry: ScheduleEntry, content: Content) -> PublishResult:
        started = time.monotonic()
        try:
            result = self.gateway.publish(entry.channel, content, timeout=self.dispatch_timeout)
        except GatewayError as e:
            result = PublishResult(success=False, error=e.message, permanent=e.permanent)
        except Exception as e:
            logger.error("Gateway raised during publish", error=e, entry_id=entry.id, channel=entry.channel)
            result = PublishResult(success=False, error=f"{type(e).__name__}: {e}")

        if time.monotonic() - started > self.dispatch_timeout:
            return PublishResult(success=False, error="dispatch timed out")
        return result

    def _commit_outcome(self, snapshot: ScheduleEntry, result: PublishResult, now: datetime, report: SweepReport):
        with self.store.transaction():
            current = self.store.get_schedule_entry(snapshot.content_id, snapshot.channel)
            if (
                current is None
                or current.id != snapshot.id
                or current.revision != snapshot.revision
                or current.dispatch_status == DispatchStatus.DISPATCHED
            ):
                logger.warning(
                    "Dispatch outcome discarded, entry changed while in flight",
                    entry_id=snapshot.id,
                    channel=snapshot.channel,
                    success=result.success,
                )
                report.stale.append(snapshot)
                return

            current.attempts += 1
            if result.success:
                current.dispatch_status = DispatchStatus.DISPATCHED
                current.external_id = result.external_id
                current.dispatched_at = now
                current.last_error = None
                saved = self.store.save_schedule_entry(current)
                self.store.transition_content(current.content_id, ContentStatus.PUBLISHED, published_at=now)
            else:
                current.dispatch_status = DispatchStatus.FAILED
                current.last_error = result.error or "dispatch failed"
                current.terminal = result.permanent or current.attempts >= self.max_attempts
                saved = self.store.save_schedule_entry(current)

        # Reported only once the transaction has been journaled
        if saved.dispatch_status == DispatchStatus.DISPATCHED:
            report.dispatched.append(saved)
            logger.info(
                "Content dispatched",
                content_id=saved.content_id,
                channel=saved.channel,
                external_id=result.external_id,
            )
        elif saved.terminal:
            report.exhausted.append(saved)
            logger.error(
                "Dispatch failed permanently",
                content_id=saved.content_id,
                channel=saved.channel,
                attempts=saved.attempts,
                last_error=saved.last_error,
            )
        else:
            report.failed.append(saved)
            logger.warning(
                "Dispatch failed, will retry",
                content_id=saved.content_id,
                channel=saved.channel,
                attempts=saved.attempts,
                last_error=saved.last_error,
            )
