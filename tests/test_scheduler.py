"""
Tests for the scheduling engine and dispatch sweeps.
"""
import threading
import time
from datetime import timedelta

import pytest

from campaignhq.errors import ConflictError, NotFoundError, ValidationError
from campaignhq.gateway import MockGateway, PublishResult
from campaignhq.models import CampaignStatus, ContentStatus, DispatchStatus


def make_content(core, channels=("linkedin", "twitter"), campaign_id=None):
    return core.create_content(
        title="Launch post",
        body="We are live",
        channels=list(channels),
        campaign_id=campaign_id,
    )


def wait_for_calls(gateway, count, timeout=2.0):
    deadline = time.monotonic() + timeout
    while len(gateway.calls) < count and time.monotonic() < deadline:
        time.sleep(0.01)
    assert len(gateway.calls) >= count


class TestScheduling:
    """Creating, moving and removing schedule entries."""

    def test_scenario_b_sweep_publishes(self, core, clock):
        """A due entry dispatched through a succeeding gateway publishes the content."""
        content = make_content(core)
        now = clock.now()
        entry = core.schedule_content(content.id, "linkedin", now + timedelta(hours=1))
        assert entry.dispatch_status == DispatchStatus.PENDING
        assert core.get_content(content.id).status == ContentStatus.SCHEDULED

        report = core.run_sweep(now + timedelta(hours=2))

        assert [e.id for e in report.dispatched] == [entry.id]
        stored = core.list_schedule(content_id=content.id)[0]
        assert stored.dispatch_status == DispatchStatus.DISPATCHED
        assert stored.external_id == f"mock-linkedin-{content.id}-1"
        published = core.get_content(content.id)
        assert published.status == ContentStatus.PUBLISHED
        assert published.published_at == now + timedelta(hours=2)

    def test_not_due_entries_are_left_alone(self, core, clock):
        content = make_content(core)
        core.schedule_content(content.id, "linkedin", clock.now() + timedelta(hours=3))
        report = core.run_sweep(clock.now() + timedelta(hours=1))
        assert report.dispatched == []
        assert core.get_content(content.id).status == ContentStatus.SCHEDULED

    def test_past_time_rejected(self, core, clock):
        content = make_content(core)
        with pytest.raises(ValidationError):
            core.schedule_content(content.id, "linkedin", clock.now() - timedelta(minutes=1))
        assert core.list_schedule() == []
        assert core.get_content(content.id).status == ContentStatus.DRAFT

    def test_channel_must_belong_to_content(self, core, clock):
        content = make_content(core, channels=["linkedin"])
        with pytest.raises(ValidationError):
            core.schedule_content(content.id, "slack", clock.now() + timedelta(hours=1))

    def test_unknown_content(self, core, clock):
        with pytest.raises(NotFoundError):
            core.schedule_content("cnt_missing", "linkedin", clock.now() + timedelta(hours=1))

    def test_reschedule_moves_entry(self, core, clock):
        """Scheduling a pair again keeps one entry and moves its time."""
        content = make_content(core)
        first = core.schedule_content(content.id, "linkedin", clock.now() + timedelta(hours=5))
        moved = core.schedule_content(content.id, "linkedin", clock.now() + timedelta(hours=2))

        assert moved.id == first.id
        assert moved.revision == first.revision + 1
        assert len(core.list_schedule(content_id=content.id)) == 1
        assert core.get_content(content.id).scheduled_at == clock.now() + timedelta(hours=2)

    def test_content_scheduled_at_is_earliest_entry(self, core, clock):
        content = make_content(core)
        core.schedule_content(content.id, "linkedin", clock.now() + timedelta(hours=4))
        core.schedule_content(content.id, "twitter", clock.now() + timedelta(hours=1))
        assert core.get_content(content.id).scheduled_at == clock.now() + timedelta(hours=1)

    def test_scheduling_activates_campaign(self, core, clock, campaign):
        content = make_content(core, campaign_id=campaign.id)
        assert core.get_campaign(campaign.id).status == CampaignStatus.DRAFT

        core.schedule_content(content.id, "linkedin", clock.now() + timedelta(hours=1))

        assert core.get_campaign(campaign.id).status == CampaignStatus.SCHEDULED

    def test_dispatched_pair_cannot_be_rescheduled(self, core, clock):
        content = make_content(core)
        core.schedule_content(content.id, "linkedin", clock.now() + timedelta(hours=1))
        core.run_sweep(clock.now() + timedelta(hours=1))
        with pytest.raises(ConflictError):
            core.schedule_content(content.id, "linkedin", clock.now() + timedelta(hours=3))

    def test_published_content_cannot_be_scheduled(self, core, clock):
        content = make_content(core)
        core.schedule_content(content.id, "linkedin", clock.now() + timedelta(hours=1))
        core.run_sweep(clock.now() + timedelta(hours=1))
        with pytest.raises(ValidationError):
            core.schedule_content(content.id, "twitter", clock.now() + timedelta(hours=3))

    def test_unschedule_last_entry_reverts_to_draft(self, core, clock):
        content = make_content(core)
        core.schedule_content(content.id, "linkedin", clock.now() + timedelta(hours=1))
        core.schedule_content(content.id, "twitter", clock.now() + timedelta(hours=2))

        core.unschedule_content(content.id, "linkedin")
        remaining = core.get_content(content.id)
        assert remaining.status == ContentStatus.SCHEDULED
        assert remaining.scheduled_at == clock.now() + timedelta(hours=2)

        core.unschedule_content(content.id, "twitter")
        draft = core.get_content(content.id)
        assert draft.status == ContentStatus.DRAFT
        assert draft.scheduled_at is None

    def test_unschedule_errors(self, core, clock):
        content = make_content(core)
        with pytest.raises(NotFoundError):
            core.unschedule_content(content.id, "linkedin")

        core.schedule_content(content.id, "linkedin", clock.now() + timedelta(hours=1))
        core.run_sweep(clock.now() + timedelta(hours=1))
        with pytest.raises(ConflictError):
            core.unschedule_content(content.id, "linkedin")

    def test_schedule_many_is_all_or_nothing(self, core, clock):
        content = make_content(core)
        later = clock.now() + timedelta(hours=1)
        with pytest.raises(ValidationError):
            core.schedule_many([
                {"content_id": content.id, "channel": "linkedin", "scheduled_at": later},
                {"content_id": content.id, "channel": "slack", "scheduled_at": later},
            ])
        assert core.list_schedule() == []

        entries = core.schedule_many([
            {"content_id": content.id, "channel": "linkedin", "scheduled_at": later},
            {"content_id": content.id, "channel": "twitter", "scheduled_at": later},
        ])
        assert [e.channel for e in entries] == ["linkedin", "twitter"]

    def test_schedule_many_requires_items(self, core):
        with pytest.raises(ValidationError):
            core.schedule_many([])

    def test_naive_times_are_utc(self, core, clock):
        content = make_content(core)
        naive = (clock.now() + timedelta(hours=1)).replace(tzinfo=None)
        entry = core.schedule_content(content.id, "linkedin", naive)
        assert entry.scheduled_at == clock.now() + timedelta(hours=1)


class TestSweep:
    """Dispatch outcomes, retries and concurrency."""

    def test_publish_is_idempotent(self, core, clock):
        """published_at is set by the first successful channel only."""
        content = make_content(core)
        first = clock.now() + timedelta(hours=1)
        core.schedule_content(content.id, "linkedin", first)
        core.schedule_content(content.id, "twitter", first + timedelta(hours=1))

        core.run_sweep(first)
        core.run_sweep(first + timedelta(hours=1))

        content = core.get_content(content.id)
        assert content.status == ContentStatus.PUBLISHED
        assert content.published_at == first
        statuses = {e.channel: e.dispatch_status for e in core.list_schedule(content_id=content.id)}
        assert statuses == {"linkedin": DispatchStatus.DISPATCHED, "twitter": DispatchStatus.DISPATCHED}

    def test_dispatched_entries_are_not_sent_again(self, core, clock, gateway):
        content = make_content(core)
        core.schedule_content(content.id, "linkedin", clock.now() + timedelta(hours=1))
        core.run_sweep(clock.now() + timedelta(hours=1))
        core.run_sweep(clock.now() + timedelta(hours=2))
        assert len(gateway.calls) == 1

    def test_retryable_failure_then_success(self, clock, make_core):
        gateway = MockGateway(failures_before_success=1)
        core = make_core(gateway)
        content = make_content(core, channels=["linkedin"])
        core.schedule_content(content.id, "linkedin", clock.now() + timedelta(hours=1))

        report = core.run_sweep(clock.now() + timedelta(hours=1))
        assert len(report.failed) == 1
        assert report.failed[0].attempts == 1
        assert core.get_content(content.id).status == ContentStatus.SCHEDULED

        report = core.run_sweep(clock.now() + timedelta(hours=2))
        assert len(report.dispatched) == 1
        assert report.dispatched[0].attempts == 2
        assert core.get_content(content.id).status == ContentStatus.PUBLISHED

    def test_retries_exhausted_become_terminal(self, clock, make_core):
        gateway = MockGateway(fail_channels={"linkedin"})
        core = make_core(gateway, max_attempts=3)
        content = make_content(core, channels=["linkedin"])
        core.schedule_content(content.id, "linkedin", clock.now() + timedelta(hours=1))

        reports = [core.run_sweep(clock.now() + timedelta(hours=h)) for h in (1, 2, 3, 4)]

        assert [len(r.failed) for r in reports] == [1, 1, 0, 0]
        assert len(reports[2].exhausted) == 1
        entry = core.list_schedule(content_id=content.id)[0]
        assert entry.dispatch_status == DispatchStatus.FAILED
        assert entry.terminal is True
        assert entry.attempts == 3
        assert entry.last_error == "linkedin is unavailable"
        assert len(gateway.calls) == 3

    def test_permanent_failure_is_terminal_immediately(self, clock, make_core):
        gateway = MockGateway(permanent_fail_channels={"linkedin"})
        core = make_core(gateway)
        content = make_content(core, channels=["linkedin"])
        core.schedule_content(content.id, "linkedin", clock.now() + timedelta(hours=1))

        report = core.run_sweep(clock.now() + timedelta(hours=1))

        assert len(report.exhausted) == 1
        assert report.exhausted[0].attempts == 1
        assert report.has_failures

    def test_terminal_entry_can_be_rescheduled(self, clock, make_core):
        gateway = MockGateway(permanent_fail_channels={"linkedin"})
        core = make_core(gateway)
        content = make_content(core, channels=["linkedin"])
        core.schedule_content(content.id, "linkedin", clock.now() + timedelta(hours=1))
        core.run_sweep(clock.now() + timedelta(hours=1))

        clock.advance(hours=2)
        entry = core.schedule_content(content.id, "linkedin", clock.now() + timedelta(hours=1))

        assert entry.dispatch_status == DispatchStatus.PENDING
        assert entry.attempts == 0
        assert entry.terminal is False

    def test_slow_gateway_times_out_as_retryable(self, clock, make_core):
        gateway = MockGateway(delay_seconds=0.5)
        core = make_core(gateway, dispatch_timeout=0.2)
        content = make_content(core, channels=["linkedin"])
        core.schedule_content(content.id, "linkedin", clock.now() + timedelta(hours=1))

        report = core.run_sweep(clock.now() + timedelta(hours=1))

        assert len(report.failed) == 1
        assert report.failed[0].last_error == "dispatch timed out"
        assert report.failed[0].terminal is False

    def test_hung_call_defers_entries_that_never_started(self, clock, make_core):
        """With every worker stuck, queued entries wait for the next sweep without losing an attempt."""
        unblock = threading.Event()

        class HangingGateway(MockGateway):
            def publish(self, channel, content, timeout=None):
                if channel == "slack":
                    unblock.wait(5)
                return super().publish(channel, content, timeout=timeout)

        core = make_core(HangingGateway(), max_workers=1, max_attempts=1, dispatch_timeout=0.3)
        content = make_content(core, channels=["slack", "linkedin"])
        core.schedule_content(content.id, "slack", clock.now() + timedelta(hours=1))
        core.schedule_content(content.id, "linkedin", clock.now() + timedelta(hours=2))

        try:
            report = core.run_sweep(clock.now() + timedelta(hours=2))
        finally:
            unblock.set()

        assert [(e.channel, e.attempts, e.last_error) for e in report.exhausted] == [
            ("slack", 1, "dispatch timed out"),
        ]
        assert [e.channel for e in report.deferred] == ["linkedin"]
        assert report.to_dict()["deferred"][0]["channel"] == "linkedin"
        linkedin = core.store.get_schedule_entry(content.id, "linkedin")
        assert linkedin.dispatch_status == DispatchStatus.PENDING
        assert linkedin.attempts == 0

        report = core.run_sweep(clock.now() + timedelta(hours=3))

        assert [e.channel for e in report.dispatched] == ["linkedin"]
        assert report.dispatched[0].attempts == 1
        assert report.deferred == []

    def test_gateway_exception_recorded_as_failure(self, clock, make_core):
        class ExplodingGateway(MockGateway):
            def publish(self, channel, content, timeout=None):
                raise ConnectionError("socket closed")

        core = make_core(ExplodingGateway())
        content = make_content(core, channels=["linkedin"])
        core.schedule_content(content.id, "linkedin", clock.now() + timedelta(hours=1))

        report = core.run_sweep(clock.now() + timedelta(hours=1))

        assert len(report.failed) == 1
        assert "socket closed" in report.failed[0].last_error

    def test_reschedule_during_dispatch_discards_outcome(self, clock, make_core):
        """An entry moved while its dispatch is in flight keeps its new state."""
        gateway = MockGateway()
        core = make_core(gateway)
        content = make_content(core, channels=["linkedin"])
        due = clock.now() + timedelta(hours=1)
        core.schedule_content(content.id, "linkedin", due)

        gateway.hold()
        result = {}
        sweeper = threading.Thread(target=lambda: result.update(report=core.run_sweep(due)))
        sweeper.start()
        try:
            wait_for_calls(gateway, 1)
            core.schedule_content(content.id, "linkedin", due + timedelta(hours=1))
        finally:
            gateway.release()
            sweeper.join(5)

        report = result["report"]
        assert len(report.stale) == 1
        assert report.dispatched == []
        entry = core.list_schedule(content_id=content.id)[0]
        assert entry.dispatch_status == DispatchStatus.PENDING
        assert entry.scheduled_at == due + timedelta(hours=1)
        assert core.get_content(content.id).status == ContentStatus.SCHEDULED

    def test_concurrent_sweep_is_skipped(self, clock, make_core):
        gateway = MockGateway()
        core = make_core(gateway)
        content = make_content(core, channels=["linkedin"])
        due = clock.now() + timedelta(hours=1)
        core.schedule_content(content.id, "linkedin", due)

        gateway.hold()
        sweeper = threading.Thread(target=core.run_sweep, args=(due,))
        sweeper.start()
        try:
            wait_for_calls(gateway, 1)
            second = core.run_sweep(due)
        finally:
            gateway.release()
            sweeper.join(5)

        assert second.skipped is True
        assert core.get_content(content.id).status == ContentStatus.PUBLISHED

    def test_reads_proceed_during_dispatch(self, clock, make_core):
        gateway = MockGateway()
        core = make_core(gateway)
        content = make_content(core, channels=["linkedin"])
        due = clock.now() + timedelta(hours=1)
        core.schedule_content(content.id, "linkedin", due)

        gateway.hold()
        sweeper = threading.Thread(target=core.run_sweep, args=(due,))
        sweeper.start()
        try:
            wait_for_calls(gateway, 1)
            assert core.get_content(content.id).status == ContentStatus.SCHEDULED
            assert core.get_analytics().overview.total_impressions == 0
        finally:
            gateway.release()
            sweeper.join(5)

    def test_report_serializes(self, core, clock):
        content = make_content(core, channels=["linkedin"])
        core.schedule_content(content.id, "linkedin", clock.now() + timedelta(hours=1))
        data = core.run_sweep(clock.now() + timedelta(hours=1)).to_dict()
        assert data["skipped"] is False
        assert data["dispatched"][0]["dispatch_status"] == "dispatched"
        assert data["failed"] == []
        assert data["deferred"] == []


class TestPublishResult:

    def test_defaults(self):
        result = PublishResult(success=True)
        assert result.permanent is False
        assert result.external_id is None
