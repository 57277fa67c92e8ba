"""
Pytest configuration and fixtures for CampaignHQ tests.
"""
from datetime import date, datetime, timezone

import pytest
from fastapi.testclient import TestClient

from campaignhq.clock import IdGenerator, ManualClock
from campaignhq.config import Settings
from campaignhq.core import CampaignCore
from campaignhq.gateway import MockGateway
from campaignhq.limiter import limiter
from campaignhq.main import create_app

# Disable rate limiting for tests
limiter.enabled = False

START = datetime(2024, 1, 10, 9, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="function")
def clock():
    """Manual clock starting at 2024-01-10 09:00 UTC."""
    return ManualClock(START)


@pytest.fixture(scope="function")
def gateway():
    """Gateway that accepts every publish."""
    return MockGateway()


@pytest.fixture(scope="function")
def make_core(clock):
    """
    Factory for cores on the fixture clock with sequential ids.

    Every core it builds checks after each change event that all analytics
    scopes reconcile.
    """
    def build(gateway=None, **kwargs):
        kwargs.setdefault("dispatch_timeout", 2.0)
        built = CampaignCore(
            gateway=gateway or MockGateway(),
            clock=clock,
            ids=IdGenerator(sequential=True),
            **kwargs,
        )

        def assert_reconciled(event):
            assert built.analytics.check_reconciliation(), f"analytics out of balance after {event}"

        built.store.subscribe(assert_reconciled)
        return built

    return build


@pytest.fixture(scope="function")
def core(make_core, gateway):
    """A fresh core with sequential ids."""
    return make_core(gateway)


@pytest.fixture(scope="function")
def settings():
    return Settings(seed_demo_data=False, auto_sweep=False, rate_limit_enabled=False)


@pytest.fixture(scope="function")
def client(core, settings):
    """Create a test client around the fixture core."""
    app = create_app(settings=settings, core=core)
    with TestClient(app) as c:
        yield c


@pytest.fixture(scope="function")
def campaign(core):
    """Campaign running 2024-01-15 .. 2024-03-15 on linkedin and twitter."""
    return core.create_campaign(
        name="Q1 Launch",
        start_date=date(2024, 1, 15),
        end_date=date(2024, 3, 15),
        channels=["linkedin", "twitter"],
    )


@pytest.fixture(scope="function")
def published(core, clock, campaign):
    """Content published on linkedin and twitter at 10:00 on the start clock day."""
    content = core.create_content(
        title="Launch post",
        body="We are live",
        channels=["linkedin", "twitter"],
        campaign_id=campaign.id,
    )
    at = clock.now().replace(hour=10)
    core.schedule_content(content.id, "linkedin", at)
    core.schedule_content(content.id, "twitter", at)
    report = core.run_sweep(at)
    assert len(report.dispatched) == 2
    return core.get_content(content.id)


@pytest.fixture(scope="function")
def reconciled(core):
    """Asserts every analytics scope reconciles after the test body."""
    yield
    assert core.check_reconciliation()
