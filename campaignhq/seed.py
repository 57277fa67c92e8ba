"""
Demo data matching the dashboard's mock mode.
"""
from datetime import timedelta

from .core import CampaignCore


def seed_demo(core: CampaignCore) -> dict:
    """Create two campaigns and two content items, one of them published with metrics."""
    now = core.clock.now()
    today = now.date()

    launch = core.create_campaign(
        name="Q1 Product Launch",
        start_date=today - timedelta(days=30),
        end_date=today + timedelta(days=30),
        channels=["linkedin", "twitter", "slack"],
        goals="Increase brand awareness and drive product adoption",
    )
    holiday = core.create_campaign(
        name="Holiday Campaign",
        start_date=today + timedelta(days=45),
        end_date=today + timedelta(days=75),
        channels=["linkedin", "twitter"],
        goals="Drive holiday sales and engagement",
    )
    core.activate_campaign(holiday.id)

    intro = core.create_content(
        campaign_id=launch.id,
        type="post",
        title="Introducing Our New Product",
        body=(
            "We are excited to announce the launch of our revolutionary new product "
            "that will change how you work."
        ),
        channels=["linkedin", "twitter"],
    )
    demo = core.create_content(
        campaign_id=launch.id,
        type="video",
        title="Product Demo Video",
        body="Check out this amazing demo of our new product in action! Link in comments.",
        channels=["linkedin"],
    )

    publish_at = now + timedelta(seconds=1)
    core.schedule_content(intro.id, "linkedin", publish_at)
    core.schedule_content(intro.id, "twitter", publish_at)
    core.schedule_content(demo.id, "linkedin", now + timedelta(days=5))
    report = core.run_sweep(publish_at)

    if core.get_content(intro.id).status.value == "published":
        core.record_metrics(intro.id, impressions=5000, clicks=150, likes=45, shares=12, conversions=11)

    return {
        "campaigns": [launch.id, holiday.id],
        "content": [intro.id, demo.id],
        "dispatched": len(report.dispatched),
    }
