from campaignhq.config import get_settings
from campaignhq.core import CampaignCore
from campaignhq.seed import seed_demo

core = CampaignCore.from_settings(get_settings())

summary = seed_demo(core)

print("Demo data seeded successfully!")
print(f"  - {len(summary['campaigns'])} campaigns")
print(f"  - {len(summary['content'])} content items")
print(f"  - {summary['dispatched']} dispatches")

snapshot = core.get_analytics()
print(f"  - {snapshot.overview.total_impressions} impressions recorded")
