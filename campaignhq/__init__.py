"""
CampaignHQ - multi-channel campaign, scheduling and analytics core.
"""
__version__ = "1.0.0"
