"""
FastAPI dependencies.
"""
from fastapi import Request

from .core import CampaignCore


def get_core(request: Request) -> CampaignCore:
    """The CampaignCore owned by the running application."""
    return request.app.state.core
