"""
Settings routes - gateway connection checks.
"""
from fastapi import APIRouter, Depends

from ..core import CampaignCore
from ..dependencies import get_core

router = APIRouter(prefix="/api/settings", tags=["settings"])


@router.post("/test-connection")
def test_connection(core: CampaignCore = Depends(get_core)):
    """Check that the channel gateway is reachable."""
    status = core.test_connection()
    return {
        "status": "connected" if status.healthy else "error",
        "healthy": status.healthy,
        "message": status.message,
    }
