"""
Analytics routes for campaign performance.
"""
from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from typing import List, Optional

from ..core import CampaignCore
from ..dependencies import get_core
from ..reporting import export_filename

router = APIRouter(prefix="/api/analytics", tags=["analytics"])


@router.get("", response_model=dict)
def get_analytics(
    campaign_id: Optional[str] = None,
    core: CampaignCore = Depends(get_core),
):
    """Get overview, per-platform breakdown and daily timeline."""
    return core.get_analytics(campaign_id).model_dump(mode="json")


@router.get("/top-content", response_model=List[dict])
def get_top_content(
    limit: int = Query(default=5, ge=0, le=100),
    campaign_id: Optional[str] = None,
    core: CampaignCore = Depends(get_core),
):
    """Top performing published content by impressions plus clicks."""
    return [item.model_dump() for item in core.top_content(limit=limit, campaign_id=campaign_id)]


@router.get("/export")
def export_analytics(
    campaign_id: Optional[str] = None,
    core: CampaignCore = Depends(get_core),
):
    """Download the timeline as CSV."""
    body = core.export_timeline_csv(campaign_id)
    return Response(
        content=body,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{export_filename(campaign_id)}"'},
    )
