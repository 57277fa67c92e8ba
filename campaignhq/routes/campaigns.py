"""
Campaign routes for CRUD operations and activation.
"""
from fastapi import APIRouter, Depends
from typing import List, Optional

from ..core import CampaignCore
from ..dependencies import get_core
from ..responses import deleted
from ..schemas.campaign import CampaignCreate, CampaignUpdate
from ..serializers import campaign_to_dict, content_to_dict

router = APIRouter(prefix="/api/campaigns", tags=["campaigns"])


@router.get("", response_model=List[dict])
def get_campaigns(
    status: Optional[str] = None,
    core: CampaignCore = Depends(get_core),
):
    """Get all campaigns, optionally filtered by derived status."""
    return [campaign_to_dict(c) for c in core.list_campaigns(status=status)]


@router.get("/{campaign_id}", response_model=dict)
def get_campaign(campaign_id: str, core: CampaignCore = Depends(get_core)):
    """Get a single campaign with its aggregate metrics."""
    return campaign_to_dict(core.get_campaign(campaign_id))


@router.post("", response_model=dict, status_code=201)
def create_campaign(data: CampaignCreate, core: CampaignCore = Depends(get_core)):
    """Create a new draft campaign."""
    campaign = core.create_campaign(**data.model_dump())
    return campaign_to_dict(campaign)


@router.put("/{campaign_id}", response_model=dict)
@router.patch("/{campaign_id}", response_model=dict)
def update_campaign(
    campaign_id: str,
    data: CampaignUpdate,
    core: CampaignCore = Depends(get_core),
):
    """Update the fields present in the request body."""
    patch = data.model_dump(exclude_unset=True)
    return campaign_to_dict(core.update_campaign(campaign_id, **patch))


@router.post("/{campaign_id}/activate", response_model=dict)
def activate_campaign(campaign_id: str, core: CampaignCore = Depends(get_core)):
    """Take a campaign out of draft; its status then follows its dates."""
    return campaign_to_dict(core.activate_campaign(campaign_id))


@router.delete("/{campaign_id}")
def delete_campaign(campaign_id: str, core: CampaignCore = Depends(get_core)):
    """Delete a campaign and orphan or delete its content."""
    affected = core.delete_campaign(campaign_id)
    return deleted(
        "Campaign deleted",
        affected_content=affected,
        policy=core.store.delete_policy.value,
    )


@router.get("/{campaign_id}/content", response_model=List[dict])
def get_campaign_content(campaign_id: str, core: CampaignCore = Depends(get_core)):
    """Get the content items linked to a campaign."""
    core.get_campaign(campaign_id)
    return [content_to_dict(c) for c in core.list_content(campaign_id=campaign_id)]
