"""
Content routes for CRUD operations and engagement metrics.
"""
from fastapi import APIRouter, Depends
from typing import List, Optional

from ..core import CampaignCore
from ..dependencies import get_core
from ..errors import ValidationError
from ..responses import deleted
from ..schemas.content import ContentCreate, ContentUpdate, MetricsUpdate
from ..serializers import content_to_dict, entry_to_dict

router = APIRouter(prefix="/api/content", tags=["content"])


@router.get("", response_model=List[dict])
def get_content_items(
    campaign_id: Optional[str] = None,
    status: Optional[str] = None,
    core: CampaignCore = Depends(get_core),
):
    """Get all content with optional filtering."""
    return [content_to_dict(c) for c in core.list_content(campaign_id=campaign_id, status=status)]


@router.get("/{content_id}", response_model=dict)
def get_content(content_id: str, core: CampaignCore = Depends(get_core)):
    return content_to_dict(core.get_content(content_id))


@router.post("", response_model=dict, status_code=201)
def create_content(data: ContentCreate, core: CampaignCore = Depends(get_core)):
    """Create a draft content item, optionally linked to a campaign."""
    return content_to_dict(core.create_content(**data.model_dump()))


@router.patch("/{content_id}", response_model=dict)
def update_content(
    content_id: str,
    data: ContentUpdate,
    core: CampaignCore = Depends(get_core),
):
    patch = data.model_dump(exclude_unset=True)
    return content_to_dict(core.update_content(content_id, **patch))


@router.delete("/{content_id}")
def delete_content(content_id: str, core: CampaignCore = Depends(get_core)):
    """Delete content and its schedule entries."""
    core.delete_content(content_id)
    return deleted("Content deleted")


@router.post("/{content_id}/metrics", response_model=dict)
def update_metrics(
    content_id: str,
    data: MetricsUpdate,
    core: CampaignCore = Depends(get_core),
):
    """
    Record engagement metrics for published content.

    Values are absolute counters unless ``increment`` is set.
    """
    counters = data.counters()
    if not counters:
        raise ValidationError("At least one metric is required", {"fields": []})
    if data.increment:
        content = core.add_metrics(content_id, **counters)
    else:
        content = core.record_metrics(content_id, **counters)
    return content_to_dict(content)


@router.get("/{content_id}/schedule", response_model=List[dict])
def get_content_schedule(content_id: str, core: CampaignCore = Depends(get_core)):
    """Get the schedule entries of one content item."""
    core.get_content(content_id)
    return [entry_to_dict(e) for e in core.list_schedule(content_id=content_id)]
