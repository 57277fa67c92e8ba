"""
Schedule routes - queue content on channels and trigger dispatch sweeps.
"""
from fastapi import APIRouter, Depends, Request
from typing import List, Optional

from ..core import CampaignCore
from ..dependencies import get_core
from ..responses import deleted
from ..schemas.schedule import ScheduleBatch
from ..serializers import entry_to_dict

router = APIRouter(prefix="/api/schedule", tags=["schedule"])


@router.post("", response_model=dict)
def schedule_content(data: ScheduleBatch, core: CampaignCore = Depends(get_core)):
    """
    Schedule a batch of (content, channel, time) items.

    The batch is validated as a whole; nothing is scheduled if any item is
    rejected.
    """
    entries = core.schedule_many([item.model_dump() for item in data.items])
    return {
        "success": True,
        "scheduled_count": len(entries),
        "entries": [entry_to_dict(e) for e in entries],
    }


@router.get("", response_model=List[dict])
def get_schedule(
    content_id: Optional[str] = None,
    status: Optional[str] = None,
    core: CampaignCore = Depends(get_core),
):
    """Get schedule entries ordered by scheduled time."""
    return [entry_to_dict(e) for e in core.list_schedule(content_id=content_id, status=status)]


@router.delete("/{content_id}/{channel}")
def unschedule_content(content_id: str, channel: str, core: CampaignCore = Depends(get_core)):
    """Remove a pending or failed entry."""
    entry = core.unschedule_content(content_id, channel)
    return deleted("Schedule entry removed", entry=entry_to_dict(entry))


@router.post("/sweep", response_model=dict)
def run_sweep(core: CampaignCore = Depends(get_core)):
    """Dispatch every entry that is due now."""
    return core.run_sweep().to_dict()


@router.get("/sweeper/status", response_model=dict)
def get_sweeper_status(request: Request):
    """Status of the background sweep driver, if one is running."""
    driver = getattr(request.app.state, "sweeper", None)
    if driver is None:
        return {"running": False, "enabled": False}
    return {"enabled": True, **driver.get_status()}
