from pydantic import BaseModel
from datetime import date
from typing import List, Optional


class CampaignBase(BaseModel):
    name: str
    start_date: date
    end_date: date
    channels: List[str]
    goals: str = ""


class CampaignCreate(CampaignBase):
    pass


class CampaignUpdate(BaseModel):
    name: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    channels: Optional[List[str]] = None
    goals: Optional[str] = None
    status: Optional[str] = None
