from pydantic import BaseModel, Field
from typing import List, Optional


class ContentBase(BaseModel):
    title: str
    body: str
    channels: List[str]
    type: str = "post"
    campaign_id: Optional[str] = None


class ContentCreate(ContentBase):
    pass


class ContentUpdate(BaseModel):
    title: Optional[str] = None
    body: Optional[str] = None
    channels: Optional[List[str]] = None
    type: Optional[str] = None
    campaign_id: Optional[str] = None


class MetricsUpdate(BaseModel):
    """Absolute counters, or increments when ``increment`` is set."""
    impressions: Optional[int] = Field(default=None, ge=0)
    clicks: Optional[int] = Field(default=None, ge=0)
    likes: Optional[int] = Field(default=None, ge=0)
    shares: Optional[int] = Field(default=None, ge=0)
    conversions: Optional[int] = Field(default=None, ge=0)
    increment: bool = False

    def counters(self) -> dict:
        return self.model_dump(exclude={"increment"}, exclude_none=True)
