from pydantic import AliasChoices, BaseModel, Field
from datetime import datetime
from typing import List


class ScheduleItem(BaseModel):
    content_id: str = Field(validation_alias=AliasChoices("content_id", "contentId"))
    channel: str = Field(validation_alias=AliasChoices("channel", "platform"))
    scheduled_at: datetime = Field(validation_alias=AliasChoices("scheduled_at", "scheduledAt"))


class ScheduleBatch(BaseModel):
    items: List[ScheduleItem]
