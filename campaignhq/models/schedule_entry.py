"""
ScheduleEntry - one (content, channel) dispatch slot.
"""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class DispatchStatus(str, Enum):
    PENDING = "pending"
    DISPATCHED = "dispatched"
    FAILED = "failed"


@dataclass
class ScheduleEntry:
    id: str
    content_id: str
    channel: str
    scheduled_at: datetime
    dispatch_status: DispatchStatus = DispatchStatus.PENDING
    attempts: int = 0
    terminal: bool = False  # failed with no further automatic retries
    last_error: Optional[str] = None
    external_id: Optional[str] = None
    dispatched_at: Optional[datetime] = None
    revision: int = 0  # bumped on every reschedule

    @property
    def key(self):
        return (self.content_id, self.channel)

    def is_due(self, now: datetime) -> bool:
        """Pending, or failed and still retryable, and its time has come"""
        if self.scheduled_at > now:
            return False
        if self.dispatch_status == DispatchStatus.PENDING:
            return True
        return self.dispatch_status == DispatchStatus.FAILED and not self.terminal
