"""
Change events emitted by the store for every committed mutation.
"""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class EntityType(str, Enum):
    CAMPAIGN = "campaign"
    CONTENT = "content"
    SCHEDULE_ENTRY = "schedule_entry"


class ChangeKind(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


@dataclass(frozen=True)
class ChangeEvent:
    """
    One committed mutation.

    ``before`` and ``after`` are detached copies of the entity (None for
    created / deleted respectively). ``seq`` increases by one per event
    within a store and ``at`` is the commit time.
    """
    seq: int
    entity_type: EntityType
    entity_id: str
    kind: ChangeKind
    at: datetime
    before: Optional[Any] = None
    after: Optional[Any] = None
