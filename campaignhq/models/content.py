"""
Content entity, its publication state machine and metrics.
"""
from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, List, Optional


class ContentType(str, Enum):
    POST = "post"
    IMAGE = "image"
    VIDEO = "video"


class ContentStatus(str, Enum):
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    PUBLISHED = "published"


# Allowed moves. scheduled -> draft only happens when the last schedule
# entry of the content is removed.
CONTENT_TRANSITIONS: Dict[ContentStatus, FrozenSet[ContentStatus]] = {
    ContentStatus.DRAFT: frozenset({ContentStatus.SCHEDULED}),
    ContentStatus.SCHEDULED: frozenset({
        ContentStatus.SCHEDULED,
        ContentStatus.PUBLISHED,
        ContentStatus.DRAFT,
    }),
    ContentStatus.PUBLISHED: frozenset({ContentStatus.PUBLISHED}),
}


def can_transition(current: ContentStatus, target: ContentStatus) -> bool:
    return target in CONTENT_TRANSITIONS[current]


@dataclass
class ContentMetrics:
    """Per-content counters. Zero until published, non-decreasing after."""
    impressions: int = 0
    clicks: int = 0
    likes: int = 0
    shares: int = 0
    conversions: int = 0

    @property
    def engagement(self) -> int:
        return self.likes + self.shares

    def minus(self, other: "ContentMetrics") -> "ContentMetrics":
        return ContentMetrics(**{
            f.name: getattr(self, f.name) - getattr(other, f.name) for f in fields(self)
        })

    def plus(self, other: "ContentMetrics") -> "ContentMetrics":
        return ContentMetrics(**{
            f.name: getattr(self, f.name) + getattr(other, f.name) for f in fields(self)
        })

    def is_zero(self) -> bool:
        return all(getattr(self, f.name) == 0 for f in fields(self))

    def regressed_fields(self, previous: "ContentMetrics") -> List[str]:
        """Names of counters that are lower than in ``previous``."""
        return [f.name for f in fields(self) if getattr(self, f.name) < getattr(previous, f.name)]

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


METRIC_NAMES = tuple(f.name for f in fields(ContentMetrics))


@dataclass
class Content:
    id: str
    type: ContentType
    title: str
    body: str
    channels: List[str]
    campaign_id: Optional[str] = None
    status: ContentStatus = ContentStatus.DRAFT
    scheduled_at: Optional[datetime] = None
    published_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    metrics: ContentMetrics = field(default_factory=ContentMetrics)
