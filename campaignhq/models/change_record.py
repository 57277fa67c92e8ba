"""
ChangeRecord model - durable copy of a committed change event.
"""
from sqlalchemy import Column, Integer, String, DateTime, JSON
from datetime import datetime, timezone
from ..database import Base


class ChangeRecord(Base):
    __tablename__ = "change_records"

    id = Column(Integer, primary_key=True, index=True)
    seq = Column(Integer, nullable=False, unique=True, index=True)
    entity_type = Column(String(30), nullable=False, index=True)  # campaign, content, schedule_entry
    entity_id = Column(String(64), nullable=False, index=True)
    kind = Column(String(20), nullable=False)  # created, updated, deleted
    occurred_at = Column(DateTime, nullable=False)
    before = Column(JSON, nullable=True)
    after = Column(JSON, nullable=True)
    recorded_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        """Convert to dictionary for API responses"""
        return {
            "seq": self.seq,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "kind": self.kind,
            "occurred_at": self.occurred_at.isoformat() if self.occurred_at else None,
            "before": self.before,
            "after": self.after,
        }
