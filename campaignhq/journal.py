"""
Durability hook for committed change events.

The store hands each command's events to its journal in one ``record_many``
call before broadcasting them; a journal that raises rolls the whole command
back.
"""
from typing import List, Sequence

from .logging_config import get_logger
from .models.events import ChangeEvent
from .serializers import entity_to_dict

logger = get_logger("journal")


class Journal:
    """Receives change events in commit order."""

    def record(self, event: ChangeEvent) -> None:
        raise NotImplementedError

    def record_many(self, events: Sequence[ChangeEvent]) -> None:
        for event in events:
            self.record(event)


class NullJournal(Journal):
    """Keeps nothing."""

    def record(self, event: ChangeEvent) -> None:
        return None

    def record_many(self, events: Sequence[ChangeEvent]) -> None:
        return None


class MemoryJournal(Journal):
    """Keeps events in a list; handy for tests and replay."""

    def __init__(self):
        self.events: List[ChangeEvent] = []

    def record(self, event: ChangeEvent) -> None:
        self.events.append(event)


class SqlJournal(Journal):
    """Appends events to the ``change_records`` table through SQLAlchemy."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def record(self, event: ChangeEvent) -> None:
        self.record_many([event])

    def record_many(self, events: Sequence[ChangeEvent]) -> None:
        """Write all events in a single database transaction."""
        from .models.change_record import ChangeRecord

        db = self.session_factory()
        try:
            for event in events:
                db.add(ChangeRecord(
                    seq=event.seq,
                    entity_type=event.entity_type.value,
                    entity_id=event.entity_id,
                    kind=event.kind.value,
                    occurred_at=event.at,
                    before=entity_to_dict(event.before),
                    after=entity_to_dict(event.after),
                ))
            db.commit()
        except Exception as e:
            db.rollback()
            logger.error(
                "Failed to journal change events",
                error=e,
                seqs=[event.seq for event in events],
            )
            raise
        finally:
            db.close()

    def history(self, entity_id: str) -> List[dict]:
        """All journaled changes for one entity, oldest first."""
        from .models.change_record import ChangeRecord

        db = self.session_factory()
        try:
            rows = (
                db.query(ChangeRecord)
                .filter(ChangeRecord.entity_id == entity_id)
                .order_by(ChangeRecord.seq)
                .all()
            )
            return [row.to_dict() for row in rows]
        finally:
            db.close()
