"""
Clock and ID sources shared by the store, scheduler and aggregator.
"""
import itertools
import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SystemClock:
    """Wall clock that never goes backwards within one process."""

    def __init__(self):
        self._last: Optional[datetime] = None
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            current = datetime.now(timezone.utc)
            if self._last is not None and current < self._last:
                current = self._last
            self._last = current
            return current


class ManualClock:
    """Clock driven by hand, for tests, demos and replays."""

    def __init__(self, start: Optional[datetime] = None):
        self._now = ensure_utc(start) if start else datetime.now(timezone.utc)

    def now(self) -> datetime:
        return self._now

    def advance(self, **delta) -> datetime:
        self._now = self._now + timedelta(**delta)
        return self._now

    def set(self, value: datetime) -> datetime:
        value = ensure_utc(value)
        if value < self._now:
            raise ValueError("ManualClock cannot move backwards")
        self._now = value
        return self._now


class IdGenerator:
    """
    Unique identifiers with a short type prefix ("cmp_", "cnt_", "sch_").

    Sequential mode produces zero-padded counters so ids sort in creation
    order, which keeps tie-breaks predictable in tests.
    """

    def __init__(self, sequential: bool = False):
        self.sequential = sequential
        self._counter = itertools.count(1)
        self._lock = threading.Lock()

    def new_id(self, prefix: str) -> str:
        if self.sequential:
            with self._lock:
                return f"{prefix}_{next(self._counter):06d}"
        return f"{prefix}_{uuid.uuid4().hex[:12]}"
