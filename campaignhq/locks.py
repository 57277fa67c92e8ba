"""
Single-writer / multi-reader lock guarding one store instance.
"""
import threading
from contextlib import contextmanager
from typing import Dict


class ReadWriteLock:
    """
    Readers share the lock, a writer holds it alone.

    Writers are preferred: once a writer is waiting, threads not already
    reading queue behind it. Both sides are reentrant, and the writing thread
    may also take read(). A reader may not upgrade to write().
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers: Dict[int, int] = {}
        self._writer = None
        self._write_depth = 0
        self._writers_waiting = 0

    def acquire_read(self):
        me = threading.get_ident()
        with self._cond:
            if self._writer == me:
                self._write_depth += 1
                return
            if me in self._readers:
                self._readers[me] += 1
                return
            while self._writer is not None or self._writers_waiting:
                self._cond.wait()
            self._readers[me] = 1

    def release_read(self):
        me = threading.get_ident()
        with self._cond:
            if self._writer == me:
                self._write_depth -= 1
                return
            self._readers[me] -= 1
            if self._readers[me] == 0:
                del self._readers[me]
                if not self._readers:
                    self._cond.notify_all()

    def acquire_write(self):
        me = threading.get_ident()
        with self._cond:
            if self._writer == me:
                self._write_depth += 1
                return
            if me in self._readers:
                raise RuntimeError("cannot upgrade a read lock to a write lock")
            self._writers_waiting += 1
            try:
                while self._writer is not None or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = me
            self._write_depth = 1

    def release_write(self):
        with self._cond:
            if self._writer != threading.get_ident():
                raise RuntimeError("release_write called by a thread that does not hold the lock")
            self._write_depth -= 1
            if self._write_depth == 0:
                self._writer = None
                self._cond.notify_all()

    @contextmanager
    def read(self):
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write(self):
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()

    @property
    def write_held(self) -> bool:
        """True when the calling thread holds the write lock."""
        return self._writer == threading.get_ident()
