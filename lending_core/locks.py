"""
Keyed Lock Module

Per-key exclusive critical sections. All mutating operations on one loan
run under that loan's lock so read-modify-write cycles never interleave;
operations on different loans do not contend.
"""

from contextlib import contextmanager
from typing import Dict, Iterator
import threading


class _Entry:
    __slots__ = ("lock", "holders")

    def __init__(self):
        self.lock = threading.Lock()
        self.holders = 0


class KeyedLock:
    """
    Map of locks keyed by string, created on demand and dropped when unused
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._entries: Dict[str, _Entry] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """Hold the exclusive lock for key for the duration of the block"""
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.holders += 1

        entry.lock.acquire()
        try:
            yield
        finally:
            entry.lock.release()
            with self._guard:
                entry.holders -= 1
                if entry.holders == 0:
                    del self._entries[key]

    def active_keys(self) -> int:
        """Number of keys currently held or waited on"""
        with self._guard:
            return len(self._entries)
