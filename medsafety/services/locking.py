"""
Keyed locks for serializing work on one patient or one prescription
"""
import threading
from contextlib import contextmanager
from typing import Dict, Generator


class _Entry:
    __slots__ = ("lock", "holders")

    def __init__(self):
        self.lock = threading.RLock()
        self.holders = 0


class KeyedLockRegistry:
    """
    Process-wide registry of reentrant locks, one per key.

    Entries are created on first use and dropped once no thread holds or
    waits on them, so the registry does not grow with the number of
    patients ever seen.
    """

    def __init__(self, name: str):
        self.name = name
        self._guard = threading.Lock()
        self._entries: Dict[str, _Entry] = {}

    @contextmanager
    def hold(self, key: str) -> Generator[None, None, None]:
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

    def __len__(self):
        with self._guard:
            return len(self._entries)


patient_locks = KeyedLockRegistry("patient")
prescription_locks = KeyedLockRegistry("prescription")
