from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator


class _LockEntry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class SenderLocks:
    """One lock per sender with a turn in flight; entries are dropped when no turn holds or waits on them."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: dict[str, _LockEntry] = {}

    @contextmanager
    def hold(self, sender: str) -> Iterator[None]:
        with self._guard:
            entry = self._entries.get(sender)
            if entry is None:
                entry = _LockEntry()
                self._entries[sender] = entry
            entry.users += 1
        entry.lock.acquire()
        try:
            yield
        finally:
            entry.lock.release()
            with self._guard:
                entry.users -= 1
                if entry.users == 0 and self._entries.get(sender) is entry:
                    del self._entries[sender]

    def active_count(self) -> int:
        with self._guard:
            return len(self._entries)
