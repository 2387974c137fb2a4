"""Per-key lock registry.

Fetches of the same cache key share the metadata record and the cache slot,
so they are serialized within a process. Different keys never contend.
"""

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class KeyedLockRegistry:
    """Hands out one lock per key, dropping it when no holder remains."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._holders: dict[str, int] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """Hold the lock for a key for the duration of the block.

        Args:
            key: Key to serialize on.
        """
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._holders[key] = self._holders.get(key, 0) + 1

        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._holders[key] -= 1
                if self._holders[key] == 0:
                    del self._holders[key]
                    del self._locks[key]

    def active_keys(self) -> set[str]:
        """Get keys that currently have holders or waiters."""
        with self._guard:
            return set(self._locks)
