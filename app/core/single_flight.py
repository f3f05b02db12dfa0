"""Per-key in-process locking for expensive generations.

Concurrent requests for the same key inside one process queue behind a single
lock; the caller re-checks the cache once it holds the lock, so followers serve
the leader's result instead of paying for a second generation. Requests in
other processes are not coordinated.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator


class SingleFlight:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._waiters: dict[str, int] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[bool]:
        """Hold the lock for ``key``.

        Yields ``True`` when another caller held the key while this one waited,
        which tells the caller a fresh result may already be stored.
        """
        with self._lock:
            key_lock = self._locks.get(key)
            if key_lock is None:
                key_lock = threading.Lock()
                self._locks[key] = key_lock
            self._waiters[key] = self._waiters.get(key, 0) + 1

        contended = not key_lock.acquire(blocking=False)
        if contended:
            key_lock.acquire()
        try:
            yield contended
        finally:
            key_lock.release()
            with self._lock:
                self._waiters[key] -= 1
                if self._waiters[key] == 0:
                    del self._waiters[key]
                    del self._locks[key]

    def in_flight(self) -> list[str]:
        with self._lock:
            return list(self._locks)
