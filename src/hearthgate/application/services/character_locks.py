from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Iterator

from hearthgate.domain.errors import ConcurrencyConflictError


class CharacterLockRegistry:
    """Hands out one re-entrant lock per character id.

    Every call that mutates a character holds its lock from the first read to
    the commit. Different characters never contend.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[int, threading.RLock] = {}

    def _lock_for(self, character_id: int) -> threading.RLock:
        key = int(character_id)
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, character_id: int, timeout: float | None = None) -> Iterator[None]:
        lock = self._lock_for(character_id)
        acquired = lock.acquire(timeout=-1 if timeout is None else max(0.0, float(timeout)))
        if not acquired:
            raise ConcurrencyConflictError(f"Timed out waiting for character {character_id} lock")
        try:
            yield
        finally:
            lock.release()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
