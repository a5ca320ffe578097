"""In-memory TTL store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable

from throttler.adapters.store.base import AbstractStore


@dataclass
class _Entry:
    value: int
    expires_at: float | None


class InMemoryStore(AbstractStore):
    """Dictionary-backed store with lazy TTL eviction.

    Useful for local development and tests. It does not share state across
    processes, so it must not back a multi-worker deployment.
    """

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        """Initialize the store.

        Args:
            clock: Time source function returning UNIX time in seconds.
        """
        self._clock = clock
        self._lock = threading.RLock()
        self._entries: dict[str, _Entry] = {}

    def __len__(self) -> int:
        with self._lock:
            self._evict_expired()
            return len(self._entries)

    def _live(self, key: str) -> _Entry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at is not None and entry.expires_at <= self._clock():
            del self._entries[key]
            return None
        return entry

    def _evict_expired(self) -> None:
        now = self._clock()
        expired = [
            key
            for key, entry in self._entries.items()
            if entry.expires_at is not None and entry.expires_at <= now
        ]
        for key in expired:
            del self._entries[key]

    def _expiry(self, ttl_seconds: int) -> float:
        if ttl_seconds < 1:
            raise ValueError("ttl_seconds must be >= 1")
        return self._clock() + ttl_seconds

    def get(self, key: str) -> int | None:
        with self._lock:
            entry = self._live(key)
            return entry.value if entry else None

    def add(self, key: str, value: int, ttl_seconds: int) -> bool:
        with self._lock:
            if self._live(key) is not None:
                return False
            self._entries[key] = _Entry(int(value), self._expiry(ttl_seconds))
            return True

    def increment(self, key: str) -> int:
        with self._lock:
            entry = self._live(key)
            if entry is None:
                entry = _Entry(0, None)
                self._entries[key] = entry
            entry.value += 1
            return entry.value

    def put(self, key: str, value: int, ttl_seconds: int) -> None:
        with self._lock:
            self._entries[key] = _Entry(int(value), self._expiry(ttl_seconds))

    def forget(self, key: str) -> bool:
        with self._lock:
            existed = self._live(key) is not None
            self._entries.pop(key, None)
            return existed
