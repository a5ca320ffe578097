"""Counter store interface.

The limiter depends on this abstraction (not the concrete implementation)
so the shared backend (Redis) and the single-process backend used in tests
are interchangeable. Every write carries a TTL in seconds.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)


class AbstractStore(ABC):
    """Key-value store offering the primitives the fixed-window limiter needs.

    Values are integers (attempt counters and epoch timestamps). Backends
    that can run ``hit_window`` as one server-side step override it.
    """

    @abstractmethod
    def get(self, key: str) -> int | None:
        """Return the stored integer, or None when the key is absent."""
        raise NotImplementedError

    @abstractmethod
    def add(self, key: str, value: int, ttl_seconds: int) -> bool:
        """Set ``key`` only if it does not exist.

        Returns:
            True if the key was created, False if it already existed.
        """
        raise NotImplementedError

    @abstractmethod
    def increment(self, key: str) -> int:
        """Atomically increment ``key`` by one and return the new value.

        A missing key is created with value 1 and no TTL.
        """
        raise NotImplementedError

    @abstractmethod
    def put(self, key: str, value: int, ttl_seconds: int) -> None:
        """Unconditionally set ``key`` with a fresh TTL."""
        raise NotImplementedError

    @abstractmethod
    def forget(self, key: str) -> bool:
        """Delete ``key``. Returns True if something was removed."""
        raise NotImplementedError

    def hit_window(
        self,
        key: str,
        timer_key: str,
        available_at: int,
        ttl_seconds: int,
    ) -> int:
        """Record one attempt in the window of ``key`` and return the count.

        The timer is only written if absent, so repeated hits inside an open
        window never push its end further out. This default composes the
        primitives; it is not atomic across processes.
        """
        self.add(timer_key, available_at, ttl_seconds)
        added = self.add(key, 0, ttl_seconds)
        hits = self.increment(key)

        # The counter expired between add() and increment(): INCR recreated it
        # without a TTL, so write it again with one.
        if not added and hits == 1:
            logger.info(
                "store.hit_race_corrected",
                extra={"signature": key[:12], "window_s": ttl_seconds},
            )
            self.put(key, 1, ttl_seconds)

        return hits

    def ping(self) -> bool:
        """Return True when the backend is reachable."""
        return True
