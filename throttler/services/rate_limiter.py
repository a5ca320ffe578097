"""Fixed-window rate limiter on top of a shared counter store.

Each signature owns two store entries, both with a TTL equal to the window:

- ``<signature>``        number of attempts in the current window
- ``<signature>:timer``  epoch second (rounded up) at which the window ends

The timer is the source of truth for "a window is open". A counter that
outlives its timer is stale and gets reset lazily by ``too_many_attempts``.
"""

from __future__ import annotations

import logging
import math
import time
from typing import Callable

from throttler.adapters.store.base import AbstractStore
from throttler.schemas.throttle import TimeUnit

logger = logging.getLogger(__name__)

TIMER_SUFFIX = ":timer"

_UNIT_SECONDS = {
    TimeUnit.SECONDS: 1,
    TimeUnit.MINUTES: 60,
}


def to_seconds(units: int, unit: TimeUnit) -> int:
    """Convert a window length in decay units to seconds."""
    return int(units) * _UNIT_SECONDS[TimeUnit(unit)]


def timer_key(signature: str) -> str:
    return f"{signature}{TIMER_SUFFIX}"


class RateLimiter:
    """Count attempts per signature inside fixed windows.

    All operations are synchronous store calls; no state is kept in process.
    Store failures propagate as StoreUnavailableError.
    """

    def __init__(
        self,
        store: AbstractStore,
        *,
        rate_unit: TimeUnit = TimeUnit.SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the limiter.

        Args:
            store: Shared counter store.
            rate_unit: Unit in which ``hit`` receives window lengths.
            clock: Time source function returning UNIX time in seconds.
        """
        self._store = store
        self._rate_unit = TimeUnit(rate_unit)
        self._clock = clock

    def window_seconds(self, decay_units: int) -> int:
        return to_seconds(decay_units, self._rate_unit)

    def too_many_attempts(self, signature: str, max_attempts: int) -> bool:
        """Determine if the signature has been "accessed" too many times.

        A counter at or over the limit whose window timer has lapsed is reset
        to zero on the spot and the request is not considered blocked.
        """
        if self.attempts(signature) >= max_attempts:
            if self._store.get(timer_key(signature)) is not None:
                return True

            logger.info(
                "rate_limiter.counter_reset",
                extra={"signature": signature[:12], "reason": "window_lapsed"},
            )
            self.reset_attempts(signature)

        return False

    def hit(self, signature: str, decay_units: int = 1) -> int:
        """Record one attempt and return the attempt count for the window.

        The timer is only written if absent, so repeated hits inside an open
        window never push its end further out.
        """
        seconds = self.window_seconds(decay_units)
        available_at = math.ceil(self._clock()) + seconds
        return self._store.hit_window(signature, timer_key(signature), available_at, seconds)

    def attempts(self, signature: str) -> int:
        return self._store.get(signature) or 0

    def reset_attempts(self, signature: str) -> bool:
        return self._store.forget(signature)

    def retries_left(self, signature: str, max_attempts: int) -> int:
        """Remaining attempts; negative once the store overshoots the limit."""
        return max_attempts - self.attempts(signature)

    def clear(self, signature: str) -> None:
        """Clear the hits and the window timer for the signature."""
        self.reset_attempts(signature)
        self._store.forget(timer_key(signature))

    def window_open(self, signature: str) -> bool:
        return self._store.get(timer_key(signature)) is not None

    def available_in(self, signature: str) -> int:
        """Seconds until the current window ends (0 when no window is open)."""
        ends_at = self._store.get(timer_key(signature))
        if ends_at is None:
            return 0
        # Timers hold whole seconds rounded up from a fractional clock, so a
        # present timer never reports less than one second to wait.
        return max(0, math.ceil(ends_at - self._clock()))
