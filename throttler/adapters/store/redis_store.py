"""Redis-backed counter store shared by every service process.

All primitives map onto single Redis commands (SET NX EX, INCR, SET EX, DEL),
so concurrent workers never under- or over-count. ``hit_window`` runs a Lua
script so the timer/counter initialisation and the increment are applied in
one server-side step.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar

import redis

from throttler.adapters.store.base import AbstractStore
from throttler.core.errors import StoreUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# KEYS[1] = counter, KEYS[2] = timer; ARGV[1] = available_at, ARGV[2] = ttl
HIT_WINDOW_LUA = """
redis.call('SET', KEYS[2], ARGV[1], 'NX', 'EX', ARGV[2])
redis.call('SET', KEYS[1], '0', 'NX', 'EX', ARGV[2])
return redis.call('INCR', KEYS[1])
"""


def _to_int(raw: Any) -> int | None:
    if raw is None:
        return None
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    return int(raw)


class RedisStore(AbstractStore):
    """Store implementation on top of redis-py.

    ``hit_window`` runs as a single Lua script so concurrent workers never
    interleave the timer and counter writes.
    """

    def __init__(self, client: redis.Redis, *, key_prefix: str = "") -> None:
        """Wrap an existing Redis client.

        Args:
            client: Configured redis-py client.
            key_prefix: Namespace prepended to every key.
        """
        self._client = client
        self._prefix = key_prefix
        self._hit_script = client.register_script(HIT_WINDOW_LUA)

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        socket_timeout: float,
        key_prefix: str = "",
    ) -> "RedisStore":
        """Build a store from a connection URL.

        The same timeout bounds connect and every command, so a slow or
        unreachable Redis surfaces as StoreUnavailableError instead of
        stalling the request.
        """
        client = redis.Redis.from_url(
            url,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
            decode_responses=False,
        )
        return cls(client, key_prefix=key_prefix)

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def _call(self, operation: str, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        try:
            return func(*args, **kwargs)
        except redis.RedisError as exc:
            logger.error(
                "store.redis_error",
                extra={"operation": operation, "error_type": type(exc).__name__},
            )
            raise StoreUnavailableError(
                code="store_unavailable",
                message=f"Redis {operation} failed: {exc}",
                details={"backend": "redis", "operation": operation},
            ) from exc

    def get(self, key: str) -> int | None:
        return _to_int(self._call("get", self._client.get, self._key(key)))

    def add(self, key: str, value: int, ttl_seconds: int) -> bool:
        created = self._call(
            "add",
            self._client.set,
            self._key(key),
            int(value),
            nx=True,
            ex=int(ttl_seconds),
        )
        return bool(created)

    def increment(self, key: str) -> int:
        return int(self._call("increment", self._client.incr, self._key(key)))

    def put(self, key: str, value: int, ttl_seconds: int) -> None:
        self._call("put", self._client.set, self._key(key), int(value), ex=int(ttl_seconds))

    def forget(self, key: str) -> bool:
        return bool(self._call("forget", self._client.delete, self._key(key)))

    def hit_window(
        self,
        key: str,
        timer_key: str,
        available_at: int,
        ttl_seconds: int,
    ) -> int:
        hits = self._call(
            "hit_window",
            self._hit_script,
            keys=[self._key(key), self._key(timer_key)],
            args=[int(available_at), int(ttl_seconds)],
        )
        return int(_to_int(hits) or 0)

    def ping(self) -> bool:
        """Return True when Redis answers PING."""
        return bool(self._call("ping", self._client.ping))
