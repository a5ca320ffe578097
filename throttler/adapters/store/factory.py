"""Factory pattern for creating counter store instances."""

from throttler.adapters.store.base import AbstractStore
from throttler.adapters.store.in_memory import InMemoryStore
from throttler.adapters.store.redis_store import RedisStore
from throttler.core.config import Settings
from throttler.core.errors import ValidationAppError


def create_store(settings: Settings) -> AbstractStore:
    """Instantiate the store backend selected by THROTTLE_STORE.

    Args:
        settings: Application settings.

    Returns:
        AbstractStore: Configured store instance.

    Raises:
        ValidationAppError: If the backend name is unknown.
    """
    backend = settings.throttle.store.lower()

    if backend == "redis":
        return RedisStore.from_url(
            settings.redis.url,
            socket_timeout=settings.redis.socket_timeout_seconds,
            key_prefix=settings.redis.key_prefix,
        )

    # Single-process only; counters are not shared between workers
    if backend == "memory":
        return InMemoryStore()

    raise ValidationAppError(
        code="store_unknown_backend",
        message=f"Unknown store backend: '{backend}'. Supported backends: redis, memory",
    )
