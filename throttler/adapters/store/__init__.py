"""Counter store adapters - abstracts over the shared key-value backend."""

from throttler.adapters.store.base import AbstractStore
from throttler.adapters.store.factory import create_store
from throttler.adapters.store.in_memory import InMemoryStore
from throttler.adapters.store.redis_store import RedisStore

__all__ = [
    "AbstractStore",
    "InMemoryStore",
    "RedisStore",
    "create_store",
]
