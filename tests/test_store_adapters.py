"""Unit tests for counter store adapters."""

from unittest.mock import Mock

import fakeredis
import pytest
import redis

from throttler.adapters.store import InMemoryStore, RedisStore, create_store
from throttler.core.config import Settings, ThrottleSettings
from throttler.core.errors import StoreUnavailableError, ValidationAppError
from throttler.services.rate_limiter import RateLimiter


class CounterExpiresBeforeIncrement(InMemoryStore):
    """Drops the counter right before INCR, as a TTL lapsing mid-hit would."""

    def increment(self, key: str) -> int:
        self.forget(key)
        return super().increment(key)


class TestInMemoryStore:
    def test_add_only_sets_absent_keys(self, store: InMemoryStore) -> None:
        assert store.add("k", 5, 10) is True
        assert store.add("k", 9, 10) is False
        assert store.get("k") == 5

    def test_entries_expire_after_ttl(self, store: InMemoryStore, clock: Mock) -> None:
        store.add("k", 1, 10)

        clock.return_value = 1009.9
        assert store.get("k") == 1

        clock.return_value = 1010.0
        assert store.get("k") is None
        assert store.add("k", 2, 10) is True

    def test_increment_creates_missing_key_without_ttl(
        self, store: InMemoryStore, clock: Mock
    ) -> None:
        assert store.increment("k") == 1

        clock.return_value = 10_000_000.0
        assert store.get("k") == 1

    def test_put_overwrites_and_refreshes_ttl(self, store: InMemoryStore, clock: Mock) -> None:
        store.add("k", 1, 5)
        clock.return_value = 1004.0
        store.put("k", 1, 5)

        clock.return_value = 1008.0
        assert store.get("k") == 1

    def test_forget(self, store: InMemoryStore) -> None:
        store.add("k", 1, 10)

        assert store.forget("k") is True
        assert store.forget("k") is False
        assert len(store) == 0

    def test_rejects_non_positive_ttl(self, store: InMemoryStore) -> None:
        with pytest.raises(ValueError):
            store.add("k", 1, 0)

    def test_hit_window_keeps_first_timer(self, store: InMemoryStore) -> None:
        assert store.hit_window("sig", "sig:timer", 1002, 2) == 1
        assert store.hit_window("sig", "sig:timer", 1003, 2) == 2

        assert store.get("sig:timer") == 1002

    def test_hit_window_restores_ttl_when_counter_lapses_mid_hit(self, clock: Mock) -> None:
        store = CounterExpiresBeforeIncrement(clock=clock)
        store.put("sig", 5, 10)

        assert store.hit_window("sig", "sig:timer", 1002, 2) == 1
        assert store.get("sig") == 1

        clock.return_value = 1002.0
        assert store.get("sig") is None

    def test_hit_window_leaves_live_counter_alone(self, store: InMemoryStore, clock: Mock) -> None:
        store.put("sig", 3, 10)

        assert store.hit_window("sig", "sig:timer", 1002, 2) == 4

        clock.return_value = 1009.0
        assert store.get("sig") == 4


@pytest.fixture
def redis_client() -> Mock:
    client = Mock()
    client.register_script.return_value = Mock(return_value=1)
    return client


class TestRedisStore:
    def test_get_decodes_bytes(self, redis_client: Mock) -> None:
        redis_client.get.return_value = b"42"
        store = RedisStore(redis_client, key_prefix="t:")

        assert store.get("sig") == 42
        redis_client.get.assert_called_once_with("t:sig")

    def test_get_missing_returns_none(self, redis_client: Mock) -> None:
        redis_client.get.return_value = None

        assert RedisStore(redis_client).get("sig") is None

    def test_add_uses_set_nx_with_ttl(self, redis_client: Mock) -> None:
        redis_client.set.return_value = None
        store = RedisStore(redis_client, key_prefix="t:")

        assert store.add("sig", 0, 60) is False
        redis_client.set.assert_called_once_with("t:sig", 0, nx=True, ex=60)

    def test_put_and_forget(self, redis_client: Mock) -> None:
        redis_client.delete.return_value = 1
        store = RedisStore(redis_client)

        store.put("sig", 1, 2)
        assert store.forget("sig") is True

        redis_client.set.assert_called_once_with("sig", 1, ex=2)
        redis_client.delete.assert_called_once_with("sig")

    def test_hit_window_runs_script_with_both_keys(self, redis_client: Mock) -> None:
        script = Mock(return_value=3)
        redis_client.register_script.return_value = script
        store = RedisStore(redis_client, key_prefix="t:")

        assert store.hit_window("sig", "sig:timer", 1002, 2) == 3
        script.assert_called_once_with(keys=["t:sig", "t:sig:timer"], args=[1002, 2])

    def test_redis_errors_become_store_unavailable(self, redis_client: Mock) -> None:
        redis_client.incr.side_effect = redis.ConnectionError("Connection refused")
        store = RedisStore(redis_client)

        with pytest.raises(StoreUnavailableError) as exc_info:
            store.increment("sig")

        assert exc_info.value.code == "store_unavailable"
        assert exc_info.value.details == {"backend": "redis", "operation": "increment"}
        assert isinstance(exc_info.value.__cause__, redis.ConnectionError)

    def test_timeouts_become_store_unavailable(self, redis_client: Mock) -> None:
        redis_client.get.side_effect = redis.TimeoutError("Timeout reading from socket")

        with pytest.raises(StoreUnavailableError):
            RedisStore(redis_client).get("sig")


class TestCreateStore:
    def test_memory_backend(self) -> None:
        settings = Settings(throttle=ThrottleSettings(store="memory"))

        assert isinstance(create_store(settings), InMemoryStore)

    def test_redis_backend_builds_client_from_url(self) -> None:
        settings = Settings(throttle=ThrottleSettings(store="redis"))

        assert isinstance(create_store(settings), RedisStore)

    def test_unknown_backend(self) -> None:
        settings = Settings(throttle=ThrottleSettings(store="memcached"))

        with pytest.raises(ValidationAppError) as exc_info:
            create_store(settings)

        assert exc_info.value.code == "store_unknown_backend"


class TestRedisStoreHitScript:
    """Runs the Lua hit script against an in-process Redis server."""

    @pytest.fixture
    def fake_client(self) -> fakeredis.FakeRedis:
        return fakeredis.FakeRedis()

    def test_counts_hits_and_keeps_first_timer(self, fake_client: fakeredis.FakeRedis) -> None:
        store = RedisStore(fake_client, key_prefix="t:")

        assert store.hit_window("sig", "sig:timer", 1060, 60) == 1
        assert store.hit_window("sig", "sig:timer", 1075, 60) == 2

        assert store.get("sig") == 2
        assert store.get("sig:timer") == 1060

    def test_sets_ttl_on_counter_and_timer(self, fake_client: fakeredis.FakeRedis) -> None:
        store = RedisStore(fake_client, key_prefix="t:")

        store.hit_window("sig", "sig:timer", 1060, 60)

        assert 0 < fake_client.ttl("t:sig") <= 60
        assert 0 < fake_client.ttl("t:sig:timer") <= 60

    def test_existing_counter_keeps_its_ttl(self, fake_client: fakeredis.FakeRedis) -> None:
        fake_client.set("t:sig", 4, ex=30)
        store = RedisStore(fake_client, key_prefix="t:")

        assert store.hit_window("sig", "sig:timer", 1060, 60) == 5
        assert 0 < fake_client.ttl("t:sig") <= 30

    def test_limiter_blocks_after_max_attempts(self, fake_client: fakeredis.FakeRedis) -> None:
        limiter = RateLimiter(RedisStore(fake_client), clock=Mock(return_value=1000.0))

        limiter.hit("sig", 60)
        limiter.hit("sig", 60)

        assert limiter.too_many_attempts("sig", 2) is True
        assert limiter.retries_left("sig", 2) == 0
        assert limiter.available_in("sig") == 60
