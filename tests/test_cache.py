"""
Tests for the caching layer.

These tests verify:
- Serialization of cached values
- Redis adapter operations against an in-memory store
- Graceful degradation when Redis is absent or unreachable
- Circuit breaker behavior
- Read-through semantics (hit, miss, background store, corrupt entries)
"""

import asyncio
from datetime import datetime, timedelta
from enum import Enum
from unittest.mock import AsyncMock, MagicMock

import pytest

from cinelink.cache.config import CacheConfig, CacheFamily, CacheTTL
from cinelink.cache.read_through import ReadThroughCache
from cinelink.cache.redis_cache import CircuitBreaker, RedisCache
from cinelink.cache.serialization import deserialize_value, serialize_value

from conftest import BrokenRedis, make_cache_config


# =============================================================================
# CONFIG TESTS
# =============================================================================

class TestCacheConfig:
    """Test cache configuration."""

    def test_ttl_table(self):
        assert CacheTTL.for_family(CacheFamily.MOVIES) == timedelta(seconds=300)
        assert CacheTTL.for_family(CacheFamily.FEATURED_MOVIES) == timedelta(seconds=600)
        assert CacheTTL.for_family(CacheFamily.POPULAR_MOVIES) == timedelta(seconds=300)
        assert CacheTTL.for_family(CacheFamily.EPISODES) == timedelta(seconds=300)
        assert CacheTTL.for_family(CacheFamily.ANALYTICS_OVERVIEW) == timedelta(seconds=600)
        assert CacheTTL.for_family(CacheFamily.ANALYTICS_TOP_MOVIES) == timedelta(seconds=300)
        assert CacheTTL.for_family(CacheFamily.ANALYTICS_HOURLY_CLICKS) == timedelta(seconds=1800)
        assert CacheTTL.for_family(CacheFamily.GENRES) == timedelta(seconds=3600)
        assert CacheTTL.for_family(CacheFamily.TAGS) == timedelta(seconds=3600)
        assert CacheTTL.for_family(CacheFamily.CLIENT_DASHBOARD) == timedelta(seconds=300)
        assert CacheTTL.for_family(CacheFamily.CLIENT_MOVIES_ANALYTICS) == timedelta(seconds=120)

    def test_unknown_family_gets_default(self):
        assert CacheTTL.for_family("something_else") == CacheTTL.DEFAULT

    def test_not_configured_without_url(self, monkeypatch):
        monkeypatch.delenv("REDIS_URL", raising=False)
        assert CacheConfig().is_configured is False

    def test_kill_switch(self, monkeypatch):
        monkeypatch.setenv("REDIS_URL", "redis://localhost:6379/0")
        monkeypatch.setenv("CACHE_ENABLED", "false")
        assert CacheConfig().is_configured is False


# =============================================================================
# SERIALIZATION TESTS
# =============================================================================

class Color(Enum):
    RED = "red"


class TestSerialization:
    """Test cached value serialization."""

    def test_datetime_and_enum(self):
        data = {"timestamp": datetime(2024, 1, 15, 10, 30, 0), "color": Color.RED}
        assert deserialize_value(serialize_value(data)) == {
            "timestamp": "2024-01-15T10:30:00",
            "color": "red",
        }

    def test_accepts_str(self):
        assert deserialize_value('{"a": 1}') == {"a": 1}

    def test_uncacheable_object(self):
        with pytest.raises(TypeError):
            serialize_value({"obj": object()})


# =============================================================================
# ADAPTER TESTS
# =============================================================================

class TestRedisCache:
    """Adapter operations against the in-memory store."""

    @pytest.mark.asyncio
    async def test_set_and_get(self, cache, fake_redis):
        assert await cache.set("movies:page:1", b"payload", timedelta(minutes=5))
        assert await cache.get("movies:page:1") == b"payload"
        assert fake_redis.ttls["movies:page:1"] == 300

    @pytest.mark.asyncio
    async def test_miss(self, cache):
        assert await cache.get("movies:page:9") is None
        assert cache.get_stats()["misses"] == 1

    @pytest.mark.asyncio
    async def test_delete(self, cache):
        await cache.set("genres", b"[]", 60)
        assert await cache.delete("genres") is True
        assert await cache.delete("genres") is False

    @pytest.mark.asyncio
    async def test_delete_pattern_batches(self, cache, fake_redis):
        for page in range(1, 1201):
            await cache.set(f"movies:page:{page}", b"x", 60)
        await cache.set("popular_movies:limit:10", b"x", 60)
        await cache.set("movies", b"x", 60)

        fake_redis.calls.clear()
        deleted = await cache.delete_pattern("movies:*")

        assert deleted == 1200
        assert set(fake_redis.store) == {"popular_movies:limit:10", "movies"}
        # 1200 keys in batches of 500
        assert len([c for c in fake_redis.calls if c[0] == "delete"]) == 3

    @pytest.mark.asyncio
    async def test_flush_all(self, cache, fake_redis):
        await cache.set("movies:page:1", b"x", 60)
        await cache.set("genres", b"x", 60)
        assert await cache.flush_all() is True
        assert fake_redis.store == {}

    @pytest.mark.asyncio
    async def test_exists_and_ttl(self, cache):
        await cache.set("tags", b"[]", timedelta(hours=1))
        assert await cache.exists("tags") is True
        assert await cache.ttl("tags") == 3600
        assert await cache.ttl("missing") == -2

    @pytest.mark.asyncio
    async def test_health_check_connected(self, cache):
        health = await cache.health_check()
        assert health["healthy"] is True
        assert health["status"] == "connected"


class TestDegradation:
    """An absent or dead store never raises to callers."""

    @pytest.mark.asyncio
    async def test_disabled_cache_is_noop(self, disabled_cache):
        assert disabled_cache.enabled is False
        await disabled_cache.initialize()
        assert await disabled_cache.get("movies") is None
        assert await disabled_cache.set("movies", b"x", 60) is False
        assert await disabled_cache.delete("movies") is False
        assert await disabled_cache.delete_pattern("movies:*") == 0
        assert await disabled_cache.flush_all() is False
        assert (await disabled_cache.health_check())["status"] == "disabled"
        await disabled_cache.close()

    @pytest.mark.asyncio
    async def test_unreachable_store_degrades(self, broken_cache):
        assert await broken_cache.get("movies") is None
        assert await broken_cache.set("movies", b"x", 60) is False
        assert await broken_cache.delete("movies") is False
        assert await broken_cache.delete_pattern("movies:*") == 0
        assert await broken_cache.flush_all() is False
        assert broken_cache.get_stats()["errors"] == 5

        health = await broken_cache.health_check()
        assert health["healthy"] is False

    @pytest.mark.asyncio
    async def test_initialize_never_raises(self):
        cache = RedisCache(config=make_cache_config(
            redis_url="redis://127.0.0.1:1/0",
            redis_connect_timeout=0.05,
            redis_socket_timeout=0.05,
        ))
        await cache.initialize()
        assert await cache.get("movies") is None
        await cache.close()

    @pytest.mark.asyncio
    async def test_circuit_breaker_stops_calling_dead_store(self):
        client = BrokenRedis()
        cache = RedisCache(
            config=make_cache_config(circuit_breaker_enabled=True, circuit_breaker_threshold=3),
            client=client,
        )
        for _ in range(10):
            assert await cache.get("movies") is None

        assert client.attempts == 3
        assert cache.get_stats()["circuit_breaker_open"] is True


class TestCircuitBreaker:
    """Test circuit breaker state transitions."""

    def test_opens_after_threshold(self):
        breaker = CircuitBreaker(threshold=2, timeout=30)
        breaker.record_failure()
        assert breaker.is_available()
        breaker.record_failure()
        assert not breaker.is_available()

    def test_success_resets(self):
        breaker = CircuitBreaker(threshold=2, timeout=30)
        breaker.record_failure()
        breaker.record_success()
        breaker.record_failure()
        assert breaker.is_available()

    def test_half_open_after_timeout(self):
        breaker = CircuitBreaker(threshold=1, timeout=0)
        breaker.record_failure()
        assert breaker.is_available()


# =============================================================================
# READ-THROUGH TESTS
# =============================================================================

class TestReadThrough:
    """Cache-aside reads."""

    @pytest.mark.asyncio
    async def test_second_read_is_served_from_cache(self, reader):
        compute = MagicMock(return_value={"data": [1, 2, 3]})

        first = await reader.read_through("movies:page:1", 300, compute)
        await reader.wait_pending()
        second = await reader.read_through("movies:page:1", 300, compute)

        assert first == second == {"data": [1, 2, 3]}
        compute.assert_called_once()

    @pytest.mark.asyncio
    async def test_async_compute(self, reader):
        compute = AsyncMock(return_value=["Drama"])
        assert await reader.read_through("genres", 3600, compute) == ["Drama"]
        await reader.wait_pending()
        assert await reader.read_through("genres", 3600, compute) == ["Drama"]
        compute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_store_uses_family_ttl(self, reader, fake_redis):
        await reader.read_through("featured_movies:limit:10", CacheTTL.FEATURED_MOVIES, lambda: [])
        await reader.wait_pending()
        assert fake_redis.ttls["featured_movies:limit:10"] == 600

    @pytest.mark.asyncio
    async def test_cached_empty_and_null_values_are_hits(self, reader):
        compute = MagicMock(return_value=None)
        await reader.read_through("tags", 60, compute)
        await reader.wait_pending()
        assert await reader.read_through("tags", 60, compute) is None
        compute.assert_called_once()

    @pytest.mark.asyncio
    async def test_read_does_not_wait_for_store(self, cache):
        store_started = asyncio.Event()
        release = asyncio.Event()

        async def slow_set(key, value, ttl):
            store_started.set()
            await release.wait()
            return True

        cache.set = slow_set
        reader = ReadThroughCache(cache)

        value = await reader.read_through("movies:page:1", 300, lambda: {"ok": True})
        assert value == {"ok": True}
        assert reader.pending_writes == 1

        release.set()
        await reader.wait_pending()
        assert store_started.is_set()
        assert reader.pending_writes == 0

    @pytest.mark.asyncio
    async def test_store_failure_does_not_fail_read(self, cache):
        cache.set = AsyncMock(side_effect=RuntimeError("boom"))
        reader = ReadThroughCache(cache)
        assert await reader.read_through("movies:page:1", 300, lambda: [1]) == [1]
        await reader.wait_pending()

    @pytest.mark.asyncio
    async def test_corrupt_entry_is_a_miss(self, reader, fake_redis):
        fake_redis.store["movies:page:1"] = b"\xff not json"
        compute = MagicMock(return_value={"fresh": True})
        assert await reader.read_through("movies:page:1", 300, compute) == {"fresh": True}
        compute.assert_called_once()

    @pytest.mark.asyncio
    async def test_uncacheable_value_still_returned(self, reader, fake_redis):
        marker = object()
        assert await reader.read_through("movies:page:1", 300, lambda: marker) is marker
        await reader.wait_pending()
        assert "movies:page:1" not in fake_redis.store

    @pytest.mark.asyncio
    async def test_compute_error_propagates_and_nothing_is_cached(self, reader, fake_redis):
        def compute():
            raise LookupError("query failed")

        with pytest.raises(LookupError):
            await reader.read_through("movies:page:1", 300, compute)
        await reader.wait_pending()
        assert fake_redis.store == {}

    @pytest.mark.asyncio
    async def test_absent_cache_always_computes(self, disabled_cache):
        reader = ReadThroughCache(disabled_cache)
        compute = MagicMock(return_value=[1])
        for _ in range(3):
            assert await reader.read_through("movies:page:1", 300, compute) == [1]
        assert compute.call_count == 3
        assert reader.pending_writes == 0

    @pytest.mark.asyncio
    async def test_unreachable_cache_always_computes(self, broken_cache):
        reader = ReadThroughCache(broken_cache)
        compute = MagicMock(return_value=[1])
        for _ in range(3):
            assert await reader.read_through("movies:page:1", 300, compute) == [1]
        await reader.wait_pending()
        assert compute.call_count == 3

    @pytest.mark.asyncio
    async def test_concurrent_misses_recompute_without_coalescing(self, reader):
        calls = 0

        async def compute():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return calls

        await asyncio.gather(*[reader.read_through("popular_movies", 300, compute) for _ in range(5)])
        assert calls == 5

    @pytest.mark.asyncio
    async def test_coalesced_misses_share_one_computation(self, cache):
        reader = ReadThroughCache(cache, coalesce_misses=True)
        calls = 0

        async def compute():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return {"n": calls}

        results = await asyncio.gather(*[
            reader.read_through("popular_movies", 300, compute) for _ in range(5)
        ])
        assert calls == 1
        assert all(r == {"n": 1} for r in results)

    @pytest.mark.asyncio
    async def test_coalesced_failure_reaches_every_waiter(self, cache):
        reader = ReadThroughCache(cache, coalesce_misses=True)

        async def compute():
            await asyncio.sleep(0.01)
            raise LookupError("query failed")

        results = await asyncio.gather(
            *[reader.read_through("popular_movies", 300, compute) for _ in range(3)],
            return_exceptions=True,
        )
        assert all(isinstance(r, LookupError) for r in results)
