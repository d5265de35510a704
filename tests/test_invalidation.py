"""
Tests for event-driven cache invalidation.
"""

from unittest.mock import MagicMock

import pytest

from cinelink.cache.config import CacheFamily
from cinelink.cache.invalidation import CacheEvent, CacheInvalidator, EVENT_FAMILIES
from cinelink.cache.keys import build_key
from cinelink.cache.read_through import ReadThroughCache


MOVIE_ID = "0b6f1c1e-movie-a"
OTHER_MOVIE_ID = "9d2e7f3a-movie-b"


def seed_every_family(store):
    """One parameterized and one bare key per family, plus episodes of two movies."""
    keys = {}
    for family in (
        CacheFamily.MOVIES,
        CacheFamily.FEATURED_MOVIES,
        CacheFamily.POPULAR_MOVIES,
        CacheFamily.GENRES,
        CacheFamily.TAGS,
        CacheFamily.ANALYTICS_OVERVIEW,
        CacheFamily.CLIENT_DASHBOARD,
    ):
        keys[family] = [build_key(family, {"limit": 10, "page": 1}), build_key(family)]
    keys["episodes_a"] = [
        build_key(CacheFamily.EPISODES, {"movieId": MOVIE_ID}),
        build_key(CacheFamily.EPISODES, {"movieId": MOVIE_ID, "page": 1, "limit": 50}),
        build_key(CacheFamily.EPISODES, {"movieId": MOVIE_ID, "season": 2, "limit": 50, "page": 1}),
    ]
    keys["episodes_b"] = [
        build_key(CacheFamily.EPISODES, {"movieId": OTHER_MOVIE_ID, "page": 1, "limit": 50}),
    ]
    for group in keys.values():
        for key in group:
            store[key] = b"cached"
    return keys


def surviving(store, keys):
    return {group for group, members in keys.items() if all(k in store for k in members)}


def purged(store, keys):
    return {group for group, members in keys.items() if not any(k in store for k in members)}


class TestEventFamilies:
    """Each mutation purges exactly the families that could show it."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("event", [
        CacheEvent.MOVIE_CREATED,
        CacheEvent.MOVIE_UPDATED,
        CacheEvent.MOVIE_DELETED,
    ])
    async def test_movie_writes(self, invalidator, fake_redis, event):
        keys = seed_every_family(fake_redis.store)
        result = await invalidator.handle_event(event, movie_id=MOVIE_ID)

        assert result.success
        assert purged(fake_redis.store, keys) == {
            CacheFamily.MOVIES,
            CacheFamily.FEATURED_MOVIES,
            CacheFamily.POPULAR_MOVIES,
            CacheFamily.GENRES,
            CacheFamily.TAGS,
            "episodes_a",
        }
        assert "episodes_b" in surviving(fake_redis.store, keys)

    @pytest.mark.asyncio
    async def test_feature_toggle(self, invalidator, fake_redis):
        keys = seed_every_family(fake_redis.store)
        await invalidator.handle_event(CacheEvent.MOVIE_FEATURE_TOGGLED, movie_id=MOVIE_ID)
        assert purged(fake_redis.store, keys) == {CacheFamily.FEATURED_MOVIES}

    @pytest.mark.asyncio
    async def test_movie_click(self, invalidator, fake_redis):
        keys = seed_every_family(fake_redis.store)
        result = await invalidator.handle_event(CacheEvent.MOVIE_CLICKED, movie_id=MOVIE_ID)
        assert purged(fake_redis.store, keys) == {CacheFamily.MOVIES, CacheFamily.POPULAR_MOVIES}
        assert result.keys_invalidated == 4

    @pytest.mark.asyncio
    @pytest.mark.parametrize("event", [
        CacheEvent.EPISODE_CREATED,
        CacheEvent.EPISODE_UPDATED,
        CacheEvent.EPISODE_DELETED,
    ])
    async def test_episode_writes_are_scoped_to_the_movie(self, invalidator, fake_redis, event):
        keys = seed_every_family(fake_redis.store)
        await invalidator.handle_event(event, movie_id=MOVIE_ID)
        assert purged(fake_redis.store, keys) == {"episodes_a"}

    @pytest.mark.asyncio
    async def test_episode_click_purges_parent_listings(self, invalidator, fake_redis):
        keys = seed_every_family(fake_redis.store)
        await invalidator.handle_event(CacheEvent.EPISODE_CLICKED, movie_id=MOVIE_ID)
        assert purged(fake_redis.store, keys) == {
            CacheFamily.MOVIES,
            CacheFamily.POPULAR_MOVIES,
            "episodes_a",
        }

    @pytest.mark.asyncio
    async def test_manual_flush(self, invalidator, fake_redis):
        seed_every_family(fake_redis.store)
        result = await invalidator.handle_event(CacheEvent.MANUAL_INVALIDATE_ALL)
        assert result.success
        assert fake_redis.store == {}

    @pytest.mark.asyncio
    async def test_manual_family_invalidation(self, invalidator, fake_redis):
        keys = seed_every_family(fake_redis.store)
        result = await invalidator.invalidate([CacheFamily.ANALYTICS_OVERVIEW])
        assert result.keys_invalidated == 2
        assert purged(fake_redis.store, keys) == {CacheFamily.ANALYTICS_OVERVIEW}

    def test_every_event_is_mapped(self):
        for event in CacheEvent:
            if event is not CacheEvent.MANUAL_INVALIDATE_ALL:
                assert event in EVENT_FAMILIES


class TestReadAfterInvalidation:
    """First read after a mutation recomputes for every affected family."""

    @pytest.mark.asyncio
    async def test_listing_recomputes_after_click(self, cache):
        reader = ReadThroughCache(cache)
        invalidator = CacheInvalidator(cache)
        movies_key = build_key(CacheFamily.MOVIES, {"page": 1, "limit": 20})
        popular_key = build_key(CacheFamily.POPULAR_MOVIES, {"limit": 10})
        featured_key = build_key(CacheFamily.FEATURED_MOVIES, {"limit": 10})

        computes = {key: MagicMock(return_value=[key]) for key in (movies_key, popular_key, featured_key)}
        for key, compute in computes.items():
            await reader.read_through(key, 300, compute)
        await reader.wait_pending()

        await invalidator.handle_event(CacheEvent.MOVIE_CLICKED, movie_id=MOVIE_ID)

        for key, compute in computes.items():
            await reader.read_through(key, 300, compute)

        assert computes[movies_key].call_count == 2
        assert computes[popular_key].call_count == 2
        assert computes[featured_key].call_count == 1


class TestFailureHandling:
    """Invalidation never raises."""

    @pytest.mark.asyncio
    async def test_unreachable_store(self, broken_cache):
        result = await CacheInvalidator(broken_cache).handle_event(
            CacheEvent.MOVIE_UPDATED, movie_id=MOVIE_ID,
        )
        assert result.keys_invalidated == 0

    @pytest.mark.asyncio
    async def test_unexpected_error_is_reported(self, cache):
        async def explode(pattern):
            raise RuntimeError("boom")

        cache.delete_pattern = explode
        result = await CacheInvalidator(cache).handle_event(CacheEvent.MOVIE_CLICKED, movie_id=MOVIE_ID)
        assert result.success is False
        assert result.errors == ["boom"]

    @pytest.mark.asyncio
    async def test_flush_failure_is_reported(self, broken_cache):
        result = await CacheInvalidator(broken_cache).handle_event(CacheEvent.MANUAL_INVALIDATE_ALL)
        assert result.success is False

    @pytest.mark.asyncio
    async def test_disabled_cache_flush_is_not_an_error(self, disabled_cache):
        result = await CacheInvalidator(disabled_cache).handle_event(CacheEvent.MANUAL_INVALIDATE_ALL)
        assert result.success is True
