"""
Tests for click recording.

These tests verify:
- Outbound targets and NotFound for unclickable entries
- Counter increments, including under concurrent clicks
- Best-effort event persistence vs. fatal counter failures
- Cache invalidation after a click
"""

import asyncio
import threading
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from cinelink.cache import CacheEvent, CacheInvalidator, ReadThroughCache
from cinelink.database import Click, Episode, Movie, get_db_context
from cinelink.database import repository
from cinelink.exceptions import NotFound, StoreUnavailable
from cinelink.services import CatalogService, ClickRecorder, RequestContext


def movie_row(session_factory, movie_id):
    with get_db_context(session_factory) as db:
        movie = db.query(Movie).filter(Movie.id == movie_id).one()
        return movie.click_count, movie.last_clicked


def click_rows(session_factory):
    with get_db_context(session_factory) as db:
        return db.query(Click).order_by(Click.timestamp).all()


@pytest.fixture
def recorder(session_factory, invalidator, clock):
    return ClickRecorder(session_factory, invalidator, clock=clock)


@pytest.fixture
def context():
    return RequestContext(
        user_agent="Mozilla/5.0",
        ip_address="203.0.113.7",
        referer="https://search.example/?q=inception",
    )


class TestRequestContext:

    def test_missing_values_become_unknown(self):
        context = RequestContext(user_agent=None, ip_address="", referer="")
        assert context.user_agent == "Unknown"
        assert context.ip_address == "Unknown"
        assert context.referer is None


class TestMovieClicks:

    @pytest.mark.asyncio
    async def test_returns_outbound_link_and_counts(self, recorder, session_factory, make_movie, context, clock):
        movie_id = make_movie("Inception")

        result = await recorder.record_movie_click(movie_id, context)

        assert result.target_url == "https://t.me/cinelink/inception"
        assert result.title == "Inception"
        assert result.to_dict() == {
            "success": True,
            "telegramLink": "https://t.me/cinelink/inception",
            "title": "Inception",
        }
        count, last_clicked = movie_row(session_factory, movie_id)
        assert count == 1
        assert last_clicked == clock.now

        [click] = click_rows(session_factory)
        assert click.movie_id == movie_id
        assert click.ip_address == "203.0.113.7"
        assert click.user_agent == "Mozilla/5.0"
        assert click.referer == "https://search.example/?q=inception"
        assert click.timestamp == clock.now

    @pytest.mark.asyncio
    async def test_unknown_movie(self, recorder, context):
        with pytest.raises(NotFound):
            await recorder.record_movie_click("does-not-exist", context)

    @pytest.mark.asyncio
    async def test_inactive_movie_is_not_clickable(self, recorder, session_factory, make_movie, context):
        movie_id = make_movie("Retired", isActive=False)
        with pytest.raises(NotFound):
            await recorder.record_movie_click(movie_id, context)
        assert movie_row(session_factory, movie_id)[0] == 0
        assert click_rows(session_factory) == []

    @pytest.mark.asyncio
    async def test_event_persistence_failure_is_not_fatal(self, recorder, session_factory, make_movie, context):
        movie_id = make_movie("Inception")

        with patch.object(repository, "add_click", side_effect=OperationalError("INSERT", {}, Exception("disk full"))):
            result = await recorder.record_movie_click(movie_id, context)

        assert result.target_url.endswith("/inception")
        assert movie_row(session_factory, movie_id)[0] == 1
        assert click_rows(session_factory) == []

    @pytest.mark.asyncio
    async def test_counter_failure_is_fatal(self, recorder, session_factory, make_movie, context):
        movie_id = make_movie("Inception")

        with patch.object(
            repository, "increment_movie_clicks",
            side_effect=OperationalError("UPDATE", {}, Exception("database is locked")),
        ):
            with pytest.raises(StoreUnavailable):
                await recorder.record_movie_click(movie_id, context)

        assert click_rows(session_factory) == []

    @pytest.mark.asyncio
    async def test_invalidates_listing_families(self, session_factory, make_movie, context):
        invalidator = AsyncMock(spec=CacheInvalidator)
        recorder = ClickRecorder(session_factory, invalidator)
        movie_id = make_movie("Inception")

        await recorder.record_movie_click(movie_id, context)

        invalidator.handle_event.assert_awaited_once_with(CacheEvent.MOVIE_CLICKED, movie_id=movie_id)

    @pytest.mark.asyncio
    async def test_click_survives_dead_cache(self, session_factory, broken_cache, make_movie, context):
        recorder = ClickRecorder(session_factory, CacheInvalidator(broken_cache))
        movie_id = make_movie("Inception")
        result = await recorder.record_movie_click(movie_id, context)
        assert result.movie_id == movie_id
        assert movie_row(session_factory, movie_id)[0] == 1


class TestEpisodeClicks:

    @pytest.mark.asyncio
    async def test_counts_episode_and_parent(self, recorder, session_factory, make_movie, make_episode, context):
        series_id = make_movie("Dark", type="series", click_count=10)
        episode_id = make_episode(series_id, episode_number=3)

        result = await recorder.record_episode_click(episode_id, context)

        assert result.episode_id == episode_id
        assert result.to_dict()["watchUrl"] == f"https://watch.example/{series_id}/1/3"
        assert movie_row(session_factory, series_id)[0] == 11
        with get_db_context(session_factory) as db:
            assert db.query(Episode).filter(Episode.id == episode_id).one().click_count == 1

        [click] = click_rows(session_factory)
        assert click.movie_id == series_id

    @pytest.mark.asyncio
    async def test_unpublished_episode(self, recorder, make_movie, make_episode, context):
        series_id = make_movie("Dark", type="series")
        episode_id = make_episode(series_id, isPublished=False)
        with pytest.raises(NotFound):
            await recorder.record_episode_click(episode_id, context)

    @pytest.mark.asyncio
    async def test_purges_episode_pages_and_parent_listings(
        self, session_factory, cache, fake_redis, make_movie, make_episode, context,
    ):
        series_id = make_movie("Dark", type="series")
        episode_id = make_episode(series_id)
        reader = ReadThroughCache(cache)
        invalidator = CacheInvalidator(cache)
        catalog = CatalogService(session_factory, reader, invalidator)

        await catalog.list_episodes(series_id)
        await catalog.list_movies()
        await catalog.featured_movies()
        await reader.wait_pending()
        assert len(fake_redis.store) == 3

        await ClickRecorder(session_factory, invalidator).record_episode_click(episode_id, context)

        remaining = list(fake_redis.store)
        assert len(remaining) == 1
        assert remaining[0].startswith("featured_movies")


class TestScenario:

    @pytest.mark.asyncio
    async def test_click_is_visible_in_next_listing(self, session_factory, cache, make_movie, context):
        """A movie at 5 clicks shows 6 in the listing read right after a click."""
        movie_id = make_movie("A", click_count=5)
        reader = ReadThroughCache(cache)
        invalidator = CacheInvalidator(cache)
        catalog = CatalogService(session_factory, reader, invalidator)
        recorder = ClickRecorder(session_factory, invalidator)

        before = await catalog.list_movies()
        await reader.wait_pending()
        assert before["data"][0]["clickCount"] == 5
        assert (await catalog.list_movies())["data"][0]["clickCount"] == 5

        await recorder.record_movie_click(movie_id, context)

        after = await catalog.list_movies()
        assert after["data"][0]["clickCount"] == 6
        assert (await catalog.popular_movies())[0]["clickCount"] == 6


class TestConcurrency:

    def test_concurrent_clicks_lose_no_increments(self, session_factory, disabled_cache, make_movie):
        movie_id = make_movie("Inception", click_count=5)
        recorder = ClickRecorder(session_factory, CacheInvalidator(disabled_cache))
        threads_count = 8
        clicks_per_thread = 5
        errors = []
        barrier = threading.Barrier(threads_count)

        async def click_many(worker: int):
            for n in range(clicks_per_thread):
                context = RequestContext(user_agent="load-test", ip_address=f"10.0.{worker}.{n}")
                await recorder.record_movie_click(movie_id, context)

        def worker(index: int):
            try:
                barrier.wait()
                asyncio.run(click_many(index))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(threads_count)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        total = threads_count * clicks_per_thread
        assert movie_row(session_factory, movie_id)[0] == 5 + total
        assert len(click_rows(session_factory)) == total

    @pytest.mark.asyncio
    async def test_concurrent_tasks_lose_no_increments(self, recorder, session_factory, make_movie, context):
        movie_id = make_movie("Inception")
        await asyncio.gather(*[recorder.record_movie_click(movie_id, context) for _ in range(20)])
        assert movie_row(session_factory, movie_id)[0] == 20
