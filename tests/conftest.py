"""
Pytest Configuration and Shared Fixtures

Provides common fixtures and configuration for all test modules:
- In-memory async Redis double (and a permanently unreachable one)
- SQLite database per test
- Frozen clock
- Catalog seeding helpers
"""

import fnmatch
from datetime import datetime, timedelta
from typing import Any, Dict

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from cinelink.cache import CacheConfig, CacheInvalidator, ReadThroughCache, RedisCache
from cinelink.database import create_db_engine, get_db_context, init_db, make_session_factory
from cinelink.database import repository


# ============================================================================
# Redis doubles
# ============================================================================

def redis_glob_match(pattern: str, key: str) -> bool:
    """Redis-style glob match; backslash escapes the next character."""
    translated = []
    i = 0
    while i < len(pattern):
        ch = pattern[i]
        if ch == "\\" and i + 1 < len(pattern):
            translated.append(f"[{pattern[i + 1]}]")
            i += 2
            continue
        translated.append(ch)
        i += 1
    return fnmatch.fnmatchcase(key, "".join(translated))


def _key(key) -> str:
    return key.decode() if isinstance(key, bytes) else key


class FakeRedis:
    """In-memory stand-in for redis.asyncio.Redis with decode_responses=False."""

    def __init__(self):
        self.store: Dict[str, bytes] = {}
        self.ttls: Dict[str, int] = {}
        self.calls = []

    async def ping(self):
        return True

    async def get(self, key):
        self.calls.append(("get", key))
        return self.store.get(_key(key))

    async def setex(self, key, ttl, value):
        self.calls.append(("setex", key))
        if isinstance(value, str):
            value = value.encode()
        seconds = int(ttl.total_seconds()) if isinstance(ttl, timedelta) else int(ttl)
        self.store[_key(key)] = value
        self.ttls[_key(key)] = seconds
        return True

    async def delete(self, *keys):
        self.calls.append(("delete", keys))
        removed = 0
        for key in keys:
            key = _key(key)
            if key in self.store:
                del self.store[key]
                self.ttls.pop(key, None)
                removed += 1
        return removed

    async def scan_iter(self, match=None, count=None):
        for key in list(self.store):
            if match is None or redis_glob_match(match, key):
                yield key.encode()

    async def exists(self, *keys):
        return sum(1 for key in keys if _key(key) in self.store)

    async def ttl(self, key):
        return self.ttls.get(_key(key), -2)

    async def flushdb(self):
        self.store.clear()
        self.ttls.clear()
        return True

    async def aclose(self):
        return None


class BrokenRedis:
    """Every command fails as if the server were unreachable."""

    def __init__(self):
        self.attempts = 0

    def _fail(self):
        self.attempts += 1
        raise RedisConnectionError("Error 111 connecting to localhost:6379. Connection refused.")

    async def ping(self):
        self._fail()

    async def get(self, key):
        self._fail()

    async def setex(self, key, ttl, value):
        self._fail()

    async def delete(self, *keys):
        self._fail()

    async def scan_iter(self, match=None, count=None):
        self._fail()
        yield  # pragma: no cover

    async def exists(self, *keys):
        self._fail()

    async def ttl(self, key):
        self._fail()

    async def flushdb(self):
        self._fail()

    async def aclose(self):
        return None


def make_cache_config(**overrides) -> CacheConfig:
    values = dict(
        redis_url="redis://cache.test:6379/0",
        enabled=True,
        circuit_breaker_enabled=False,
    )
    values.update(overrides)
    return CacheConfig(**values)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def cache(fake_redis):
    """Enabled cache adapter backed by the in-memory double."""
    return RedisCache(config=make_cache_config(), client=fake_redis)


@pytest.fixture
def broken_cache():
    """Cache adapter whose store is configured but unreachable."""
    return RedisCache(config=make_cache_config(), client=BrokenRedis())


@pytest.fixture
def disabled_cache():
    """Cache adapter with no store configured."""
    return RedisCache(config=make_cache_config(redis_url=None, enabled=False))


@pytest.fixture
def reader(cache):
    return ReadThroughCache(cache)


@pytest.fixture
def invalidator(cache):
    return CacheInvalidator(cache)


# ============================================================================
# Database
# ============================================================================

@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite database, shared safely across threads."""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'cinelink_test.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FrozenClock(datetime(2024, 1, 3, 0, 0, 0))


# ============================================================================
# Seeding helpers
# ============================================================================

def movie_payload(title: str = "Inception", **overrides) -> Dict[str, Any]:
    data = {
        "title": title,
        "type": "movie",
        "year": 2010,
        "genre": ["Sci-Fi", "Thriller"],
        "tags": ["dreams"],
        "telegramLink": f"https://t.me/cinelink/{title.lower().replace(' ', '-')}",
    }
    data.update(overrides)
    return data


@pytest.fixture
def make_movie(session_factory):
    """Insert a movie directly through the repository and return its id."""

    def _make(title: str = "Inception", click_count: int = 0, **overrides) -> str:
        with get_db_context(session_factory) as db:
            movie = repository.create_movie(db, movie_payload(title, **overrides))
            movie.click_count = click_count
            db.flush()
            return movie.id

    return _make


@pytest.fixture
def make_episode(session_factory):
    def _make(movie_id: str, episode_number: int = 1, season: int = 1, **overrides) -> str:
        data = {
            "season": season,
            "episodeNumber": episode_number,
            "title": f"Episode {episode_number}",
            "watchUrl": f"https://watch.example/{movie_id}/{season}/{episode_number}",
        }
        data.update(overrides)
        with get_db_context(session_factory) as db:
            return repository.create_episode(db, movie_id, data).id

    return _make
