"""
Cache Invalidation Service

Event-driven invalidation by family prefix.
Every mutation that changes what a cached view could show deletes all
entries of the families that view belongs to.

Events trigger invalidation:
- MOVIE_CREATED / UPDATED / DELETED: catalog listings, filter values and the
  movie's episode pages
- MOVIE_FEATURE_TOGGLED: featured listing only
- MOVIE_CLICKED: listings ordered or annotated by clickCount
- EPISODE_*: the parent movie's episode pages
- EPISODE_CLICKED: episode pages plus the parent's listings, since an episode
  click also bumps the parent counter

Failures are logged and swallowed. A stale read for up to one TTL is the
degraded mode, not an error for the caller.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional, Sequence

from cinelink.cache.config import CacheFamily
from cinelink.cache.keys import family_patterns, scope_patterns
from cinelink.cache.redis_cache import RedisCache


logger = logging.getLogger(__name__)


class CacheEvent(Enum):
    """Mutations that trigger cache invalidation."""

    MOVIE_CREATED = "movie_created"
    MOVIE_UPDATED = "movie_updated"
    MOVIE_DELETED = "movie_deleted"
    MOVIE_FEATURE_TOGGLED = "movie_feature_toggled"
    MOVIE_CLICKED = "movie_clicked"

    EPISODE_CREATED = "episode_created"
    EPISODE_UPDATED = "episode_updated"
    EPISODE_DELETED = "episode_deleted"
    EPISODE_CLICKED = "episode_clicked"

    MANUAL_INVALIDATE_ALL = "manual_invalidate_all"


_CATALOG_WRITE_FAMILIES = CacheFamily.CATALOG + (CacheFamily.GENRES, CacheFamily.TAGS)

_CLICK_FAMILIES = (CacheFamily.MOVIES, CacheFamily.POPULAR_MOVIES)

EVENT_FAMILIES = {
    CacheEvent.MOVIE_CREATED: _CATALOG_WRITE_FAMILIES,
    CacheEvent.MOVIE_UPDATED: _CATALOG_WRITE_FAMILIES,
    CacheEvent.MOVIE_DELETED: _CATALOG_WRITE_FAMILIES,
    CacheEvent.MOVIE_FEATURE_TOGGLED: (CacheFamily.FEATURED_MOVIES,),
    CacheEvent.MOVIE_CLICKED: _CLICK_FAMILIES,
    CacheEvent.EPISODE_CREATED: (),
    CacheEvent.EPISODE_UPDATED: (),
    CacheEvent.EPISODE_DELETED: (),
    CacheEvent.EPISODE_CLICKED: _CLICK_FAMILIES,
}

# Events that also purge the episode pages of one movie
EPISODE_SCOPED_EVENTS = {
    CacheEvent.MOVIE_CREATED,
    CacheEvent.MOVIE_UPDATED,
    CacheEvent.MOVIE_DELETED,
    CacheEvent.EPISODE_CREATED,
    CacheEvent.EPISODE_UPDATED,
    CacheEvent.EPISODE_DELETED,
    CacheEvent.EPISODE_CLICKED,
}


@dataclass
class InvalidationResult:
    """Result of a cache invalidation operation."""
    event: Optional[CacheEvent]
    success: bool
    keys_invalidated: int
    duration_ms: float
    families: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


class CacheInvalidator:
    """
    Translates mutations into family deletions on the cache adapter.

    Each family maps to the pattern ``family:*`` plus the bare ``family`` key
    used by zero-parameter reads.
    """

    def __init__(self, cache: RedisCache):
        self._cache = cache

    async def invalidate_families(self, names: Iterable[str]) -> int:
        """Delete every entry of the given families. Returns keys deleted."""
        deleted = 0
        for name in sorted(set(names)):
            pattern, exact = family_patterns(name)
            deleted += await self._cache.delete_pattern(pattern)
            if await self._cache.delete(exact):
                deleted += 1
        return deleted

    async def invalidate_scoped(self, family: str, **scope) -> int:
        """Delete the entries of `family` whose parameters include `scope`."""
        deleted = 0
        for pattern in scope_patterns(family, **scope):
            deleted += await self._cache.delete_pattern(pattern)
        return deleted

    async def handle_event(
        self,
        event: CacheEvent,
        movie_id: Optional[str] = None,
    ) -> InvalidationResult:
        """
        Invalidate every family that could hold a view touched by `event`.

        `movie_id` scopes episode invalidation to one movie's episode pages.
        """
        start_time = time.time()
        errors: List[str] = []
        keys_invalidated = 0
        families: List[str] = []

        try:
            if event == CacheEvent.MANUAL_INVALIDATE_ALL:
                if not await self._cache.flush_all() and self._cache.enabled:
                    errors.append("flush failed")
            else:
                families = list(EVENT_FAMILIES.get(event, ()))
                keys_invalidated += await self.invalidate_families(families)

                if event in EPISODE_SCOPED_EVENTS and movie_id is not None:
                    keys_invalidated += await self.invalidate_scoped(
                        CacheFamily.EPISODES, movieId=movie_id,
                    )
                    families.append(CacheFamily.EPISODES)
        except Exception as e:
            errors.append(str(e))
            logger.error(f"Cache invalidation error for {event.value}: {e}")

        duration = (time.time() - start_time) * 1000

        if keys_invalidated:
            logger.info(
                f"Invalidated {keys_invalidated} cache entries for {event.value}"
                f"{f' (movie {movie_id})' if movie_id else ''} in {duration:.2f}ms"
            )

        return InvalidationResult(
            event=event,
            success=not errors,
            keys_invalidated=keys_invalidated,
            duration_ms=duration,
            families=families,
            errors=errors,
        )

    async def invalidate(self, names: Sequence[str]) -> InvalidationResult:
        """Manual invalidation of named families, for operators."""
        start_time = time.time()
        errors: List[str] = []
        keys_invalidated = 0
        try:
            keys_invalidated = await self.invalidate_families(names)
        except Exception as e:
            errors.append(str(e))
            logger.error(f"Manual cache invalidation error for {list(names)}: {e}")

        return InvalidationResult(
            event=None,
            success=not errors,
            keys_invalidated=keys_invalidated,
            duration_ms=(time.time() - start_time) * 1000,
            families=list(names),
            errors=errors,
        )
