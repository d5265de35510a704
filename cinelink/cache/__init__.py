"""
CineLink Caching Layer

Read-through cache in front of the primary store with prefix-pattern
invalidation:
- RedisCache: fail-fast key-value adapter (absent store = every call misses)
- build_key: deterministic ``family:name:value|...`` keys
- ReadThroughCache: compute on miss, store with the family TTL in the background
- CacheInvalidator: event-driven family deletion on writes

Usage:
    cache = RedisCache()
    await cache.initialize()
    reader = ReadThroughCache(cache)

    key = build_key(CacheFamily.MOVIES, {"page": 1, "type": "movie"})
    data = await reader.read_through(key, CacheTTL.MOVIES, compute)

    invalidator = CacheInvalidator(cache)
    await invalidator.handle_event(CacheEvent.MOVIE_CLICKED, movie_id=movie_id)
"""

from cinelink.cache.config import CacheConfig, CacheFamily, CacheTTL, get_cache_config
from cinelink.cache.keys import build_key, family_patterns, scope_patterns
from cinelink.cache.redis_cache import RedisCache
from cinelink.cache.read_through import ReadThroughCache
from cinelink.cache.invalidation import (
    CacheEvent,
    CacheInvalidator,
    InvalidationResult,
)

__all__ = [
    # Config
    "CacheConfig",
    "CacheFamily",
    "CacheTTL",
    "get_cache_config",
    # Keys
    "build_key",
    "family_patterns",
    "scope_patterns",
    # Store
    "RedisCache",
    "ReadThroughCache",
    # Invalidation
    "CacheEvent",
    "CacheInvalidator",
    "InvalidationResult",
]
