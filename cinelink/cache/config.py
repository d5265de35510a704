"""
Cache Configuration

Centralized configuration for the caching layer.
Families name the groups of cache entries that are invalidated together;
TTLs reflect how volatile each family is against the cost of recomputing it.
"""

import os
from dataclasses import dataclass, field
from datetime import timedelta
from functools import lru_cache
from typing import Optional


class CacheFamily:
    """Resource families used as cache key prefixes."""

    MOVIES = "movies"
    FEATURED_MOVIES = "featured_movies"
    POPULAR_MOVIES = "popular_movies"
    EPISODES = "episodes"
    GENRES = "genres"
    TAGS = "tags"

    ANALYTICS_OVERVIEW = "analytics_overview"
    ANALYTICS_TOP_MOVIES = "analytics_top_movies"
    ANALYTICS_HOURLY_CLICKS = "analytics_hourly_clicks"
    ANALYTICS_DAILY_CLICKS = "analytics_daily_clicks"
    ANALYTICS_REFERRERS = "analytics_referrers"
    ANALYTICS_MOVIE_STATS = "analytics_movie_stats"

    CLIENT_DASHBOARD = "client_dashboard"
    CLIENT_MOVIES_ANALYTICS = "client_movies_analytics"

    # Every family a catalog entity can appear in
    CATALOG = (MOVIES, FEATURED_MOVIES, POPULAR_MOVIES)


@dataclass(frozen=True)
class CacheTTL:
    """
    Cache TTL configuration by family.

    Listings are cheap to recompute and change on every click, so they expire
    quickly. Aggregations over the click log are expensive and nobody needs
    them to the second. Distinct genre/tag values are nearly static.
    """

    MOVIES: timedelta = timedelta(minutes=5)
    FEATURED_MOVIES: timedelta = timedelta(minutes=10)
    POPULAR_MOVIES: timedelta = timedelta(minutes=5)
    EPISODES: timedelta = timedelta(minutes=5)
    FILTER_VALUES: timedelta = timedelta(hours=1)

    ANALYTICS_OVERVIEW: timedelta = timedelta(minutes=10)
    ANALYTICS_TOP_MOVIES: timedelta = timedelta(minutes=5)
    ANALYTICS_HOURLY_CLICKS: timedelta = timedelta(minutes=30)
    ANALYTICS_DAILY_CLICKS: timedelta = timedelta(minutes=10)
    ANALYTICS_REFERRERS: timedelta = timedelta(minutes=10)
    ANALYTICS_MOVIE_STATS: timedelta = timedelta(minutes=5)

    # Client views are expected to be near real-time
    CLIENT_DASHBOARD: timedelta = timedelta(minutes=5)
    CLIENT_MOVIES_ANALYTICS: timedelta = timedelta(minutes=2)

    DEFAULT: timedelta = timedelta(minutes=5)

    @classmethod
    def for_family(cls, family: str) -> timedelta:
        """Get TTL for a cache family."""
        mapping = {
            CacheFamily.MOVIES: cls.MOVIES,
            CacheFamily.FEATURED_MOVIES: cls.FEATURED_MOVIES,
            CacheFamily.POPULAR_MOVIES: cls.POPULAR_MOVIES,
            CacheFamily.EPISODES: cls.EPISODES,
            CacheFamily.GENRES: cls.FILTER_VALUES,
            CacheFamily.TAGS: cls.FILTER_VALUES,
            CacheFamily.ANALYTICS_OVERVIEW: cls.ANALYTICS_OVERVIEW,
            CacheFamily.ANALYTICS_TOP_MOVIES: cls.ANALYTICS_TOP_MOVIES,
            CacheFamily.ANALYTICS_HOURLY_CLICKS: cls.ANALYTICS_HOURLY_CLICKS,
            CacheFamily.ANALYTICS_DAILY_CLICKS: cls.ANALYTICS_DAILY_CLICKS,
            CacheFamily.ANALYTICS_REFERRERS: cls.ANALYTICS_REFERRERS,
            CacheFamily.ANALYTICS_MOVIE_STATS: cls.ANALYTICS_MOVIE_STATS,
            CacheFamily.CLIENT_DASHBOARD: cls.CLIENT_DASHBOARD,
            CacheFamily.CLIENT_MOVIES_ANALYTICS: cls.CLIENT_MOVIES_ANALYTICS,
        }
        return mapping.get(family, cls.DEFAULT)


def _env_float(name: str, default: str) -> float:
    return float(os.getenv(name, default))


@dataclass
class CacheConfig:
    """
    Main cache configuration.

    Settings can be overridden via environment variables:
    - REDIS_URL: Cache store location. Unset means caching is disabled.
    - CACHE_ENABLED: Global kill switch
    - REDIS_CONNECT_TIMEOUT / REDIS_SOCKET_TIMEOUT: Seconds, kept short so an
      unreachable store degrades to a miss instead of slowing requests down
    """

    redis_url: Optional[str] = field(default_factory=lambda: os.getenv("REDIS_URL") or None)

    enabled: bool = field(default_factory=lambda: os.getenv(
        "CACHE_ENABLED",
        "true"
    ).lower() == "true")

    redis_max_connections: int = field(default_factory=lambda: int(os.getenv(
        "REDIS_MAX_CONNECTIONS",
        "20"
    )))
    redis_connect_timeout: float = field(default_factory=lambda: _env_float(
        "REDIS_CONNECT_TIMEOUT",
        "0.25"
    ))
    redis_socket_timeout: float = field(default_factory=lambda: _env_float(
        "REDIS_SOCKET_TIMEOUT",
        "0.5"
    ))

    # Circuit breaker: stop talking to a dead store for a while
    circuit_breaker_enabled: bool = field(default_factory=lambda: os.getenv(
        "CACHE_CIRCUIT_BREAKER_ENABLED",
        "true"
    ).lower() == "true")
    circuit_breaker_threshold: int = field(default_factory=lambda: int(os.getenv(
        "CACHE_CIRCUIT_BREAKER_THRESHOLD",
        "5"
    )))
    circuit_breaker_timeout: int = field(default_factory=lambda: int(os.getenv(
        "CACHE_CIRCUIT_BREAKER_TIMEOUT",
        "30"
    )))

    # SCAN batch size used when expanding invalidation patterns
    scan_count: int = 200

    @property
    def is_configured(self) -> bool:
        return self.enabled and bool(self.redis_url)


@lru_cache(maxsize=1)
def get_cache_config() -> CacheConfig:
    """Get cached cache configuration."""
    return CacheConfig()
