"""
Redis Cache Adapter

Thin async wrapper over a Redis key-value store:
- get / set-with-TTL / delete / delete-by-pattern / flush
- Graceful degradation: returns a miss or no-op when Redis is not configured
  or unreachable, never raises to callers
- Circuit breaker so a dead store is skipped instead of retried per request
- Statistics for monitoring

The adapter deals in bytes. Serialization is the read-through layer's job.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, List, Optional, Union
from contextlib import asynccontextmanager

from redis.asyncio import Redis, ConnectionPool
from redis.exceptions import RedisError

from cinelink.cache.config import CacheConfig, get_cache_config
from cinelink.exceptions import CacheUnavailable


logger = logging.getLogger(__name__)

TTL = Union[int, timedelta]

DELETE_BATCH_SIZE = 500


@dataclass
class CacheStats:
    """Cache operation statistics."""
    hits: int = 0
    misses: int = 0
    sets: int = 0
    deletes: int = 0
    errors: int = 0
    latency_samples: List[float] = field(default_factory=list)

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    @property
    def avg_latency_ms(self) -> float:
        if not self.latency_samples:
            return 0.0
        recent = self.latency_samples[-100:]
        return sum(recent) / len(recent) * 1000

    def record_latency(self, seconds: float):
        """Record a latency sample."""
        self.latency_samples.append(seconds)
        if len(self.latency_samples) > 1000:
            self.latency_samples = self.latency_samples[-1000:]


@dataclass
class CircuitBreakerState:
    """Circuit breaker state tracking."""
    failures: int = 0
    last_failure: float = 0.0
    is_open: bool = False
    opened_at: float = 0.0


class CircuitBreaker:
    """
    Circuit breaker for the Redis connection.

    After `threshold` consecutive failures the circuit opens and every
    operation short-circuits to a miss until `timeout` seconds have passed,
    then one trial request is let through to test the store again.
    """

    def __init__(
        self,
        threshold: int = 5,
        timeout: int = 30,
    ):
        self.threshold = threshold
        self.timeout = timeout
        self.state = CircuitBreakerState()

    def is_available(self) -> bool:
        """Check if circuit allows requests."""
        if not self.state.is_open:
            return True

        if time.time() - self.state.opened_at >= self.timeout:
            # Half-open: allow one trial request through
            self.state.is_open = False
            self.state.failures = self.threshold - 1
            logger.info("Cache circuit breaker half-open, probing Redis")
            return True

        return False

    def record_success(self):
        self.state.failures = 0
        self.state.is_open = False

    def record_failure(self):
        self.state.failures += 1
        self.state.last_failure = time.time()

        if self.state.failures >= self.threshold and not self.state.is_open:
            self.state.is_open = True
            self.state.opened_at = time.time()
            logger.warning(
                f"Cache circuit breaker opened after {self.state.failures} failures. "
                f"Will retry in {self.timeout} seconds."
            )


class RedisCache:
    """
    Redis-backed cache store with fail-fast degradation.

    Construct one instance at process start, call `initialize()`, pass it to
    whatever needs it and `close()` it at shutdown. A client can be injected
    directly, which skips connection setup.
    """

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        client: Optional[Redis] = None,
    ):
        self.config = config or get_cache_config()
        self._pool: Optional[ConnectionPool] = None
        self._redis: Optional[Redis] = client
        self._owns_client = client is None
        self._circuit_breaker = CircuitBreaker(
            threshold=self.config.circuit_breaker_threshold,
            timeout=self.config.circuit_breaker_timeout,
        ) if self.config.circuit_breaker_enabled else None
        self._stats = CacheStats()
        self._initialized = client is not None
        self._lock = asyncio.Lock()

    @property
    def enabled(self) -> bool:
        """True when a store is configured (reachable or not)."""
        if self._redis is not None and not self._owns_client:
            return self.config.enabled
        return self.config.is_configured

    async def initialize(self):
        """
        Create the connection pool and ping the store.

        Never raises: an unreachable store leaves the adapter in degraded
        mode, and later operations reconnect once the breaker lets them.
        """
        if self._initialized:
            return

        if not self.enabled:
            logger.warning("REDIS_URL not provided or cache disabled, caching disabled")
            return

        async with self._lock:
            if self._initialized:
                return

            try:
                self._pool = ConnectionPool.from_url(
                    self.config.redis_url,
                    max_connections=self.config.redis_max_connections,
                    socket_timeout=self.config.redis_socket_timeout,
                    socket_connect_timeout=self.config.redis_connect_timeout,
                    decode_responses=False,
                )
                self._redis = Redis(connection_pool=self._pool)
                self._initialized = True
            except Exception as e:
                logger.error(f"Failed to configure Redis client: {e}")
                return

        try:
            await self._redis.ping()
            self._record_success()
            logger.info(f"Redis cache initialized: {self._safe_url()}")
        except Exception as e:
            self._record_failure()
            logger.warning(f"Redis ping failed: {e}. Cache degraded to pass-through.")

    async def close(self):
        """Close the connection pool."""
        if self._redis is not None and self._owns_client:
            try:
                await self._redis.aclose()
            except Exception as e:
                logger.debug(f"Error closing Redis client: {e}")
            self._redis = None
        if self._pool is not None:
            await self._pool.disconnect()
            self._pool = None
        if self._owns_client:
            self._initialized = False
        logger.info("Redis cache closed")

    def _safe_url(self) -> str:
        url = self.config.redis_url or ""
        if "@" in url:
            scheme, rest = url.split("://", 1) if "://" in url else ("", url)
            return f"{scheme}://***@{rest.split('@', 1)[1]}"
        return url

    def _record_success(self):
        if self._circuit_breaker:
            self._circuit_breaker.record_success()

    def _record_failure(self):
        if self._circuit_breaker:
            self._circuit_breaker.record_failure()

    @asynccontextmanager
    async def _connection(self):
        """Yield the client, or raise CacheUnavailable when there is none."""
        if not self.enabled:
            raise CacheUnavailable("Cache not configured")

        if not self._initialized:
            await self.initialize()
        if self._redis is None:
            raise CacheUnavailable("Redis client not available")

        if self._circuit_breaker and not self._circuit_breaker.is_available():
            raise CacheUnavailable("Circuit breaker is open")

        try:
            yield self._redis
            self._record_success()
        except (RedisError, OSError) as e:
            self._record_failure()
            raise CacheUnavailable(str(e)) from e

    # =========================================================================
    # Core Operations
    # =========================================================================

    async def get(self, key: str) -> Optional[bytes]:
        """
        Get raw bytes from cache.

        Returns None on a miss, when the cache is disabled, or when Redis is
        unavailable.
        """
        if not self.enabled:
            return None

        start_time = time.time()
        try:
            async with self._connection() as redis:
                data = await redis.get(key)
        except CacheUnavailable as e:
            self._stats.errors += 1
            logger.warning(f"Cache get error for {key}: {e}")
            return None

        self._stats.record_latency(time.time() - start_time)
        if data is None:
            self._stats.misses += 1
            logger.debug(f"Cache MISS: {key}")
            return None

        self._stats.hits += 1
        logger.debug(f"Cache HIT: {key}")
        return data

    async def set(self, key: str, value: Union[bytes, str], ttl: TTL) -> bool:
        """Store bytes with a TTL. Returns True on success, False otherwise."""
        if not self.enabled:
            return False

        start_time = time.time()
        try:
            async with self._connection() as redis:
                await redis.setex(key, ttl, value)
        except CacheUnavailable as e:
            self._stats.errors += 1
            logger.warning(f"Cache set error for {key}: {e}")
            return False

        self._stats.record_latency(time.time() - start_time)
        self._stats.sets += 1
        ttl_seconds = int(ttl.total_seconds()) if isinstance(ttl, timedelta) else ttl
        logger.debug(f"Cache SET: {key} (TTL: {ttl_seconds}s)")
        return True

    async def delete(self, key: str) -> bool:
        """Delete a single key. Returns True if a key was removed."""
        if not self.enabled:
            return False

        try:
            async with self._connection() as redis:
                removed = await redis.delete(key)
        except CacheUnavailable as e:
            self._stats.errors += 1
            logger.warning(f"Cache delete error for {key}: {e}")
            return False

        if removed:
            self._stats.deletes += removed
            logger.debug(f"Cache DELETE: {key}")
        return removed > 0

    async def delete_pattern(self, pattern: str) -> int:
        """
        Delete all keys matching a glob pattern. Returns count deleted.

        Keys are discovered with SCAN and removed in DEL batches rather than
        one round-trip per key.
        """
        if not self.enabled:
            return 0

        try:
            async with self._connection() as redis:
                keys = []
                async for key in redis.scan_iter(match=pattern, count=self.config.scan_count):
                    keys.append(key)

                deleted = 0
                for i in range(0, len(keys), DELETE_BATCH_SIZE):
                    deleted += await redis.delete(*keys[i:i + DELETE_BATCH_SIZE])
        except CacheUnavailable as e:
            self._stats.errors += 1
            logger.warning(f"Cache delete pattern error for {pattern}: {e}")
            return 0

        if deleted:
            self._stats.deletes += deleted
            logger.info(f"Cache DELETE: {pattern} ({deleted} keys)")
        return deleted

    async def flush_all(self) -> bool:
        """Drop every entry in the cache database."""
        if not self.enabled:
            return False

        try:
            async with self._connection() as redis:
                await redis.flushdb()
        except CacheUnavailable as e:
            self._stats.errors += 1
            logger.error(f"Error clearing cache: {e}")
            return False

        logger.info("Cleared all cache entries")
        return True

    async def exists(self, key: str) -> bool:
        """Check if key exists in cache."""
        if not self.enabled:
            return False

        try:
            async with self._connection() as redis:
                return await redis.exists(key) > 0
        except CacheUnavailable:
            return False

    async def ttl(self, key: str) -> int:
        """Remaining TTL in seconds. -1 if no TTL, -2 if missing or unavailable."""
        if not self.enabled:
            return -2

        try:
            async with self._connection() as redis:
                return await redis.ttl(key)
        except CacheUnavailable:
            return -2

    # =========================================================================
    # Statistics and Health
    # =========================================================================

    def get_stats(self) -> Dict:
        """Get cache statistics."""
        return {
            "enabled": self.enabled,
            "initialized": self._initialized,
            "hits": self._stats.hits,
            "misses": self._stats.misses,
            "sets": self._stats.sets,
            "deletes": self._stats.deletes,
            "errors": self._stats.errors,
            "hit_rate_percent": round(self._stats.hit_rate * 100, 2),
            "avg_latency_ms": round(self._stats.avg_latency_ms, 2),
            "circuit_breaker_open": (
                self._circuit_breaker.state.is_open
                if self._circuit_breaker else False
            ),
        }

    async def health_check(self) -> Dict:
        """Perform health check."""
        if not self.enabled:
            return {"healthy": True, "status": "disabled"}

        start = time.time()
        try:
            async with self._connection() as redis:
                await redis.ping()
        except CacheUnavailable as e:
            return {
                "healthy": False,
                "status": "error",
                "error": str(e),
                "stats": self.get_stats(),
            }

        return {
            "healthy": True,
            "status": "connected",
            "latency_ms": round((time.time() - start) * 1000, 2),
            "stats": self.get_stats(),
        }
