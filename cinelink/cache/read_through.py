"""
Read-through caching.

Every cached read goes through `ReadThroughCache.read_through`:
compute key -> try cache -> on miss run the query -> store with the family
TTL in the background -> return the fresh value.

Concurrent misses on one key each recompute by default. Recomputation is
idempotent and the last writer simply restarts the TTL. `coalesce_misses`
turns on in-process single-flight for deployments that want it.
"""

import asyncio
import inspect
import logging
from datetime import timedelta
from typing import Any, Awaitable, Callable, Dict, Set, Union

from cinelink.cache.redis_cache import RedisCache
from cinelink.cache.serialization import serialize_value, deserialize_value


logger = logging.getLogger(__name__)

Compute = Callable[[], Union[Any, Awaitable[Any]]]


class ReadThroughCache:
    """Cache-aside policy layer used by every cached read."""

    def __init__(self, cache: RedisCache, coalesce_misses: bool = False):
        self.cache = cache
        self.coalesce_misses = coalesce_misses
        self._pending_writes: Set[asyncio.Task] = set()
        self._inflight: Dict[str, asyncio.Future] = {}

    async def read_through(
        self,
        key: str,
        ttl: Union[int, timedelta],
        compute: Compute,
    ) -> Any:
        """
        Return the cached value for `key`, computing and storing it on a miss.

        The store runs as a background task: the caller never waits on it and
        a failed store never fails the read.
        """
        cached = await self.cache.get(key)
        if cached is not None:
            try:
                return deserialize_value(cached)
            except ValueError as e:
                logger.warning(f"Discarding undecodable cache entry {key}: {e}")

        if not self.coalesce_misses:
            return await self._compute_and_store(key, ttl, compute)

        inflight = self._inflight.get(key)
        if inflight is not None:
            return await asyncio.shield(inflight)

        future = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            value = await self._compute_and_store(key, ttl, compute)
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            # Mark retrieved so an unawaited failure does not warn
            future.exception()
            raise
        else:
            future.set_result(value)
            return value
        finally:
            self._inflight.pop(key, None)

    async def _compute_and_store(self, key: str, ttl, compute: Compute) -> Any:
        value = compute()
        if inspect.isawaitable(value):
            value = await value

        if self.cache.enabled:
            try:
                payload = serialize_value(value)
            except (TypeError, ValueError) as e:
                logger.warning(f"Value for {key} is not cacheable: {e}")
                return value
            self._schedule_store(key, payload, ttl)
        return value

    def _schedule_store(self, key: str, payload: bytes, ttl):
        task = asyncio.create_task(self._store(key, payload, ttl))
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)

    async def _store(self, key: str, payload: bytes, ttl):
        try:
            await self.cache.set(key, payload, ttl)
        except Exception as e:
            logger.warning(f"Background cache store failed for {key}: {e}")

    async def wait_pending(self):
        """Wait for outstanding background stores to finish."""
        while self._pending_writes:
            await asyncio.gather(*list(self._pending_writes), return_exceptions=True)

    @property
    def pending_writes(self) -> int:
        return len(self._pending_writes)
