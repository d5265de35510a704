"""
Cache Management API

Provides endpoints for cache monitoring and manual operations.

Endpoints:
- Health check for monitoring/alerting
- Statistics for dashboard insights
- Manual invalidation of a family, or of everything
"""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from api.deps import get_cache, get_invalidator
from cinelink.cache import CacheEvent, CacheInvalidator, RedisCache


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/cache", tags=["Cache Management"])


# =============================================================================
# RESPONSE MODELS
# =============================================================================

class CacheHealthResponse(BaseModel):
    """Cache health check response."""
    status: str = Field(..., description="connected, disabled or error")
    healthy: bool
    backend: str = Field(default="redis", description="Cache backend type")
    latency_ms: Optional[float] = None
    error: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class CacheStatsResponse(BaseModel):
    """Cache statistics response."""
    enabled: bool
    initialized: bool
    hits: int
    misses: int
    sets: int
    deletes: int
    errors: int
    hit_rate_percent: float
    avg_latency_ms: float
    circuit_breaker_open: bool


class InvalidationResponse(BaseModel):
    """Cache invalidation response."""
    success: bool
    keys_invalidated: int
    duration_ms: float
    families: List[str] = []
    errors: List[str] = []


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("/health", response_model=CacheHealthResponse)
async def cache_health_check(cache: RedisCache = Depends(get_cache)):
    """
    Check cache infrastructure health.

    A disabled cache is healthy: the catalog works without it.
    """
    health = await cache.health_check()
    return CacheHealthResponse(
        status=health["status"],
        healthy=health["healthy"],
        latency_ms=health.get("latency_ms"),
        error=health.get("error"),
    )


@router.get("/stats", response_model=CacheStatsResponse)
def get_cache_stats(cache: RedisCache = Depends(get_cache)):
    """
    Get current cache statistics.

    Note: Stats are reset on application restart.
    """
    return CacheStatsResponse(**cache.get_stats())


@router.post("/invalidate/family/{family}", response_model=InvalidationResponse)
async def invalidate_family(family: str, invalidator: CacheInvalidator = Depends(get_invalidator)):
    """
    Invalidate every entry of one family.

    Use this to force-refresh a view after manual data corrections.
    """
    result = await invalidator.invalidate([family])
    return InvalidationResponse(
        success=result.success,
        keys_invalidated=result.keys_invalidated,
        duration_ms=result.duration_ms,
        families=result.families,
        errors=result.errors,
    )


@router.post("/invalidate/all", response_model=InvalidationResponse)
async def invalidate_all_cache(invalidator: CacheInvalidator = Depends(get_invalidator)):
    """
    Invalidate ALL cache data.

    CAUTION: This flushes the whole cache store and will temporarily
    degrade performance until caches are repopulated.
    """
    result = await invalidator.handle_event(CacheEvent.MANUAL_INVALIDATE_ALL)
    if not result.success:
        logger.error(f"Failed to flush cache: {result.errors}")
    return InvalidationResponse(
        success=result.success,
        keys_invalidated=result.keys_invalidated,
        duration_ms=result.duration_ms,
        errors=result.errors,
    )
