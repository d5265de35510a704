"""
Admin analytics endpoints.

Window and limit validation happens in the engine, which raises
AggregationError (mapped to 400) for malformed input.
"""

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends

from api.deps import get_analytics
from cinelink.services import AnalyticsEngine


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/analytics", tags=["Analytics"])


@router.get("/overview")
async def overview(days: int = 30, analytics: AnalyticsEngine = Depends(get_analytics)):
    return {"success": True, "data": await analytics.overview(days=days)}


@router.get("/movies/top")
async def top_movies(
    limit: int = 20,
    type: Optional[Literal["movie", "series"]] = None,
    days: Optional[int] = None,
    analytics: AnalyticsEngine = Depends(get_analytics),
):
    return {"success": True, "data": await analytics.top_movies(limit=limit, type=type, days=days)}


@router.get("/clicks/hourly")
async def hourly_clicks(days: int = 7, analytics: AnalyticsEngine = Depends(get_analytics)):
    return {"success": True, "data": await analytics.hourly_clicks(days=days)}


@router.get("/clicks/daily")
async def daily_clicks(
    days: int = 30,
    movie_id: Optional[str] = None,
    analytics: AnalyticsEngine = Depends(get_analytics),
):
    return {"success": True, "data": await analytics.daily_clicks(days=days, movie_id=movie_id)}


@router.get("/movies/{movie_id}/stats")
async def movie_stats(movie_id: str, days: int = 30, analytics: AnalyticsEngine = Depends(get_analytics)):
    return {"success": True, "data": await analytics.movie_stats(movie_id, days=days)}


@router.get("/movies/{movie_id}/referrers")
async def movie_referrers(
    movie_id: str,
    limit: int = 10,
    days: Optional[int] = None,
    analytics: AnalyticsEngine = Depends(get_analytics),
):
    return {"success": True, "data": await analytics.top_referrers(movie_id, limit=limit, days=days)}
