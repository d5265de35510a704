"""
Client-facing analytics: near real-time counts for catalog owners.
"""

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query

from api.deps import get_analytics
from cinelink.services import AnalyticsEngine


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/client", tags=["Client"])


@router.get("/dashboard")
async def dashboard(analytics: AnalyticsEngine = Depends(get_analytics)):
    return {"success": True, "data": await analytics.client_dashboard()}


@router.get("/movies/analytics")
async def movies_analytics(
    page: int = 1,
    limit: int = 20,
    sort_by: str = Query("clickCount", alias="sortBy"),
    sort_order: Literal["asc", "desc"] = Query("desc", alias="sortOrder"),
    type: Optional[Literal["movie", "series"]] = None,
    search: Optional[str] = None,
    analytics: AnalyticsEngine = Depends(get_analytics),
):
    result = await analytics.client_movies_analytics(
        page=page, limit=limit, sort_by=sort_by, sort_order=sort_order, type=type, search=search,
    )
    return {"success": True, **result}


@router.get("/movies/{movie_id}/clicks")
async def movie_clicks(
    movie_id: str,
    page: int = 1,
    limit: int = 50,
    analytics: AnalyticsEngine = Depends(get_analytics),
):
    result = await analytics.movie_click_log(movie_id, page=page, limit=limit)
    return {"success": True, **result}
