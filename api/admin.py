"""
Admin catalog management.

Every write goes through CatalogService, which fires the matching cache
invalidation once the transaction has committed.
"""

import logging
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Body, Depends, Query
from pydantic import BaseModel, Field

from api.deps import get_analytics, get_catalog, get_scheduler
from cinelink.jobs import JobScheduler
from cinelink.services import AnalyticsEngine, CatalogService


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/admin", tags=["Admin"])


# =============================================================================
# REQUEST MODELS
# =============================================================================

class EpisodeImport(BaseModel):
    """Bulk episode payload keyed by (season, episodeNumber)."""
    episodes: List[Dict[str, Any]] = Field(default_factory=list)


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("/dashboard")
async def dashboard(analytics: AnalyticsEngine = Depends(get_analytics)):
    return {"success": True, "data": await analytics.admin_dashboard()}


@router.get("/movies")
async def list_movies(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    type: Optional[Literal["movie", "series"]] = None,
    search: Optional[str] = None,
    is_active: Optional[bool] = Query(None, alias="isActive"),
    catalog: CatalogService = Depends(get_catalog),
):
    result = await catalog.admin_list_movies(
        page=page, limit=limit, type=type, search=search, is_active=is_active,
    )
    return {"success": True, **result}


@router.post("/movies", status_code=201)
async def create_movie(
    data: Dict[str, Any] = Body(...),
    catalog: CatalogService = Depends(get_catalog),
):
    """Create a movie. A series may embed its initial `episodes` list."""
    data = dict(data)
    episodes = data.pop("episodes", None)
    movie = await catalog.create_movie(data, episodes=episodes if isinstance(episodes, list) else None)
    return {"success": True, "message": "Movie created successfully", "data": movie}


@router.put("/movies/{movie_id}")
async def update_movie(
    movie_id: str,
    data: Dict[str, Any] = Body(...),
    catalog: CatalogService = Depends(get_catalog),
):
    data = dict(data)
    episodes = data.pop("episodes", None)
    movie = await catalog.update_movie(
        movie_id, data, episodes=episodes if isinstance(episodes, list) else None,
    )
    return {"success": True, "message": "Movie updated successfully", "data": movie}


@router.delete("/movies/{movie_id}")
async def delete_movie(movie_id: str, catalog: CatalogService = Depends(get_catalog)):
    return await catalog.delete_movie(movie_id)


@router.put("/movies/{movie_id}/feature")
async def toggle_featured(movie_id: str, catalog: CatalogService = Depends(get_catalog)):
    return await catalog.toggle_featured(movie_id)


@router.post("/movies/{movie_id}/reset-clicks")
async def reset_clicks(movie_id: str, catalog: CatalogService = Depends(get_catalog)):
    return await catalog.reset_clicks(movie_id)


@router.post("/movies/{movie_id}/episodes/import")
async def import_episodes(
    movie_id: str,
    payload: EpisodeImport,
    catalog: CatalogService = Depends(get_catalog),
):
    return {"success": True, "data": await catalog.upsert_episodes(movie_id, payload.episodes)}


@router.post("/jobs/rollup")
def run_rollup(scheduler: JobScheduler = Depends(get_scheduler)):
    """Run the daily rollup now, outside its schedule. 409 while a run is in progress."""
    result = scheduler.run_now()
    return {"success": result.success, "data": result.to_dict()}
