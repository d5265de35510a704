"""
Episode endpoints: public listing and click-through, admin writes.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query

from api.deps import get_catalog, get_clicks, request_context
from cinelink.services import CatalogService, ClickRecorder, RequestContext


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/episodes", tags=["Episodes"])


@router.get("/movies/{movie_id}/episodes")
async def list_episodes(
    movie_id: str,
    season: Optional[int] = Query(None, ge=1),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    catalog: CatalogService = Depends(get_catalog),
):
    result = await catalog.list_episodes(movie_id, season=season, page=page, limit=limit)
    return {"success": True, **result}


@router.post("/movies/{movie_id}/episodes", status_code=201)
async def create_episode(
    movie_id: str,
    data: Dict[str, Any] = Body(...),
    catalog: CatalogService = Depends(get_catalog),
):
    return {"success": True, "data": await catalog.create_episode(movie_id, data)}


@router.get("/{episode_id}")
async def get_episode(episode_id: str, catalog: CatalogService = Depends(get_catalog)):
    return {"success": True, "data": await catalog.get_episode(episode_id)}


@router.post("/{episode_id}/click")
async def click_episode(
    episode_id: str,
    context: RequestContext = Depends(request_context),
    clicks: ClickRecorder = Depends(get_clicks),
):
    result = await clicks.record_episode_click(episode_id, context)
    return result.to_dict()


@router.put("/{episode_id}")
async def update_episode(
    episode_id: str,
    data: Dict[str, Any] = Body(...),
    catalog: CatalogService = Depends(get_catalog),
):
    return {"success": True, "data": await catalog.update_episode(episode_id, data)}


@router.delete("/{episode_id}")
async def delete_episode(episode_id: str, catalog: CatalogService = Depends(get_catalog)):
    return await catalog.delete_episode(episode_id)
