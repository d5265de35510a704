"""
Public catalog endpoints.
"""

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query

from api.deps import get_catalog, get_clicks, request_context
from cinelink.services import CatalogService, ClickRecorder, RequestContext


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/movies", tags=["Movies"])

MovieTypeParam = Optional[Literal["movie", "series"]]


@router.get("")
async def list_movies(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    type: MovieTypeParam = None,
    genre: Optional[str] = None,
    tag: Optional[str] = None,
    search: Optional[str] = None,
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_order: Literal["asc", "desc"] = Query("desc", alias="sortOrder"),
    catalog: CatalogService = Depends(get_catalog),
):
    result = await catalog.list_movies(
        page=page, limit=limit, type=type, genre=genre, tag=tag, search=search,
        sort_by=sort_by, sort_order=sort_order,
    )
    return {"success": True, **result}


@router.get("/featured")
async def featured_movies(
    limit: int = Query(10, ge=1, le=100),
    catalog: CatalogService = Depends(get_catalog),
):
    return {"success": True, "data": await catalog.featured_movies(limit=limit)}


@router.get("/popular")
async def popular_movies(
    limit: int = Query(10, ge=1, le=100),
    type: MovieTypeParam = None,
    catalog: CatalogService = Depends(get_catalog),
):
    return {"success": True, "data": await catalog.popular_movies(limit=limit, type=type)}


@router.get("/filters/genres")
async def genres(catalog: CatalogService = Depends(get_catalog)):
    return {"success": True, "data": await catalog.genres()}


@router.get("/filters/tags")
async def tags(catalog: CatalogService = Depends(get_catalog)):
    return {"success": True, "data": await catalog.tags()}


@router.get("/slug/{slug}")
async def get_movie_by_slug(slug: str, catalog: CatalogService = Depends(get_catalog)):
    return {"success": True, "data": await catalog.get_movie_by_slug(slug)}


@router.get("/{movie_id}")
async def get_movie(movie_id: str, catalog: CatalogService = Depends(get_catalog)):
    return {"success": True, "data": await catalog.get_movie(movie_id)}


@router.post("/{movie_id}/click")
async def click_movie(
    movie_id: str,
    context: RequestContext = Depends(request_context),
    clicks: ClickRecorder = Depends(get_clicks),
):
    """Record a click-through and hand back the outbound link."""
    result = await clicks.record_movie_click(movie_id, context)
    return result.to_dict()
