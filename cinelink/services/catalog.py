"""
Catalog Service

Public listings are served through the read-through cache; admin mutations
write to the primary store and then fire the matching invalidation event.
Invalidation always runs after the transaction has committed, so a reader
that misses right after a mutation recomputes from committed data.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import sessionmaker

from cinelink.cache.config import CacheFamily, CacheTTL
from cinelink.cache.invalidation import CacheEvent, CacheInvalidator
from cinelink.cache.keys import build_key
from cinelink.cache.read_through import ReadThroughCache
from cinelink.database import repository
from cinelink.database.models import MovieType
from cinelink.database.session import get_db_context
from cinelink.exceptions import NotFound


logger = logging.getLogger(__name__)


class CatalogService:
    """Movie and episode reads and writes."""

    def __init__(
        self,
        session_factory: sessionmaker,
        reader: ReadThroughCache,
        invalidator: CacheInvalidator,
    ):
        self._session_factory = session_factory
        self._reader = reader
        self._invalidator = invalidator

    async def _cached(self, family: str, params: Dict[str, Any], compute):
        key = build_key(family, params)
        return await self._reader.read_through(key, CacheTTL.for_family(family), compute)

    # =========================================================================
    # Cached reads
    # =========================================================================

    async def list_movies(
        self,
        page: int = 1,
        limit: int = 20,
        type: Optional[str] = None,
        genre: Optional[str] = None,
        tag: Optional[str] = None,
        search: Optional[str] = None,
        sort_by: str = "createdAt",
        sort_order: str = "desc",
    ) -> Dict[str, Any]:
        """Active movies, filtered and paginated."""

        def compute():
            with get_db_context(self._session_factory) as db:
                movies, total = repository.list_movies(
                    db, page=page, limit=limit, type=type, genre=genre, tag=tag,
                    search=search, sort_by=sort_by, sort_order=sort_order,
                )
                return {
                    "data": [m.to_dict() for m in movies],
                    "pagination": repository.pagination(page, limit, total),
                }

        params = {
            "page": page,
            "limit": limit,
            "type": type,
            "genre": genre,
            "tag": tag,
            "search": search,
            "sortBy": sort_by,
            "sortOrder": sort_order,
        }
        return await self._cached(CacheFamily.MOVIES, params, compute)

    async def featured_movies(self, limit: int = 10) -> List[Dict[str, Any]]:
        def compute():
            with get_db_context(self._session_factory) as db:
                return [m.to_dict() for m in repository.featured_movies(db, limit=limit)]

        return await self._cached(CacheFamily.FEATURED_MOVIES, {"limit": limit}, compute)

    async def popular_movies(self, limit: int = 10, type: Optional[str] = None) -> List[Dict[str, Any]]:
        def compute():
            with get_db_context(self._session_factory) as db:
                return [m.to_dict() for m in repository.popular_movies(db, limit=limit, type=type)]

        return await self._cached(CacheFamily.POPULAR_MOVIES, {"limit": limit, "type": type}, compute)

    async def genres(self) -> List[str]:
        def compute():
            with get_db_context(self._session_factory) as db:
                return repository.distinct_genres(db)

        return await self._cached(CacheFamily.GENRES, {}, compute)

    async def tags(self) -> List[str]:
        def compute():
            with get_db_context(self._session_factory) as db:
                return repository.distinct_tags(db)

        return await self._cached(CacheFamily.TAGS, {}, compute)

    async def list_episodes(
        self,
        movie_id: str,
        season: Optional[int] = None,
        page: int = 1,
        limit: int = 50,
    ) -> Dict[str, Any]:
        """Published episodes of one movie in (season, number) order."""

        def compute():
            with get_db_context(self._session_factory) as db:
                episodes, total = repository.list_episodes(
                    db, movie_id, season=season, page=page, limit=limit,
                )
                return {
                    "data": [e.to_dict() for e in episodes],
                    "pagination": repository.pagination(page, limit, total),
                }

        params = {"movieId": movie_id, "season": season, "page": page, "limit": limit}
        return await self._cached(CacheFamily.EPISODES, params, compute)

    # =========================================================================
    # Uncached reads
    # =========================================================================

    async def get_movie(self, movie_id: str) -> Dict[str, Any]:
        with get_db_context(self._session_factory) as db:
            movie = repository.require(repository.get_movie(db, movie_id), "Movie", movie_id)
            return movie.to_dict(include_link=True)

    async def get_movie_by_slug(self, slug: str) -> Dict[str, Any]:
        with get_db_context(self._session_factory) as db:
            movie = repository.require(repository.get_movie_by_slug(db, slug), "Movie", slug)
            return movie.to_dict()

    async def get_episode(self, episode_id: str) -> Dict[str, Any]:
        with get_db_context(self._session_factory) as db:
            episode = repository.get_episode(db, episode_id)
            if episode is None or not episode.is_published:
                raise NotFound("Episode", episode_id)
            return episode.to_dict()

    async def admin_list_movies(
        self,
        page: int = 1,
        limit: int = 20,
        type: Optional[str] = None,
        search: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> Dict[str, Any]:
        """Every movie, inactive ones included unless filtered."""
        with get_db_context(self._session_factory) as db:
            movies, total = repository.list_movies(
                db, page=page, limit=limit, type=type, search=search, is_active=is_active,
            )
            return {
                "data": [m.to_dict(include_link=True) for m in movies],
                "pagination": repository.pagination(page, limit, total),
            }

    # =========================================================================
    # Movie mutations
    # =========================================================================

    async def create_movie(
        self,
        data: Dict[str, Any],
        episodes: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        """Create a movie; series may carry an initial episode list."""
        with get_db_context(self._session_factory) as db:
            movie = repository.create_movie(db, data)
            result = movie.to_dict(include_link=True)
            if episodes and movie.type == MovieType.SERIES.value:
                result["episodeList"] = self._upsert_all(db, movie.id, episodes)["episodes"]
            movie_id = movie.id

        await self._invalidator.handle_event(CacheEvent.MOVIE_CREATED, movie_id=movie_id)
        return result

    async def update_movie(
        self,
        movie_id: str,
        data: Dict[str, Any],
        episodes: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        with get_db_context(self._session_factory) as db:
            movie = repository.require(
                repository.get_movie(db, movie_id, active_only=False), "Movie", movie_id,
            )
            repository.update_movie(db, movie, data)
            result = movie.to_dict(include_link=True)
            if episodes and movie.type == MovieType.SERIES.value:
                result["episodeList"] = self._upsert_all(db, movie.id, episodes)["episodes"]

        await self._invalidator.handle_event(CacheEvent.MOVIE_UPDATED, movie_id=movie_id)
        logger.info(f"Movie updated: {result['title']} (ID: {movie_id})")
        return result

    async def delete_movie(self, movie_id: str) -> Dict[str, Any]:
        """Soft delete: the movie is deactivated, its clicks are kept."""
        with get_db_context(self._session_factory) as db:
            movie = repository.require(
                repository.get_movie(db, movie_id, active_only=False), "Movie", movie_id,
            )
            repository.soft_delete_movie(db, movie)
            title = movie.title

        await self._invalidator.handle_event(CacheEvent.MOVIE_DELETED, movie_id=movie_id)
        logger.info(f"Movie deleted: {title} (ID: {movie_id})")
        return {"success": True, "message": "Movie deleted successfully"}

    async def toggle_featured(self, movie_id: str) -> Dict[str, Any]:
        with get_db_context(self._session_factory) as db:
            movie = repository.require(
                repository.get_movie(db, movie_id, active_only=False), "Movie", movie_id,
            )
            repository.toggle_featured(db, movie)
            is_featured = movie.is_featured

        await self._invalidator.handle_event(CacheEvent.MOVIE_FEATURE_TOGGLED, movie_id=movie_id)
        return {
            "success": True,
            "isFeatured": is_featured,
            "message": f"Movie {'featured' if is_featured else 'unfeatured'} successfully",
        }

    async def reset_clicks(self, movie_id: str) -> Dict[str, Any]:
        """Zero the denormalized counter. The event log is left alone."""
        with get_db_context(self._session_factory) as db:
            if not repository.reset_movie_clicks(db, movie_id):
                raise NotFound("Movie", movie_id)

        await self._invalidator.handle_event(CacheEvent.MOVIE_UPDATED, movie_id=movie_id)
        logger.info(f"Click counter reset for movie {movie_id}")
        return {"success": True, "clickCount": 0}

    # =========================================================================
    # Episode mutations
    # =========================================================================

    async def create_episode(self, movie_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        with get_db_context(self._session_factory) as db:
            repository.require(
                repository.get_movie(db, movie_id, active_only=False), "Movie", movie_id,
            )
            result = repository.create_episode(db, movie_id, data).to_dict()

        await self._invalidator.handle_event(CacheEvent.EPISODE_CREATED, movie_id=movie_id)
        return result

    async def update_episode(self, episode_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        with get_db_context(self._session_factory) as db:
            episode = repository.require(repository.get_episode(db, episode_id), "Episode", episode_id)
            result = repository.update_episode(db, episode, data).to_dict()

        await self._invalidator.handle_event(CacheEvent.EPISODE_UPDATED, movie_id=result["movieId"])
        return result

    async def delete_episode(self, episode_id: str) -> Dict[str, Any]:
        """Unpublish an episode."""
        with get_db_context(self._session_factory) as db:
            episode = repository.require(repository.get_episode(db, episode_id), "Episode", episode_id)
            repository.unpublish_episode(db, episode)
            movie_id = episode.movie_id

        await self._invalidator.handle_event(CacheEvent.EPISODE_DELETED, movie_id=movie_id)
        return {"success": True, "message": "Episode deleted successfully"}

    async def upsert_episodes(self, movie_id: str, payload: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Bulk import keyed by (season, episode number)."""
        with get_db_context(self._session_factory) as db:
            repository.require(
                repository.get_movie(db, movie_id, active_only=False), "Movie", movie_id,
            )
            result = self._upsert_all(db, movie_id, payload)

        await self._invalidator.handle_event(CacheEvent.EPISODE_UPDATED, movie_id=movie_id)
        logger.info(
            f"Imported {result['imported']} episodes for movie {movie_id} "
            f"({result['skipped']} skipped)"
        )
        return result

    def _upsert_all(self, db, movie_id: str, payload: List[Dict[str, Any]]) -> Dict[str, Any]:
        saved = []
        skipped = 0
        for item in payload or []:
            episode = repository.upsert_episode(db, movie_id, item)
            if episode is None:
                skipped += 1
            else:
                saved.append(episode.to_dict())
        return {"imported": len(saved), "skipped": skipped, "episodes": saved}
