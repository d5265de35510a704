"""
Click recording.

A click-through does three things:
1. Atomically bumps the denormalized clickCount (fatal if it fails: the user
   must not see a click that did not count)
2. Appends a Click event to the log (best effort: the outbound link matters
   more than the metric)
3. Purges cached listings that show click counts

Episode clicks bump the episode and its parent movie. The parent counter is
not reconciled against the sum of its episodes.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from cinelink.cache.invalidation import CacheEvent, CacheInvalidator
from cinelink.database import repository
from cinelink.database.session import get_db_context
from cinelink.exceptions import NotFound, StoreUnavailable


logger = logging.getLogger(__name__)

UNKNOWN = "Unknown"


@dataclass
class RequestContext:
    """Who clicked, as seen by the HTTP layer."""
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    referer: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None

    def __post_init__(self):
        self.user_agent = self.user_agent or UNKNOWN
        self.ip_address = self.ip_address or UNKNOWN
        self.referer = self.referer or None


@dataclass
class ClickResult:
    """Outbound target handed back to the caller for redirect/display."""
    target_url: str
    title: str
    movie_id: str
    episode_id: Optional[str] = None

    def to_dict(self) -> dict:
        if self.episode_id:
            return {"success": True, "watchUrl": self.target_url, "title": self.title}
        return {"success": True, "telegramLink": self.target_url, "title": self.title}


class ClickRecorder:
    """Records click-throughs on movies and episodes."""

    def __init__(
        self,
        session_factory: sessionmaker,
        invalidator: CacheInvalidator,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self._session_factory = session_factory
        self._invalidator = invalidator
        self._clock = clock

    async def record_movie_click(self, movie_id: str, context: RequestContext) -> ClickResult:
        """Count a click on an active movie and return its outbound link."""
        clicked_at = self._clock()

        with get_db_context(self._session_factory) as db:
            movie = repository.get_movie(db, movie_id)
            if movie is None:
                raise NotFound("Movie", movie_id)
            result = ClickResult(target_url=movie.telegram_link, title=movie.title, movie_id=movie.id)

        with get_db_context(self._session_factory) as db:
            try:
                updated = repository.increment_movie_clicks(db, movie_id, clicked_at)
            except SQLAlchemyError as e:
                logger.error(f"Click counter update failed for movie {movie_id}: {e}")
                raise StoreUnavailable(f"Could not record click for movie {movie_id}") from e
            if not updated:
                # Deactivated between lookup and increment
                raise NotFound("Movie", movie_id)

        self._persist_event(movie_id, context, clicked_at)

        await self._invalidator.handle_event(CacheEvent.MOVIE_CLICKED, movie_id=movie_id)

        logger.info(f"Movie clicked: {result.title} (ID: {movie_id})")
        return result

    async def record_episode_click(self, episode_id: str, context: RequestContext) -> ClickResult:
        """Count a click on a published episode and its parent movie."""
        clicked_at = self._clock()

        with get_db_context(self._session_factory) as db:
            episode = repository.get_episode(db, episode_id)
            if episode is None or not episode.is_published:
                raise NotFound("Episode", episode_id)
            movie_id = episode.movie_id
            result = ClickResult(
                target_url=episode.watch_url,
                title=episode.title or "",
                movie_id=movie_id,
                episode_id=episode.id,
            )

        with get_db_context(self._session_factory) as db:
            try:
                updated = repository.increment_episode_clicks(db, episode_id)
                if updated:
                    repository.increment_movie_clicks(db, movie_id, clicked_at, require_active=False)
            except SQLAlchemyError as e:
                logger.error(f"Click counter update failed for episode {episode_id}: {e}")
                raise StoreUnavailable(f"Could not record click for episode {episode_id}") from e
            if not updated:
                raise NotFound("Episode", episode_id)

        # Episode clicks are logged against the parent movie
        self._persist_event(movie_id, context, clicked_at)

        await self._invalidator.handle_event(CacheEvent.EPISODE_CLICKED, movie_id=movie_id)

        logger.info(f"Episode clicked: {episode_id} of movie {movie_id}")
        return result

    def _persist_event(self, movie_id: str, context: RequestContext, clicked_at: datetime):
        """Append the click event in its own transaction; failures are logged only."""
        try:
            with get_db_context(self._session_factory) as db:
                repository.add_click(
                    db,
                    movie_id=movie_id,
                    user_agent=context.user_agent,
                    ip_address=context.ip_address,
                    referer=context.referer,
                    country=context.country,
                    city=context.city,
                    timestamp=clicked_at,
                )
        except Exception as e:
            logger.warning(f"Failed to persist click event for movie {movie_id}: {e}")
