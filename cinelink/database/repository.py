"""
Repository Layer - Clean Interface for Catalog Data Operations

Plain functions over a Session. Callers own the transaction; nothing here
commits. Counter updates are single SQL UPDATE statements so concurrent
clicks never lose increments.
"""

import logging
import math
import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import or_, update, asc, desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cinelink.exceptions import DuplicateEntry, NotFound
from .models import Movie, MovieGenre, MovieTag, Episode, Click, Comment, MovieType

logger = logging.getLogger(__name__)


# =============================================================================
# FIELD MAPPING
# =============================================================================

# Wire names (camelCase) to model attributes
MOVIE_FIELDS = {
    "title": "title",
    "originalTitle": "original_title",
    "type": "type",
    "year": "year",
    "genre": "genre",
    "language": "language",
    "description": "description",
    "telegramLink": "telegram_link",
    "thumbnailUrl": "thumbnail_url",
    "posterUrl": "poster_url",
    "trailerUrl": "trailer_url",
    "backdropUrl": "backdrop_url",
    "rating": "rating",
    "imdbRating": "imdb_rating",
    "tmdbRating": "tmdb_rating",
    "rottenTomatoesRating": "rotten_tomatoes_rating",
    "metacriticRating": "metacritic_rating",
    "duration": "duration",
    "seasons": "seasons",
    "episodeTotal": "episode_total",
    "isActive": "is_active",
    "isFeatured": "is_featured",
    "tags": "tags",
}

EPISODE_FIELDS = {
    "season": "season",
    "episodeNumber": "episode_number",
    "title": "title",
    "description": "description",
    "duration": "duration",
    "thumbnailUrl": "thumbnail_url",
    "trailerUrl": "trailer_url",
    "watchUrl": "watch_url",
    "isPublished": "is_published",
}

SORT_FIELDS = {
    "createdAt": Movie.created_at,
    "updatedAt": Movie.updated_at,
    "title": Movie.title,
    "year": Movie.year,
    "rating": Movie.rating,
    "clickCount": Movie.click_count,
    "lastClicked": Movie.last_clicked,
}


def _map_fields(data: Dict[str, Any], fields: Dict[str, str]) -> Dict[str, Any]:
    """Accept either wire (camelCase) or attribute (snake_case) names."""
    attributes = set(fields.values())
    mapped = {}
    for key, value in (data or {}).items():
        if key in fields:
            mapped[fields[key]] = value
        elif key in attributes:
            mapped[key] = value
    return mapped


def slugify(title: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")


def pagination(page: int, limit: int, total: int) -> Dict[str, Any]:
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "currentPage": page,
        "totalPages": total_pages,
        "totalItems": total,
        "itemsPerPage": limit,
        "hasNextPage": page < total_pages,
        "hasPrevPage": page > 1,
    }


def _sort_clause(sort_by: Optional[str], sort_order: str):
    column = SORT_FIELDS.get(sort_by or "createdAt", Movie.created_at)
    direction = asc if sort_order == "asc" else desc
    return direction(column)


# =============================================================================
# MOVIES - READS
# =============================================================================

def filter_movies(
    query,
    type: Optional[str] = None,
    genre: Optional[str] = None,
    tag: Optional[str] = None,
    search: Optional[str] = None,
):
    """Apply the listing filters shared by public, client and admin views."""
    if type:
        query = query.filter(Movie.type == type)
    if genre:
        query = query.filter(Movie.genre_rows.any(MovieGenre.name == genre))
    if tag:
        query = query.filter(Movie.tag_rows.any(MovieTag.name == tag))
    if search:
        term = f"%{search.strip()}%"
        query = query.filter(or_(
            Movie.title.ilike(term),
            Movie.original_title.ilike(term),
            Movie.description.ilike(term),
            Movie.tag_rows.any(MovieTag.name.ilike(term)),
        ))
    return query


def list_movies(
    db: Session,
    page: int = 1,
    limit: int = 20,
    type: Optional[str] = None,
    genre: Optional[str] = None,
    tag: Optional[str] = None,
    search: Optional[str] = None,
    sort_by: str = "createdAt",
    sort_order: str = "desc",
    is_active: Optional[bool] = True,
) -> Tuple[List[Movie], int]:
    """Filtered, sorted page of movies plus the total match count."""
    query = db.query(Movie)
    if is_active is not None:
        query = query.filter(Movie.is_active == is_active)
    query = filter_movies(query, type=type, genre=genre, tag=tag, search=search)

    total = query.count()
    movies = (
        query.order_by(_sort_clause(sort_by, sort_order), Movie.id)
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return movies, total


def featured_movies(db: Session, limit: int = 10) -> List[Movie]:
    return (
        db.query(Movie)
        .filter(Movie.is_active.is_(True), Movie.is_featured.is_(True))
        .order_by(Movie.created_at.desc(), Movie.id)
        .limit(limit)
        .all()
    )


def popular_movies(db: Session, limit: int = 10, type: Optional[str] = None) -> List[Movie]:
    query = db.query(Movie).filter(Movie.is_active.is_(True))
    if type:
        query = query.filter(Movie.type == type)
    return (
        query.order_by(Movie.click_count.desc(), Movie.created_at.desc(), Movie.id)
        .limit(limit)
        .all()
    )


def get_movie(db: Session, movie_id: str, active_only: bool = True) -> Optional[Movie]:
    query = db.query(Movie).filter(Movie.id == movie_id)
    if active_only:
        query = query.filter(Movie.is_active.is_(True))
    return query.first()


def get_movie_by_slug(db: Session, slug: str) -> Optional[Movie]:
    return (
        db.query(Movie)
        .filter(Movie.slug == slug, Movie.is_active.is_(True))
        .first()
    )


def distinct_genres(db: Session) -> List[str]:
    rows = (
        db.query(MovieGenre.name)
        .join(Movie, Movie.id == MovieGenre.movie_id)
        .filter(Movie.is_active.is_(True))
        .distinct()
        .all()
    )
    return sorted(name for (name,) in rows if name and name.strip())


def distinct_tags(db: Session) -> List[str]:
    rows = (
        db.query(MovieTag.name)
        .join(Movie, Movie.id == MovieTag.movie_id)
        .filter(Movie.is_active.is_(True))
        .distinct()
        .all()
    )
    return sorted(name for (name,) in rows if name and name.strip())


# =============================================================================
# MOVIES - WRITES
# =============================================================================

def create_movie(db: Session, data: Dict[str, Any]) -> Movie:
    """Insert a movie. Raises DuplicateEntry when the slug is taken."""
    values = _map_fields(data, MOVIE_FIELDS)
    if values.get("type") not in (MovieType.MOVIE.value, MovieType.SERIES.value):
        raise ValueError(f"Invalid movie type: {values.get('type')!r}")
    if not values.get("title") or not values.get("telegram_link"):
        raise ValueError("title and telegramLink are required")

    movie = Movie(**values)
    movie.slug = slugify(movie.title)
    db.add(movie)
    _flush(db, "slug")

    logger.info(f"Movie created: {movie.title} (ID: {movie.id})")
    return movie


def update_movie(db: Session, movie: Movie, data: Dict[str, Any]) -> Movie:
    values = _map_fields(data, MOVIE_FIELDS)
    for attr, value in values.items():
        setattr(movie, attr, value)
    if "title" in values:
        movie.slug = slugify(movie.title)
    movie.updated_at = datetime.utcnow()
    _flush(db, "slug")
    return movie


def soft_delete_movie(db: Session, movie: Movie) -> Movie:
    movie.is_active = False
    movie.updated_at = datetime.utcnow()
    db.flush()
    return movie


def toggle_featured(db: Session, movie: Movie) -> Movie:
    movie.is_featured = not movie.is_featured
    movie.updated_at = datetime.utcnow()
    db.flush()
    return movie


def increment_movie_clicks(
    db: Session,
    movie_id: str,
    clicked_at: datetime,
    require_active: bool = True,
) -> int:
    """
    Atomically add one click to a movie. Returns rows updated (0 or 1).

    The increment happens in the database, never as read-modify-write.
    """
    stmt = (
        update(Movie)
        .where(Movie.id == movie_id)
        .values(click_count=Movie.click_count + 1, last_clicked=clicked_at)
        .execution_options(synchronize_session=False)
    )
    if require_active:
        stmt = stmt.where(Movie.is_active.is_(True))
    return db.execute(stmt).rowcount


def reset_movie_clicks(db: Session, movie_id: str) -> int:
    """Administrative reset of the denormalized counter."""
    stmt = (
        update(Movie)
        .where(Movie.id == movie_id)
        .values(click_count=0)
        .execution_options(synchronize_session=False)
    )
    return db.execute(stmt).rowcount


# =============================================================================
# EPISODES
# =============================================================================

def list_episodes(
    db: Session,
    movie_id: str,
    season: Optional[int] = None,
    page: int = 1,
    limit: int = 50,
) -> Tuple[List[Episode], int]:
    query = db.query(Episode).filter(
        Episode.movie_id == movie_id,
        Episode.is_published.is_(True),
    )
    if season:
        query = query.filter(Episode.season == season)

    total = query.count()
    episodes = (
        query.order_by(Episode.season, Episode.episode_number)
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return episodes, total


def get_episode(db: Session, episode_id: str) -> Optional[Episode]:
    return db.query(Episode).filter(Episode.id == episode_id).first()


def create_episode(db: Session, movie_id: str, data: Dict[str, Any]) -> Episode:
    values = _map_fields(data, EPISODE_FIELDS)
    values.setdefault("season", 1)
    episode = Episode(movie_id=movie_id, **values)
    db.add(episode)
    _flush(db, "episodeNumber", "Duplicate episode number for season")
    return episode


def update_episode(db: Session, episode: Episode, data: Dict[str, Any]) -> Episode:
    for attr, value in _map_fields(data, EPISODE_FIELDS).items():
        setattr(episode, attr, value)
    episode.updated_at = datetime.utcnow()
    _flush(db, "episodeNumber", "Duplicate episode number for season")
    return episode


def unpublish_episode(db: Session, episode: Episode) -> Episode:
    episode.is_published = False
    episode.updated_at = datetime.utcnow()
    db.flush()
    return episode


def upsert_episode(db: Session, movie_id: str, data: Dict[str, Any]) -> Optional[Episode]:
    """
    Create or update an episode keyed by (movie, season, episode number).

    Returns None when the payload lacks an episode number or watch URL.
    """
    values = _map_fields(data, EPISODE_FIELDS)
    episode_number = _to_int(values.get("episode_number"))
    watch_url = str(values.get("watch_url") or "").strip()
    if not episode_number or not watch_url:
        logger.warning(f"Skipping episode upsert for {movie_id}: missing episodeNumber or watchUrl")
        return None

    season = _to_int(values.get("season")) or 1
    values.update(season=season, episode_number=episode_number, watch_url=watch_url)
    values["is_published"] = values.get("is_published") is not False
    if values.get("duration") is not None:
        values["duration"] = _to_int(values["duration"])

    episode = (
        db.query(Episode)
        .filter(
            Episode.movie_id == movie_id,
            Episode.season == season,
            Episode.episode_number == episode_number,
        )
        .first()
    )
    if episode is None:
        episode = Episode(movie_id=movie_id, **values)
        db.add(episode)
    else:
        for attr, value in values.items():
            if value is not None:
                setattr(episode, attr, value)
        episode.updated_at = datetime.utcnow()
    _flush(db, "episodeNumber", "Duplicate episode number for season")
    return episode


def increment_episode_clicks(db: Session, episode_id: str) -> int:
    """Atomically add one click to a published episode."""
    stmt = (
        update(Episode)
        .where(Episode.id == episode_id, Episode.is_published.is_(True))
        .values(click_count=Episode.click_count + 1)
        .execution_options(synchronize_session=False)
    )
    return db.execute(stmt).rowcount


# =============================================================================
# CLICK EVENTS
# =============================================================================

def add_click(
    db: Session,
    movie_id: str,
    user_agent: str,
    ip_address: str,
    timestamp: datetime,
    referer: Optional[str] = None,
    country: Optional[str] = None,
    city: Optional[str] = None,
) -> Click:
    click = Click(
        movie_id=movie_id,
        user_agent=user_agent,
        ip_address=ip_address,
        referer=referer,
        timestamp=timestamp,
        country=country,
        city=city,
    )
    db.add(click)
    db.flush()
    return click


def click_log(db: Session, movie_id: str, page: int = 1, limit: int = 50) -> Tuple[List[Click], int]:
    query = db.query(Click).filter(Click.movie_id == movie_id)
    total = query.count()
    clicks = (
        query.order_by(Click.timestamp.desc(), Click.id)
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return clicks, total


# =============================================================================
# COMMENTS
# =============================================================================

def list_comments(db: Session, content_id: str) -> List[Comment]:
    """Comments on one movie or episode, newest first."""
    return (
        db.query(Comment)
        .filter(Comment.content_id == content_id)
        .order_by(Comment.created_at.desc(), Comment.id)
        .all()
    )


def get_comment(db: Session, comment_id: str) -> Optional[Comment]:
    return db.query(Comment).filter(Comment.id == comment_id).first()


def add_comment(
    db: Session,
    content_id: str,
    name: Optional[str],
    comment: Optional[str],
    created_at: Optional[datetime] = None,
) -> Comment:
    name = str(name or "").strip()
    comment = str(comment or "").strip()
    if not name or not comment:
        raise ValueError("Name and comment are required")

    row = Comment(
        content_id=content_id,
        name=name,
        comment=comment,
        created_at=created_at or datetime.utcnow(),
    )
    db.add(row)
    db.flush()
    return row


# =============================================================================
# HELPERS
# =============================================================================

def require(entity, name: str, entity_id) -> Any:
    if entity is None:
        raise NotFound(name, entity_id)
    return entity


def _to_int(value) -> Optional[int]:
    try:
        return int(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


def _flush(db: Session, field: str, message: str = "Duplicate entry"):
    try:
        db.flush()
    except IntegrityError as e:
        db.rollback()
        reason = str(e.orig).lower()
        if "unique" in reason or "duplicate" in reason:
            raise DuplicateEntry(message, field=field) from e
        raise
