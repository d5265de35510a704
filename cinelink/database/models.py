"""
SQLAlchemy Models for the CineLink catalog

- Movie: a movie or series with its outbound link and denormalized clickCount
- Episode: one episode of a series, unique per (movie, season, number)
- Click: immutable click event, pruned after the retention horizon
- Comment: viewer comment attached to a movie or an episode

Entries are never physically deleted: movies are deactivated and episodes
unpublished. Click.movie_id is deliberately not a foreign key so events can
outlive a hard-deleted movie.
"""

import enum
from datetime import datetime
from typing import Any, Dict, List
from uuid import uuid4

from sqlalchemy import (
    Column, String, Integer, Float, Boolean, DateTime, Text,
    ForeignKey, Index, UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def _uuid() -> str:
    return str(uuid4())


def _iso(value: datetime):
    return value.isoformat() if value else None


# =============================================================================
# ENUMS
# =============================================================================

class MovieType(enum.Enum):
    """Kind of catalog entry"""
    MOVIE = "movie"
    SERIES = "series"


# =============================================================================
# CATALOG
# =============================================================================

class Movie(Base):
    """Catalog entry: a movie or a series"""
    __tablename__ = "movies"

    id = Column(String(36), primary_key=True, default=_uuid)

    title = Column(String(255), nullable=False, index=True)
    original_title = Column(String(255))
    type = Column(String(10), nullable=False, index=True)  # movie, series
    year = Column(Integer)
    language = Column(String(50), default="English")
    description = Column(Text)

    # Outbound target of a click-through
    telegram_link = Column(String(500), nullable=False)

    # Media links (URLs, never files)
    thumbnail_url = Column(String(500))
    poster_url = Column(String(500))
    trailer_url = Column(String(500))
    backdrop_url = Column(String(500))

    # Ratings
    rating = Column(Float)
    imdb_rating = Column(Float)
    tmdb_rating = Column(Float)
    rotten_tomatoes_rating = Column(Float)
    metacritic_rating = Column(Float)

    duration = Column(String(20))  # e.g. "2h 15m"

    # Series specific
    seasons = Column(Integer)
    episode_total = Column(Integer)

    # Analytics (denormalized, all-time)
    click_count = Column(Integer, nullable=False, default=0, index=True)
    last_clicked = Column(DateTime)

    # Admin flags
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    is_featured = Column(Boolean, nullable=False, default=False, index=True)

    slug = Column(String(300), unique=True, index=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    genre_rows = relationship("MovieGenre", cascade="all, delete-orphan", lazy="selectin")
    tag_rows = relationship("MovieTag", cascade="all, delete-orphan", lazy="selectin")
    episodes = relationship("Episode", back_populates="movie", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_movies_type_active_created", "type", "is_active", "created_at"),
        Index("idx_movies_featured_created", "is_featured", "created_at"),
    )

    @property
    def genre(self) -> List[str]:
        return [row.name for row in self.genre_rows]

    @genre.setter
    def genre(self, values):
        existing = {row.name: row for row in self.genre_rows}
        self.genre_rows = [existing.get(v) or MovieGenre(name=v) for v in _unique(values)]

    @property
    def tags(self) -> List[str]:
        return [row.name for row in self.tag_rows]

    @tags.setter
    def tags(self, values):
        existing = {row.name: row for row in self.tag_rows}
        self.tag_rows = [existing.get(v) or MovieTag(name=v) for v in _unique(values)]

    def to_dict(self, include_link: bool = False) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "title": self.title,
            "originalTitle": self.original_title,
            "type": self.type,
            "year": self.year,
            "genre": self.genre,
            "language": self.language,
            "description": self.description,
            "thumbnailUrl": self.thumbnail_url,
            "posterUrl": self.poster_url,
            "trailerUrl": self.trailer_url,
            "backdropUrl": self.backdrop_url,
            "rating": self.rating,
            "imdbRating": self.imdb_rating,
            "tmdbRating": self.tmdb_rating,
            "rottenTomatoesRating": self.rotten_tomatoes_rating,
            "metacriticRating": self.metacritic_rating,
            "duration": self.duration,
            "seasons": self.seasons,
            "episodes": self.episode_total,
            "clickCount": self.click_count or 0,
            "lastClicked": _iso(self.last_clicked),
            "isActive": self.is_active,
            "isFeatured": self.is_featured,
            "slug": self.slug,
            "tags": self.tags,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }
        if include_link:
            data["telegramLink"] = self.telegram_link
        return data

    def to_summary(self) -> Dict[str, Any]:
        """Compact form used by analytics rankings."""
        return {
            "id": self.id,
            "title": self.title,
            "originalTitle": self.original_title,
            "type": self.type,
            "year": self.year,
            "genre": self.genre,
            "clickCount": self.click_count or 0,
            "lastClicked": _iso(self.last_clicked),
            "isFeatured": self.is_featured,
            "createdAt": _iso(self.created_at),
        }


class MovieGenre(Base):
    """Genre label of a movie"""
    __tablename__ = "movie_genres"

    movie_id = Column(String(36), ForeignKey("movies.id", ondelete="CASCADE"), primary_key=True)
    name = Column(String(100), primary_key=True, index=True)


class MovieTag(Base):
    """Free-form tag of a movie"""
    __tablename__ = "movie_tags"

    movie_id = Column(String(36), ForeignKey("movies.id", ondelete="CASCADE"), primary_key=True)
    name = Column(String(100), primary_key=True, index=True)


class Episode(Base):
    """Episode of a series"""
    __tablename__ = "episodes"

    id = Column(String(36), primary_key=True, default=_uuid)
    movie_id = Column(String(36), ForeignKey("movies.id"), nullable=False, index=True)

    season = Column(Integer, nullable=False, default=1)
    episode_number = Column(Integer, nullable=False)

    title = Column(String(255))
    description = Column(Text)
    duration = Column(Integer)  # seconds
    thumbnail_url = Column(String(500))
    trailer_url = Column(String(500))
    watch_url = Column(String(500), nullable=False)

    is_published = Column(Boolean, nullable=False, default=True, index=True)
    click_count = Column(Integer, nullable=False, default=0, index=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    movie = relationship("Movie", back_populates="episodes")

    __table_args__ = (
        UniqueConstraint("movie_id", "season", "episode_number", name="uq_episode_number"),
        Index("idx_episodes_movie_created", "movie_id", "created_at"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "movieId": self.movie_id,
            "season": self.season,
            "episodeNumber": self.episode_number,
            "title": self.title,
            "description": self.description,
            "duration": self.duration,
            "thumbnailUrl": self.thumbnail_url,
            "trailerUrl": self.trailer_url,
            "watchUrl": self.watch_url,
            "isPublished": self.is_published,
            "clickCount": self.click_count or 0,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


# =============================================================================
# ANALYTICS
# =============================================================================

class Click(Base):
    """One recorded click-through. Never updated."""
    __tablename__ = "clicks"

    id = Column(String(36), primary_key=True, default=_uuid)
    movie_id = Column(String(36), nullable=False, index=True)

    user_agent = Column(String(500), nullable=False)
    ip_address = Column(String(64), nullable=False)
    referer = Column(String(1000))
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    # Geographic data (optional)
    country = Column(String(100))
    city = Column(String(100))

    __table_args__ = (
        Index("idx_clicks_movie_timestamp", "movie_id", "timestamp"),
        Index("idx_clicks_movie_ip_timestamp", "movie_id", "ip_address", "timestamp"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "movieId": self.movie_id,
            "timestamp": _iso(self.timestamp),
            "userAgent": self.user_agent,
            "ipAddress": self.ip_address,
            "referer": self.referer,
            "country": self.country,
            "city": self.city,
        }



# =============================================================================
# COMMENTS
# =============================================================================

class Comment(Base):
    """Viewer comment on a movie or an episode"""
    __tablename__ = "comments"

    id = Column(String(36), primary_key=True, default=_uuid)
    content_id = Column(String(36), nullable=False, index=True)  # movie or episode id

    name = Column(String(255), nullable=False)
    comment = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("idx_comments_content_created", "content_id", "created_at"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "contentId": self.content_id,
            "name": self.name,
            "comment": self.comment,
            "createdAt": _iso(self.created_at),
        }


def _unique(values) -> List[str]:
    seen = []
    for value in values or []:
        value = (value or "").strip()
        if value and value not in seen:
            seen.append(value)
    return seen
