"""
Analytics Aggregation Engine

Read-only aggregates over the click-event log, each parameterized by a
lookback window in days and served through the read-through cache:
- overview: catalog totals plus windowed click volume
- top movies: ranked by the all-time denormalized counter
- hourly / daily histograms of click events
- referrer breakdown per movie

Everything except the top-movies ranking counts events, not counters: the
event log is the source of truth for windowed and grouped questions.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, sessionmaker

from cinelink.cache.config import CacheFamily, CacheTTL
from cinelink.cache.keys import build_key
from cinelink.cache.read_through import ReadThroughCache
from cinelink.database import repository
from cinelink.database.models import Click, Movie, MovieType
from cinelink.database.session import get_db_context
from cinelink.exceptions import AggregationError, NotFound


logger = logging.getLogger(__name__)

MAX_WINDOW_DAYS = 3650
MAX_LIMIT = 100


# =============================================================================
# INPUT VALIDATION
# =============================================================================

def validate_days(days, allow_none: bool = False) -> Optional[int]:
    """Lookback window in whole days, 1..MAX_WINDOW_DAYS."""
    if days is None and allow_none:
        return None
    if isinstance(days, bool) or not isinstance(days, int):
        raise AggregationError(f"days must be an integer, got {days!r}")
    if days < 1 or days > MAX_WINDOW_DAYS:
        raise AggregationError(f"days must be between 1 and {MAX_WINDOW_DAYS}, got {days}")
    return days


def validate_limit(limit, name: str = "limit", maximum: int = MAX_LIMIT) -> int:
    if isinstance(limit, bool) or not isinstance(limit, int):
        raise AggregationError(f"{name} must be an integer, got {limit!r}")
    if limit < 1 or limit > maximum:
        raise AggregationError(f"{name} must be between 1 and {maximum}, got {limit}")
    return limit


def validate_type(type: Optional[str]) -> Optional[str]:
    if type is None:
        return None
    if type not in (MovieType.MOVIE.value, MovieType.SERIES.value):
        raise AggregationError(f"type must be 'movie' or 'series', got {type!r}")
    return type


def _iso_day(value) -> str:
    if isinstance(value, (date, datetime)):
        return value.strftime("%Y-%m-%d")
    return str(value)[:10]


# =============================================================================
# QUERIES
# =============================================================================

def count_events(db: Session, since: Optional[datetime] = None, movie_id: Optional[str] = None) -> int:
    query = db.query(func.count(Click.id))
    if since is not None:
        query = query.filter(Click.timestamp >= since)
    if movie_id is not None:
        query = query.filter(Click.movie_id == movie_id)
    return query.scalar() or 0


def total_counter_clicks(db: Session, active_only: bool = True) -> int:
    query = db.query(func.coalesce(func.sum(Movie.click_count), 0))
    if active_only:
        query = query.filter(Movie.is_active.is_(True))
    return int(query.scalar() or 0)


def count_movies(db: Session, type: Optional[str] = None, active_only: bool = True) -> int:
    query = db.query(func.count(Movie.id))
    if type:
        query = query.filter(Movie.type == type)
    if active_only:
        query = query.filter(Movie.is_active.is_(True))
    return query.scalar() or 0


def hourly_histogram(db: Session, since: datetime) -> List[Dict[str, int]]:
    """Events since `since` grouped by hour of day, across all days."""
    hour = func.extract("hour", Click.timestamp)
    rows = (
        db.query(hour.label("hour"), func.count(Click.id).label("clicks"))
        .filter(Click.timestamp >= since)
        .group_by(hour)
        .order_by(hour)
        .all()
    )
    return [{"hour": int(row.hour), "clicks": row.clicks} for row in rows]


def daily_histogram(db: Session, since: datetime, movie_id: Optional[str] = None) -> List[Dict[str, Any]]:
    """Events since `since` grouped by calendar day (ISO date)."""
    day = func.date(Click.timestamp)
    query = (
        db.query(day.label("date"), func.count(Click.id).label("clicks"))
        .filter(Click.timestamp >= since)
    )
    if movie_id is not None:
        query = query.filter(Click.movie_id == movie_id)
    rows = query.group_by(day).order_by(day).all()
    return [{"date": _iso_day(row.date), "clicks": row.clicks} for row in rows]


def referrer_breakdown(
    db: Session,
    movie_id: str,
    limit: int = 10,
    since: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    """Most frequent referrers of a movie's clicks, absent referrers excluded."""
    clicks = func.count(Click.id)
    query = (
        db.query(Click.referer.label("referer"), clicks.label("clicks"))
        .filter(
            Click.movie_id == movie_id,
            Click.referer.isnot(None),
            Click.referer != "",
        )
    )
    if since is not None:
        query = query.filter(Click.timestamp >= since)
    rows = (
        query.group_by(Click.referer)
        .order_by(clicks.desc(), Click.referer)
        .limit(limit)
        .all()
    )
    return [{"referer": row.referer, "clicks": row.clicks} for row in rows]


def ranked_movies(
    db: Session,
    limit: int,
    type: Optional[str] = None,
    clicked_since: Optional[datetime] = None,
) -> List[Movie]:
    """Active movies by all-time clickCount, optionally only recently clicked ones."""
    query = db.query(Movie).filter(Movie.is_active.is_(True))
    if type:
        query = query.filter(Movie.type == type)
    if clicked_since is not None:
        query = query.filter(Movie.last_clicked >= clicked_since)
    return (
        query.order_by(Movie.click_count.desc(), Movie.created_at.desc(), Movie.id)
        .limit(limit)
        .all()
    )


# =============================================================================
# ENGINE
# =============================================================================

class AnalyticsEngine:
    """Cached analytics views for admin and client dashboards."""

    def __init__(
        self,
        session_factory: sessionmaker,
        reader: ReadThroughCache,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self._session_factory = session_factory
        self._reader = reader
        self._clock = clock

    def _since(self, days: int) -> datetime:
        return self._clock() - timedelta(days=days)

    async def _cached(self, family: str, params: Dict[str, Any], compute):
        key = build_key(family, params)
        return await self._reader.read_through(key, CacheTTL.for_family(family), compute)

    async def overview(self, days: int = 30) -> Dict[str, Any]:
        days = validate_days(days)

        def compute():
            since = self._since(days)
            with get_db_context(self._session_factory) as db:
                top = ranked_movies(db, limit=10, clicked_since=since)
                return {
                    "overview": {
                        "totalMovies": count_movies(db, MovieType.MOVIE.value),
                        "totalSeries": count_movies(db, MovieType.SERIES.value),
                        "totalClicks": total_counter_clicks(db),
                        "recentClicks": count_events(db, since=since),
                    },
                    "topMoviesThisPeriod": [
                        {"id": m.id, "title": m.title, "type": m.type, "clickCount": m.click_count}
                        for m in top
                    ],
                    "clicksByDay": daily_histogram(db, since),
                }

        return await self._cached(CacheFamily.ANALYTICS_OVERVIEW, {"days": days}, compute)

    async def top_movies(
        self,
        limit: int = 20,
        type: Optional[str] = None,
        days: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Top entries by the all-time counter.

        With `days`, only entries clicked inside the window are ranked; the
        ranking itself still uses the all-time counter.
        """
        limit = validate_limit(limit)
        type = validate_type(type)
        days = validate_days(days, allow_none=True)

        def compute():
            since = self._since(days) if days else None
            with get_db_context(self._session_factory) as db:
                return [m.to_summary() for m in ranked_movies(db, limit, type=type, clicked_since=since)]

        params = {"limit": limit, "type": type, "days": days}
        return await self._cached(CacheFamily.ANALYTICS_TOP_MOVIES, params, compute)

    async def hourly_clicks(self, days: int = 7) -> List[Dict[str, int]]:
        days = validate_days(days)

        def compute():
            with get_db_context(self._session_factory) as db:
                return hourly_histogram(db, self._since(days))

        return await self._cached(CacheFamily.ANALYTICS_HOURLY_CLICKS, {"days": days}, compute)

    async def daily_clicks(self, days: int = 30, movie_id: Optional[str] = None) -> List[Dict[str, Any]]:
        days = validate_days(days)

        def compute():
            with get_db_context(self._session_factory) as db:
                return daily_histogram(db, self._since(days), movie_id=movie_id)

        params = {"days": days, "movieId": movie_id}
        return await self._cached(CacheFamily.ANALYTICS_DAILY_CLICKS, params, compute)

    async def top_referrers(
        self,
        movie_id: str,
        limit: int = 10,
        days: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        limit = validate_limit(limit)
        days = validate_days(days, allow_none=True)

        def compute():
            since = self._since(days) if days else None
            with get_db_context(self._session_factory) as db:
                return referrer_breakdown(db, movie_id, limit=limit, since=since)

        params = {"movieId": movie_id, "limit": limit, "days": days}
        return await self._cached(CacheFamily.ANALYTICS_REFERRERS, params, compute)

    async def movie_stats(self, movie_id: str, days: int = 30) -> Dict[str, Any]:
        """Click detail for one movie: totals, per-day counts, referrers."""
        days = validate_days(days)

        def compute():
            since = self._since(days)
            with get_db_context(self._session_factory) as db:
                movie = repository.get_movie(db, movie_id, active_only=False)
                if movie is None:
                    raise NotFound("Movie", movie_id)
                return {
                    "movie": {
                        "id": movie.id,
                        "title": movie.title,
                        "type": movie.type,
                        "clickCount": movie.click_count,
                        "lastClicked": movie.last_clicked.isoformat() if movie.last_clicked else None,
                        "createdAt": movie.created_at.isoformat() if movie.created_at else None,
                    },
                    "stats": {
                        "totalClicks": count_events(db, movie_id=movie_id),
                        "recentClicks": count_events(db, since=since, movie_id=movie_id),
                        "clicksByDay": daily_histogram(db, since, movie_id=movie_id),
                        "topReferers": referrer_breakdown(db, movie_id, limit=10),
                    },
                }

        params = {"movieId": movie_id, "days": days}
        return await self._cached(CacheFamily.ANALYTICS_MOVIE_STATS, params, compute)

    # =========================================================================
    # Client views
    # =========================================================================

    async def client_dashboard(self) -> Dict[str, Any]:
        def compute():
            with get_db_context(self._session_factory) as db:
                top = ranked_movies(db, limit=10)
                return {
                    "statistics": {
                        "totalMovies": count_movies(db, MovieType.MOVIE.value),
                        "totalSeries": count_movies(db, MovieType.SERIES.value),
                        "totalClicks": total_counter_clicks(db),
                    },
                    "topMovies": [
                        {"id": m.id, "title": m.title, "type": m.type, "clickCount": m.click_count}
                        for m in top
                    ],
                }

        return await self._cached(CacheFamily.CLIENT_DASHBOARD, {}, compute)

    async def client_movies_analytics(
        self,
        page: int = 1,
        limit: int = 20,
        sort_by: str = "clickCount",
        sort_order: str = "desc",
        type: Optional[str] = None,
        search: Optional[str] = None,
    ) -> Dict[str, Any]:
        page = validate_limit(page, "page", maximum=100000)
        limit = validate_limit(limit)
        type = validate_type(type)
        sort_order = "asc" if sort_order == "asc" else "desc"

        def compute():
            with get_db_context(self._session_factory) as db:
                movies, total = repository.list_movies(
                    db, page=page, limit=limit, type=type, search=search,
                    sort_by=sort_by, sort_order=sort_order,
                )
                return {
                    "data": [m.to_summary() for m in movies],
                    "pagination": repository.pagination(page, limit, total),
                }

        params = {
            "page": page,
            "limit": limit,
            "sortBy": sort_by,
            "sortOrder": sort_order,
            "type": type,
            "search": search,
        }
        return await self._cached(CacheFamily.CLIENT_MOVIES_ANALYTICS, params, compute)

    async def movie_click_log(self, movie_id: str, page: int = 1, limit: int = 50) -> Dict[str, Any]:
        """Raw click events of one movie, newest first. Not cached."""
        page = validate_limit(page, "page", maximum=100000)
        limit = validate_limit(limit)

        with get_db_context(self._session_factory) as db:
            movie = repository.get_movie(db, movie_id, active_only=False)
            if movie is None:
                raise NotFound("Movie", movie_id)
            clicks, total = repository.click_log(db, movie_id, page=page, limit=limit)
            return {
                "movie": {
                    "title": movie.title,
                    "type": movie.type,
                    "totalClicks": movie.click_count,
                },
                "data": [c.to_dict() for c in clicks],
                "pagination": repository.pagination(page, limit, total),
            }

    # =========================================================================
    # Admin views
    # =========================================================================

    async def admin_dashboard(self) -> Dict[str, Any]:
        """Totals across every entry, inactive included. Not cached."""
        with get_db_context(self._session_factory) as db:
            recent = (
                db.query(Movie)
                .filter(Movie.is_active.is_(True))
                .order_by(Movie.created_at.desc(), Movie.id)
                .limit(5)
                .all()
            )
            top = ranked_movies(db, limit=5)
            return {
                "statistics": {
                    "totalMovies": count_movies(db, MovieType.MOVIE.value, active_only=False),
                    "totalSeries": count_movies(db, MovieType.SERIES.value, active_only=False),
                    "activeMovies": count_movies(db),
                    "totalClicks": total_counter_clicks(db, active_only=False),
                },
                "recentMovies": [
                    {"id": m.id, "title": m.title, "type": m.type, "clickCount": m.click_count,
                     "createdAt": m.created_at.isoformat()}
                    for m in recent
                ],
                "topMovies": [
                    {"id": m.id, "title": m.title, "type": m.type, "clickCount": m.click_count}
                    for m in top
                ],
            }
