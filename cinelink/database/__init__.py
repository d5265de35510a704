"""
CineLink Database Layer

Usage:
    from cinelink.database import init_db, get_db_context, Movie

    init_db()

    with get_db_context() as db:
        db.query(Movie).filter(Movie.is_active.is_(True)).count()
"""

# Models
from .models import (
    Base,
    Movie,
    MovieGenre,
    MovieTag,
    Episode,
    Click,
    Comment,
    MovieType,
)

# Session management
from .session import (
    get_database_url,
    create_db_engine,
    get_engine,
    make_session_factory,
    get_session_factory,
    get_db_context,
    store_errors,
    init_db,
    check_db_connection,
)

__all__ = [
    # Models
    "Base",
    "Movie",
    "MovieGenre",
    "MovieTag",
    "Episode",
    "Click",
    "Comment",
    "MovieType",
    # Session
    "get_database_url",
    "create_db_engine",
    "get_engine",
    "make_session_factory",
    "get_session_factory",
    "get_db_context",
    "store_errors",
    "init_db",
    "check_db_connection",
]
