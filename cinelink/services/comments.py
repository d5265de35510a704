"""
Viewer comments on movies and episodes.

Comments are keyed by a content id that may name either a movie or an
episode; the id is stored as given and not checked against the catalog.
Reads go straight to the primary store.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import sessionmaker

from cinelink.database import repository
from cinelink.database.session import get_db_context
from cinelink.exceptions import NotFound


logger = logging.getLogger(__name__)


class CommentService:
    """List, fetch and post comments."""

    def __init__(
        self,
        session_factory: sessionmaker,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self._session_factory = session_factory
        self._clock = clock

    async def list_comments(self, content_id: str) -> List[Dict[str, Any]]:
        with get_db_context(self._session_factory) as db:
            return [c.to_dict() for c in repository.list_comments(db, content_id)]

    async def get_comment(self, comment_id: str) -> Dict[str, Any]:
        with get_db_context(self._session_factory) as db:
            return repository.require(
                repository.get_comment(db, comment_id), "Comment", comment_id,
            ).to_dict()

    async def add_comment(
        self,
        content_id: str,
        name: Optional[str],
        comment: Optional[str],
    ) -> Dict[str, Any]:
        """Post a comment. Raises ValueError when name or text is blank."""
        with get_db_context(self._session_factory) as db:
            result = repository.add_comment(
                db, content_id, name, comment, created_at=self._clock(),
            ).to_dict()

        logger.info(f"Comment {result['id']} posted on {content_id}")
        return result
