"""
Comment endpoints. A content id names a movie or an episode.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends

from api.deps import get_comments
from cinelink.services import CommentService


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/comments", tags=["Comments"])


# Must stay above /{content_id}
@router.get("/single/{comment_id}")
async def get_comment(comment_id: str, comments: CommentService = Depends(get_comments)):
    return {"success": True, "comment": await comments.get_comment(comment_id)}


@router.get("/{content_id}")
async def list_comments(content_id: str, comments: CommentService = Depends(get_comments)):
    return {"success": True, "comments": await comments.list_comments(content_id)}


@router.post("/{content_id}")
async def post_comment(
    content_id: str,
    data: Optional[Dict[str, Any]] = Body(None),
    comments: CommentService = Depends(get_comments),
):
    data = data or {}
    comment = await comments.add_comment(content_id, data.get("name"), data.get("comment"))
    return {"success": True, "comment": comment}
