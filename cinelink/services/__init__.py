"""
CineLink services: catalog reads/writes, click recording, analytics and comments.
"""

from cinelink.services.analytics import AnalyticsEngine
from cinelink.services.catalog import CatalogService
from cinelink.services.clicks import ClickRecorder, ClickResult, RequestContext
from cinelink.services.comments import CommentService

__all__ = [
    "AnalyticsEngine",
    "CatalogService",
    "ClickRecorder",
    "ClickResult",
    "CommentService",
    "RequestContext",
]
