"""
Request-scoped access to the services built at startup.
"""

from fastapi import Request

from cinelink.cache import CacheInvalidator, RedisCache
from cinelink.jobs import JobScheduler
from cinelink.services import (
    AnalyticsEngine,
    CatalogService,
    ClickRecorder,
    CommentService,
    RequestContext,
)


def get_catalog(request: Request) -> CatalogService:
    return request.app.state.catalog


def get_clicks(request: Request) -> ClickRecorder:
    return request.app.state.clicks


def get_analytics(request: Request) -> AnalyticsEngine:
    return request.app.state.analytics


def get_comments(request: Request) -> CommentService:
    return request.app.state.comments


def get_cache(request: Request) -> RedisCache:
    return request.app.state.cache


def get_invalidator(request: Request) -> CacheInvalidator:
    return request.app.state.invalidator


def get_scheduler(request: Request) -> JobScheduler:
    return request.app.state.scheduler


def request_context(request: Request) -> RequestContext:
    """Describe the client behind a click; first X-Forwarded-For hop wins."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip_address = forwarded.split(",")[0].strip()
    else:
        ip_address = request.client.host if request.client else None
    return RequestContext(
        user_agent=request.headers.get("user-agent"),
        ip_address=ip_address,
        referer=request.headers.get("referer"),
    )
