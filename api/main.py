"""
CineLink API

FastAPI application hosting the catalog core. The lifespan owns every
long-lived resource:
1. Creates tables and verifies the primary store
2. Connects one RedisCache and injects it into every service
3. Starts the daily rollup scheduler
4. On shutdown, drains background cache writes, stops the scheduler and
   closes the cache
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import sessionmaker

from api import admin, analytics, cache, client, comments, episodes, movies
from cinelink.cache import CacheInvalidator, ReadThroughCache, RedisCache
from cinelink.database import check_db_connection, get_session_factory, init_db
from cinelink.exceptions import (
    AggregationError,
    DuplicateEntry,
    JobAlreadyRunning,
    NotFound,
    StoreUnavailable,
)
from cinelink.jobs import JobScheduler
from cinelink.services import AnalyticsEngine, CatalogService, ClickRecorder, CommentService
from cinelink.utils import get_settings


# Configure logging to stdout
logging.basicConfig(
    level=get_settings().LOG_LEVEL.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stdout,
    force=True,
)
logger = logging.getLogger(__name__)

# Quiet down chatty loggers
logging.getLogger("apscheduler").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def register_exception_handlers(app: FastAPI):
    """Map core errors onto HTTP status codes."""

    @app.exception_handler(NotFound)
    async def not_found_handler(request: Request, exc: NotFound):
        return _error(404, f"{exc.entity} not found")

    @app.exception_handler(DuplicateEntry)
    async def duplicate_handler(request: Request, exc: DuplicateEntry):
        return _error(409, str(exc))

    @app.exception_handler(JobAlreadyRunning)
    async def job_running_handler(request: Request, exc: JobAlreadyRunning):
        return _error(409, str(exc))

    @app.exception_handler(AggregationError)
    async def aggregation_handler(request: Request, exc: AggregationError):
        return _error(400, str(exc))

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return _error(400, str(exc))

    @app.exception_handler(StoreUnavailable)
    async def store_unavailable_handler(request: Request, exc: StoreUnavailable):
        logger.error(f"Primary store unavailable during {request.method} {request.url.path}: {exc}")
        return _error(503, "Service temporarily unavailable")


def create_app(
    session_factory: Optional[sessionmaker] = None,
    cache_store: Optional[RedisCache] = None,
    enable_scheduler: Optional[bool] = None,
) -> FastAPI:
    """
    Build the application.

    Tests pass their own session factory and cache store; production uses
    the configured database and REDIS_URL.
    """
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        factory = session_factory
        if factory is None:
            logger.info("Initializing database...")
            init_db()
            if not check_db_connection():
                logger.warning("Database connection check failed - continuing anyway")
            factory = get_session_factory()

        store = cache_store or RedisCache()
        await store.initialize()

        reader = ReadThroughCache(store)
        invalidator = CacheInvalidator(store)
        scheduler = JobScheduler(factory)

        app.state.cache = store
        app.state.reader = reader
        app.state.invalidator = invalidator
        app.state.catalog = CatalogService(factory, reader, invalidator)
        app.state.clicks = ClickRecorder(factory, invalidator)
        app.state.analytics = AnalyticsEngine(factory, reader)
        app.state.comments = CommentService(factory)
        app.state.scheduler = scheduler

        run_scheduler = settings.SCHEDULER_ENABLED if enable_scheduler is None else enable_scheduler
        if run_scheduler:
            scheduler.start()

        logger.info("CineLink API started")
        try:
            yield
        finally:
            await reader.wait_pending()
            scheduler.shutdown()
            await store.close()
            logger.info("CineLink API stopped")

    app = FastAPI(
        title="CineLink API",
        description="Movie and series catalog with click analytics",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    for module in (movies, episodes, comments, analytics, client, admin, cache):
        app.include_router(module.router)

    @app.get("/health")
    def health_check():
        return {
            "status": "OK",
            "environment": settings.ENVIRONMENT,
        }

    return app


app = create_app()


# ============================================================================
# RUN SERVER
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
