# ABOUTME: FastAPI application factory with database and HTTP client lifespan.
# ABOUTME: Maps feedwell error kinds to HTTP status codes.

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from feedwell.db.session import close_db, init_db
from feedwell.errors import (
    Conflict,
    FeedwellError,
    InvalidOpml,
    NotFound,
    ScrapeError,
    StorageUnavailable,
)
from feedwell.feeds.fetcher import HttpFetcher
from feedwell.web.routes import api

logger = structlog.get_logger()


def error_status(exc: FeedwellError) -> int:
    """HTTP status for an error kind."""
    if isinstance(exc, NotFound):
        return 404
    if isinstance(exc, Conflict):
        return 409
    if isinstance(exc, ScrapeError):
        return 502
    if isinstance(exc, InvalidOpml):
        return 400
    if isinstance(exc, StorageUnavailable):
        return 503
    return 500


async def handle_feedwell_error(request: Request, exc: FeedwellError) -> JSONResponse:
    """Translate a FeedwellError into a JSON error response."""
    status = error_status(exc)
    if status >= 500 and status != 502:
        logger.error("request_failed", path=request.url.path, status=status, error=str(exc))
    else:
        logger.info("request_rejected", path=request.url.path, status=status, error=str(exc))
    return JSONResponse(
        status_code=status,
        content={"detail": str(exc), "error": type(exc).__name__},
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan context for database and HTTP client setup/teardown."""
    logger.info("app_startup")
    await init_db()
    app.state.fetcher = HttpFetcher()
    yield
    logger.info("app_shutdown")
    await app.state.fetcher.aclose()
    await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="feedwell",
        description="RSS/Atom feed aggregator with per-profile subscriptions",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_exception_handler(FeedwellError, handle_feedwell_error)
    app.include_router(api.router)
    return app


# Application instance for uvicorn
app = create_app()
