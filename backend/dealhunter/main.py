"""DealHunter Backend -- FastAPI Application Entry Point."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from dealhunter.api.v1.router import api_v1_router
from dealhunter.config import settings
from dealhunter.core.exceptions import (
    ConflictError,
    DealHunterException,
    NotFoundError,
    UpstreamFetchError,
    ValidationError,
)
from dealhunter.db.session import async_session_factory, engine
from dealhunter.dependencies import get_feed_adapter, set_crawl_scheduler
from dealhunter.models.base import Base
from dealhunter.schemas import ErrorDetail, ErrorResponse
from dealhunter.scrapers.scheduler import CrawlScheduler

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.DEBUG else logging.WARNING,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler: Optional[CrawlScheduler] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown events."""
    global scheduler

    # Startup
    logger.info("Starting DealHunter API server...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug mode: {settings.DEBUG}")

    try:
        # Import all models so they register with Base.metadata
        from dealhunter.models import deal, feed_deal, feed_source, pending_deal  # noqa: F401

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables verified/created")
    except Exception as e:
        logger.error(f"Database init failed: {e}", exc_info=True)

    # Start crawl scheduler (only in non-test environments)
    if settings.ENVIRONMENT != "test":
        logger.info("Initializing crawl scheduler...")
        scheduler = CrawlScheduler(async_session_factory, feed_adapter=get_feed_adapter())
        scheduler.start()
        set_crawl_scheduler(scheduler)
    else:
        logger.info("Scheduler disabled (test environment)")

    yield

    # Shutdown
    logger.info("Shutting down DealHunter API server...")

    if scheduler:
        logger.info("Stopping crawl scheduler...")
        scheduler.stop()
        set_crawl_scheduler(None)

    await engine.dispose()


app = FastAPI(
    title="DealHunter API",
    description="Deal ingestion pipeline: feed crawling, product sync and moderation",
    version="0.1.0",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        settings.FRONTEND_URL,
        "http://localhost:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_response(status_code: int, code: str, exc: DealHunterException, field: Optional[str] = None) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=exc.message, field=field))
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return _error_response(status.HTTP_404_NOT_FOUND, "NOT_FOUND", exc)


@app.exception_handler(ConflictError)
async def conflict_handler(request: Request, exc: ConflictError):
    return _error_response(status.HTTP_409_CONFLICT, "CONFLICT", exc)


@app.exception_handler(ValidationError)
async def validation_handler(request: Request, exc: ValidationError):
    return _error_response(status.HTTP_422_UNPROCESSABLE_ENTITY, "VALIDATION_ERROR", exc, field=exc.field)


@app.exception_handler(UpstreamFetchError)
async def upstream_handler(request: Request, exc: UpstreamFetchError):
    logger.warning(f"Upstream fetch failed: {exc.message}")
    return _error_response(status.HTTP_502_BAD_GATEWAY, "UPSTREAM_ERROR", exc)


# Register API v1 router
app.include_router(api_v1_router, prefix="/api/v1")


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "DealHunter API",
        "version": "0.1.0",
        "description": "Deal ingestion pipeline",
        "docs": "/docs" if settings.DEBUG else None,
        "health": "/api/v1/health",
    }
