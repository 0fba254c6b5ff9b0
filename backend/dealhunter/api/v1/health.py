"""Health check endpoint."""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from dealhunter.config import settings
from dealhunter.dependencies import get_crawl_scheduler, get_db
from dealhunter.schemas import HealthCheckResponse
from dealhunter.scrapers.scheduler import CrawlScheduler

router = APIRouter()


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(
    db: AsyncSession = Depends(get_db),
    scheduler: CrawlScheduler = Depends(get_crawl_scheduler),
):
    """Return service health status.

    Checks connectivity to:
    - Database
    - Crawl scheduler (stopped is expected in the test environment)

    The product API reports "mock" when credentials are not configured.
    """
    services = {}

    try:
        result = await db.execute(text("SELECT 1"))
        result.scalar()
        db_status = "ok"
    except Exception as e:
        db_status = f"error: {str(e)}"

    services["database"] = db_status

    scheduler_status = "running" if scheduler.is_running() else "stopped"
    services["scheduler"] = scheduler_status

    product_api_status = "configured" if settings.is_amazon_configured() else "mock"
    services["product_api"] = product_api_status

    overall_status = "ok" if db_status == "ok" else "degraded"

    return HealthCheckResponse(
        status=overall_status,
        database=db_status,
        scheduler=scheduler_status,
        product_api=product_api_status,
        services=services,
    )
