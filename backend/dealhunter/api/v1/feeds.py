"""Feed sources, crawl triggers and the live feed deal catalog."""

from decimal import Decimal
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from dealhunter.dependencies import get_crawl_scheduler, get_db
from dealhunter.schemas import (
    ApiResponse,
    CrawlResultResponse,
    FeedDealResponse,
    FeedSourceCreate,
    FeedSourceResponse,
    FeedSourceUpdate,
    PaginationMeta,
)
from dealhunter.scrapers.scheduler import CrawlScheduler
from dealhunter.services.feed_deal_service import FeedDealFilters, FeedDealService
from dealhunter.services.source_registry import SourceRegistry

router = APIRouter()


# Crawling


@router.post("/crawl", response_model=ApiResponse)
async def crawl_feeds(
    source_id: Optional[UUID] = Query(None, description="Crawl only this source"),
    scheduler: CrawlScheduler = Depends(get_crawl_scheduler),
):
    """Crawl every active source now, or a single source when source_id is given.

    A failing source never aborts the others; each outcome is reported.
    """
    if source_id is not None:
        results = [await scheduler.crawl_source_by_id(source_id)]
    else:
        results = await scheduler.crawl_all_sources()

    return ApiResponse(
        status="success",
        data=[CrawlResultResponse(**r.to_dict()) for r in results],
    )


@router.post("/crawl/{source_id}", response_model=ApiResponse)
async def crawl_feed_source(
    source_id: UUID,
    scheduler: CrawlScheduler = Depends(get_crawl_scheduler),
):
    """Crawl one source regardless of its interval or active flag."""
    result = await scheduler.crawl_source_by_id(source_id)
    return ApiResponse(status="success", data=CrawlResultResponse(**result.to_dict()))


# Sources


@router.get("/sources", response_model=ApiResponse)
async def list_sources(db: AsyncSession = Depends(get_db)):
    """List all feed sources, highest priority first."""
    sources = await SourceRegistry(db).list_sources()
    return ApiResponse(
        status="success",
        data=[FeedSourceResponse.model_validate(s) for s in sources],
    )


@router.post("/sources", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def create_source(body: FeedSourceCreate, db: AsyncSession = Depends(get_db)):
    source = await SourceRegistry(db).create_source(
        name=body.name,
        url=str(body.url),
        category=body.category,
        description=body.description,
        crawl_interval_minutes=body.crawl_interval_minutes,
        priority=body.priority,
        is_active=body.is_active,
    )
    return ApiResponse(status="success", data=FeedSourceResponse.model_validate(source))


@router.get("/sources/{source_id}", response_model=ApiResponse)
async def get_source(source_id: UUID, db: AsyncSession = Depends(get_db)):
    source = await SourceRegistry(db).get_source(source_id)
    return ApiResponse(status="success", data=FeedSourceResponse.model_validate(source))


@router.patch("/sources/{source_id}", response_model=ApiResponse)
async def update_source(
    source_id: UUID,
    body: FeedSourceUpdate,
    db: AsyncSession = Depends(get_db),
):
    """Update editable source fields; unset fields are left alone."""
    fields = body.model_dump(exclude_unset=True)
    if "url" in fields and fields["url"] is not None:
        fields["url"] = str(fields["url"])

    source = await SourceRegistry(db).update_source(source_id, **fields)
    return ApiResponse(status="success", data=FeedSourceResponse.model_validate(source))


@router.delete("/sources/{source_id}", response_model=ApiResponse)
async def delete_source(source_id: UUID, db: AsyncSession = Depends(get_db)):
    await SourceRegistry(db).delete_source(source_id)
    return ApiResponse(status="success", data={"deleted": str(source_id)})


@router.get("/sources/{source_id}/deals", response_model=ApiResponse)
async def list_source_deals(
    source_id: UUID,
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """Latest active deals crawled from one source."""
    await SourceRegistry(db).get_source(source_id)
    deals = await FeedDealService(db).deals_by_source(source_id, limit=limit)
    return ApiResponse(status="success", data=[FeedDealResponse.model_validate(d) for d in deals])


# Feed deals


@router.get("/deals", response_model=ApiResponse)
async def list_feed_deals(
    page: int = Query(1, ge=1, description="Page number (1-indexed)"),
    limit: int = Query(20, ge=1, le=100, description="Items per page"),
    category: Optional[str] = Query(None, description="Filter by category"),
    store: Optional[str] = Query(None, description="Filter by store"),
    search: Optional[str] = Query(None, description="Match title or description"),
    is_hot: Optional[bool] = Query(None),
    is_featured: Optional[bool] = Query(None),
    min_discount: Optional[Decimal] = Query(None, ge=0, le=100, description="Minimum discount percentage"),
    source_id: Optional[UUID] = Query(None),
    sort_by: str = Query(
        "published_at",
        pattern="^(published_at|created_at|discount_percentage|price|view_count|click_count)$",
    ),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    db: AsyncSession = Depends(get_db),
):
    """List active feed deals with pagination and filtering."""
    filters = FeedDealFilters(
        category=category,
        store=store,
        search=search,
        is_hot=is_hot,
        is_featured=is_featured,
        min_discount=min_discount,
        source_id=source_id,
    )
    deals, total = await FeedDealService(db).list_deals(
        filters=filters,
        page=page,
        limit=limit,
        sort_field=sort_by,
        sort_order=sort_order,
    )

    return ApiResponse(
        status="success",
        data=[FeedDealResponse.model_validate(d) for d in deals],
        meta=PaginationMeta.build(page=page, limit=limit, total=total),
    )


@router.get("/deals/hot", response_model=ApiResponse)
async def hot_feed_deals(
    limit: int = Query(10, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
):
    deals = await FeedDealService(db).hot_deals(limit=limit)
    return ApiResponse(status="success", data=[FeedDealResponse.model_validate(d) for d in deals])


@router.get("/deals/featured", response_model=ApiResponse)
async def featured_feed_deals(
    limit: int = Query(10, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
):
    deals = await FeedDealService(db).featured_deals(limit=limit)
    return ApiResponse(status="success", data=[FeedDealResponse.model_validate(d) for d in deals])


@router.get("/deals/categories", response_model=ApiResponse)
async def feed_deal_categories(db: AsyncSession = Depends(get_db)):
    return ApiResponse(status="success", data=await FeedDealService(db).categories())


@router.get("/deals/stores", response_model=ApiResponse)
async def feed_deal_stores(db: AsyncSession = Depends(get_db)):
    return ApiResponse(status="success", data=await FeedDealService(db).stores())


@router.get("/deals/{deal_id}", response_model=ApiResponse)
async def get_feed_deal(deal_id: UUID, db: AsyncSession = Depends(get_db)):
    """Get a single feed deal; counts as a view."""
    deal = await FeedDealService(db).get_deal(deal_id)
    return ApiResponse(status="success", data=FeedDealResponse.model_validate(deal))


@router.post("/deals/{deal_id}/click", response_model=ApiResponse)
async def click_feed_deal(deal_id: UUID, db: AsyncSession = Depends(get_db)):
    deal = await FeedDealService(db).record_click(deal_id)
    return ApiResponse(status="success", data={"id": str(deal.id), "click_count": deal.click_count})
