"""Moderation queue endpoints.

Products from the structured product API land here as PENDING and only
reach the published catalog through an approval.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from dealhunter.dependencies import (
    get_affiliate_tagger,
    get_db,
    get_deal_event_bus,
    get_moderator_id,
    get_product_adapter,
)
from dealhunter.schemas import (
    ApiResponse,
    ApproveDealRequest,
    DealResponse,
    PaginationMeta,
    PendingDealResponse,
    PendingStatsResponse,
    RejectDealRequest,
    SyncDealsRequest,
    SyncResultResponse,
)
from dealhunter.scrapers.adapters.amazon import AmazonPAAPIAdapter
from dealhunter.services.affiliate_service import AffiliateTagger
from dealhunter.services.events import DealEventBus
from dealhunter.services.moderation_service import ApprovalOverrides, ModerationService

router = APIRouter()


def get_moderation_service(
    db: AsyncSession = Depends(get_db),
    adapter: AmazonPAAPIAdapter = Depends(get_product_adapter),
    tagger: AffiliateTagger = Depends(get_affiliate_tagger),
    event_bus: DealEventBus = Depends(get_deal_event_bus),
) -> ModerationService:
    return ModerationService(db, adapter=adapter, tagger=tagger, event_bus=event_bus)


@router.post("/sync", response_model=ApiResponse)
async def sync_pending_deals(
    body: Optional[SyncDealsRequest] = Body(None),
    service: ModerationService = Depends(get_moderation_service),
):
    """Fetch products from the product API and queue the new ones.

    Products already queued (same ASIN) are counted as skipped.
    """
    body = body or SyncDealsRequest()
    stats = await service.sync_from_amazon(
        keywords=body.keywords,
        category=body.category,
        sort_by=body.sort_by,
        item_count=body.item_count,
        min_discount_percent=body.min_discount_percent,
    )
    return ApiResponse(status="success", data=SyncResultResponse(**stats.to_dict()))


@router.get("", response_model=ApiResponse)
async def list_pending_deals(
    status: Optional[str] = Query(None, pattern="^(PENDING|APPROVED|REJECTED)$"),
    category: Optional[str] = Query(None),
    page: int = Query(1, ge=1, description="Page number (1-indexed)"),
    limit: int = Query(10, ge=1, le=100, description="Items per page"),
    service: ModerationService = Depends(get_moderation_service),
):
    """List queued products, newest first."""
    items, total = await service.list_pending(status=status, category=category, page=page, limit=limit)

    return ApiResponse(
        status="success",
        data=[PendingDealResponse.model_validate(p) for p in items],
        meta=PaginationMeta.build(page=page, limit=limit, total=total),
    )


@router.get("/stats", response_model=ApiResponse)
async def pending_deal_stats(service: ModerationService = Depends(get_moderation_service)):
    stats = await service.get_stats()
    return ApiResponse(status="success", data=PendingStatsResponse(**stats))


@router.get("/{pending_id}", response_model=ApiResponse)
async def get_pending_deal(
    pending_id: UUID,
    service: ModerationService = Depends(get_moderation_service),
):
    pending = await service.get_pending(pending_id)
    return ApiResponse(status="success", data=PendingDealResponse.model_validate(pending))


@router.post("/{pending_id}/approve", response_model=ApiResponse)
async def approve_pending_deal(
    pending_id: UUID,
    body: Optional[ApproveDealRequest] = Body(None),
    moderator_id: str = Depends(get_moderator_id),
    service: ModerationService = Depends(get_moderation_service),
):
    """Approve a pending deal and publish it.

    Returns 409 when the deal was already approved or rejected.
    """
    overrides = ApprovalOverrides(**body.model_dump()) if body else None
    deal = await service.approve(pending_id, moderator_id, overrides)
    return ApiResponse(status="success", data=DealResponse.model_validate(deal))


@router.post("/{pending_id}/reject", response_model=ApiResponse)
async def reject_pending_deal(
    pending_id: UUID,
    body: RejectDealRequest,
    moderator_id: str = Depends(get_moderator_id),
    service: ModerationService = Depends(get_moderation_service),
):
    """Reject a pending deal; a non-blank reason is required."""
    pending = await service.reject(pending_id, moderator_id, body.reason)
    return ApiResponse(status="success", data=PendingDealResponse.model_validate(pending))


@router.delete("/{pending_id}", response_model=ApiResponse)
async def delete_pending_deal(
    pending_id: UUID,
    service: ModerationService = Depends(get_moderation_service),
):
    await service.delete_pending(pending_id)
    return ApiResponse(status="success", data={"deleted": str(pending_id)})


@router.delete("", response_model=ApiResponse)
async def clear_pending_deals(service: ModerationService = Depends(get_moderation_service)):
    """Remove every queued product, whatever its status."""
    cleared = await service.clear_all()
    return ApiResponse(status="success", data={"deleted": cleared})
