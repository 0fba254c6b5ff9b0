"""Published deals API endpoints."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from dealhunter.dependencies import get_affiliate_tagger, get_db
from dealhunter.schemas import (
    ApiResponse,
    DealCreateRequest,
    DealResponse,
    DealUpdateRequest,
    PaginationMeta,
    ParseDealTextRequest,
    ParsedDealTextResponse,
)
from dealhunter.scrapers.utils.extraction import parse_deal_text
from dealhunter.services.affiliate_service import AffiliateTagger
from dealhunter.services.deal_service import DealService

router = APIRouter()


def get_deal_service(
    db: AsyncSession = Depends(get_db),
    tagger: AffiliateTagger = Depends(get_affiliate_tagger),
) -> DealService:
    return DealService(db, tagger=tagger)


@router.get("", response_model=ApiResponse)
async def list_deals(
    page: int = Query(1, ge=1, description="Page number (1-indexed)"),
    limit: int = Query(20, ge=1, le=100, description="Items per page"),
    category: Optional[str] = Query(None, description="Filter by category"),
    is_hot: Optional[bool] = Query(None),
    is_featured: Optional[bool] = Query(None),
    service: DealService = Depends(get_deal_service),
):
    """List published deals, newest first."""
    deals, total = await service.list_deals(
        category=category,
        is_hot=is_hot,
        is_featured=is_featured,
        page=page,
        limit=limit,
    )

    return ApiResponse(
        status="success",
        data=[DealResponse.model_validate(d) for d in deals],
        meta=PaginationMeta.build(page=page, limit=limit, total=total),
    )


@router.post("", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def create_deal(body: DealCreateRequest, service: DealService = Depends(get_deal_service)):
    """Publish a deal by hand. The discount is derived from the two prices."""
    deal = await service.create_deal(**body.model_dump(exclude_unset=True))
    return ApiResponse(status="success", data=DealResponse.model_validate(deal))


@router.post("/parse", response_model=ApiResponse)
async def parse_deal(body: ParseDealTextRequest):
    """Pull structured fields out of a pasted deal listing.

    Nothing is stored; the result prefills a manual entry form.
    """
    parsed = parse_deal_text(body.text)
    return ApiResponse(status="success", data=ParsedDealTextResponse(**vars(parsed)))


@router.get("/{deal_id}", response_model=ApiResponse)
async def get_deal(deal_id: UUID, service: DealService = Depends(get_deal_service)):
    deal = await service.get_deal(deal_id)
    return ApiResponse(status="success", data=DealResponse.model_validate(deal))


@router.patch("/{deal_id}", response_model=ApiResponse)
async def update_deal(
    deal_id: UUID,
    body: DealUpdateRequest,
    service: DealService = Depends(get_deal_service),
):
    deal = await service.update_deal(deal_id, **body.model_dump(exclude_unset=True))
    return ApiResponse(status="success", data=DealResponse.model_validate(deal))


@router.delete("/{deal_id}", response_model=ApiResponse)
async def delete_deal(deal_id: UUID, service: DealService = Depends(get_deal_service)):
    await service.delete_deal(deal_id)
    return ApiResponse(status="success", data={"deleted": str(deal_id)})
