"""Moderation queue schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

SortOption = Literal["Price:LowToHigh", "Price:HighToLow", "AvgCustomerReviews", "NewestArrivals"]
StatusOption = Literal["PENDING", "APPROVED", "REJECTED"]


class SyncDealsRequest(BaseModel):
    """Sync parameters; accepts camelCase or snake_case keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    keywords: Optional[str] = None
    category: Optional[str] = None
    sort_by: Optional[SortOption] = None
    item_count: Optional[int] = Field(None, ge=1, le=100)
    min_discount_percent: Optional[int] = Field(None, ge=0, le=99)


class SyncResultResponse(BaseModel):
    created: int
    skipped: int
    total: int


class ApproveDealRequest(BaseModel):
    """Optional moderator overrides applied to the published deal."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    custom_title: Optional[str] = Field(None, max_length=255)
    is_hot: bool = False
    is_featured: bool = False
    coupon_code: Optional[str] = Field(None, max_length=50)
    promo_description: Optional[str] = None
    is_coupon_available: Optional[bool] = None
    promotion_amount: Optional[Decimal] = Field(None, ge=0)
    promotion_percent: Optional[Decimal] = Field(None, ge=0, le=100)
    promotion_display_text: Optional[str] = Field(None, max_length=500)


class RejectDealRequest(BaseModel):
    reason: str

    @field_validator("reason")
    @classmethod
    def reason_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("reason must not be empty")
        return value.strip()


class PendingDealResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    asin: str
    title: str
    description: Optional[str] = None
    price: Decimal
    original_price: Decimal
    discount_percentage: Decimal
    image_url: Optional[str] = None
    product_url: str
    category: str
    status: StatusOption
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    coupon_code: Optional[str] = None
    promo_description: Optional[str] = None
    deal_badge: Optional[str] = None
    deal_access_type: Optional[str] = None
    deal_end_time: Optional[datetime] = None
    has_promotion: bool
    promotion_type: Optional[str] = None
    promotion_percent: Optional[Decimal] = None
    promotion_display_text: Optional[str] = None
    is_subscribe_and_save: bool
    is_coupon_available: bool
    created_at: datetime


class PendingStatsResponse(BaseModel):
    pending: int
    approved: int
    rejected: int
    total: int
