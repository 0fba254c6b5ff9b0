"""Published deal Pydantic schemas for request/response validation."""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class DealResponse(BaseModel):
    """Standard published deal response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    description: Optional[str] = None
    price: Decimal
    original_price: Decimal
    discount_percentage: Decimal
    image_url: Optional[str] = None
    affiliate_link: str
    category: str
    expiry_date: Optional[datetime] = None
    is_hot: bool
    is_featured: bool
    asin: Optional[str] = None
    pending_deal_id: Optional[UUID] = None
    coupon_code: Optional[str] = None
    promo_description: Optional[str] = None
    deal_badge: Optional[str] = None
    deal_end_time: Optional[datetime] = None
    has_promotion: bool
    promotion_type: Optional[str] = None
    promotion_amount: Optional[Decimal] = None
    promotion_percent: Optional[Decimal] = None
    promotion_display_text: Optional[str] = None
    is_subscribe_and_save: bool
    is_coupon_available: bool
    created_at: datetime


class DealCreateRequest(BaseModel):
    """Manual deal entry. No discount field: it is always derived."""

    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    price: Decimal = Field(..., ge=0)
    original_price: Decimal = Field(..., ge=0)
    image_url: Optional[str] = None
    affiliate_link: str
    category: str = Field(..., min_length=1, max_length=100)
    expiry_date: Optional[datetime] = None
    is_hot: bool = False
    is_featured: bool = False
    asin: Optional[str] = None
    coupon_code: Optional[str] = Field(None, max_length=50)
    promo_description: Optional[str] = None


class DealUpdateRequest(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0)
    original_price: Optional[Decimal] = Field(None, ge=0)
    image_url: Optional[str] = None
    affiliate_link: Optional[str] = None
    category: Optional[str] = Field(None, min_length=1, max_length=100)
    expiry_date: Optional[datetime] = None
    is_hot: Optional[bool] = None
    is_featured: Optional[bool] = None
    coupon_code: Optional[str] = Field(None, max_length=50)
    promo_description: Optional[str] = None


class ParseDealTextRequest(BaseModel):
    text: str = Field(..., min_length=1)


class ParsedDealTextResponse(BaseModel):
    title: Optional[str] = None
    price: Optional[Decimal] = None
    original_price: Optional[Decimal] = None
    product_url: Optional[str] = None
    image_url: Optional[str] = None
    coupon_code: Optional[str] = None
    expiry_date: Optional[date] = None
    category: Optional[str] = None
    missing_fields: List[str] = []
