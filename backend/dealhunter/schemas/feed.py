"""Feed source, feed deal and crawl result schemas."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, HttpUrl


class FeedSourceCreate(BaseModel):
    """Request body for registering a feed source."""

    name: str = Field(..., min_length=1, max_length=255)
    url: HttpUrl
    category: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    crawl_interval_minutes: int = Field(30, ge=1, le=10080)
    priority: int = 1
    is_active: bool = True


class FeedSourceUpdate(BaseModel):
    """Partial update of a feed source; scheduling metadata is read-only."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    url: Optional[HttpUrl] = None
    category: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    crawl_interval_minutes: Optional[int] = Field(None, ge=1, le=10080)
    priority: Optional[int] = None
    is_active: Optional[bool] = None


class FeedSourceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    url: str
    category: str
    description: Optional[str] = None
    is_active: bool
    crawl_interval_minutes: int
    last_crawled_at: Optional[datetime] = None
    total_items_crawled: int
    error_count: int
    last_error: Optional[str] = None
    priority: int
    created_at: datetime


class FeedDealResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    description: Optional[str] = None
    link: str
    guid: str
    image_url: Optional[str] = None
    category: str
    price: Optional[Decimal] = None
    original_price: Optional[Decimal] = None
    discount_percentage: Optional[Decimal] = None
    store: Optional[str] = None
    coupon_code: Optional[str] = None
    published_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    is_hot: bool
    is_featured: bool
    view_count: int
    click_count: int
    source_id: UUID


class CrawlResultResponse(BaseModel):
    """Per-source crawl outcome, serialized with camelCase keys."""

    model_config = ConfigDict(populate_by_name=True)

    source_id: str = Field(..., alias="sourceId")
    source_name: str = Field(..., alias="sourceName")
    success: bool
    items_crawled: int = Field(..., alias="itemsCrawled")
    new_items: int = Field(..., alias="newItems")
    errors: List[str] = []
