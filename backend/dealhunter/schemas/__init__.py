"""Pydantic schemas for DealHunter API.

All request/response models are defined here for easy import.
"""

from dealhunter.schemas.common import ApiResponse, ErrorDetail, ErrorResponse, PaginationMeta
from dealhunter.schemas.deal import (
    DealCreateRequest,
    DealResponse,
    DealUpdateRequest,
    ParseDealTextRequest,
    ParsedDealTextResponse,
)
from dealhunter.schemas.feed import (
    CrawlResultResponse,
    FeedDealResponse,
    FeedSourceCreate,
    FeedSourceResponse,
    FeedSourceUpdate,
)
from dealhunter.schemas.health import HealthCheckResponse
from dealhunter.schemas.pending_deal import (
    ApproveDealRequest,
    PendingDealResponse,
    PendingStatsResponse,
    RejectDealRequest,
    SyncDealsRequest,
    SyncResultResponse,
)

__all__ = [
    # Common
    "ApiResponse",
    "ErrorDetail",
    "ErrorResponse",
    "PaginationMeta",
    # Deal
    "DealResponse",
    "DealCreateRequest",
    "DealUpdateRequest",
    "ParseDealTextRequest",
    "ParsedDealTextResponse",
    # Feed
    "FeedSourceCreate",
    "FeedSourceUpdate",
    "FeedSourceResponse",
    "FeedDealResponse",
    "CrawlResultResponse",
    # Moderation
    "SyncDealsRequest",
    "SyncResultResponse",
    "ApproveDealRequest",
    "RejectDealRequest",
    "PendingDealResponse",
    "PendingStatsResponse",
    # Health
    "HealthCheckResponse",
]
