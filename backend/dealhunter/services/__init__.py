"""Services module for business logic and data operations.

Services own the ingestion pipeline: source bookkeeping, crawling,
deduplication, moderation, affiliate tagging and the published catalog.
"""

from dealhunter.services.affiliate_service import AffiliateTagger
from dealhunter.services.crawl_service import CrawlResult, CrawlService
from dealhunter.services.deal_service import DealService
from dealhunter.services.events import DealEventBus, DealPublished, get_event_bus
from dealhunter.services.feed_deal_service import FeedDealFilters, FeedDealService
from dealhunter.services.ingestion_service import IngestionService, SyncStats
from dealhunter.services.moderation_service import ApprovalOverrides, ModerationService
from dealhunter.services.source_registry import SourceRegistry, is_due

__all__ = [
    "AffiliateTagger",
    "CrawlResult",
    "CrawlService",
    "DealService",
    "DealEventBus",
    "DealPublished",
    "get_event_bus",
    "FeedDealFilters",
    "FeedDealService",
    "IngestionService",
    "SyncStats",
    "ApprovalOverrides",
    "ModerationService",
    "SourceRegistry",
    "is_due",
]
