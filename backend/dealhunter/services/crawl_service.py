"""Crawl procedure for a single feed source.

fetch via FeedAdapter -> ingest each candidate in order -> report the outcome
to the SourceRegistry. Entries of one source are processed sequentially so
dedup checks observe the source's own prior writes.
"""

from dataclasses import dataclass, field
from typing import List, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from dealhunter.core.exceptions import UpstreamFetchError
from dealhunter.models.base import utcnow
from dealhunter.models.feed_source import FeedSource
from dealhunter.scrapers.adapters.feed import FeedAdapter
from dealhunter.services.ingestion_service import IngestionService
from dealhunter.services.source_registry import SourceRegistry

logger = structlog.get_logger(__name__)


@dataclass
class CrawlResult:
    """Outcome of crawling one source."""

    source_id: str
    source_name: str
    success: bool
    items_crawled: int = 0
    new_items: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        """External shape with camelCase keys."""
        return {
            "sourceId": self.source_id,
            "sourceName": self.source_name,
            "success": self.success,
            "itemsCrawled": self.items_crawled,
            "newItems": self.new_items,
            "errors": list(self.errors),
        }


class CrawlService:
    """Service that crawls one feed source end to end."""

    def __init__(self, db: AsyncSession, feed_adapter: Optional[FeedAdapter] = None):
        """Initialize crawl service.

        Args:
            db: Async database session
            feed_adapter: Adapter used to fetch feeds (a default one if omitted)
        """
        self.db = db
        self.feed_adapter = feed_adapter or FeedAdapter()
        self.registry = SourceRegistry(db)
        self.ingestion = IngestionService(db)
        self.logger = logger.bind(service="crawl_service")

    async def crawl_source(self, source: FeedSource) -> CrawlResult:
        """Crawl a source and record the outcome.

        A fetch failure is recorded against the source and reported in the
        result; it never raises.

        Args:
            source: Feed source to crawl

        Returns:
            CrawlResult for this source
        """
        source_id = source.id
        result = CrawlResult(source_id=str(source_id), source_name=source.name, success=False)
        self.logger.info("crawl_started", source_id=result.source_id, source_name=source.name)

        try:
            fetched = await self.feed_adapter.fetch_feed(source)
        except UpstreamFetchError as e:
            result.errors.append(e.message)
            await self.registry.record_crawl_failure(source_id, e.message)
            self.logger.error("crawl_fetch_failed", source_id=result.source_id, error=e.message)
            return result

        result.items_crawled = len(fetched.items)
        result.errors.extend(fetched.errors)

        for candidate in fetched.items:
            try:
                if await self.ingestion.ingest_feed_candidate(candidate, source):
                    result.new_items += 1
            except Exception as e:
                # rollback expires the source; reload it for the remaining entries
                await self.db.rollback()
                source = await self.registry.get_source(source_id)
                self.logger.warning(
                    "crawl_item_import_failed",
                    source_id=result.source_id,
                    guid=candidate.guid,
                    error=str(e),
                )
                result.errors.append(f"Failed to import '{candidate.title}': {e}")

        await self.registry.record_crawl_success(
            source_id,
            new_items=result.new_items,
            errors=result.errors,
            crawled_at=utcnow(),
        )
        result.success = True

        self.logger.info(
            "crawl_complete",
            source_id=result.source_id,
            items_crawled=result.items_crawled,
            new_items=result.new_items,
            errors=len(result.errors),
        )
        return result
