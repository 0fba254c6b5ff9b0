"""Feed source registry.

Owns the catalog of feed sources and their scheduling metadata. The crawl
pipeline never touches last_crawled_at or the counters directly; it reports
outcomes through record_crawl_success / record_crawl_failure.
"""

from datetime import datetime, timedelta
from typing import Any, List, Optional
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from dealhunter.core.exceptions import NotFoundError
from dealhunter.models.base import ensure_utc, utcnow
from dealhunter.models.feed_source import FeedSource

logger = structlog.get_logger(__name__)

LAST_ERROR_MAX_LENGTH = 500

_UPDATABLE_FIELDS = {
    "name",
    "url",
    "description",
    "category",
    "is_active",
    "crawl_interval_minutes",
    "priority",
}


def is_due(source: FeedSource, now: Optional[datetime] = None) -> bool:
    """Whether a source should be crawled at `now`.

    A never-crawled source is always due; otherwise the source's own
    crawl_interval_minutes must have elapsed since its last successful crawl.
    """
    if source.last_crawled_at is None:
        return True
    now = ensure_utc(now or utcnow())
    next_crawl = ensure_utc(source.last_crawled_at) + timedelta(minutes=source.crawl_interval_minutes)
    return now >= next_crawl


class SourceRegistry:
    """Service for managing feed sources and their crawl bookkeeping."""

    def __init__(self, db: AsyncSession):
        """Initialize source registry.

        Args:
            db: Async database session
        """
        self.db = db
        self.logger = logger.bind(service="source_registry")

    async def create_source(
        self,
        name: str,
        url: str,
        category: str,
        description: Optional[str] = None,
        crawl_interval_minutes: int = 30,
        priority: int = 1,
        is_active: bool = True,
    ) -> FeedSource:
        """Register a new feed source.

        Args:
            name: Display name
            url: Feed URL
            category: Category stamped on every deal crawled from this feed
            description: Optional free text
            crawl_interval_minutes: Minutes between crawls
            priority: Ordering hint, higher first
            is_active: Whether the scheduler should crawl it

        Returns:
            Created FeedSource (never crawled, so immediately due)
        """
        source = FeedSource(
            name=name,
            url=url,
            category=category,
            description=description,
            crawl_interval_minutes=crawl_interval_minutes,
            priority=priority,
            is_active=is_active,
        )
        self.db.add(source)
        await self.db.commit()
        await self.db.refresh(source)

        self.logger.info("feed_source_created", source_id=str(source.id), name=name, url=url)
        return source

    async def get_source(self, source_id: UUID) -> FeedSource:
        """Get a source by id.

        Raises:
            NotFoundError: If no source has this id
        """
        source = await self.db.get(FeedSource, source_id)
        if source is None:
            raise NotFoundError("FeedSource", str(source_id))
        return source

    async def list_sources(self) -> List[FeedSource]:
        result = await self.db.execute(
            select(FeedSource).order_by(FeedSource.priority.desc(), FeedSource.name.asc())
        )
        return list(result.scalars().all())

    async def list_active_sources(self) -> List[FeedSource]:
        result = await self.db.execute(
            select(FeedSource)
            .where(FeedSource.is_active == True)
            .order_by(FeedSource.priority.desc(), FeedSource.name.asc())
        )
        return list(result.scalars().all())

    async def list_due_sources(self, now: Optional[datetime] = None) -> List[FeedSource]:
        """Active sources whose own crawl interval has elapsed.

        Args:
            now: Reference time (defaults to current UTC time)

        Returns:
            Due sources ordered by priority
        """
        now = now or utcnow()
        due = [source for source in await self.list_active_sources() if is_due(source, now)]
        self.logger.debug("due_sources_resolved", count=len(due))
        return due

    async def update_source(self, source_id: UUID, **fields: Any) -> FeedSource:
        """Update editable fields of a source.

        Scheduling metadata (last crawl, counters) is not editable here.

        Raises:
            NotFoundError: If no source has this id
        """
        source = await self.get_source(source_id)
        for key, value in fields.items():
            if key not in _UPDATABLE_FIELDS:
                raise ValueError(f"Field '{key}' cannot be updated")
            setattr(source, key, value)

        await self.db.commit()
        await self.db.refresh(source)

        self.logger.info("feed_source_updated", source_id=str(source_id), fields=sorted(fields))
        return source

    async def delete_source(self, source_id: UUID) -> None:
        """Delete a source and its crawled deals (admin action only)."""
        source = await self.get_source(source_id)
        await self.db.delete(source)
        await self.db.commit()
        self.logger.info("feed_source_deleted", source_id=str(source_id))

    async def record_crawl_success(
        self,
        source_id: UUID,
        new_items: int,
        errors: List[str],
        crawled_at: Optional[datetime] = None,
    ) -> None:
        """Record a completed crawl.

        Advances last_crawled_at and adds new_items to the running total.
        Entry-level errors bump error_count and keep the first message;
        a clean crawl resets both.
        """
        values: dict = {
            "last_crawled_at": crawled_at or utcnow(),
            "total_items_crawled": FeedSource.total_items_crawled + new_items,
        }
        if errors:
            values["error_count"] = FeedSource.error_count + 1
            values["last_error"] = errors[0][:LAST_ERROR_MAX_LENGTH]
        else:
            values["error_count"] = 0
            values["last_error"] = None

        await self.db.execute(update(FeedSource).where(FeedSource.id == source_id).values(**values))
        await self.db.commit()

        self.logger.info(
            "crawl_recorded",
            source_id=str(source_id),
            new_items=new_items,
            entry_errors=len(errors),
        )

    async def record_crawl_failure(self, source_id: UUID, error: str) -> None:
        """Record a failed fetch; last_crawled_at is untouched so the source stays due."""
        await self.db.execute(
            update(FeedSource)
            .where(FeedSource.id == source_id)
            .values(
                error_count=FeedSource.error_count + 1,
                last_error=error[:LAST_ERROR_MAX_LENGTH],
            )
        )
        await self.db.commit()

        self.logger.warning("crawl_failure_recorded", source_id=str(source_id), error=error)
