"""APScheduler-based crawl scheduler.

Runs two independent jobs: a periodic tick that crawls every due feed source
and a daily purge of expired feed deals. The on-demand entry points used by
the API share the same crawl path as the tick.
"""

import asyncio
from typing import List, Optional
from uuid import UUID

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dealhunter.config import settings
from dealhunter.models.feed_source import FeedSource
from dealhunter.scrapers.adapters.feed import FeedAdapter
from dealhunter.services.crawl_service import CrawlResult, CrawlService
from dealhunter.services.feed_deal_service import FeedDealService
from dealhunter.services.source_registry import SourceRegistry

logger = structlog.get_logger(__name__)

CRAWL_JOB_ID = "crawl_due_sources"
PURGE_JOB_ID = "purge_expired_feed_deals"


class CrawlScheduler:
    """Manages periodic crawling using APScheduler.

    This scheduler:
    - Crawls due sources on every tick (each source's own interval decides)
    - Crawls distinct sources concurrently, one session per source
    - Purges expired feed deals once a day
    - Handles errors without stopping the scheduler
    """

    def __init__(
        self,
        db_session_factory: async_sessionmaker[AsyncSession],
        feed_adapter: Optional[FeedAdapter] = None,
        concurrency: Optional[int] = None,
    ):
        """Initialize crawl scheduler.

        Args:
            db_session_factory: Async session factory for database access
            feed_adapter: Adapter shared by all crawls
            concurrency: Max sources crawled at once
        """
        self.db_session_factory = db_session_factory
        self.feed_adapter = feed_adapter or FeedAdapter()
        self.concurrency = concurrency or settings.CRAWL_CONCURRENCY
        self.scheduler = AsyncIOScheduler(timezone="UTC")
        self.logger = logger.bind(service="crawl_scheduler")

    def start(self) -> None:
        """Register both jobs and start the scheduler."""
        if self.scheduler.running:
            self.logger.warning("scheduler_already_running")
            return

        self.scheduler.add_job(
            func=self._run_due_crawl_wrapper,
            trigger=IntervalTrigger(minutes=settings.CRAWL_TICK_MINUTES, timezone="UTC"),
            id=CRAWL_JOB_ID,
            name="Crawl due feed sources",
            replace_existing=True,
            max_instances=1,  # A slow tick must not overlap the next one
        )
        self.scheduler.add_job(
            func=self._purge_wrapper,
            trigger=CronTrigger(hour=settings.CLEANUP_HOUR_UTC, minute=0, timezone="UTC"),
            id=PURGE_JOB_ID,
            name="Purge expired feed deals",
            replace_existing=True,
            max_instances=1,
        )
        self.scheduler.start()
        self.logger.info(
            "scheduler_started",
            tick_minutes=settings.CRAWL_TICK_MINUTES,
            cleanup_hour_utc=settings.CLEANUP_HOUR_UTC,
        )

    def stop(self) -> None:
        """Stop the scheduler without waiting for in-flight crawls."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            self.logger.info("scheduler_stopped")
        else:
            self.logger.warning("scheduler_not_running")

    def is_running(self) -> bool:
        return self.scheduler.running

    def get_jobs_status(self) -> dict:
        """Get status of all scheduled jobs.

        Returns:
            Dict with job information keyed by job id
        """
        jobs = {}
        for job in self.scheduler.get_jobs():
            jobs[job.id] = {
                "name": job.name,
                "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
                "trigger": str(job.trigger),
            }
        return jobs

    async def run_due_crawl(self) -> List[CrawlResult]:
        """Crawl every active source whose interval has elapsed."""
        async with self.db_session_factory() as db:
            sources = await SourceRegistry(db).list_due_sources()

        self.logger.info("crawl_tick", due_sources=len(sources))
        return await self._crawl_many(sources)

    async def crawl_all_sources(self) -> List[CrawlResult]:
        """Crawl every active source regardless of due-ness."""
        async with self.db_session_factory() as db:
            sources = await SourceRegistry(db).list_active_sources()

        self.logger.info("crawl_all_requested", sources=len(sources))
        return await self._crawl_many(sources)

    async def crawl_source_by_id(self, source_id: UUID) -> CrawlResult:
        """Crawl one source regardless of due-ness or active flag.

        Raises:
            NotFoundError: If no source has this id
        """
        async with self.db_session_factory() as db:
            source = await SourceRegistry(db).get_source(source_id)
            return await CrawlService(db, self.feed_adapter).crawl_source(source)

    async def purge_expired_deals(self) -> int:
        async with self.db_session_factory() as db:
            return await FeedDealService(db).purge_expired()

    async def _crawl_many(self, sources: List[FeedSource]) -> List[CrawlResult]:
        """Crawl sources concurrently, bounded by the configured concurrency."""
        semaphore = asyncio.Semaphore(self.concurrency)

        async def crawl_one(source_id: UUID, source_name: str) -> CrawlResult:
            async with semaphore:
                try:
                    async with self.db_session_factory() as db:
                        source = await SourceRegistry(db).get_source(source_id)
                        return await CrawlService(db, self.feed_adapter).crawl_source(source)
                except Exception as e:
                    self.logger.error(
                        "crawl_source_crashed",
                        source_id=str(source_id),
                        error=str(e),
                        exc_info=True,
                    )
                    return CrawlResult(
                        source_id=str(source_id),
                        source_name=source_name,
                        success=False,
                        errors=[str(e)],
                    )

        return list(await asyncio.gather(*(crawl_one(s.id, s.name) for s in sources)))

    async def _run_due_crawl_wrapper(self) -> None:
        """Job entry point; never lets an exception escape into APScheduler."""
        try:
            results = await self.run_due_crawl()
            self.logger.info(
                "crawl_tick_complete",
                sources=len(results),
                failed=sum(1 for r in results if not r.success),
                new_items=sum(r.new_items for r in results),
            )
        except Exception as e:
            self.logger.error("crawl_tick_failed", error=str(e), exc_info=True)

    async def _purge_wrapper(self) -> None:
        try:
            await self.purge_expired_deals()
        except Exception as e:
            self.logger.error("purge_job_failed", error=str(e), exc_info=True)
