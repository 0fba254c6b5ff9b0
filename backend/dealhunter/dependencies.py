"""FastAPI dependency injection providers."""

from typing import AsyncGenerator, Optional

from fastapi import Header
from sqlalchemy.ext.asyncio import AsyncSession

from dealhunter.db.session import async_session_factory
from dealhunter.scrapers.adapters.amazon import AmazonPAAPIAdapter, get_amazon_adapter
from dealhunter.scrapers.adapters.feed import FeedAdapter
from dealhunter.scrapers.scheduler import CrawlScheduler
from dealhunter.services.affiliate_service import AffiliateTagger
from dealhunter.services.events import DealEventBus, get_event_bus

DEFAULT_MODERATOR_ID = "admin"

_feed_adapter: Optional[FeedAdapter] = None
_crawl_scheduler: Optional[CrawlScheduler] = None


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a database session for request-scoped usage.

    The session is automatically committed on success or rolled back on error.
    Always closed after the request completes.

    Usage:
        @router.get("/deals")
        async def list_deals(db: AsyncSession = Depends(get_db)):
            result = await db.execute(select(Deal))
            return result.scalars().all()
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def get_moderator_id(
    x_moderator_id: Optional[str] = Header(None, alias="X-Moderator-Id"),
) -> str:
    """Moderator identity as asserted by the caller; no authentication."""
    if x_moderator_id and x_moderator_id.strip():
        return x_moderator_id.strip()
    return DEFAULT_MODERATOR_ID


def get_product_adapter() -> AmazonPAAPIAdapter:
    return get_amazon_adapter()


def get_affiliate_tagger() -> AffiliateTagger:
    return AffiliateTagger()


def get_deal_event_bus() -> DealEventBus:
    return get_event_bus()


def get_feed_adapter() -> FeedAdapter:
    global _feed_adapter
    if _feed_adapter is None:
        _feed_adapter = FeedAdapter()
    return _feed_adapter


def set_crawl_scheduler(scheduler: Optional[CrawlScheduler]) -> None:
    """Register the scheduler started by the application lifespan."""
    global _crawl_scheduler
    _crawl_scheduler = scheduler


def get_crawl_scheduler() -> CrawlScheduler:
    """Get the running scheduler, or an unstarted one for on-demand crawls.

    On-demand crawls only use the scheduler's crawl path, so an instance that
    was never started (test environment) still serves them.
    """
    global _crawl_scheduler
    if _crawl_scheduler is None:
        _crawl_scheduler = CrawlScheduler(async_session_factory, feed_adapter=get_feed_adapter())
    return _crawl_scheduler
