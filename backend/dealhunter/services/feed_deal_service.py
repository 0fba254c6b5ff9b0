"""Public catalog of feed-sourced deals.

Feed deals are live as soon as they are crawled; this service handles
browsing, counters and the expiry purge.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple
from uuid import UUID

import structlog
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from dealhunter.core.exceptions import NotFoundError
from dealhunter.models.base import utcnow
from dealhunter.models.feed_deal import FeedDeal

logger = structlog.get_logger(__name__)

SORTABLE_FIELDS = {
    "published_at": FeedDeal.published_at,
    "created_at": FeedDeal.created_at,
    "discount_percentage": FeedDeal.discount_percentage,
    "price": FeedDeal.price,
    "view_count": FeedDeal.view_count,
    "click_count": FeedDeal.click_count,
}


@dataclass
class FeedDealFilters:
    category: Optional[str] = None
    store: Optional[str] = None
    search: Optional[str] = None
    is_hot: Optional[bool] = None
    is_featured: Optional[bool] = None
    min_discount: Optional[Decimal] = None
    source_id: Optional[UUID] = None


class FeedDealService:
    """Service for querying feed deals."""

    def __init__(self, db: AsyncSession):
        """Initialize feed deal service.

        Args:
            db: Async database session
        """
        self.db = db
        self.logger = logger.bind(service="feed_deal_service")

    async def list_deals(
        self,
        filters: Optional[FeedDealFilters] = None,
        page: int = 1,
        limit: int = 20,
        sort_field: str = "published_at",
        sort_order: str = "desc",
    ) -> Tuple[List[FeedDeal], int]:
        """Get paginated active feed deals.

        Args:
            filters: Optional filters
            page: Page number (1-indexed)
            limit: Results per page
            sort_field: One of SORTABLE_FIELDS (unknown values fall back to published_at)
            sort_order: "asc" or "desc"

        Returns:
            Tuple of (deals list, total count)
        """
        filters = filters or FeedDealFilters()
        conditions = [FeedDeal.is_active == True]

        if filters.category:
            conditions.append(FeedDeal.category == filters.category)
        if filters.store:
            conditions.append(FeedDeal.store == filters.store)
        if filters.search:
            pattern = f"%{filters.search}%"
            conditions.append(or_(FeedDeal.title.ilike(pattern), FeedDeal.description.ilike(pattern)))
        if filters.is_hot is not None:
            conditions.append(FeedDeal.is_hot == filters.is_hot)
        if filters.is_featured is not None:
            conditions.append(FeedDeal.is_featured == filters.is_featured)
        if filters.min_discount is not None:
            conditions.append(FeedDeal.discount_percentage >= filters.min_discount)
        if filters.source_id is not None:
            conditions.append(FeedDeal.source_id == filters.source_id)

        column = SORTABLE_FIELDS.get(sort_field, FeedDeal.published_at)
        order = column.asc() if sort_order.lower() == "asc" else column.desc()

        query = (
            select(FeedDeal)
            .where(*conditions)
            .order_by(order, FeedDeal.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        count_query = select(func.count(FeedDeal.id)).where(*conditions)

        deals = list((await self.db.execute(query)).scalars().all())
        total = (await self.db.execute(count_query)).scalar() or 0

        self.logger.debug("feed_deals_fetched", count=len(deals), total=total, page=page)
        return deals, total

    async def get_deal(self, deal_id: UUID) -> FeedDeal:
        """Get a feed deal and count the view.

        Raises:
            NotFoundError: If no deal has this id
        """
        deal = await self.db.get(FeedDeal, deal_id)
        if deal is None:
            raise NotFoundError("FeedDeal", str(deal_id))

        await self.db.execute(
            update(FeedDeal).where(FeedDeal.id == deal_id).values(view_count=FeedDeal.view_count + 1)
        )
        await self.db.commit()
        await self.db.refresh(deal)
        return deal

    async def record_click(self, deal_id: UUID) -> FeedDeal:
        """Count an outbound click and return the deal (for its link)."""
        result = await self.db.execute(
            update(FeedDeal).where(FeedDeal.id == deal_id).values(click_count=FeedDeal.click_count + 1)
        )
        if result.rowcount == 0:
            raise NotFoundError("FeedDeal", str(deal_id))
        await self.db.commit()

        deal = await self.db.get(FeedDeal, deal_id)
        await self.db.refresh(deal)
        return deal

    async def hot_deals(self, limit: int = 10) -> List[FeedDeal]:
        deals, _ = await self.list_deals(FeedDealFilters(is_hot=True), limit=limit)
        return deals

    async def featured_deals(self, limit: int = 10) -> List[FeedDeal]:
        deals, _ = await self.list_deals(FeedDealFilters(is_featured=True), limit=limit)
        return deals

    async def deals_by_source(self, source_id: UUID, limit: int = 20) -> List[FeedDeal]:
        deals, _ = await self.list_deals(FeedDealFilters(source_id=source_id), limit=limit)
        return deals

    async def categories(self) -> List[str]:
        result = await self.db.execute(
            select(FeedDeal.category).where(FeedDeal.is_active == True).distinct().order_by(FeedDeal.category)
        )
        return [row for row in result.scalars().all() if row]

    async def stores(self) -> List[str]:
        result = await self.db.execute(
            select(FeedDeal.store)
            .where(FeedDeal.is_active == True, FeedDeal.store.is_not(None))
            .distinct()
            .order_by(FeedDeal.store)
        )
        return list(result.scalars().all())

    async def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Delete feed deals whose expires_at has passed.

        Returns:
            Number of deleted rows
        """
        now = now or utcnow()
        result = await self.db.execute(
            delete(FeedDeal)
            .where(FeedDeal.expires_at.is_not(None), FeedDeal.expires_at < now)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        purged = result.rowcount or 0
        self.logger.info("expired_feed_deals_purged", count=purged)
        return purged
