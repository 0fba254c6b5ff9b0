"""Ingestion and deduplication of adapter candidates.

Feed candidates are keyed by guid and stored as live FeedDeals; product
candidates are keyed by ASIN and queued as PendingDeals for moderation.
Uniqueness is enforced by the database: each insert runs in a SAVEPOINT and
an IntegrityError on the key counts as a duplicate, so concurrent ingests of
the same key leave exactly one row.
"""

import json
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from dealhunter.config import settings
from dealhunter.models.feed_deal import FeedDeal
from dealhunter.models.feed_source import FeedSource
from dealhunter.models.pending_deal import PendingDeal, PendingDealStatus
from dealhunter.scrapers.base import FeedCandidate, ProductCandidate
from dealhunter.scrapers.utils.normalizer import PriceNormalizer

logger = structlog.get_logger(__name__)

CLIP_COUPON_HINT = "Clip coupon on Amazon product page for additional savings"


@dataclass
class SyncStats:
    """The {created, skipped, total} triple returned by every sync."""

    created: int = 0
    skipped: int = 0
    total: int = 0

    def to_dict(self) -> dict:
        return {"created": self.created, "skipped": self.skipped, "total": self.total}


class IngestionService:
    """Service for deduplicating and persisting candidates."""

    def __init__(self, db: AsyncSession):
        """Initialize ingestion service.

        Args:
            db: Async database session
        """
        self.db = db
        self.logger = logger.bind(service="ingestion_service")

    async def feed_deal_exists(self, guid: str) -> bool:
        result = await self.db.execute(select(FeedDeal.id).where(FeedDeal.guid == guid))
        return result.first() is not None

    async def pending_deal_exists(self, asin: str) -> bool:
        result = await self.db.execute(select(PendingDeal.id).where(PendingDeal.asin == asin))
        return result.first() is not None

    async def ingest_feed_candidate(self, candidate: FeedCandidate, source: FeedSource) -> bool:
        """Store one feed candidate unless its guid is already known.

        Args:
            candidate: Normalized feed entry
            source: Owning feed source

        Returns:
            True if a new FeedDeal was created, False if it was a duplicate
        """
        if await self.feed_deal_exists(candidate.guid):
            self.logger.debug("feed_candidate_duplicate", guid=candidate.guid)
            return False

        discount = None
        if candidate.price is not None and candidate.original_price is not None:
            discount = PriceNormalizer.calculate_discount_percentage(candidate.original_price, candidate.price)

        deal = FeedDeal(
            title=candidate.title,
            description=candidate.description,
            link=candidate.link,
            guid=candidate.guid,
            image_url=candidate.image_url,
            category=candidate.category or source.category,
            price=candidate.price,
            original_price=candidate.original_price,
            discount_percentage=discount,
            store=candidate.store,
            coupon_code=candidate.coupon_code,
            published_at=candidate.published_at,
            is_hot=discount is not None and discount >= settings.HOT_DEAL_DISCOUNT_THRESHOLD,
            source_id=source.id,
        )

        if not await self._insert(deal):
            self.logger.debug("feed_candidate_duplicate_on_insert", guid=candidate.guid)
            return False

        await self.db.commit()
        self.logger.debug("feed_deal_created", guid=candidate.guid, source_id=str(source.id))
        return True

    async def ingest_product_candidates(
        self,
        candidates: List[ProductCandidate],
        min_discount_percent: Optional[Decimal] = None,
    ) -> SyncStats:
        """Queue product candidates for moderation.

        Args:
            candidates: Normalized product API items
            min_discount_percent: Skip candidates below this discount

        Returns:
            SyncStats with created/skipped/total counts
        """
        stats = SyncStats(total=len(candidates))

        for candidate in candidates:
            if await self.pending_deal_exists(candidate.asin):
                stats.skipped += 1
                continue

            discount = PriceNormalizer.calculate_discount_percentage(candidate.original_price, candidate.price)
            if min_discount_percent is not None and discount < Decimal(str(min_discount_percent)):
                stats.skipped += 1
                continue

            if await self._insert(self._build_pending_deal(candidate, discount)):
                stats.created += 1
            else:
                stats.skipped += 1

        await self.db.commit()

        self.logger.info("product_candidates_ingested", **stats.to_dict())
        return stats

    async def _insert(self, row) -> bool:
        """Add a row inside a SAVEPOINT; False when a unique key already exists."""
        try:
            async with self.db.begin_nested():
                self.db.add(row)
        except IntegrityError:
            return False
        return True

    @staticmethod
    def _build_pending_deal(candidate: ProductCandidate, discount: Decimal) -> PendingDeal:
        promo_description = candidate.promotion_display_text
        if not promo_description and candidate.is_coupon_available:
            promo_description = CLIP_COUPON_HINT

        return PendingDeal(
            asin=candidate.asin,
            title=candidate.title[:500],
            description=candidate.description,
            price=candidate.price,
            original_price=candidate.original_price,
            discount_percentage=discount,
            image_url=candidate.image_url,
            product_url=candidate.product_url,
            category=candidate.category,
            status=PendingDealStatus.PENDING.value,
            promo_description=promo_description,
            deal_badge=candidate.deal_badge,
            deal_access_type=candidate.deal_access_type,
            deal_start_time=candidate.deal_start_time,
            deal_end_time=candidate.deal_end_time,
            deal_percent_claimed=candidate.deal_percent_claimed,
            has_promotion=candidate.has_promotion,
            promotion_type=candidate.promotion_type,
            promotion_amount=candidate.promotion_amount,
            promotion_percent=candidate.promotion_percent,
            promotion_display_text=candidate.promotion_display_text,
            is_subscribe_and_save=candidate.is_subscribe_and_save,
            is_coupon_available=candidate.is_coupon_available,
            saving_basis_type=candidate.saving_basis_type,
            savings_amount=candidate.savings_amount,
            raw_promotion_data=json.dumps(candidate.raw_promotions, default=str) if candidate.raw_promotions else None,
        )
