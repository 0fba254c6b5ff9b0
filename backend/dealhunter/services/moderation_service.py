"""Moderation gate for product API candidates.

PENDING is the only state that allows a transition; APPROVED and REJECTED
are terminal. Every transition is a compare-and-set UPDATE guarded by
status = 'PENDING', so of two concurrent decisions exactly one wins and the
other gets a ConflictError.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Tuple
from uuid import UUID

import structlog
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from dealhunter.core.exceptions import ConflictError, NotFoundError, ValidationError
from dealhunter.models.base import utcnow
from dealhunter.models.deal import Deal
from dealhunter.models.pending_deal import PendingDeal, PendingDealStatus
from dealhunter.scrapers.adapters.amazon import (
    MAX_ITEMS_PER_PAGE,
    AmazonPAAPIAdapter,
    SearchParams,
    get_amazon_adapter,
)
from dealhunter.services.affiliate_service import AffiliateTagger
from dealhunter.services.events import DealEventBus, DealPublished, get_event_bus
from dealhunter.services.ingestion_service import IngestionService, SyncStats

logger = structlog.get_logger(__name__)


@dataclass
class ApprovalOverrides:
    """Moderator-supplied values that take precedence over the pending deal."""

    custom_title: Optional[str] = None
    is_hot: bool = False
    is_featured: bool = False
    coupon_code: Optional[str] = None
    promo_description: Optional[str] = None
    is_coupon_available: Optional[bool] = None
    promotion_amount: Optional[Decimal] = None
    promotion_percent: Optional[Decimal] = None
    promotion_display_text: Optional[str] = None


class ModerationService:
    """Service for syncing, listing and deciding pending deals."""

    def __init__(
        self,
        db: AsyncSession,
        adapter: Optional[AmazonPAAPIAdapter] = None,
        tagger: Optional[AffiliateTagger] = None,
        event_bus: Optional[DealEventBus] = None,
    ):
        """Initialize moderation service.

        Args:
            db: Async database session
            adapter: Product API adapter (process-wide one by default)
            tagger: Affiliate tagger for approved links
            event_bus: Bus that receives DealPublished events
        """
        self.db = db
        self.adapter = adapter or get_amazon_adapter()
        self.tagger = tagger or AffiliateTagger()
        self.event_bus = event_bus or get_event_bus()
        self.ingestion = IngestionService(db)
        self.logger = logger.bind(service="moderation_service")

    async def sync_from_amazon(
        self,
        keywords: Optional[str] = None,
        category: Optional[str] = None,
        sort_by: Optional[str] = None,
        item_count: Optional[int] = None,
        min_discount_percent: Optional[int] = None,
    ) -> SyncStats:
        """Fetch products and queue the new ones for moderation.

        Args:
            keywords: Search keywords
            category: Our category name (mapped to a SearchIndex)
            sort_by: PA-API sort option
            item_count: Number of products wanted (default 10, paginates above 10)
            min_discount_percent: Skip products below this discount

        Returns:
            SyncStats with created/skipped/total counts
        """
        item_count = item_count or MAX_ITEMS_PER_PAGE
        params = SearchParams(
            keywords=keywords,
            category=category,
            sort_by=sort_by,
            item_count=min(item_count, MAX_ITEMS_PER_PAGE),
            min_saving_percent=min_discount_percent,
        )
        self.logger.info("amazon_sync_started", keywords=keywords, category=category, item_count=item_count)

        if item_count > MAX_ITEMS_PER_PAGE:
            candidates = await self.adapter.search_items_paginated(params, item_count)
        else:
            candidates = await self.adapter.search_items(params)

        min_discount = Decimal(min_discount_percent) if min_discount_percent else None
        stats = await self.ingestion.ingest_product_candidates(candidates, min_discount)

        self.logger.info("amazon_sync_complete", **stats.to_dict())
        return stats

    async def list_pending(
        self,
        status: Optional[str] = None,
        category: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Tuple[List[PendingDeal], int]:
        """Get paginated pending deals, newest first.

        Returns:
            Tuple of (pending deals list, total count)
        """
        conditions = []
        if status:
            conditions.append(PendingDeal.status == status)
        if category:
            conditions.append(PendingDeal.category == category)

        query = (
            select(PendingDeal)
            .where(*conditions)
            .order_by(PendingDeal.created_at.desc(), PendingDeal.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        count_query = select(func.count(PendingDeal.id)).where(*conditions)

        items = list((await self.db.execute(query)).scalars().all())
        total = (await self.db.execute(count_query)).scalar() or 0
        return items, total

    async def get_pending(self, pending_id: UUID) -> PendingDeal:
        """Get a pending deal by id.

        Raises:
            NotFoundError: If no pending deal has this id
        """
        pending = await self.db.get(PendingDeal, pending_id)
        if pending is None:
            raise NotFoundError("PendingDeal", str(pending_id))
        return pending

    async def get_stats(self) -> dict:
        """Counts per status plus the overall total."""
        result = await self.db.execute(
            select(PendingDeal.status, func.count(PendingDeal.id)).group_by(PendingDeal.status)
        )
        counts = {status: count for status, count in result.all()}
        stats = {
            "pending": counts.get(PendingDealStatus.PENDING.value, 0),
            "approved": counts.get(PendingDealStatus.APPROVED.value, 0),
            "rejected": counts.get(PendingDealStatus.REJECTED.value, 0),
        }
        stats["total"] = sum(stats.values())
        return stats

    async def approve(
        self,
        pending_id: UUID,
        moderator_id: str,
        overrides: Optional[ApprovalOverrides] = None,
    ) -> Deal:
        """Approve a pending deal and publish it.

        The status flip and the published deal are committed together. The
        product link goes through the affiliate tagger; a tagging failure
        falls back to the untagged link instead of aborting the approval.

        Args:
            pending_id: Pending deal id
            moderator_id: Who decided
            overrides: Optional moderator overrides

        Returns:
            The published Deal

        Raises:
            NotFoundError: If no pending deal has this id
            ConflictError: If the pending deal was already decided
        """
        overrides = overrides or ApprovalOverrides()
        pending = await self.get_pending(pending_id)

        await self._transition(pending_id, PendingDealStatus.APPROVED, moderator_id)

        deal = self._build_deal(pending, overrides, self._affiliate_link(pending.product_url))
        self.db.add(deal)
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        await self.db.refresh(deal)
        await self.db.refresh(pending)

        self.logger.info(
            "pending_deal_approved",
            pending_id=str(pending_id),
            deal_id=str(deal.id),
            moderator_id=moderator_id,
        )

        await self.event_bus.publish(DealPublished.from_deal(deal))
        return deal

    async def reject(self, pending_id: UUID, moderator_id: str, reason: str) -> PendingDeal:
        """Reject a pending deal.

        Raises:
            ValidationError: If the reason is empty or blank
            NotFoundError: If no pending deal has this id
            ConflictError: If the pending deal was already decided
        """
        if not reason or not reason.strip():
            raise ValidationError("reason", "A rejection reason is required")

        await self._transition(
            pending_id,
            PendingDealStatus.REJECTED,
            moderator_id,
            rejection_reason=reason.strip(),
        )
        await self.db.commit()

        pending = await self.get_pending(pending_id)
        await self.db.refresh(pending)

        self.logger.info(
            "pending_deal_rejected",
            pending_id=str(pending_id),
            moderator_id=moderator_id,
            reason=reason,
        )
        return pending

    async def delete_pending(self, pending_id: UUID) -> None:
        pending = await self.get_pending(pending_id)
        await self.db.delete(pending)
        await self.db.commit()
        self.logger.info("pending_deal_deleted", pending_id=str(pending_id))

    async def clear_all(self) -> int:
        """Delete every pending deal. Returns the number removed."""
        self.logger.warning("clearing_all_pending_deals")
        result = await self.db.execute(
            delete(PendingDeal).execution_options(synchronize_session=False)
        )
        await self.db.commit()
        cleared = result.rowcount or 0
        self.logger.info("pending_deals_cleared", count=cleared)
        return cleared

    async def _transition(
        self,
        pending_id: UUID,
        target: PendingDealStatus,
        moderator_id: str,
        rejection_reason: Optional[str] = None,
    ) -> None:
        """Compare-and-set PENDING -> target.

        Raises:
            NotFoundError: If the row vanished
            ConflictError: If the row is no longer PENDING
        """
        values = {
            "status": target.value,
            "approved_by": moderator_id,
            "approved_at": utcnow(),
        }
        if rejection_reason is not None:
            values["rejection_reason"] = rejection_reason

        result = await self.db.execute(
            update(PendingDeal)
            .where(
                PendingDeal.id == pending_id,
                PendingDeal.status == PendingDealStatus.PENDING.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return

        await self.db.rollback()
        current = await self.db.get(PendingDeal, pending_id, populate_existing=True)
        if current is None:
            raise NotFoundError("PendingDeal", str(pending_id))
        self.logger.warning(
            "pending_deal_transition_conflict",
            pending_id=str(pending_id),
            current_status=current.status,
            requested=target.value,
        )
        raise ConflictError(f"Pending deal {pending_id} is already {current.status.lower()}")

    def _affiliate_link(self, product_url: str) -> str:
        try:
            return self.tagger.sanitize_affiliate_url(product_url)
        except Exception as e:
            self.logger.error("affiliate_tagging_failed", url=product_url, error=str(e))
            return product_url

    @staticmethod
    def _build_deal(pending: PendingDeal, overrides: ApprovalOverrides, affiliate_link: str) -> Deal:
        def pick(override, fallback):
            return override if override is not None else fallback

        has_promotion = bool(
            pending.has_promotion
            or overrides.coupon_code
            or overrides.is_coupon_available
            or overrides.promotion_amount
            or overrides.promotion_percent
        )

        return Deal(
            title=(overrides.custom_title or pending.title)[:255],
            description=pending.description,
            price=pending.price,
            original_price=pending.original_price,
            image_url=pending.image_url,
            affiliate_link=affiliate_link,
            category=pending.category,
            is_hot=bool(overrides.is_hot),
            is_featured=bool(overrides.is_featured),
            asin=pending.asin,
            pending_deal_id=pending.id,
            coupon_code=overrides.coupon_code or pending.coupon_code,
            promo_description=overrides.promo_description or pending.promo_description,
            deal_badge=pending.deal_badge,
            deal_access_type=pending.deal_access_type,
            deal_end_time=pending.deal_end_time,
            has_promotion=has_promotion,
            promotion_type=pending.promotion_type or ("Coupon" if overrides.coupon_code else None),
            promotion_amount=pick(overrides.promotion_amount, pending.promotion_amount),
            promotion_percent=pick(overrides.promotion_percent, pending.promotion_percent),
            promotion_display_text=overrides.promotion_display_text or pending.promotion_display_text,
            is_subscribe_and_save=bool(pending.is_subscribe_and_save),
            is_coupon_available=bool(pick(overrides.is_coupon_available, pending.is_coupon_available)),
        )
