"""Published deal CRUD service.

Published deals normally come from the moderation gate; this service also
covers manual admin edits. discount_percentage is never taken from input:
the Deal mapper hooks recompute it from price/original_price on every write.
"""

from decimal import Decimal
from typing import Any, List, Optional, Tuple
from uuid import UUID

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from dealhunter.core.exceptions import NotFoundError, ValidationError
from dealhunter.models.deal import Deal
from dealhunter.services.affiliate_service import AffiliateTagger

logger = structlog.get_logger(__name__)

_WRITABLE_FIELDS = {
    "title",
    "description",
    "price",
    "original_price",
    "image_url",
    "affiliate_link",
    "category",
    "expiry_date",
    "is_hot",
    "is_featured",
    "asin",
    "coupon_code",
    "promo_description",
    "deal_badge",
    "deal_access_type",
    "deal_end_time",
    "has_promotion",
    "promotion_type",
    "promotion_amount",
    "promotion_percent",
    "promotion_display_text",
    "is_subscribe_and_save",
    "is_coupon_available",
}

# NOT NULL columns: an explicit None is rejected up front
_NON_NULLABLE_FIELDS = {
    "title",
    "price",
    "original_price",
    "affiliate_link",
    "category",
    "is_hot",
    "is_featured",
    "has_promotion",
    "is_subscribe_and_save",
    "is_coupon_available",
}


class DealService:
    """Service for managing published deals."""

    def __init__(self, db: AsyncSession, tagger: Optional[AffiliateTagger] = None):
        """Initialize deal service.

        Args:
            db: Async database session
            tagger: Affiliate tagger applied to every stored link
        """
        self.db = db
        self.tagger = tagger or AffiliateTagger()
        self.logger = logger.bind(service="deal_service")

    async def list_deals(
        self,
        category: Optional[str] = None,
        is_hot: Optional[bool] = None,
        is_featured: Optional[bool] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Deal], int]:
        """Get paginated published deals, newest first.

        Returns:
            Tuple of (deals list, total count)
        """
        conditions = []
        if category:
            conditions.append(Deal.category == category)
        if is_hot is not None:
            conditions.append(Deal.is_hot == is_hot)
        if is_featured is not None:
            conditions.append(Deal.is_featured == is_featured)

        query = (
            select(Deal)
            .where(*conditions)
            .order_by(Deal.created_at.desc(), Deal.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        count_query = select(func.count(Deal.id)).where(*conditions)

        deals = list((await self.db.execute(query)).scalars().all())
        total = (await self.db.execute(count_query)).scalar() or 0

        self.logger.info("deals_fetched", count=len(deals), total=total, page=page)
        return deals, total

    async def get_deal(self, deal_id: UUID) -> Deal:
        """Get a published deal.

        Raises:
            NotFoundError: If no deal has this id
        """
        deal = await self.db.get(Deal, deal_id)
        if deal is None:
            raise NotFoundError("Deal", str(deal_id))
        return deal

    async def create_deal(self, **data: Any) -> Deal:
        """Create a published deal manually.

        Any discount_percentage in data is ignored; the affiliate link is
        sanitized through the tagger.

        Raises:
            ValidationError: On unknown fields or missing prices
        """
        data.pop("discount_percentage", None)
        self._check_fields(data)
        for required in ("title", "price", "original_price", "affiliate_link", "category"):
            if data.get(required) is None:
                raise ValidationError(required, f"{required} is required")

        data["affiliate_link"] = self.tagger.sanitize_affiliate_url(data["affiliate_link"])

        deal = Deal(**data)
        self.db.add(deal)
        await self.db.commit()
        await self.db.refresh(deal)

        self.logger.info(
            "deal_created",
            deal_id=str(deal.id),
            price=float(deal.price),
            discount=float(deal.discount_percentage),
        )
        return deal

    async def update_deal(self, deal_id: UUID, **data: Any) -> Deal:
        """Update a published deal; discount is re-derived from the new prices."""
        deal = await self.get_deal(deal_id)
        data.pop("discount_percentage", None)
        self._check_fields(data)

        if "affiliate_link" in data:
            data["affiliate_link"] = self.tagger.sanitize_affiliate_url(data["affiliate_link"])

        for key, value in data.items():
            setattr(deal, key, value)

        await self.db.commit()
        await self.db.refresh(deal)

        self.logger.info("deal_updated", deal_id=str(deal_id), fields=sorted(data))
        return deal

    async def delete_deal(self, deal_id: UUID) -> None:
        deal = await self.get_deal(deal_id)
        await self.db.delete(deal)
        await self.db.commit()
        self.logger.info("deal_deleted", deal_id=str(deal_id))

    @staticmethod
    def _check_fields(data: dict) -> None:
        unknown = set(data) - _WRITABLE_FIELDS
        if unknown:
            raise ValidationError(sorted(unknown)[0], f"Unknown fields: {', '.join(sorted(unknown))}")
        for key in sorted(_NON_NULLABLE_FIELDS & set(data)):
            if data[key] is None:
                raise ValidationError(key, f"{key} cannot be null")
        for key in ("price", "original_price"):
            value = data.get(key)
            if value is not None and Decimal(str(value)) < 0:
                raise ValidationError(key, f"{key} must be non-negative")
