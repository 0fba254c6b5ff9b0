"""Deal model: the canonical public-facing published deal."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, Text, ForeignKey, Boolean, Numeric, DateTime, Index, event
from sqlalchemy.orm import Mapped, mapped_column

from dealhunter.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from dealhunter.scrapers.utils.normalizer import PriceNormalizer


class Deal(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A published deal.

    Created exactly once per approved pending deal (or manually by an admin).
    discount_percentage is always derived from price/original_price by the
    mapper hooks below, never taken from input.
    """

    __tablename__ = "deals"

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Pricing
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    original_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    discount_percentage: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        nullable=False,
        default=Decimal("0"),
        comment="Derived from price and original_price",
    )

    image_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    affiliate_link: Mapped[str] = mapped_column(String(1000), nullable=False, comment="Tagged outbound link")
    category: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    expiry_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    is_hot: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_featured: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Origin
    asin: Mapped[Optional[str]] = mapped_column(String(20), nullable=True, index=True)
    pending_deal_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("pending_deals.id", ondelete="SET NULL"),
        nullable=True,
        unique=True,
    )

    coupon_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    promo_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Deal details carried over from the pending deal
    deal_badge: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    deal_access_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    deal_end_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Promotions (moderator overrides applied at approval)
    has_promotion: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    promotion_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    promotion_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    promotion_percent: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2), nullable=True)
    promotion_display_text: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    is_subscribe_and_save: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_coupon_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("idx_deals_hot_created", "is_hot", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Deal(id={self.id}, title='{self.title[:50]}', price={self.price}, discount={self.discount_percentage})>"


@event.listens_for(Deal, "before_insert")
@event.listens_for(Deal, "before_update")
def _derive_discount_percentage(mapper, connection, target: Deal) -> None:
    target.discount_percentage = PriceNormalizer.calculate_discount_percentage(
        target.original_price, target.price
    )
