"""Pending deal model for the moderation workflow."""

import enum
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, Text, Boolean, Numeric, DateTime, Index
from sqlalchemy.orm import Mapped, mapped_column

from dealhunter.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class PendingDealStatus(str, enum.Enum):
    """Moderation states. PENDING is the only state that allows a transition."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class PendingDeal(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A product fetched from the structured product API awaiting moderation.

    Created by a sync; mutated only by the moderation gate. The ASIN is
    unique so the same product can never be queued twice.
    """

    __tablename__ = "pending_deals"

    asin: Mapped[str] = mapped_column(String(20), unique=True, index=True, nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    original_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    discount_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal("0"))

    image_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    product_url: Mapped[str] = mapped_column(String(1000), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=PendingDealStatus.PENDING.value,
        index=True,
        comment="PENDING, APPROVED or REJECTED",
    )
    approved_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, comment="Moderator who decided")
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    coupon_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    promo_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Deal details reported by the product API
    deal_badge: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    deal_access_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    deal_start_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    deal_end_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    deal_percent_claimed: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2), nullable=True)

    # Promotions
    has_promotion: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    promotion_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    promotion_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    promotion_percent: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2), nullable=True)
    promotion_display_text: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    is_subscribe_and_save: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_coupon_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Savings
    saving_basis_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    savings_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    raw_promotion_data: Mapped[Optional[str]] = mapped_column(Text, nullable=True, comment="JSON dump of promotions")

    __table_args__ = (
        Index("idx_pending_deals_status_created", "status", "created_at"),
    )

    @property
    def is_pending(self) -> bool:
        return self.status == PendingDealStatus.PENDING.value

    def __repr__(self) -> str:
        return f"<PendingDeal(id={self.id}, asin='{self.asin}', status='{self.status}')>"
