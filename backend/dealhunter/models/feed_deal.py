"""Feed deal model: deals imported live from RSS/Atom sources."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import String, Text, ForeignKey, Boolean, Numeric, DateTime, Integer, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from dealhunter.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from dealhunter.models.feed_source import FeedSource


class FeedDeal(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A deal crawled from a feed source.

    Feed deals skip moderation and are public as soon as they are stored.
    The guid is the feed-native identifier and is unique across all sources.
    """

    __tablename__ = "feed_deals"

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    link: Mapped[str] = mapped_column(String(1000), nullable=False)
    guid: Mapped[str] = mapped_column(String(500), unique=True, index=True, nullable=False)
    image_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    category: Mapped[str] = mapped_column(String(100), nullable=False)

    # Pricing (all optional, text extraction may fail)
    price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    original_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    discount_percentage: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2), nullable=True)

    store: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    coupon_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    published_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    is_hot: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_featured: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)

    view_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    click_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    source_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("feed_sources.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    __table_args__ = (
        Index("idx_feed_deals_active_published", "is_active", "published_at"),
        Index("idx_feed_deals_expires_at", "expires_at"),
    )

    source: Mapped["FeedSource"] = relationship(back_populates="deals")

    def __repr__(self) -> str:
        return f"<FeedDeal(id={self.id}, guid='{self.guid}', title='{self.title[:50]}')>"
