"""Feed source model representing a syndication endpoint to crawl."""

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import String, Text, Integer, Boolean, DateTime
from sqlalchemy.orm import Mapped, mapped_column, relationship

from dealhunter.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from dealhunter.models.feed_deal import FeedDeal


class FeedSource(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """RSS/Atom feed configured for crawling.

    Scheduling metadata (last crawl, counters, last error) is owned by the
    SourceRegistry and updated after every crawl attempt. A NULL
    last_crawled_at means the source has never been crawled and is always due.
    """

    __tablename__ = "feed_sources"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    url: Mapped[str] = mapped_column(String(1000), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(String(100), nullable=False, comment="Category stamped on crawled deals")

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    crawl_interval_minutes: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=30,
        comment="Minutes between crawls of this source",
    )
    last_crawled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Last successful crawl; NULL means never crawled",
    )

    # Operational counters
    total_items_crawled: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Ordering only, never used for due-ness
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    deals: Mapped[list["FeedDeal"]] = relationship(back_populates="source", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<FeedSource(id={self.id}, name='{self.name}', interval={self.crawl_interval_minutes})>"
