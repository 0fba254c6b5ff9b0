"""SQLAlchemy models for DealHunter.

All models are imported here so metadata.create_all can discover them.
"""

from dealhunter.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from dealhunter.models.feed_source import FeedSource
from dealhunter.models.feed_deal import FeedDeal
from dealhunter.models.pending_deal import PendingDeal, PendingDealStatus
from dealhunter.models.deal import Deal

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "FeedSource",
    "FeedDeal",
    "PendingDeal",
    "PendingDealStatus",
    "Deal",
]
