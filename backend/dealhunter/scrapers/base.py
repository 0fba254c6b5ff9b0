"""Base source adapter interface and normalized candidate shapes.

Exactly two source shapes exist: loosely structured syndication feeds and a
structured, paginated product search API. Both adapters inherit from
BaseAdapter and produce one of the candidate dataclasses below.
"""

import enum
from abc import ABC
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

import structlog


class SourceType(str, enum.Enum):
    """Closed set of source shapes."""

    FEED = "feed"
    STRUCTURED = "structured"


@dataclass
class FeedCandidate:
    """Normalized feed entry, ready for dedup by guid."""

    title: str
    link: str
    guid: str
    category: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    price: Optional[Decimal] = None
    original_price: Optional[Decimal] = None
    discount_percentage: Optional[Decimal] = None
    store: Optional[str] = None
    coupon_code: Optional[str] = None
    published_at: Optional[datetime] = None

    def __post_init__(self):
        """Validate data after initialization."""
        if not self.title:
            raise ValueError("title is required")
        if not self.link:
            raise ValueError("link is required")
        if not self.guid:
            raise ValueError("guid is required")


@dataclass
class ProductCandidate:
    """Normalized product API item, ready for dedup by ASIN."""

    asin: str
    title: str
    price: Decimal
    original_price: Decimal
    product_url: str
    category: str
    description: Optional[str] = None
    discount_percentage: Decimal = Decimal("0")
    image_url: Optional[str] = None

    # Deal details
    deal_badge: Optional[str] = None
    deal_access_type: Optional[str] = None  # 'ALL', 'PRIME_EARLY_ACCESS', 'PRIME_EXCLUSIVE'
    deal_start_time: Optional[datetime] = None
    deal_end_time: Optional[datetime] = None
    deal_percent_claimed: Optional[Decimal] = None

    # Promotions
    has_promotion: bool = False
    promotion_type: Optional[str] = None
    promotion_amount: Optional[Decimal] = None
    promotion_percent: Optional[Decimal] = None
    promotion_display_text: Optional[str] = None
    is_subscribe_and_save: bool = False
    is_coupon_available: bool = False

    # Savings
    saving_basis_type: Optional[str] = None  # 'LIST_PRICE', 'WAS_PRICE'
    savings_amount: Optional[Decimal] = None
    raw_promotions: List[dict] = field(default_factory=list)

    def __post_init__(self):
        """Validate data after initialization."""
        if not self.asin:
            raise ValueError("asin is required")
        if not self.title:
            raise ValueError("title is required")
        if self.price is None or self.price < 0:
            raise ValueError("price must be a non-negative Decimal")


@dataclass
class FeedFetchResult:
    """Outcome of fetching one feed document."""

    items: List[FeedCandidate] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    entries_seen: int = 0


class BaseAdapter(ABC):
    """Abstract base class for source adapters.

    Subclasses set source_type; the bound logger carries the adapter name
    on every event.
    """

    source_type: SourceType
    adapter_name: str = ""

    def __init__(self):
        """Initialize the adapter."""
        self.logger = structlog.get_logger(__name__).bind(adapter=self.adapter_name)
