"""Source adapter implementations.

Two adapters exist, one per source shape: FeedAdapter for RSS/Atom feeds and
AmazonPAAPIAdapter for the structured product search API.
"""

from .feed import FeedAdapter
from .amazon import AmazonPAAPIAdapter, SearchParams, get_amazon_adapter

__all__ = [
    "FeedAdapter",
    "AmazonPAAPIAdapter",
    "SearchParams",
    "get_amazon_adapter",
]
