"""Source adapters for fetching deal candidates from external sources.

This package provides:
- Candidate dataclasses shared by both adapters
- The feed adapter (RSS/Atom) and the structured product API adapter
- Utility modules for rate limiting, text extraction, and normalization
- The crawl scheduler
"""

from .base import (
    BaseAdapter,
    SourceType,
    FeedCandidate,
    ProductCandidate,
    FeedFetchResult,
)

__all__ = [
    "BaseAdapter",
    "SourceType",
    "FeedCandidate",
    "ProductCandidate",
    "FeedFetchResult",
]
