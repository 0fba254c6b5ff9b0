"""Scraper utilities for rate limiting, text extraction, and data normalization."""

from .rate_limiter import MinIntervalLimiter
from .normalizer import (
    PriceNormalizer,
    CategoryClassifier,
    CATEGORY_KEYWORDS,
)


__all__ = [
    # Rate limiting
    "MinIntervalLimiter",
    # Normalization
    "PriceNormalizer",
    "CategoryClassifier",
    "CATEGORY_KEYWORDS",
]
