"""Affiliate link tagging for published deals."""

import re
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

import structlog

from dealhunter.config import settings

logger = structlog.get_logger(__name__)

# Amazon storefronts, with or without www./smile.
AMAZON_URL_REGEX = re.compile(
    r"^https?://((www|smile)\.)?amazon\.(com|co\.uk|de|fr|it|es|ca|in|com\.mx|mx|com\.br|br|com\.au|au|co\.jp|jp|cn)(/|$|\?)",
    re.IGNORECASE,
)
AMAZON_PRODUCT_IDENTIFIER_REGEX = re.compile(r"(/dp/|/gp/product/|asin=)([A-Z0-9]{10})", re.IGNORECASE)

TAG_PARAM = "tag"


class AffiliateTagger:
    """Rewrites retailer URLs to carry our Associates tracking tag.

    Non-retailer URLs pass through untouched and are logged as
    affiliate_url_untagged so revenue-relevant misses show up in logs.
    """

    def __init__(self, tag: Optional[str] = None):
        """Initialize tagger.

        Args:
            tag: Associates tag (defaults to AMAZON_ASSOCIATE_TAG)
        """
        self.tag = tag or settings.AMAZON_ASSOCIATE_TAG
        self.logger = logger.bind(service="affiliate_tagger")

    @staticmethod
    def is_valid_url(url: str) -> bool:
        if not url:
            return False
        try:
            parsed = urlparse(url)
        except ValueError:
            return False
        return parsed.scheme in ("http", "https") and bool(parsed.netloc)

    @staticmethod
    def is_retailer_url(url: str) -> bool:
        return bool(AMAZON_URL_REGEX.match(url))

    def has_product_identifier(self, url: str) -> bool:
        """Whether an Amazon URL points at a product (carries an ASIN)."""
        found = bool(AMAZON_PRODUCT_IDENTIFIER_REGEX.search(url))
        if not found:
            self.logger.warning("affiliate_url_missing_asin", url=url)
        return found

    def tag_url(self, url: str) -> str:
        """Add or replace the tracking tag on a retailer URL.

        Args:
            url: Outbound product URL

        Returns:
            Tagged URL, or the input unchanged when it is malformed or not
            a known retailer
        """
        if not self.is_valid_url(url):
            self.logger.warning("affiliate_url_invalid", url=url)
            return url

        if not self.is_retailer_url(url):
            self.logger.warning("affiliate_url_untagged", url=url)
            return url

        self.has_product_identifier(url)

        parsed = urlparse(url)
        params = parse_qsl(parsed.query, keep_blank_values=True)
        had_tag = any(key == TAG_PARAM for key, _ in params)

        params = [(key, value) for key, value in params if key != TAG_PARAM]
        params.append((TAG_PARAM, self.tag))

        tagged = urlunparse(parsed._replace(query=urlencode(params)))
        self.logger.debug("affiliate_url_tagged", url=url, tagged=tagged, replaced=had_tag)
        return tagged

    def sanitize_affiliate_url(self, url: str) -> str:
        """tag_url that never raises; falls back to the original URL."""
        try:
            return self.tag_url(url)
        except Exception as e:
            self.logger.error("affiliate_tagging_failed", url=url, error=str(e))
            return url
