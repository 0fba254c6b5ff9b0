"""RSS/Atom feed adapter.

Downloads a feed document with httpx, parses it with feedparser, and turns
each entry into a FeedCandidate using the text extraction heuristics.
"""

import calendar
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

import feedparser
import httpx

from dealhunter.config import settings
from dealhunter.core.exceptions import UpstreamFetchError
from dealhunter.scrapers.base import BaseAdapter, FeedCandidate, FeedFetchResult, SourceType
from dealhunter.scrapers.utils.extraction import (
    clean_text,
    extract_coupon_code,
    extract_image_url,
    extract_prices,
    extract_store,
    generate_guid,
)
from dealhunter.scrapers.utils.normalizer import PriceNormalizer

if TYPE_CHECKING:
    from dealhunter.models.feed_source import FeedSource


class FeedAdapter(BaseAdapter):
    """Fetches and normalizes one syndication feed per call.

    A fetch-level failure (network, timeout, HTTP error, not a feed) raises
    UpstreamFetchError and aborts the source. A failure on a single entry is
    logged, recorded in the result's errors and skipped.
    """

    source_type = SourceType.FEED
    adapter_name = "feed"

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        """Initialize feed adapter.

        Args:
            transport: Optional httpx transport (tests inject a MockTransport)
        """
        super().__init__()
        self._transport = transport
        self._timeout = settings.FEED_FETCH_TIMEOUT_SECONDS
        self._headers = {
            "User-Agent": settings.FEED_USER_AGENT,
            "Accept": "application/rss+xml, application/atom+xml, application/xml;q=0.9, */*;q=0.8",
        }

    async def fetch_feed(self, source: "FeedSource") -> FeedFetchResult:
        """Download and parse the feed of one source.

        Args:
            source: Feed source to fetch

        Returns:
            FeedFetchResult with normalized candidates and entry-level errors

        Raises:
            UpstreamFetchError: If the document cannot be fetched or is not a feed
        """
        self.logger.info("fetching_feed", source_name=source.name, url=source.url)

        content = await self._download(source)
        parsed = feedparser.parse(content)

        if parsed.bozo and not parsed.entries:
            reason = str(getattr(parsed, "bozo_exception", "unparseable document"))
            self.logger.error("feed_parse_failed", source_name=source.name, error=reason)
            raise UpstreamFetchError(source.name, f"not a valid feed: {reason}")

        result = FeedFetchResult(entries_seen=len(parsed.entries))
        for entry in parsed.entries:
            try:
                candidate = self._parse_entry(entry, source)
            except Exception as e:
                title = entry.get("title", "")
                self.logger.warning(
                    "feed_entry_parse_failed",
                    source_name=source.name,
                    title=title,
                    error=str(e),
                )
                result.errors.append(f"{title or entry.get('link', '<untitled>')}: {e}")
                continue
            if candidate:
                result.items.append(candidate)

        self.logger.info(
            "feed_parsed",
            source_name=source.name,
            entries=result.entries_seen,
            items=len(result.items),
            errors=len(result.errors),
        )
        return result

    async def _download(self, source: "FeedSource") -> bytes:
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                follow_redirects=True,
                headers=self._headers,
                transport=self._transport,
            ) as client:
                response = await client.get(source.url)
                response.raise_for_status()
                return response.content
        except httpx.HTTPStatusError as e:
            self.logger.error(
                "feed_http_error",
                source_name=source.name,
                status_code=e.response.status_code,
            )
            raise UpstreamFetchError(source.name, f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            self.logger.error("feed_fetch_failed", source_name=source.name, error=str(e))
            raise UpstreamFetchError(source.name, str(e) or type(e).__name__) from e

    def _parse_entry(self, entry: Any, source: "FeedSource") -> Optional[FeedCandidate]:
        """Normalize a single feedparser entry. Returns None for entries without title or link."""
        raw_title = entry.get("title")
        link = entry.get("link")
        if not raw_title or not link:
            return None

        raw_description = entry.get("summary") or entry.get("description") or ""
        if not raw_description and entry.get("content"):
            raw_description = entry["content"][0].get("value", "")

        title = clean_text(raw_title)
        description = clean_text(raw_description)

        prices = extract_prices(title, description)
        discount = None
        if prices.price is not None and prices.original_price is not None:
            discount = PriceNormalizer.calculate_discount_percentage(prices.original_price, prices.price)

        return FeedCandidate(
            title=title[:255],
            link=link,
            guid=entry.get("id") or generate_guid(link),
            category=source.category,
            description=description or None,
            image_url=extract_image_url(entry),
            price=prices.price,
            original_price=prices.original_price,
            discount_percentage=discount,
            store=extract_store(title, description),
            coupon_code=extract_coupon_code(title, description),
            published_at=self._published_at(entry),
        )

    @staticmethod
    def _published_at(entry: Any) -> datetime:
        """Entry publish time in UTC, falling back to now."""
        struct = entry.get("published_parsed") or entry.get("updated_parsed")
        if struct:
            return datetime.fromtimestamp(calendar.timegm(struct), tz=timezone.utc)
        return datetime.now(timezone.utc)
