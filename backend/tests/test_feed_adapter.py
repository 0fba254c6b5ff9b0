"""Tests for the RSS/Atom feed adapter."""

from datetime import datetime, timezone
from decimal import Decimal

import httpx
import pytest

from dealhunter.core.exceptions import UpstreamFetchError
from dealhunter.models import FeedSource
from dealhunter.scrapers.adapters.feed import FeedAdapter
from dealhunter.scrapers.utils.extraction import generate_guid

from conftest import make_failing_transport, make_transport

ATOM_FEED = """<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Atom Deals</title>
  <id>urn:atom-deals</id>
  <updated>2025-01-06T10:00:00Z</updated>
  <entry>
    <title>Air fryer only $49.99, was $89.99</title>
    <link href="https://atom.example.com/air-fryer" />
    <id>urn:deal:air-fryer</id>
    <updated>2025-01-06T09:30:00Z</updated>
    <summary type="html">&lt;img src="https://img.example.com/fryer.png"&gt; Sold by Target</summary>
  </entry>
</feed>
"""


@pytest.fixture
def source() -> FeedSource:
    return FeedSource(
        name="Sample Deals",
        url="https://deals.example.com/feed.xml",
        category="Electronics",
        crawl_interval_minutes=30,
    )


class TestFeedAdapter:
    """Tests for FeedAdapter."""

    async def test_parses_rss_entries(self, source):
        result = await FeedAdapter(transport=make_transport()).fetch_feed(source)

        assert result.entries_seen == 3
        assert result.errors == []
        assert len(result.items) == 3

        widget = result.items[0]
        assert widget.guid == "deal-widget-pro"
        assert widget.title == "Widget Pro - now $19.99 (reg $39.99) at Amazon"
        assert widget.description == "Great widget. Use code: SAVE20 at checkout."
        assert widget.price == Decimal("19.99")
        assert widget.original_price == Decimal("39.99")
        assert widget.discount_percentage == Decimal("50.01")
        assert widget.coupon_code == "SAVE20"
        assert widget.store == "Amazon"
        assert widget.image_url == "https://img.example.com/widget.jpg"
        assert widget.category == "Electronics"
        assert widget.published_at == datetime(2025, 1, 6, 10, 0, tzinfo=timezone.utc)

    async def test_missing_guid_is_derived_from_link(self, source):
        result = await FeedAdapter(transport=make_transport()).fetch_feed(source)

        headphones = result.items[1]
        assert headphones.guid == generate_guid("https://deals.example.com/headphones")
        assert headphones.price == Decimal("15.00")
        assert headphones.original_price == Decimal("60.00")
        assert headphones.store == "Best Buy"

    async def test_entry_without_prices_keeps_optional_fields_empty(self, source):
        result = await FeedAdapter(transport=make_transport()).fetch_feed(source)

        shipping = result.items[2]
        assert shipping.price is None
        assert shipping.original_price is None
        assert shipping.discount_percentage is None
        assert shipping.published_at is not None

    async def test_parses_atom_feed(self, source):
        result = await FeedAdapter(transport=make_transport(ATOM_FEED)).fetch_feed(source)

        assert len(result.items) == 1
        item = result.items[0]
        assert item.guid == "urn:deal:air-fryer"
        assert item.link == "https://atom.example.com/air-fryer"
        assert item.price == Decimal("49.99")
        assert item.original_price == Decimal("89.99")
        assert item.image_url == "https://img.example.com/fryer.png"
        assert item.store == "Target"

    async def test_entries_without_title_or_link_are_skipped(self, source):
        body = """<?xml version="1.0"?><rss version="2.0"><channel><title>t</title>
        <item><title>No link here</title></item>
        <item><link>https://e.com/no-title</link></item>
        <item><title>Kept $5</title><link>https://e.com/kept</link></item>
        </channel></rss>"""

        result = await FeedAdapter(transport=make_transport(body)).fetch_feed(source)

        assert [c.link for c in result.items] == ["https://e.com/kept"]

    async def test_one_bad_entry_does_not_abort_the_feed(self, source, monkeypatch):
        adapter = FeedAdapter(transport=make_transport())
        original = adapter._parse_entry

        def flaky(entry, src):
            if entry.get("link", "").endswith("/headphones"):
                raise ValueError("bad entry")
            return original(entry, src)

        monkeypatch.setattr(adapter, "_parse_entry", flaky)

        result = await adapter.fetch_feed(source)

        assert len(result.items) == 2
        assert len(result.errors) == 1
        assert "bad entry" in result.errors[0]

    async def test_http_error_raises_upstream_fetch_error(self, source):
        adapter = FeedAdapter(transport=make_transport("gone", status_code=503))

        with pytest.raises(UpstreamFetchError) as exc_info:
            await adapter.fetch_feed(source)

        assert "HTTP 503" in exc_info.value.message
        assert exc_info.value.source == "Sample Deals"

    async def test_network_error_raises_upstream_fetch_error(self, source):
        adapter = FeedAdapter(transport=make_failing_transport())

        with pytest.raises(UpstreamFetchError):
            await adapter.fetch_feed(source)

    async def test_timeout_raises_upstream_fetch_error(self, source):
        adapter = FeedAdapter(transport=make_failing_transport(httpx.ReadTimeout("timed out")))

        with pytest.raises(UpstreamFetchError):
            await adapter.fetch_feed(source)

    async def test_non_feed_document_raises(self, source):
        adapter = FeedAdapter(transport=make_transport("<html><body>not a feed"))

        with pytest.raises(UpstreamFetchError):
            await adapter.fetch_feed(source)

    async def test_sends_user_agent(self, source):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["ua"] = request.headers.get("user-agent")
            return httpx.Response(200, content=b"<rss version='2.0'><channel><title>t</title></channel></rss>")

        await FeedAdapter(transport=httpx.MockTransport(handler)).fetch_feed(source)

        assert seen["ua"].startswith("DealHunterBot")
