"""Pytest configuration and shared fixtures."""

import os

# Settings are read at import time; point them at SQLite and the test
# environment before anything from dealhunter is imported.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ["ENVIRONMENT"] = "test"
os.environ["AMAZON_ACCESS_KEY"] = ""
os.environ["AMAZON_SECRET_KEY"] = ""
os.environ["AMAZON_PARTNER_TAG"] = ""

from decimal import Decimal
from typing import Callable, Optional

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

from dealhunter.db.session import enable_sqlite_savepoints
from dealhunter.models import Base, FeedSource, PendingDeal
from dealhunter.scrapers.adapters.amazon import AmazonPAAPIAdapter
from dealhunter.scrapers.adapters.feed import FeedAdapter
from dealhunter.scrapers.utils.rate_limiter import MinIntervalLimiter
from dealhunter.services.events import DealEventBus
from dealhunter.services.source_registry import SourceRegistry

SAMPLE_RSS = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:media="http://search.yahoo.com/mrss/">
  <channel>
    <title>Sample Deals</title>
    <link>https://deals.example.com</link>
    <description>Daily deals</description>
    <item>
      <title>Widget Pro - now $19.99 (reg $39.99) at Amazon</title>
      <link>https://deals.example.com/widget-pro</link>
      <guid>deal-widget-pro</guid>
      <description>&lt;p&gt;Great widget. Use code: SAVE20 at checkout.&lt;/p&gt;</description>
      <pubDate>Mon, 06 Jan 2025 10:00:00 GMT</pubDate>
      <media:content url="https://img.example.com/widget.jpg" medium="image" />
    </item>
    <item>
      <title>Budget Headphones $15 was $60</title>
      <link>https://deals.example.com/headphones</link>
      <description>Over-ear headphones, limited stock at Best Buy.</description>
      <pubDate>Mon, 06 Jan 2025 11:00:00 GMT</pubDate>
    </item>
    <item>
      <title>Free shipping weekend</title>
      <link>https://deals.example.com/shipping</link>
      <guid>deal-shipping</guid>
      <description>No prices here.</description>
    </item>
  </channel>
</rss>
"""


def make_transport(body: str = SAMPLE_RSS, status_code: int = 200) -> httpx.MockTransport:
    """MockTransport that answers every request with the same document."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            status_code,
            content=body.encode("utf-8"),
            headers={"Content-Type": "application/rss+xml"},
        )

    return httpx.MockTransport(handler)


def make_failing_transport(exc: Optional[Exception] = None) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        raise exc or httpx.ConnectError("connection refused", request=request)

    return httpx.MockTransport(handler)


@pytest.fixture
def anyio_backend():
    """Use asyncio as the async backend for tests."""
    return "asyncio"


@pytest_asyncio.fixture
async def test_engine():
    """In-memory SQLite engine shared by every session of one test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        echo=False,
    )
    enable_sqlite_savepoints(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def concurrent_session_factory(tmp_path) -> async_sessionmaker[AsyncSession]:
    """File-backed SQLite where every session gets its own connection.

    Writers queue on BEGIN IMMEDIATE, so sessions can run side by side under
    asyncio.gather.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'dealhunter.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )
    enable_sqlite_savepoints(engine, immediate=True)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def test_db(session_factory):
    """Session for service-level tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def feed_adapter() -> FeedAdapter:
    return FeedAdapter(transport=make_transport())


@pytest.fixture
def mock_amazon_adapter() -> AmazonPAAPIAdapter:
    """Unconfigured adapter: deterministic mock products, no waiting."""
    return AmazonPAAPIAdapter(
        access_key="",
        secret_key="",
        partner_tag="",
        limiter=MinIntervalLimiter(0),
    )


@pytest.fixture
def event_bus() -> DealEventBus:
    return DealEventBus()


@pytest_asyncio.fixture
async def sample_source(session_factory) -> FeedSource:
    """An active, never-crawled feed source."""
    async with session_factory() as session:
        return await SourceRegistry(session).create_source(
            name="Sample Deals",
            url="https://deals.example.com/feed.xml",
            category="Electronics",
            crawl_interval_minutes=30,
        )


@pytest.fixture
def pending_deal_factory(session_factory) -> Callable:
    """Create PENDING rows; price/original default to 50/100."""

    async def create(
        asin: str = "B000TEST01",
        price: str = "50.00",
        original_price: str = "100.00",
        **fields,
    ) -> PendingDeal:
        async with session_factory() as session:
            pending = PendingDeal(
                asin=asin,
                title=fields.pop("title", f"Test product {asin}"),
                price=Decimal(price),
                original_price=Decimal(original_price),
                discount_percentage=fields.pop("discount_percentage", Decimal("50.00")),
                product_url=fields.pop("product_url", f"https://www.amazon.com/dp/{asin}"),
                category=fields.pop("category", "Electronics"),
                image_url=fields.pop("image_url", "https://img.example.com/product.jpg"),
                **fields,
            )
            session.add(pending)
            await session.commit()
            await session.refresh(pending)
            return pending

    return create
