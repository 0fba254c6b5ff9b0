"""Tests for the per-source crawl procedure and the crawl scheduler."""

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import httpx
import pytest
from jsonschema import validate
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from dealhunter.core.exceptions import NotFoundError
from dealhunter.models import FeedDeal, FeedSource
from dealhunter.models.base import utcnow
from dealhunter.scrapers.adapters.feed import FeedAdapter
from dealhunter.scrapers.scheduler import CRAWL_JOB_ID, PURGE_JOB_ID, CrawlScheduler
from dealhunter.services.crawl_service import CrawlService
from dealhunter.services.source_registry import SourceRegistry

from conftest import SAMPLE_RSS, make_failing_transport, make_transport

CRAWL_RESULT_SCHEMA = {
    "type": "object",
    "required": ["sourceId", "sourceName", "success", "itemsCrawled", "newItems", "errors"],
    "properties": {
        "sourceId": {"type": "string"},
        "sourceName": {"type": "string"},
        "success": {"type": "boolean"},
        "itemsCrawled": {"type": "integer", "minimum": 0},
        "newItems": {"type": "integer", "minimum": 0},
        "errors": {"type": "array", "items": {"type": "string"}},
    },
    "additionalProperties": False,
}


async def _count_feed_deals(db: AsyncSession) -> int:
    return (await db.execute(select(func.count(FeedDeal.id)))).scalar()


async def _reload(db: AsyncSession, source_id) -> FeedSource:
    source = await SourceRegistry(db).get_source(source_id)
    await db.refresh(source)
    return source


# ============================================================================
# TESTS: CRAWL SERVICE
# ============================================================================

class TestCrawlService:
    """Tests for CrawlService.crawl_source."""

    async def test_first_crawl_stores_every_entry(self, test_db: AsyncSession, sample_source, feed_adapter):
        result = await CrawlService(test_db, feed_adapter).crawl_source(sample_source)

        assert result.success is True
        assert result.items_crawled == 3
        assert result.new_items == 3
        assert result.errors == []
        assert await _count_feed_deals(test_db) == 3

        source = await _reload(test_db, sample_source.id)
        assert source.last_crawled_at is not None
        assert source.total_items_crawled == 3
        assert source.error_count == 0

    async def test_recrawl_skips_known_guids(self, test_db: AsyncSession, sample_source, feed_adapter):
        service = CrawlService(test_db, feed_adapter)
        await service.crawl_source(sample_source)

        second = await service.crawl_source(sample_source)

        assert second.items_crawled == 3
        assert second.new_items == 0
        assert await _count_feed_deals(test_db) == 3
        source = await _reload(test_db, sample_source.id)
        assert source.total_items_crawled == 3

    async def test_feed_deals_carry_source_category_and_hot_flag(
        self, test_db: AsyncSession, sample_source, feed_adapter
    ):
        await CrawlService(test_db, feed_adapter).crawl_source(sample_source)

        deals = {
            d.guid: d
            for d in (await test_db.execute(select(FeedDeal))).scalars().all()
        }
        widget = deals["deal-widget-pro"]
        assert widget.category == "Electronics"
        assert widget.discount_percentage == Decimal("50.01")
        assert widget.is_hot is True
        assert widget.source_id == sample_source.id
        assert deals["deal-shipping"].is_hot is False
        assert deals["deal-shipping"].discount_percentage is None

    async def test_fetch_failure_records_error_and_keeps_source_due(
        self, test_db: AsyncSession, sample_source
    ):
        adapter = FeedAdapter(transport=make_failing_transport())

        result = await CrawlService(test_db, adapter).crawl_source(sample_source)

        assert result.success is False
        assert result.new_items == 0
        assert len(result.errors) == 1
        source = await _reload(test_db, sample_source.id)
        assert source.last_crawled_at is None
        assert source.error_count == 1
        assert "Sample Deals" in source.last_error

    async def test_item_import_failure_is_isolated(
        self, test_db: AsyncSession, sample_source, feed_adapter
    ):
        service = CrawlService(test_db, feed_adapter)
        original = service.ingestion.ingest_feed_candidate

        async def flaky(candidate, source):
            if candidate.guid == "deal-widget-pro":
                raise RuntimeError("disk full")
            return await original(candidate, source)

        service.ingestion.ingest_feed_candidate = flaky

        result = await service.crawl_source(sample_source)

        assert result.success is True
        assert result.new_items == 2
        assert any("disk full" in e for e in result.errors)
        source = await _reload(test_db, sample_source.id)
        assert source.error_count == 1
        assert source.last_crawled_at is not None

    async def test_crawl_result_contract(self, test_db: AsyncSession, sample_source, feed_adapter):
        result = await CrawlService(test_db, feed_adapter).crawl_source(sample_source)

        validate(instance=result.to_dict(), schema=CRAWL_RESULT_SCHEMA)
        assert result.to_dict()["sourceId"] == str(sample_source.id)


# ============================================================================
# TESTS: SCHEDULER
# ============================================================================

def _routing_transport(failing_host: str) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == failing_host:
            raise httpx.ConnectError("dns failure", request=request)
        return httpx.Response(200, content=SAMPLE_RSS.encode("utf-8"))

    return httpx.MockTransport(handler)


class TestCrawlScheduler:
    """Tests for CrawlScheduler."""

    async def test_crawl_all_isolates_failing_source(self, session_factory):
        async with session_factory() as db:
            registry = SourceRegistry(db)
            good = await registry.create_source(name="good", url="https://good.example/rss", category="x")
            bad = await registry.create_source(name="bad", url="https://bad.example/rss", category="x")

        scheduler = CrawlScheduler(
            session_factory,
            feed_adapter=FeedAdapter(transport=_routing_transport("bad.example")),
            concurrency=1,
        )
        results = {r.source_id: r for r in await scheduler.crawl_all_sources()}

        assert results[str(good.id)].success is True
        assert results[str(good.id)].new_items == 3
        assert results[str(bad.id)].success is False

        async with session_factory() as db:
            assert (await _reload(db, bad.id)).error_count == 1
            assert (await _reload(db, good.id)).last_crawled_at is not None

    async def test_tick_only_crawls_due_sources(self, session_factory):
        async with session_factory() as db:
            registry = SourceRegistry(db)
            due = await registry.create_source(name="due", url="https://due.example/rss", category="x")
            fresh = await registry.create_source(name="fresh", url="https://fresh.example/rss", category="x")
            await registry.record_crawl_success(fresh.id, 0, [], crawled_at=utcnow() - timedelta(minutes=5))

        scheduler = CrawlScheduler(session_factory, feed_adapter=FeedAdapter(transport=make_transport()), concurrency=1)
        results = await scheduler.run_due_crawl()

        assert [r.source_id for r in results] == [str(due.id)]

    async def test_on_demand_crawl_ignores_interval_and_active_flag(self, session_factory):
        async with session_factory() as db:
            registry = SourceRegistry(db)
            source = await registry.create_source(
                name="paused", url="https://p.example/rss", category="x", is_active=False
            )
            await registry.record_crawl_success(source.id, 0, [], crawled_at=utcnow())

        scheduler = CrawlScheduler(session_factory, feed_adapter=FeedAdapter(transport=make_transport()), concurrency=1)
        result = await scheduler.crawl_source_by_id(source.id)

        assert result.success is True
        assert result.new_items == 3

    async def test_crawl_unknown_source_raises(self, session_factory):
        scheduler = CrawlScheduler(session_factory, feed_adapter=FeedAdapter(transport=make_transport()))

        with pytest.raises(NotFoundError):
            await scheduler.crawl_source_by_id(uuid4())

    async def test_purge_removes_only_expired(self, session_factory, sample_source):
        now = utcnow()
        async with session_factory() as db:
            for guid, expires in (("old", now - timedelta(days=1)), ("future", now + timedelta(days=1)), ("open", None)):
                db.add(
                    FeedDeal(
                        title=guid,
                        link=f"https://e.com/{guid}",
                        guid=guid,
                        category="x",
                        expires_at=expires,
                        source_id=sample_source.id,
                    )
                )
            await db.commit()

        scheduler = CrawlScheduler(session_factory, feed_adapter=FeedAdapter(transport=make_transport()))
        purged = await scheduler.purge_expired_deals()

        assert purged == 1
        async with session_factory() as db:
            guids = set((await db.execute(select(FeedDeal.guid))).scalars().all())
        assert guids == {"future", "open"}

    async def test_start_registers_both_jobs(self, session_factory):
        scheduler = CrawlScheduler(session_factory, feed_adapter=FeedAdapter(transport=make_transport()))
        scheduler.start()
        try:
            assert scheduler.is_running()
            jobs = scheduler.get_jobs_status()
            assert set(jobs) == {CRAWL_JOB_ID, PURGE_JOB_ID}
        finally:
            scheduler.stop()

    async def test_tick_wrapper_swallows_errors(self, session_factory, monkeypatch):
        scheduler = CrawlScheduler(session_factory, feed_adapter=FeedAdapter(transport=make_transport()))

        async def boom():
            raise RuntimeError("database down")

        monkeypatch.setattr(scheduler, "run_due_crawl", boom)

        await scheduler._run_due_crawl_wrapper()
