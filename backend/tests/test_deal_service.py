"""Tests for published deals and the feed deal catalog."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from dealhunter.core.exceptions import NotFoundError, ValidationError
from dealhunter.models import FeedDeal
from dealhunter.services.affiliate_service import AffiliateTagger
from dealhunter.services.deal_service import DealService
from dealhunter.services.feed_deal_service import FeedDealFilters, FeedDealService


def _deal_data(**overrides) -> dict:
    data = dict(
        title="Manual deal",
        price=Decimal("25.00"),
        original_price=Decimal("100.00"),
        affiliate_link="https://www.amazon.com/dp/B000MANUAL",
        category="Electronics",
    )
    data.update(overrides)
    return data


class TestDealService:
    """Tests for DealService."""

    async def test_create_ignores_supplied_discount(self, test_db: AsyncSession):
        service = DealService(test_db, tagger=AffiliateTagger(tag="test-20"))

        deal = await service.create_deal(**_deal_data(discount_percentage=Decimal("99.00")))

        assert deal.discount_percentage == Decimal("75.00")
        assert deal.affiliate_link.endswith("tag=test-20")

    async def test_update_recomputes_discount(self, test_db: AsyncSession):
        service = DealService(test_db)
        deal = await service.create_deal(**_deal_data())

        updated = await service.update_deal(deal.id, price=Decimal("60.00"))

        assert updated.discount_percentage == Decimal("40.00")

    async def test_price_above_original_gives_zero_discount(self, test_db: AsyncSession):
        deal = await DealService(test_db).create_deal(
            **_deal_data(price=Decimal("120.00"), original_price=Decimal("100.00"))
        )

        assert deal.discount_percentage == Decimal("0.00")

    async def test_unknown_field_is_rejected(self, test_db: AsyncSession):
        with pytest.raises(ValidationError) as exc_info:
            await DealService(test_db).create_deal(**_deal_data(view_count=5))

        assert exc_info.value.field == "view_count"

    async def test_missing_required_field(self, test_db: AsyncSession):
        data = _deal_data()
        del data["category"]

        with pytest.raises(ValidationError) as exc_info:
            await DealService(test_db).create_deal(**data)

        assert exc_info.value.field == "category"

    @pytest.mark.parametrize("field", ["title", "price", "original_price", "affiliate_link", "category", "is_hot"])
    async def test_update_rejects_null_for_required_columns(self, test_db: AsyncSession, field):
        service = DealService(test_db)
        deal = await service.create_deal(**_deal_data())

        with pytest.raises(ValidationError) as exc_info:
            await service.update_deal(deal.id, **{field: None})

        assert exc_info.value.field == field
        unchanged = await service.get_deal(deal.id)
        assert unchanged.price == Decimal("25.00")
        assert unchanged.title == "Manual deal"

    async def test_update_sanitizes_new_affiliate_link(self, test_db: AsyncSession):
        service = DealService(test_db, tagger=AffiliateTagger(tag="test-20"))
        deal = await service.create_deal(**_deal_data())

        updated = await service.update_deal(
            deal.id, affiliate_link="https://www.amazon.com/dp/B000OTHER1?tag=someone-20"
        )

        assert updated.affiliate_link == "https://www.amazon.com/dp/B000OTHER1?tag=test-20"

    async def test_negative_price_is_rejected(self, test_db: AsyncSession):
        with pytest.raises(ValidationError):
            await DealService(test_db).create_deal(**_deal_data(price=Decimal("-1")))

    async def test_list_filters(self, test_db: AsyncSession):
        service = DealService(test_db)
        await service.create_deal(**_deal_data(title="hot one", is_hot=True))
        await service.create_deal(**_deal_data(title="book", category="Books"))
        await service.create_deal(**_deal_data(title="featured", is_featured=True))

        hot, total = await service.list_deals(is_hot=True)
        assert total == 1
        assert hot[0].title == "hot one"

        books, _ = await service.list_deals(category="Books")
        assert [d.title for d in books] == ["book"]

        _, everything = await service.list_deals()
        assert everything == 3

    async def test_delete(self, test_db: AsyncSession):
        service = DealService(test_db)
        deal = await service.create_deal(**_deal_data())

        await service.delete_deal(deal.id)

        with pytest.raises(NotFoundError):
            await service.get_deal(deal.id)


# ============================================================================
# TESTS: FEED DEAL CATALOG
# ============================================================================

@pytest_asyncio.fixture
async def seeded_feed_deals(session_factory, sample_source):
    base = datetime(2025, 1, 6, tzinfo=timezone.utc)
    rows = [
        ("tv", "TV 4K deal", "Electronics", "Best Buy", Decimal("60.00"), True, base),
        ("blender", "Blender sale", "Home", "Target", Decimal("20.00"), False, base + timedelta(hours=1)),
        ("laptop", "Laptop clearance", "Electronics", "Amazon", Decimal("35.00"), False, base + timedelta(hours=2)),
        ("expired", "Old deal", "Electronics", None, None, False, base - timedelta(days=1)),
    ]
    async with session_factory() as db:
        for guid, title, category, store, discount, hot, published in rows:
            db.add(
                FeedDeal(
                    guid=guid,
                    title=title,
                    link=f"https://deals.example.com/{guid}",
                    category=category,
                    store=store,
                    discount_percentage=discount,
                    is_hot=hot,
                    is_featured=guid == "blender",
                    is_active=guid != "expired",
                    published_at=published,
                    source_id=sample_source.id,
                )
            )
        await db.commit()


class TestFeedDealService:
    """Tests for FeedDealService."""

    async def test_lists_only_active_newest_first(self, test_db: AsyncSession, seeded_feed_deals):
        deals, total = await FeedDealService(test_db).list_deals()

        assert total == 3
        assert [d.guid for d in deals] == ["laptop", "blender", "tv"]

    @pytest.mark.parametrize(
        "filters,expected",
        [
            (FeedDealFilters(category="Electronics"), {"tv", "laptop"}),
            (FeedDealFilters(store="Target"), {"blender"}),
            (FeedDealFilters(search="laptop"), {"laptop"}),
            (FeedDealFilters(min_discount=Decimal("30")), {"tv", "laptop"}),
            (FeedDealFilters(is_hot=True), {"tv"}),
        ],
    )
    async def test_filters(self, test_db: AsyncSession, seeded_feed_deals, filters, expected):
        deals, _ = await FeedDealService(test_db).list_deals(filters)

        assert {d.guid for d in deals} == expected

    async def test_sort_by_discount_ascending(self, test_db: AsyncSession, seeded_feed_deals):
        deals, _ = await FeedDealService(test_db).list_deals(
            sort_field="discount_percentage", sort_order="asc"
        )

        assert [d.guid for d in deals] == ["blender", "laptop", "tv"]

    async def test_hot_featured_and_facets(self, test_db: AsyncSession, seeded_feed_deals):
        service = FeedDealService(test_db)

        assert [d.guid for d in await service.hot_deals()] == ["tv"]
        assert [d.guid for d in await service.featured_deals()] == ["blender"]
        assert await service.categories() == ["Electronics", "Home"]
        assert await service.stores() == ["Amazon", "Best Buy", "Target"]

    async def test_view_and_click_counters(self, test_db: AsyncSession, seeded_feed_deals):
        service = FeedDealService(test_db)
        deals, _ = await service.list_deals(FeedDealFilters(store="Target"))
        deal_id = deals[0].id

        await service.get_deal(deal_id)
        viewed = await service.get_deal(deal_id)
        clicked = await service.record_click(deal_id)

        assert viewed.view_count == 2
        assert clicked.click_count == 1

    async def test_missing_deal_raises(self, test_db: AsyncSession):
        service = FeedDealService(test_db)

        with pytest.raises(NotFoundError):
            await service.get_deal(uuid4())
        with pytest.raises(NotFoundError):
            await service.record_click(uuid4())
