"""Tests for the structured product API adapter."""

import json
import time
from decimal import Decimal

import httpx
import pytest

from dealhunter.core.exceptions import UpstreamFetchError
from dealhunter.scrapers.adapters.amazon import AmazonPAAPIAdapter, SearchParams
from dealhunter.scrapers.utils.rate_limiter import MinIntervalLimiter


def _item(asin: str, price: float, saving_basis=None, **extra) -> dict:
    listing = {"Price": {"Money": {"Amount": price, "Currency": "USD"}}}
    if saving_basis is not None:
        listing["SavingBasis"] = {"Money": {"Amount": saving_basis}, "PriceType": "LIST_PRICE"}
    listing.update(extra)
    return {
        "ASIN": asin,
        "DetailPageURL": f"https://www.amazon.com/dp/{asin}?tag=partner-20",
        "ItemInfo": {
            "Title": {"DisplayValue": f"Item {asin}"},
            "Features": {"DisplayValues": ["Fast", "Small"]},
        },
        "Images": {"Primary": {"Large": {"URL": f"https://m.media-amazon.com/{asin}.jpg"}}},
        "OffersV2": {"Listings": [listing]},
    }


def _configured(handler, limiter=None) -> AmazonPAAPIAdapter:
    return AmazonPAAPIAdapter(
        access_key="AKIDEXAMPLE",
        secret_key="secret",
        partner_tag="partner-20",
        limiter=limiter or MinIntervalLimiter(0),
        transport=httpx.MockTransport(handler),
    )


class TestMockProducts:
    """Tests for the unconfigured (mock) mode."""

    async def test_unconfigured_adapter_returns_mock_products(self, mock_amazon_adapter):
        products = await mock_amazon_adapter.search_items(SearchParams(keywords="headphones"))

        assert len(products) == 10
        assert all(p.asin.startswith("B0") and len(p.asin) == 10 for p in products)
        assert all(p.price < p.original_price for p in products)

    async def test_mock_products_are_deterministic(self, mock_amazon_adapter):
        params = SearchParams(keywords="headphones", category="Electronics")

        first = await mock_amazon_adapter.search_items(params)
        second = await mock_amazon_adapter.search_items(params)

        assert [p.asin for p in first] == [p.asin for p in second]
        assert [p.price for p in first] == [p.price for p in second]

    async def test_mock_respects_min_saving_percent(self, mock_amazon_adapter):
        products = await mock_amazon_adapter.search_items(SearchParams(min_saving_percent=60))

        assert all(p.discount_percentage >= Decimal("59.9") for p in products)

    async def test_pagination_collects_distinct_pages(self, mock_amazon_adapter):
        products = await mock_amazon_adapter.search_items_paginated(SearchParams(keywords="tv"), 25)

        assert len(products) == 25
        assert len({p.asin for p in products}) == 25

    def test_invalid_sort_is_rejected(self):
        with pytest.raises(ValueError):
            SearchParams(sort_by="Cheapest")


class TestLiveApi:
    """Tests for the signed API path, against a MockTransport."""

    async def test_parses_offers_v2_items(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["payload"] = json.loads(request.content)
            seen["headers"] = request.headers
            return httpx.Response(
                200,
                json={
                    "SearchResult": {
                        "Items": [
                            _item(
                                "B0ITEM0001",
                                19.99,
                                saving_basis=39.99,
                                Promotions=[{"Type": "Coupon", "DiscountPercent": 15}],
                                DealDetails={"Badge": "Lightning Deal", "AccessType": "PRIME_EXCLUSIVE"},
                            ),
                            _item("B0ITEM0002", 0),
                        ]
                    }
                },
            )

        adapter = _configured(handler)
        products = await adapter.search_items(
            SearchParams(keywords="widget", category="Electronics", min_price=Decimal("10"), max_price=Decimal("50"))
        )

        assert len(products) == 1
        product = products[0]
        assert product.asin == "B0ITEM0001"
        assert product.price == Decimal("19.99")
        assert product.original_price == Decimal("39.99")
        assert product.discount_percentage == Decimal("50.01")
        assert product.description == "Fast Small"
        assert product.is_coupon_available is True
        assert product.promotion_percent == Decimal("15.00")
        assert product.promotion_display_text == "15% off coupon - Lightning Deal - (Prime Exclusive)"
        assert product.deal_access_type == "PRIME_EXCLUSIVE"

        assert seen["payload"]["SearchIndex"] == "Electronics"
        assert seen["payload"]["MinPrice"] == 1000
        assert seen["payload"]["MaxPrice"] == 5000
        assert seen["payload"]["PartnerTag"] == "partner-20"
        assert seen["headers"]["authorization"].startswith("AWS4-HMAC-SHA256 Credential=AKIDEXAMPLE/")

    async def test_legacy_offers_fallback(self):
        item = _item("B0ITEM0003", 10)
        item["Offers"] = item.pop("OffersV2")
        item["Offers"]["Listings"][0] = {"Price": {"Amount": 10.0}, "SavingBasis": {"Amount": 20.0}}

        adapter = _configured(lambda request: httpx.Response(200, json={"SearchResult": {"Items": [item]}}))
        products = await adapter.search_items(SearchParams())

        assert products[0].price == Decimal("10.00")
        assert products[0].discount_percentage == Decimal("50.00")

    async def test_rate_limited_returns_empty(self):
        adapter = _configured(lambda request: httpx.Response(429, json={}))

        assert await adapter.search_items(SearchParams(keywords="x")) == []

    async def test_too_many_requests_body_returns_empty(self):
        body = {"Errors": [{"Code": "TooManyRequests", "Message": "slow down"}]}
        adapter = _configured(lambda request: httpx.Response(200, json=body))

        assert await adapter.search_items(SearchParams(keywords="x")) == []

    async def test_other_api_errors_propagate(self):
        body = {"Errors": [{"Code": "InvalidPartnerTag", "Message": "bad tag"}]}
        adapter = _configured(lambda request: httpx.Response(400, json=body))

        with pytest.raises(UpstreamFetchError) as exc_info:
            await adapter.search_items(SearchParams(keywords="x"))

        assert "bad tag" in exc_info.value.message

    async def test_network_error_propagates(self):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        with pytest.raises(UpstreamFetchError):
            await _configured(handler).search_items(SearchParams(keywords="x"))

    async def test_pagination_stops_on_failing_page(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            page = json.loads(request.content).get("ItemPage", 1)
            calls.append(page)
            if page == 2:
                return httpx.Response(500, json={})
            items = [_item(f"B0PAGE{page}{i:03d}", 10, saving_basis=20) for i in range(10)]
            return httpx.Response(200, json={"SearchResult": {"Items": items}})

        products = await _configured(handler).search_items_paginated(SearchParams(keywords="x"), 30)

        assert calls == [1, 2]
        assert len(products) == 10


class TestMinIntervalLimiter:
    """Tests for MinIntervalLimiter."""

    async def test_first_call_does_not_wait(self):
        assert await MinIntervalLimiter(0.2).acquire() == 0.0

    async def test_second_call_waits_remaining_gap(self):
        limiter = MinIntervalLimiter(0.2)
        await limiter.acquire()

        started = time.monotonic()
        waited = await limiter.acquire()

        assert waited > 0
        assert time.monotonic() - started >= 0.15
