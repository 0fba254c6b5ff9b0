"""Amazon PA-API 5.0 adapter.

Searches products through the Product Advertising API 5.0 and maps each
result into a ProductCandidate for the moderation queue.
Documentation: https://webservices.amazon.com/paapi5/documentation/
"""

import hashlib
import hmac
import json
import math
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx
import structlog

from dealhunter.config import settings
from dealhunter.core.exceptions import RateLimitError, UpstreamFetchError
from dealhunter.scrapers.base import BaseAdapter, ProductCandidate, SourceType
from dealhunter.scrapers.utils.normalizer import PriceNormalizer
from dealhunter.scrapers.utils.rate_limiter import MinIntervalLimiter


logger = structlog.get_logger(__name__)

SORT_OPTIONS = ("Price:LowToHigh", "Price:HighToLow", "AvgCustomerReviews", "NewestArrivals")

# Our category names -> PA-API SearchIndex
CATEGORY_TO_SEARCH_INDEX = {
    "Electronics": "Electronics",
    "Computers": "Computers",
    "Home & Kitchen": "HomeAndKitchen",
    "Fashion": "Fashion",
    "Beauty": "Beauty",
    "Sports": "Sports",
    "Books": "Books",
    "Toys": "Toys",
    "Health": "HealthPersonalCare",
    "Automotive": "Automotive",
}

MAX_ITEMS_PER_PAGE = 10
MAX_PAGES = 10

_MOCK_PRODUCT_NAMES = [
    "Wireless Bluetooth Headphones",
    "Smart Watch Fitness Tracker",
    "Portable Power Bank 20000mAh",
    "USB-C Hub Adapter",
    "Mechanical Gaming Keyboard",
    "Wireless Mouse Ergonomic",
    "LED Desk Lamp",
    "Phone Stand Holder",
    "HDMI Cable 4K",
    "Webcam 1080p HD",
]
_MOCK_DEAL_BADGES = [
    "Limited Time Deal",
    "Deal of the Day",
    "Lightning Deal",
    "Black Friday Deal",
    None,
    None,
]


@dataclass
class SearchParams:
    """Search request for the product API."""

    keywords: Optional[str] = None
    category: Optional[str] = None
    sort_by: Optional[str] = None
    item_count: int = 10
    item_page: Optional[int] = None
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None
    min_saving_percent: Optional[int] = None

    def __post_init__(self):
        """Validate data after initialization."""
        if self.sort_by is not None and self.sort_by not in SORT_OPTIONS:
            raise ValueError(f"Invalid sort_by: {self.sort_by}")
        if self.item_count < 1:
            raise ValueError("item_count must be positive")
        if self.item_page is not None and not 1 <= self.item_page <= MAX_PAGES:
            raise ValueError(f"item_page must be between 1 and {MAX_PAGES}")

    @property
    def search_index(self) -> str:
        if self.category:
            return CATEGORY_TO_SEARCH_INDEX.get(self.category, "All")
        return "All"


def _amount(node: Optional[Dict[str, Any]]) -> Optional[Decimal]:
    """Read an amount from either the Offers (Amount) or OffersV2 (Money.Amount) shape."""
    if not node:
        return None
    raw = node.get("Amount")
    if raw is None:
        raw = (node.get("Money") or {}).get("Amount")
    return PriceNormalizer.to_decimal(raw)


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class AmazonPAAPIAdapter(BaseAdapter):
    """Amazon Product Advertising API 5.0 adapter for product search.

    Requires AMAZON_ACCESS_KEY, AMAZON_SECRET_KEY, and AMAZON_PARTNER_TAG.
    Without them the adapter serves deterministic mock candidates so syncs
    and tests run offline. Implements AWS Signature Version 4 authentication.

    All outbound calls pass through one MinIntervalLimiter; share the adapter
    (see get_amazon_adapter) so concurrent syncs serialize on it.
    """

    source_type = SourceType.STRUCTURED
    adapter_name = "amazon"

    # API Configuration
    API_DOMAIN = "webservices.amazon.com"
    API_PATH = "/paapi5/searchitems"
    API_BASE_URL = f"https://{API_DOMAIN}{API_PATH}"
    API_REGION = "us-east-1"
    API_SERVICE = "ProductAdvertisingAPI"
    API_TARGET = "com.amazon.paapi5.v1.ProductAdvertisingAPIv1.SearchItems"

    RESOURCES = [
        "ItemInfo.Title",
        "ItemInfo.Features",
        "Images.Primary.Large",
        "BrowseNodeInfo.BrowseNodes",
        "Offers.Listings.Price",
        "Offers.Listings.SavingBasis",
        "Offers.Listings.Promotions",
        "Offers.Listings.Condition",
        "Offers.Listings.Availability.Type",
        "Offers.Listings.MerchantInfo",
        "Offers.Listings.IsBuyBoxWinner",
        "OffersV2.Listings.Price",
        "OffersV2.Listings.SavingBasis",
        "OffersV2.Listings.Promotions",
        "OffersV2.Listings.DealDetails",
        "OffersV2.Listings.Condition",
        "OffersV2.Listings.Availability",
    ]

    def __init__(
        self,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        partner_tag: Optional[str] = None,
        marketplace: Optional[str] = None,
        limiter: Optional[MinIntervalLimiter] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize Amazon PA-API adapter.

        Args:
            access_key: PA-API access key (defaults to settings)
            secret_key: PA-API secret key (defaults to settings)
            partner_tag: Associates partner tag (defaults to settings)
            marketplace: Marketplace host (defaults to settings)
            limiter: Shared minimum-interval limiter
            transport: Optional httpx transport (tests inject a MockTransport)
        """
        super().__init__()
        self.access_key = settings.AMAZON_ACCESS_KEY if access_key is None else access_key
        self.secret_key = settings.AMAZON_SECRET_KEY if secret_key is None else secret_key
        self.partner_tag = settings.AMAZON_PARTNER_TAG if partner_tag is None else partner_tag
        self.marketplace = marketplace or settings.AMAZON_MARKETPLACE
        self.limiter = limiter or MinIntervalLimiter(settings.AMAZON_MIN_REQUEST_INTERVAL_SECONDS)
        self._transport = transport
        self._timeout = settings.AMAZON_API_TIMEOUT_SECONDS

        if not self.is_configured():
            self.logger.warning(
                "amazon_credentials_missing",
                message="PA-API credentials not set, searches will return mock data",
            )

    def is_configured(self) -> bool:
        return bool(self.access_key and self.secret_key and self.partner_tag)

    async def search_items(self, params: SearchParams) -> List[ProductCandidate]:
        """Search for products.

        Args:
            params: Search parameters (at most 10 items are requested)

        Returns:
            List of ProductCandidate; empty when the API rate-limited us

        Raises:
            UpstreamFetchError: On network failure or a non-throttling API error
        """
        self.logger.info(
            "amazon_search",
            keywords=params.keywords,
            category=params.category,
            item_page=params.item_page,
        )

        if not self.is_configured():
            return self._mock_products(params)

        await self.limiter.acquire()

        try:
            data = await self._call_api(self._build_payload(params))
        except RateLimitError:
            self.logger.warning("amazon_rate_limited", keywords=params.keywords)
            return []

        items = (data.get("SearchResult") or {}).get("Items") or []
        if not items:
            self.logger.warning("amazon_no_items", keywords=params.keywords)
            return []

        candidates = self._parse_search_results(items, params.category or "General")
        self.logger.info("amazon_search_complete", returned=len(items), mapped=len(candidates))
        return candidates

    async def search_items_paginated(
        self, params: SearchParams, total_items: int
    ) -> List[ProductCandidate]:
        """Fetch more than one page of results.

        Requests pages of 10 (up to 10 pages), stops on a short page or once
        enough items are collected. A failing page stops pagination and the
        items fetched so far are returned.

        Args:
            params: Base search parameters
            total_items: Desired number of items

        Returns:
            At most total_items candidates
        """
        pages_needed = min(math.ceil(total_items / MAX_ITEMS_PER_PAGE), MAX_PAGES)
        collected: List[ProductCandidate] = []

        for page in range(1, pages_needed + 1):
            try:
                products = await self.search_items(
                    replace(params, item_page=page, item_count=MAX_ITEMS_PER_PAGE)
                )
            except Exception as e:
                self.logger.error("amazon_page_failed", page=page, error=str(e))
                break

            collected.extend(products)

            if len(products) < MAX_ITEMS_PER_PAGE:
                self.logger.debug("amazon_short_page", page=page, returned=len(products))
                break
            if len(collected) >= total_items:
                break

        result = collected[:total_items]
        self.logger.info("amazon_pagination_complete", pages=pages_needed, fetched=len(result))
        return result

    def _build_payload(self, params: SearchParams) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "Keywords": params.keywords or "deals",
            "Resources": self.RESOURCES,
            "PartnerTag": self.partner_tag,
            "PartnerType": "Associates",
            "Marketplace": self.marketplace,
            "SearchIndex": params.search_index,
            "ItemCount": min(params.item_count, MAX_ITEMS_PER_PAGE),
        }
        if params.item_page:
            payload["ItemPage"] = params.item_page
        # Price bounds are expressed in cents
        if params.min_price:
            payload["MinPrice"] = int(Decimal(params.min_price) * 100)
        if params.max_price:
            payload["MaxPrice"] = int(Decimal(params.max_price) * 100)
        if params.min_saving_percent:
            payload["MinSavingPercent"] = params.min_saving_percent
        if params.sort_by:
            payload["SortBy"] = params.sort_by
        return payload

    async def _call_api(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST a signed SearchItems request.

        Raises:
            RateLimitError: HTTP 429 or a TooManyRequests error body
            UpstreamFetchError: Any other transport, HTTP or API error
        """
        body = json.dumps(payload, separators=(",", ":"))
        headers = self._sign_request(body)

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(self.API_BASE_URL, headers=headers, content=body)
        except httpx.HTTPError as e:
            self.logger.error("amazon_api_network_error", error=str(e))
            raise UpstreamFetchError(self.adapter_name, str(e)) from e

        try:
            data = response.json()
        except ValueError:
            data = {}

        errors = data.get("Errors") or []
        if response.status_code == 429 or any(err.get("Code") == "TooManyRequests" for err in errors):
            raise RateLimitError(self.adapter_name)

        if response.status_code >= 400 or errors:
            message = errors[0].get("Message", "Unknown error") if errors else f"HTTP {response.status_code}"
            self.logger.error("amazon_api_error", status_code=response.status_code, error=message)
            raise UpstreamFetchError(self.adapter_name, message)

        return data

    def _sign_request(self, body: str) -> Dict[str, str]:
        """Generate AWS Signature Version 4 headers for Amazon PA-API.

        Args:
            body: Serialized JSON payload

        Returns:
            Dictionary of headers including Authorization
        """
        t = datetime.now(timezone.utc)
        amz_date = t.strftime("%Y%m%dT%H%M%SZ")
        date_stamp = t.strftime("%Y%m%d")

        payload_hash = hashlib.sha256(body.encode("utf-8")).hexdigest()

        canonical_headers = (
            f"content-type:application/json; charset=utf-8\n"
            f"host:{self.API_DOMAIN}\n"
            f"x-amz-date:{amz_date}\n"
            f"x-amz-target:{self.API_TARGET}\n"
        )
        signed_headers = "content-type;host;x-amz-date;x-amz-target"

        canonical_request = (
            f"POST\n"
            f"{self.API_PATH}\n"
            f"\n"
            f"{canonical_headers}\n"
            f"{signed_headers}\n"
            f"{payload_hash}"
        )

        algorithm = "AWS4-HMAC-SHA256"
        credential_scope = f"{date_stamp}/{self.API_REGION}/{self.API_SERVICE}/aws4_request"
        string_to_sign = (
            f"{algorithm}\n"
            f"{amz_date}\n"
            f"{credential_scope}\n"
            f"{hashlib.sha256(canonical_request.encode('utf-8')).hexdigest()}"
        )

        def sign(key: bytes, msg: str) -> bytes:
            return hmac.new(key, msg.encode("utf-8"), hashlib.sha256).digest()

        k_date = sign(f"AWS4{self.secret_key}".encode("utf-8"), date_stamp)
        k_region = sign(k_date, self.API_REGION)
        k_service = sign(k_region, self.API_SERVICE)
        k_signing = sign(k_service, "aws4_request")

        signature = hmac.new(k_signing, string_to_sign.encode("utf-8"), hashlib.sha256).hexdigest()

        return {
            "Authorization": (
                f"{algorithm} "
                f"Credential={self.access_key}/{credential_scope}, "
                f"SignedHeaders={signed_headers}, "
                f"Signature={signature}"
            ),
            "Content-Type": "application/json; charset=utf-8",
            "Host": self.API_DOMAIN,
            "X-Amz-Date": amz_date,
            "X-Amz-Target": self.API_TARGET,
        }

    def _parse_search_results(self, items: List[Dict[str, Any]], category: str) -> List[ProductCandidate]:
        candidates = []
        for item in items:
            try:
                candidate = self._parse_item(item, category)
            except Exception as e:
                self.logger.warning("amazon_item_parse_failed", asin=item.get("ASIN"), error=str(e))
                continue
            if candidate:
                candidates.append(candidate)
        return candidates

    def _parse_item(self, item: Dict[str, Any], category: str) -> Optional[ProductCandidate]:
        """Convert a PA-API item to a ProductCandidate.

        OffersV2 is preferred over the legacy Offers block. Items without a
        listing or a positive price are dropped.
        """
        asin = item.get("ASIN")
        listing = ((item.get("OffersV2") or {}).get("Listings") or [None])[0]
        if not listing:
            listing = ((item.get("Offers") or {}).get("Listings") or [None])[0]
        if not listing:
            self.logger.debug("amazon_item_no_listing", asin=asin)
            return None

        price = _amount(listing.get("Price"))
        if price is None or price <= 0:
            self.logger.debug("amazon_item_invalid_price", asin=asin)
            return None
        original_price = _amount(listing.get("SavingBasis")) or price

        savings = listing.get("Savings") or (listing.get("Price") or {}).get("Savings") or {}
        raw_promotions = listing.get("Promotions") or []
        promotions = self._parse_promotions(raw_promotions, asin)
        deal_details = listing.get("DealDetails") or {}

        primary = next((p for p in promotions if p["type"] == "Coupon"), promotions[0] if promotions else None)
        display_text = self._build_promotion_display_text(primary, deal_details)
        if not display_text and deal_details.get("Badge"):
            display_text = deal_details["Badge"]

        features = ((item.get("ItemInfo") or {}).get("Features") or {}).get("DisplayValues") or []
        image = ((item.get("Images") or {}).get("Primary") or {}).get("Large") or {}

        return ProductCandidate(
            asin=asin,
            title=((item.get("ItemInfo") or {}).get("Title") or {}).get("DisplayValue") or "Unknown Product",
            description=" ".join(features) or None,
            price=price,
            original_price=original_price,
            discount_percentage=PriceNormalizer.calculate_discount_percentage(original_price, price),
            image_url=image.get("URL"),
            product_url=item.get("DetailPageURL") or f"https://www.amazon.com/dp/{asin}",
            category=category,
            deal_badge=deal_details.get("Badge"),
            deal_access_type=deal_details.get("AccessType"),
            deal_start_time=_parse_timestamp(deal_details.get("StartTime")),
            deal_end_time=_parse_timestamp(deal_details.get("EndTime")),
            deal_percent_claimed=PriceNormalizer.to_decimal(deal_details.get("PercentClaimed")),
            has_promotion=bool(promotions) or bool(deal_details),
            promotion_type=primary["type"] if primary else None,
            promotion_amount=primary["amount"] if primary else None,
            promotion_percent=primary["discount_percent"] if primary else None,
            promotion_display_text=display_text,
            is_subscribe_and_save=any(p["type"] in ("SNS", "SubscribeAndSave") for p in promotions),
            is_coupon_available=any(
                p["type"] == "Coupon"
                or p["discount_percent"] is not None
                or "coupon" in (p["display_amount"] or "").lower()
                for p in promotions
            ),
            saving_basis_type=(listing.get("SavingBasis") or {}).get("PriceType"),
            savings_amount=_amount(savings),
            raw_promotions=raw_promotions,
        )

    def _parse_promotions(self, promotions: List[Dict[str, Any]], asin: Optional[str]) -> List[Dict[str, Any]]:
        parsed = []
        for promo in promotions:
            if not isinstance(promo, dict):
                self.logger.warning("amazon_promotion_unparseable", asin=asin)
                continue
            money = promo.get("Money") or {}
            parsed.append({
                "type": promo.get("Type"),
                "amount": PriceNormalizer.to_decimal(promo.get("Amount", money.get("Amount"))),
                "currency": promo.get("Currency") or money.get("Currency"),
                "discount_percent": PriceNormalizer.to_decimal(promo.get("DiscountPercent")),
                "display_amount": promo.get("DisplayAmount"),
            })
        return parsed

    @staticmethod
    def _build_promotion_display_text(
        promo: Optional[Dict[str, Any]], deal_details: Dict[str, Any]
    ) -> Optional[str]:
        """Human-readable summary, e.g. "15% off coupon - Lightning Deal - (Prime Exclusive)"."""
        if not promo and not deal_details:
            return None

        parts = []
        if promo:
            if promo["display_amount"]:
                parts.append(promo["display_amount"])
            elif promo["discount_percent"]:
                parts.append(f"{promo['discount_percent'].normalize():f}% off coupon")
            elif promo["amount"]:
                currency = promo["currency"] or "USD"
                symbol = "$" if currency == "USD" else currency
                parts.append(f"{symbol}{promo['amount']:.2f} off")

            if promo["type"] in ("SNS", "SubscribeAndSave"):
                parts.append("with Subscribe & Save")

        badge = deal_details.get("Badge")
        if badge and not any(badge in p for p in parts):
            parts.append(badge)

        access = deal_details.get("AccessType")
        if access == "PRIME_EXCLUSIVE":
            parts.append("(Prime Exclusive)")
        elif access == "PRIME_EARLY_ACCESS":
            parts.append("(Prime Early Access)")

        return " - ".join(parts) if parts else None

    def _mock_products(self, params: SearchParams) -> List[ProductCandidate]:
        """Deterministic stand-in results for unconfigured deployments.

        Every field derives from a hash of (keywords, category, page, index),
        so repeating a search yields the same ASINs and prices.
        """
        category = params.category or "Electronics"
        count = min(params.item_count, MAX_ITEMS_PER_PAGE)
        page = params.item_page or 1
        min_discount = params.min_saving_percent or 0

        products = []
        for i in range(count):
            digest = hashlib.sha256(
                f"{params.keywords or ''}|{category}|{page}|{i}".encode("utf-8")
            ).digest()

            def fraction(offset: int) -> float:
                return int.from_bytes(digest[offset:offset + 4], "big") / 0xFFFFFFFF

            asin = "B0" + digest[16:24].hex()[:8].upper()
            name = _MOCK_PRODUCT_NAMES[i % len(_MOCK_PRODUCT_NAMES)]

            original_price = PriceNormalizer.to_decimal(50 + fraction(0) * 150)
            discount = max(min_discount, 15 + fraction(4) * 50)
            price = PriceNormalizer.to_decimal(original_price * Decimal(str(1 - discount / 100)))

            has_coupon = fraction(8) > 0.5
            coupon_percent = Decimal(int(5 + fraction(12) * 20)) if has_coupon else None
            subscribe_and_save = digest[24] / 255 > 0.7
            badge = _MOCK_DEAL_BADGES[digest[25] % len(_MOCK_DEAL_BADGES)]

            if coupon_percent:
                display_text = f"{coupon_percent}% off coupon"
            elif subscribe_and_save:
                display_text = "Save 5% with Subscribe & Save"
            else:
                display_text = badge

            products.append(
                ProductCandidate(
                    asin=asin,
                    title=f"{name} - Model {(page - 1) * MAX_ITEMS_PER_PAGE + i + 1}",
                    description=f"High quality {category.lower()} product with excellent features and great value.",
                    price=price,
                    original_price=original_price,
                    discount_percentage=PriceNormalizer.calculate_discount_percentage(original_price, price),
                    image_url=f"https://via.placeholder.com/300x300?text={quote(name)}",
                    product_url=f"https://www.amazon.com/dp/{asin}",
                    category=category,
                    deal_badge=badge,
                    deal_access_type="PRIME_EXCLUSIVE" if digest[26] / 255 > 0.8 else "ALL",
                    deal_end_time=datetime.now(timezone.utc) + timedelta(days=1) if badge else None,
                    has_promotion=has_coupon or subscribe_and_save or badge is not None,
                    promotion_type="Coupon" if has_coupon else ("SNS" if subscribe_and_save else None),
                    promotion_percent=coupon_percent,
                    promotion_display_text=display_text,
                    is_subscribe_and_save=subscribe_and_save,
                    is_coupon_available=has_coupon,
                    savings_amount=PriceNormalizer.savings(original_price, price),
                )
            )

        self.logger.info("amazon_mock_products_generated", count=len(products), page=page)
        return products


_amazon_adapter: Optional[AmazonPAAPIAdapter] = None


def get_amazon_adapter() -> AmazonPAAPIAdapter:
    """Get the process-wide adapter so every sync shares one rate limiter."""
    global _amazon_adapter
    if _amazon_adapter is None:
        _amazon_adapter = AmazonPAAPIAdapter()
    return _amazon_adapter
