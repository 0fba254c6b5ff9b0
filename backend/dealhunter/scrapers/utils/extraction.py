"""Heuristic extraction of deal fields from unstructured feed text and markup.

Every function here is pure and returns None (or an empty value) when nothing
matches; callers treat each extracted field as optional.
"""

import hashlib
import html
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, List, Optional

from bs4 import BeautifulSoup

from dealhunter.scrapers.utils.normalizer import CategoryClassifier, PriceNormalizer

# Money token: "$19.99", "$ 1,299.00", "$5"
_MONEY = r"\$\s*(\d{1,3}(?:,\d{3})+(?:\.\d{1,2})?|\d+(?:\.\d{1,2})?)"

_CURRENT_PRICE_RE = re.compile(r"\b(?:now|sale|only|just)\s*:?\s*" + _MONEY, re.IGNORECASE)
_ORIGINAL_PRICE_RE = re.compile(
    r"\b(?:was|reg\.?|originally|regular|msrp|list\s+price)\s*:?\s*" + _MONEY,
    re.IGNORECASE,
)
_ANY_PRICE_RE = re.compile(_MONEY)

# "promo code SAVE20" must yield SAVE20, not CODE
_COUPON_RE = re.compile(
    r"\b(?:code|coupon|promo)[\s:]+(?!(?:code|coupon)\b)([A-Z0-9]{3,20})\b",
    re.IGNORECASE,
)
_IMG_TAG_RE = re.compile(r"<img[^>]+src=[\"']([^\"']+)[\"']", re.IGNORECASE)
_URL_RE = re.compile(r"https?://[^\s<>\"{}|\\^`\[\]]+", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")

# Pasted-text title heuristics
_PRICE_ONLY_LINE_RE = re.compile(r"^[\$\d.,\s]+$")
_URL_LINE_RE = re.compile(r"^https?://", re.IGNORECASE)
_NOISE_LINE_RE = re.compile(r"^(code|coupon|promo|expires?|ends?|was|save)\b", re.IGNORECASE)
TITLE_MAX_LENGTH = 255

_EXPIRY_PREFIX = r"(?:expires?|ends?|valid\s*(?:until|thru|through)?)[:\s]*"
_NUMERIC_EXPIRY_RE = re.compile(_EXPIRY_PREFIX + r"(\d{1,2})[/-](\d{1,2})[/-](\d{2,4})", re.IGNORECASE)
_MONTH_EXPIRY_RE = re.compile(
    _EXPIRY_PREFIX
    + r"(jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*\.?\s+(\d{1,2})(?:,?\s*(\d{4}))?",
    re.IGNORECASE,
)
_MONTHS = ["jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"]

_IMAGE_URL_PATTERNS = [
    re.compile(r"\.(jpg|jpeg|png|webp|gif)(\?|$)", re.IGNORECASE),
    re.compile(r"/images?/", re.IGNORECASE),
    re.compile(r"/photos?/", re.IGNORECASE),
    re.compile(r"cloudinary|imgix", re.IGNORECASE),
]
_PRODUCT_URL_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"amazon\.", r"amzn\.", r"target\.", r"walmart\.", r"bestbuy\.", r"ebay\.",
        r"newegg\.", r"bhphoto", r"costco\.", r"/dp/", r"/p/", r"product",
    )
]

KNOWN_STORES = [
    "Amazon", "Walmart", "Target", "Best Buy", "Costco", "Home Depot",
    "Lowes", "Kohls", "Macys", "Nordstrom", "Newegg", "B&H Photo",
    "eBay", "Staples", "Office Depot", "Wayfair", "Overstock",
    "JCPenney", "Sears", "CVS", "Walgreens", "Rite Aid", "GameStop",
    "Michaels", "Bed Bath & Beyond", "Ulta", "Sephora", "Nike",
    "Adidas", "Under Armour", "REI", "Zappos", "Gap", "Old Navy",
    "Banana Republic", "Express", "ASOS", "H&M", "Uniqlo",
]


@dataclass
class PriceInfo:
    """Prices pulled out of free text. Both fields are optional."""

    price: Optional[Decimal] = None
    original_price: Optional[Decimal] = None


@dataclass
class ParsedDealText:
    """Result of parsing a block of pasted deal text."""

    title: Optional[str] = None
    price: Optional[Decimal] = None
    original_price: Optional[Decimal] = None
    product_url: Optional[str] = None
    image_url: Optional[str] = None
    coupon_code: Optional[str] = None
    expiry_date: Optional[date] = None
    category: Optional[str] = None
    missing_fields: List[str] = field(default_factory=list)


def _join(title: Optional[str], description: Optional[str]) -> str:
    return f"{title or ''} {description or ''}"


def _money(raw: str) -> Optional[Decimal]:
    return PriceNormalizer.clean_price_string(raw)


def extract_prices(title: Optional[str], description: Optional[str] = None) -> PriceInfo:
    """Extract current and original price from deal text.

    Contextual markers win over positional guesses: "now/sale/only/just $X"
    pins the current price and "was/reg/originally/regular/msrp $X" pins the
    original price. Without a current-price marker, a single money token is the
    current price and with two or more the lowest is current and the highest
    is original (unless the original was already pinned).

    Args:
        title: Entry title
        description: Entry description or summary

    Returns:
        PriceInfo with whichever fields could be found
    """
    text = _join(title, description)
    info = PriceInfo()

    current_match = _CURRENT_PRICE_RE.search(text)
    if current_match:
        info.price = _money(current_match.group(1))

    original_match = _ORIGINAL_PRICE_RE.search(text)
    if original_match:
        info.original_price = _money(original_match.group(1))

    if info.price is None:
        prices = sorted(
            p for p in (_money(m) for m in _ANY_PRICE_RE.findall(text)) if p is not None
        )
        if info.original_price is not None:
            below = [p for p in prices if p < info.original_price]
            if below:
                info.price = below[0]
        elif len(prices) == 1:
            info.price = prices[0]
        elif len(prices) >= 2:
            info.price = prices[0]
            info.original_price = prices[-1]

    return info


def extract_coupon_code(title: Optional[str], description: Optional[str] = None) -> Optional[str]:
    """First "code/coupon/promo XXXX" token, upper-cased."""
    match = _COUPON_RE.search(_join(title, description))
    if match:
        return match.group(1).upper()
    return None


def extract_store(title: Optional[str], description: Optional[str] = None) -> Optional[str]:
    """Canonical name of the first known retailer mentioned in the text."""
    text = _join(title, description).lower()
    for store in KNOWN_STORES:
        if store.lower() in text:
            return store
    return None


def _first_url(items: Any) -> Optional[str]:
    for item in items or []:
        url = item.get("url") if hasattr(item, "get") else None
        if url:
            return url
    return None


def extract_image_url(entry: Any) -> Optional[str]:
    """Find the best image for a parsed feed entry.

    Priority: media:content, media:thumbnail, image enclosures/links, then the
    first <img src> found in the entry's markup.

    Args:
        entry: feedparser entry (dict-like)

    Returns:
        Image URL or None
    """
    url = _first_url(entry.get("media_content"))
    if url:
        return url

    url = _first_url(entry.get("media_thumbnail"))
    if url:
        return url

    for enclosure in list(entry.get("enclosures") or []) + list(entry.get("links") or []):
        mime = enclosure.get("type") or ""
        href = enclosure.get("href") or enclosure.get("url")
        if mime.startswith("image/") and href:
            return href

    markup_parts = [c.get("value", "") for c in entry.get("content") or []]
    markup_parts.append(entry.get("summary") or "")
    markup_parts.append(entry.get("description") or "")
    for markup in markup_parts:
        match = _IMG_TAG_RE.search(markup or "")
        if match:
            return match.group(1)

    return None


def clean_text(text: Optional[str]) -> str:
    """Strip markup, decode entities, and collapse whitespace."""
    if not text:
        return ""
    stripped = BeautifulSoup(text, "lxml").get_text(" ") if "<" in text else text
    return _WHITESPACE_RE.sub(" ", html.unescape(stripped).replace("\xa0", " ")).strip()


def generate_guid(link: str) -> str:
    """Deterministic guid for entries that do not carry one."""
    return hashlib.md5(link.encode("utf-8")).hexdigest()


def calculate_discount_percentage(original: Any, current: Any) -> Decimal:
    """Server-side discount derivation, see PriceNormalizer."""
    return PriceNormalizer.calculate_discount_percentage(original, current)


def extract_title(text: Optional[str]) -> Optional[str]:
    """First line of pasted text that looks like a product title."""
    if not text:
        return None
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if len(line) < 10 or len(line) > 300:
            continue
        if _PRICE_ONLY_LINE_RE.match(line):
            continue
        if _URL_LINE_RE.match(line):
            continue
        if _NOISE_LINE_RE.match(line):
            continue
        return line[:TITLE_MAX_LENGTH]
    return None


def extract_expiry_date(text: Optional[str]) -> Optional[date]:
    """Parse "expires 12/31/2025" or "ends Jan 5, 2026" style dates.

    Month-name dates without a year take the current year.
    """
    if not text:
        return None

    match = _NUMERIC_EXPIRY_RE.search(text)
    if match:
        month, day, year = (int(g) for g in match.groups())
        if year < 100:
            year += 2000
        try:
            return date(year, month, day)
        except ValueError:
            pass

    match = _MONTH_EXPIRY_RE.search(text)
    if match:
        month = _MONTHS.index(match.group(1).lower()) + 1
        day = int(match.group(2))
        year = int(match.group(3)) if match.group(3) else datetime.now().year
        try:
            return date(year, month, day)
        except ValueError:
            return None

    return None


def detect_category(text: Optional[str]) -> Optional[str]:
    return CategoryClassifier.classify(text or "")


def extract_urls(text: Optional[str]) -> List[str]:
    """Unique URLs in order of appearance."""
    seen: List[str] = []
    for url in _URL_RE.findall(text or ""):
        if url not in seen:
            seen.append(url)
    return seen


def _pick_image_url(urls: List[str]) -> Optional[str]:
    for url in urls:
        if any(p.search(url) for p in _IMAGE_URL_PATTERNS):
            return url
    return None


def _pick_product_url(urls: List[str]) -> Optional[str]:
    for url in urls:
        if any(p.search(url) for p in _PRODUCT_URL_PATTERNS):
            return url
    return urls[0] if urls else None


def parse_deal_text(text: str) -> ParsedDealText:
    """Parse a pasted deal listing into structured fields.

    Args:
        text: Raw text copied from a retailer page or newsletter

    Returns:
        ParsedDealText; missing_fields lists the required fields that could
        not be found (title, price, original_price, product_url, category)
    """
    urls = extract_urls(text)
    image_url = _pick_image_url(urls)
    product_url = _pick_product_url([u for u in urls if u != image_url])

    # URLs often contain digits that look like prices; scan text without them
    text_without_urls = _URL_RE.sub(" ", text or "")
    prices = extract_prices(text_without_urls)

    parsed = ParsedDealText(
        title=extract_title(text),
        price=prices.price,
        original_price=prices.original_price,
        product_url=product_url,
        image_url=image_url,
        coupon_code=extract_coupon_code(text_without_urls),
        expiry_date=extract_expiry_date(text),
        category=detect_category(text_without_urls),
    )

    for name in ("title", "price", "original_price", "product_url", "category"):
        if getattr(parsed, name) is None:
            parsed.missing_fields.append(name)

    return parsed
