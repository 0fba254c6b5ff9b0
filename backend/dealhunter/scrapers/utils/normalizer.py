"""Data normalization utilities for price parsing and category classification."""

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional, Union

import structlog

logger = structlog.get_logger()

TWO_PLACES = Decimal("0.01")

Number = Union[Decimal, int, float, str]


# Keyword-based category classifier for pasted deal text
CATEGORY_KEYWORDS = {
    "Electronics": [
        "electronics", "laptop", "computer", "phone", "tablet", "camera", "tv",
        "television", "headphones", "speaker", "monitor", "keyboard", "mouse",
        "gaming", "console", "playstation", "xbox", "nintendo", "smart watch",
        "earbuds", "airpods",
    ],
    "Fashion": [
        "clothing", "shirt", "dress", "pants", "jeans", "jacket", "coat", "shoes",
        "sneakers", "boots", "fashion", "apparel", "jewelry", "handbag", "purse",
        "sunglasses",
    ],
    "Home & Kitchen": [
        "home", "kitchen", "furniture", "appliance", "cookware", "bedding",
        "mattress", "vacuum", "blender", "coffee maker", "instant pot",
        "air fryer", "sofa", "chair", "lamp",
    ],
    "Health & Beauty": [
        "beauty", "health", "skincare", "makeup", "cosmetics", "perfume",
        "shampoo", "vitamin", "supplement", "wellness",
    ],
    "Sports & Outdoors": [
        "sports", "outdoor", "camping", "hiking", "bike", "bicycle", "gym",
        "yoga", "running", "golf", "tennis", "basketball", "football",
    ],
    "Books & Media": ["book", "kindle", "audiobook", "dvd", "blu-ray", "movie", "music", "album", "vinyl"],
    "Toys & Games": ["toy", "lego", "puzzle", "board game", "action figure", "doll", "kids"],
    "Grocery": ["grocery", "food", "snack", "beverage", "coffee", "tea", "organic"],
    "Baby": ["baby", "diaper", "stroller", "car seat", "infant", "nursery"],
    "Pet Supplies": ["pet", "dog", "cat food", "cat litter", "aquarium"],
    "Office": ["office", "desk", "printer", "paper", "pen", "notebook", "organizer"],
    "Automotive": ["car", "automotive", "vehicle", "tire", "motor oil"],
}


class PriceNormalizer:
    """Price parsing and discount utilities.

    All money handling goes through Decimal; floats coming from JSON
    payloads are converted via their string form so 19.99 stays 19.99.
    """

    @staticmethod
    def to_decimal(value: Optional[Number]) -> Optional[Decimal]:
        """Convert a numeric value to a two-place Decimal.

        Args:
            value: int, float, str or Decimal

        Returns:
            Quantized Decimal, or None if the value is missing or not numeric
        """
        if value is None or value == "":
            return None
        try:
            return Decimal(str(value)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
        except (InvalidOperation, ValueError):
            return None

    @staticmethod
    def clean_price_string(raw: str) -> Optional[Decimal]:
        """Parse a price string and extract numeric value.

        Handles formats like "$12.99", "$1,299.00", "19.99 USD".

        Args:
            raw: Raw price string

        Returns:
            Decimal price value, or None if parsing fails
        """
        if not raw:
            return None

        cleaned = raw.replace("$", "").replace("USD", "").strip()
        cleaned = cleaned.replace(",", "")
        cleaned = re.sub(r"[^\d.]", "", cleaned)

        if not cleaned:
            return None

        try:
            return Decimal(cleaned).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
        except InvalidOperation:
            return None

    @staticmethod
    def calculate_discount_percentage(
        original: Optional[Number], current: Optional[Number]
    ) -> Decimal:
        """Discount of current against original, rounded to 2 places.

        Args:
            original: Original/list price
            current: Current/sale price

        Returns:
            Percentage in [0, 100]; 0 when either price is missing,
            original <= 0, or current >= original
        """
        original_dec = PriceNormalizer.to_decimal(original)
        current_dec = PriceNormalizer.to_decimal(current)
        if original_dec is None or current_dec is None:
            return Decimal("0.00")
        if original_dec <= 0 or current_dec >= original_dec:
            return Decimal("0.00")
        if current_dec < 0:
            return Decimal("100.00")
        pct = (original_dec - current_dec) / original_dec * 100
        return pct.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)

    @staticmethod
    def savings(original: Optional[Number], current: Optional[Number]) -> Optional[Decimal]:
        """Absolute savings amount, or None when not computable."""
        original_dec = PriceNormalizer.to_decimal(original)
        current_dec = PriceNormalizer.to_decimal(current)
        if original_dec is None or current_dec is None:
            return None
        return (original_dec - current_dec).quantize(TWO_PLACES)


class CategoryClassifier:
    """Automatic category classification based on keyword matches.

    Used when an admin pastes free-form deal text; feed and product API
    candidates carry their category from the source instead.
    """

    @staticmethod
    def classify(text: str) -> Optional[str]:
        """Classify text into a category.

        Args:
            text: Free-form text (title, description, pasted listing)

        Returns:
            Category name with the most keyword hits, or None
        """
        if not text:
            return None

        text_lower = text.lower()
        scores = {}

        for category, keywords in CATEGORY_KEYWORDS.items():
            score = sum(1 for kw in keywords if kw in text_lower)
            if score > 0:
                scores[category] = score

        if scores:
            return max(scores, key=scores.get)

        return None
