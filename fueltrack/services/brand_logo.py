"""Fuel brand detection and logo URL composition."""

import logging
import re

from rapidfuzz.distance import Levenshtein

logger = logging.getLogger(__name__)

DEFAULT_BRAND = "default"
MAX_EDIT_DISTANCE = 2

# Iteration order decides ties: hpcl is tried before bp so that
# "hp petroleum" never lands on bp.
BRAND_KEYWORDS: dict[str, tuple[str, ...]] = {
    "shell": ("shell", "royal dutch shell"),
    "hpcl": ("hpcl", "hindustan petroleum", "hp petrol", "hp petroleum", "hp fuel"),
    "bp": ("british petroleum", "bp petrol", "bp gas", "bp fuel"),
    "bpcl": ("bharat petroleum", "bpcl", "bharatpetroleum"),
    "indian-oil": ("indian oil", "indianoil", "iocl", "indane"),
    "reliance": ("reliance", "reliance industries", "jio-bp"),
    "essar": ("essar", "nayara"),
    "total": ("total", "totalenergies"),
    "adani": ("adani", "adani gas"),
    "gulf": ("gulf", "gulf oil"),
    "castrol": ("castrol",),
}

# Most specific first.
STATION_NAME_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(pattern, re.IGNORECASE), brand)
    for pattern, brand in [
        (r"hpcl", "hpcl"),
        (r"hindustan.*petroleum", "hpcl"),
        (r"hp.*petrol", "hpcl"),
        (r"hp.*fuel", "hpcl"),
        (r"bharat.*petroleum", "bpcl"),
        (r"bpcl", "bpcl"),
        (r"british.*petroleum", "bp"),
        (r"bp.*petrol", "bp"),
        (r"bp.*gas", "bp"),
        (r"bp.*fuel", "bp"),
        (r"shell", "shell"),
        (r"indian.*oil", "indian-oil"),
        (r"iocl", "indian-oil"),
        (r"jio.*bp", "reliance"),
        (r"reliance", "reliance"),
        (r"essar", "essar"),
        (r"nayara", "essar"),
        (r"total", "total"),
        (r"adani", "adani"),
        (r"gulf", "gulf"),
        (r"castrol", "castrol"),
    ]
]


def _fuzzy_match(text: str) -> str | None:
    """Match lowercase text against the keyword table, first brand wins."""
    for brand, keywords in BRAND_KEYWORDS.items():
        for keyword in keywords:
            if (
                keyword in text
                or text in keyword
                or Levenshtein.distance(text, keyword) <= MAX_EDIT_DISTANCE
            ):
                return brand
    return None


def classify(station_name: str | None, station_brand: str | None) -> str:
    """Detect the brand key for a station, falling back to ``"default"``.

    The explicit brand is checked first since it is usually cleaner than the
    printed station name. Names are matched against ordered regex rules and
    then against the fuzzy keyword table.
    """
    if station_brand and station_brand.strip():
        brand = _fuzzy_match(station_brand.strip().lower())
        if brand:
            logger.debug(f"Brand '{brand}' detected from station brand '{station_brand}'")
            return brand

    if station_name and station_name.strip():
        for pattern, brand in STATION_NAME_PATTERNS:
            if pattern.search(station_name):
                logger.debug(f"Brand '{brand}' detected from station name pattern")
                return brand

        brand = _fuzzy_match(station_name.strip().lower())
        if brand:
            logger.debug(f"Brand '{brand}' detected from station name keywords")
            return brand

    return DEFAULT_BRAND


def logo_url(brand_key: str, bucket: str, region: str) -> str:
    """Build the public URL of a brand's logo image."""
    return f"https://{bucket}.s3.{region}.amazonaws.com/{brand_key}.png"


def supported_brands() -> list[str]:
    """All brand keys the classifier can return."""
    return [*BRAND_KEYWORDS, DEFAULT_BRAND]


class BrandLogoService:
    """Resolves logo URLs for stations using the configured logos bucket."""

    def __init__(self, bucket: str, region: str) -> None:
        self.bucket = bucket
        self.region = region

    def get_logo_url(self, station_name: str | None, station_brand: str | None) -> str:
        return logo_url(classify(station_name, station_brand), self.bucket, self.region)
