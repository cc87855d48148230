"""Seller profile / storefront page extraction."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import parse_qs, urlparse

from ..browser import PageHandle

SELLER_ID_PARAMS = ("seller", "sellerID")
SELLER_ID_MAX_LENGTH = 64

NAME_SELECTORS = ["h1", ".a-spacing-medium h1", "#seller-name"]
RATING_SELECTORS = [".a-icon-star span", ".a-icon-alt", '[data-hook="rating-out-of-text"]']
LOCATION_SELECTORS = [
    "#storefront-redirect-message",
    '[data-hook="seller-info"] .a-size-small',
    ".a-spacing-mini",
]

_RATING = re.compile(r"([\d.]+)")
_LOCATION_HINT = re.compile(r"ship|dispatch|from|located", re.IGNORECASE)
_NON_ALNUM = re.compile(r"[^A-Za-z0-9]+")


@dataclass
class SellerFacts:
    name: Optional[str]
    rating: Optional[str]
    location: Optional[str]


def derive_seller_id(url: str) -> str:
    """Stable seller identifier for a seller URL.

    The ``seller`` / ``sellerID`` query parameter wins; otherwise the URL path
    with every run of non-alphanumerics collapsed to ``_``.
    """
    parsed = urlparse(url)
    params = parse_qs(parsed.query)
    for name in SELLER_ID_PARAMS:
        values = params.get(name)
        if values and values[0]:
            return values[0]
    return _NON_ALNUM.sub("_", parsed.path).strip("_")[:SELLER_ID_MAX_LENGTH]


def extract_rating(page: PageHandle) -> Optional[str]:
    # Each candidate is tried separately: a rating element without a number
    # must not hide a later one.
    for selector in RATING_SELECTORS:
        text = page.query_text([selector])
        if text:
            match = _RATING.search(text)
            if match:
                return match.group(1)
    return None


def extract_location(page: PageHandle) -> Optional[str]:
    for selector in LOCATION_SELECTORS:
        text = page.query_text([selector])
        if text and _LOCATION_HINT.search(text):
            return text
    return None


def extract_seller_facts(page: PageHandle) -> SellerFacts:
    return SellerFacts(
        name=page.query_text(NAME_SELECTORS),
        rating=extract_rating(page),
        location=extract_location(page),
    )
