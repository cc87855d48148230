"""Product detail page extraction."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional

from ..browser import PageHandle
from .pricing import extract_price

# Order matters: the first pattern that matches wins
ASIN_PATTERNS = [
    re.compile(r"/dp/([A-Z0-9]{10})", re.IGNORECASE),
    re.compile(r"/gp/product/([A-Z0-9]{10})", re.IGNORECASE),
    re.compile(r"[?&]ASIN=([A-Z0-9]{10})", re.IGNORECASE),
]

BRAND_SELECTORS = [
    "#bylineInfo",
    ".a-spacing-none.po-brand .a-span9 span",
    '[data-feature-name="brand"] .a-size-base',
    ".author .a-link-normal",
]

SELLER_LINK_SELECTORS = ["a[href]"]
SELLER_LINK_PATTERN = re.compile(r"seller=|/sp\?|/gp/aag/main|/stores/", re.IGNORECASE)
SELLER_TRIGGER_PATTERN = re.compile(r"sellerProfileTriggerId")
PREFERRED_SELLER_LINK = re.compile(r"/gp/aag/main|seller=")

_BY_PREFIX = re.compile(r"^by\s+", re.IGNORECASE)


@dataclass
class ProductFacts:
    """Facts read from a product page."""

    title: Optional[str]
    brand: Optional[str]
    price: Optional[float]
    currency: Optional[str]
    seller_url: Optional[str]


def extract_asin(url: Optional[str]) -> Optional[str]:
    """Return the 10-character catalog id from a product URL, or None."""
    if not url:
        return None
    for pattern in ASIN_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def extract_brand(page: PageHandle) -> Optional[str]:
    text = page.query_text(BRAND_SELECTORS)
    if not text:
        return None
    return _BY_PREFIX.sub("", text).strip() or None


def pick_seller_link(hrefs: Iterable[str]) -> Optional[str]:
    """Choose the seller profile/storefront link among page anchors.

    Storefront (``/gp/aag/main``) and ``seller=`` links are preferred over
    other seller-looking links.
    """
    candidates: List[str] = []
    for href in hrefs:
        if not href or href in candidates:
            continue
        if SELLER_LINK_PATTERN.search(href) or SELLER_TRIGGER_PATTERN.search(href):
            candidates.append(href)
    for href in candidates:
        if PREFERRED_SELLER_LINK.search(href):
            return href
    return candidates[0] if candidates else None


def extract_product_facts(page: PageHandle) -> ProductFacts:
    price, currency = extract_price(page)
    return ProductFacts(
        title=page.title() or None,
        brand=extract_brand(page),
        price=price,
        currency=currency,
        seller_url=pick_seller_link(page.links(SELLER_LINK_SELECTORS)),
    )
