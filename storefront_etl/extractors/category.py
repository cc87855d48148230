"""Product-link collection from category (or any listing) pages."""
from __future__ import annotations

import re
from typing import Iterable, List

from ..browser import PageHandle

PRODUCT_LINK_SELECTORS = [
    'a[href*="/dp/"]',
    'a[href*="/gp/product/"]',
    '[data-asin] a[href*="/dp/"]',
    '.s-product-image-container a[href*="/dp/"]',
]

PRODUCT_PATH = re.compile(r"/(dp|gp/product)/")


def filter_product_links(hrefs: Iterable[str]) -> List[str]:
    """Keep product-detail hrefs, drop query strings, de-duplicate in order."""
    seen = set()
    links: List[str] = []
    for href in hrefs:
        if not href or not PRODUCT_PATH.search(href):
            continue
        link = href.split("?", 1)[0]
        if link not in seen:
            seen.add(link)
            links.append(link)
    return links


def collect_product_links(page: PageHandle) -> List[str]:
    return filter_product_links(page.links(PRODUCT_LINK_SELECTORS))
