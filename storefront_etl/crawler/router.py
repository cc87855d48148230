"""Dispatch fetched pages to extraction adapters by stage label."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..antibot import BotBlockedError, ParseError, detect_block
from ..browser import PageHandle
from ..extractors import ADAPTERS, derive_seller_id, extract_asin
from ..models import Label, Listing, Product, RecordBundle, Seller, WorkItem
from .dedup import DedupGuard, listing_key

LOGGER = logging.getLogger(__name__)

DEFAULT_CATEGORY_LINK_CAP = 50
DEFAULT_CURRENCY = "EUR"


@dataclass
class RouteResult:
    """Follow-on work and an optional record bundle to persist."""

    new_items: List[WorkItem] = field(default_factory=list)
    record: Optional[RecordBundle] = None


class WorkItemRouter:
    """Turns a rendered page into follow-on items or a record bundle."""

    def __init__(
        self,
        dedup: DedupGuard,
        *,
        category_link_cap: int = DEFAULT_CATEGORY_LINK_CAP,
        default_currency: str = DEFAULT_CURRENCY,
    ) -> None:
        self.dedup = dedup
        self.category_link_cap = category_link_cap
        self.default_currency = default_currency
        self._handlers = {
            Label.CATEGORY: self._route_category,
            Label.PRODUCT: self._route_product,
            Label.SELLER: self._route_seller,
        }

    def route(self, item: WorkItem, page: PageHandle) -> RouteResult:
        """Route one fetched page.

        Raises
        ------
        BotBlockedError
            If the page URL or content matches a block-page signature
        ParseError
            If a field required to continue the lineage is missing
        """
        url = page.url() or item.url
        reason = detect_block(url, page.content())
        if reason:
            raise BotBlockedError(f"{reason}: {url}")

        LOGGER.info("Processing [%s] %s", item.label.value, url)
        return self._handlers[item.label](item, page, url)

    def _route_category(self, item: WorkItem, page: PageHandle, url: str) -> RouteResult:
        links = ADAPTERS[Label.CATEGORY](page)
        kept = links[: self.category_link_cap]
        if len(links) > len(kept):
            LOGGER.debug("Capped %d product links to %d on %s", len(links), len(kept), url)
        return RouteResult(
            new_items=[WorkItem(url=link, label=Label.PRODUCT, domain=item.domain) for link in kept]
        )

    def _route_product(self, item: WorkItem, page: PageHandle, url: str) -> RouteResult:
        asin = extract_asin(url) or extract_asin(item.url)
        if not asin:
            raise ParseError(f"ASIN not found on product URL {url}")

        facts = ADAPTERS[Label.PRODUCT](page)
        if not facts.seller_url:
            raise ParseError(f"Seller link not found on product page {url}")

        carried = {
            "asin": asin,
            "title": facts.title,
            "brand": facts.brand,
            "price": facts.price,
            "currency": facts.currency,
        }
        return RouteResult(
            new_items=[
                WorkItem(
                    url=facts.seller_url,
                    label=Label.SELLER,
                    domain=item.domain,
                    carried_data=carried,
                )
            ]
        )

    def _route_seller(self, item: WorkItem, page: PageHandle, url: str) -> RouteResult:
        carried = item.carried_data or {}
        asin = carried.get("asin")
        if not asin:
            raise ParseError(f"SELLER item without carried product: {url}")

        seller_id = derive_seller_id(url)
        if not seller_id:
            raise ParseError(f"Cannot derive seller id from {url}")

        key = listing_key(seller_id, asin)
        if not self.dedup.check_and_record(key):
            LOGGER.debug("Listing %s already seen this run", key)
            return RouteResult()

        facts = ADAPTERS[Label.SELLER](page)
        seller = Seller(
            seller_id=seller_id,
            name=facts.name,
            rating=facts.rating,
            location=facts.location,
            url=url,
            domain=item.domain,
        )
        product = Product(asin=asin, title=carried.get("title"), brand=carried.get("brand"))
        listing = Listing(
            id=key,
            seller_id=seller_id,
            asin=asin,
            price=carried.get("price"),
            currency=carried.get("currency") or self.default_currency,
        )
        return RouteResult(record=RecordBundle(seller=seller, product=product, listing=listing))
