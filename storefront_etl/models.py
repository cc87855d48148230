"""Shared data structures: queue work items and pydantic store records."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Label(str, Enum):
    """Crawl stage of a work item."""

    CATEGORY = "CATEGORY"
    PRODUCT = "PRODUCT"
    SELLER = "SELLER"


@dataclass(frozen=True)
class WorkItem:
    """One unit of pending crawl work."""

    url: str
    label: Label
    domain: str
    carried_data: Optional[Dict[str, Any]] = field(default=None, compare=False)
    retry_count: int = 0

    def __post_init__(self):
        if self.retry_count < 0:
            raise ValueError("retry_count must be >= 0")

    @property
    def unique_key(self) -> str:
        """Key used by the queue to skip identical fetch targets.

        Seller pages are shared by many products, so the carried ASIN is part
        of the key for SELLER items. A seller page is therefore fetched once per
        product that links to it: each product gets its own listing at the cost
        of repeated fetches of the same page.
        """
        if self.label == Label.SELLER and self.carried_data:
            asin = self.carried_data.get("asin")
            if asin:
                return f"{self.url}#{asin}"
        return self.url

    def with_retry(self) -> WorkItem:
        return replace(self, retry_count=self.retry_count + 1)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["label"] = self.label.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> WorkItem:
        return cls(
            url=data["url"],
            label=Label(data["label"]),
            domain=data["domain"],
            carried_data=data.get("carried_data"),
            retry_count=data.get("retry_count", 0),
        )


class Seller(BaseModel):
    seller_id: str
    name: Optional[str] = None
    rating: Optional[str] = None
    location: Optional[str] = None
    url: str = ""
    domain: str = ""
    enrichment_status: str = "pending"
    first_seen: Optional[datetime] = None
    last_seen: Optional[datetime] = None


class Product(BaseModel):
    asin: str
    title: Optional[str] = None
    brand: Optional[str] = None
    category: Optional[str] = None  # filled by enrichment, never at crawl time
    first_seen: Optional[datetime] = None
    last_seen: Optional[datetime] = None


class Listing(BaseModel):
    id: str
    seller_id: str
    asin: str
    price: Optional[float] = None
    currency: str = "EUR"
    scraped_at: datetime = Field(default_factory=utcnow)
    first_seen: Optional[datetime] = None
    last_seen: Optional[datetime] = None


class RecordBundle(BaseModel):
    """Seller, product and listing produced by one SELLER page."""

    seller: Seller
    product: Product
    listing: Listing


class RunSummary(BaseModel):
    """Final record emitted once per run."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    run_started_at: datetime
    run_completed_at: datetime
    sellers_processed: int = 0
    products_processed: int = 0
    listings_processed: int = 0
    blocked_pages: int = 0
    parse_errors: int = 0
    pages_fetched: int = 0
    requests_failed: int = 0
    success_rate: int = 0
    domains_processed: List[str] = Field(default_factory=list)
    categories_processed: List[str] = Field(default_factory=list)
