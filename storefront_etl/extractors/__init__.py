"""Page-type specific extraction adapters, keyed by crawl stage label."""

from ..models import Label
from .category import collect_product_links
from .pricing import extract_price, parse_price_text
from .product import ProductFacts, extract_asin, extract_product_facts, pick_seller_link
from .seller import SellerFacts, derive_seller_id, extract_seller_facts

ADAPTERS = {
    Label.CATEGORY: collect_product_links,
    Label.PRODUCT: extract_product_facts,
    Label.SELLER: extract_seller_facts,
}

__all__ = [
    "ADAPTERS",
    "collect_product_links",
    "extract_price",
    "parse_price_text",
    "ProductFacts",
    "extract_asin",
    "extract_product_facts",
    "pick_seller_link",
    "SellerFacts",
    "derive_seller_id",
    "extract_seller_facts",
]
