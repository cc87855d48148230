"""Price text parsing with decimal-comma and decimal-point conventions."""
from __future__ import annotations

import re
from typing import Optional, Tuple

from ..browser import PageHandle

PRICE_SELECTORS = [
    "#priceblock_ourprice",
    "#priceblock_dealprice",
    "#corePrice_feature_div .a-price .a-offscreen",
    ".a-price .a-offscreen",
    '[data-a-color="price"] .a-offscreen',
    "#tp_price_block_total_price_ww",
]

CURRENCY_SYMBOLS = {
    "€": "EUR",
    "£": "GBP",
    "$": "USD",
    "US$": "USD",
    "¥": "JPY",
    "₹": "INR",
    "zł": "PLN",
    "kr": "SEK",
}
ISO_CODES = {"EUR", "GBP", "USD", "JPY", "INR", "PLN", "SEK", "CAD", "AUD", "CHF"}

_NUMBER = re.compile(r"\d[\d.,]*")
_NON_SYMBOL = re.compile(r"[0-9.,\s]")


def detect_currency(text: str) -> Optional[str]:
    """Map the non-numeric remainder of a price string to a currency code."""
    symbol = _NON_SYMBOL.sub("", text).strip()
    if not symbol:
        return None
    if symbol in CURRENCY_SYMBOLS:
        return CURRENCY_SYMBOLS[symbol]
    if symbol.upper() in ISO_CODES:
        return symbol.upper()
    return None


def parse_number(raw: str) -> Optional[float]:
    """Parse a numeric price fragment.

    Only a comma: the comma is the decimal separator ("12,50" -> 12.5).
    Comma and period: whichever comes last is the decimal separator and the
    other groups thousands ("1,234.56" and "1.234,56" -> 1234.56).
    Only a period: standard decimal. A separator repeated more than once
    can only be a thousands separator.
    """
    raw = raw.strip().rstrip(".,")
    if not raw:
        return None

    has_comma = "," in raw
    has_dot = "." in raw
    if has_comma and has_dot:
        if raw.rfind(",") > raw.rfind("."):
            normalized = raw.replace(".", "").replace(",", ".")
        else:
            normalized = raw.replace(",", "")
    elif has_comma:
        normalized = raw.replace(",", "") if raw.count(",") > 1 else raw.replace(",", ".")
    elif has_dot and raw.count(".") > 1:
        normalized = raw.replace(".", "")
    else:
        normalized = raw

    try:
        return float(normalized)
    except ValueError:
        return None


def parse_price_text(text: Optional[str]) -> Tuple[Optional[float], Optional[str]]:
    """Split a displayed price into (amount, currency code)."""
    if not text:
        return None, None
    currency = detect_currency(text)
    match = _NUMBER.search(text)
    price = parse_number(match.group(0)) if match else None
    return price, currency


def extract_price(page: PageHandle) -> Tuple[Optional[float], Optional[str]]:
    """Price and currency from the first matching price element."""
    return parse_price_text(page.query_text(PRICE_SELECTORS))
