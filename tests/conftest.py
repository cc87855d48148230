import threading
from typing import Dict, List, Optional, Sequence

import pytest

from storefront_etl.antibot import TransientFetchError
from storefront_etl.crawler import CrawlConfig
from storefront_etl.upsert import PRESERVED_COLUMNS


class FakePage:
    """In-memory PageHandle with canned query results."""

    def __init__(
        self,
        url: str,
        *,
        title: str = "",
        content: str = "<html><body></body></html>",
        texts: Optional[Dict[str, str]] = None,
        links: Optional[Dict[str, List[str]]] = None,
        settles: bool = True,
    ) -> None:
        self._url = url
        self._title = title
        self._content = content
        self.texts = texts or {}
        self._links = links or {}
        self.settles = settles

    def url(self) -> str:
        return self._url

    def title(self) -> str:
        return self._title

    def content(self) -> str:
        return self._content

    def query_text(self, selectors: Sequence[str]) -> Optional[str]:
        for selector in selectors:
            text = self.texts.get(selector)
            if text and text.strip():
                return text.strip()
        return None

    def links(self, selectors: Sequence[str]) -> List[str]:
        hrefs: List[str] = []
        for selector in selectors:
            hrefs.extend(self._links.get(selector, []))
        return hrefs

    def wait_for_load(self, load_timeout: float, idle_timeout: float) -> bool:
        return self.settles


class FakeSession:
    def __init__(self, engine: "FakeEngine") -> None:
        self.engine = engine
        self.closed = False

    def fetch(self, url: str) -> FakePage:
        with self.engine.lock:
            self.engine.fetches.append(url)
        target = self.engine.pages.get(url)
        if target is None:
            raise TransientFetchError(f"net::ERR_NAME_NOT_RESOLVED at {url}")
        if isinstance(target, Exception):
            raise target
        return target

    def close(self) -> None:
        self.closed = True


class FakeEngine:
    """BrowserEngine serving pages from a dict keyed by URL."""

    def __init__(self, pages: Dict[str, object], *, fail_open: bool = False) -> None:
        self.pages = pages
        self.fail_open = fail_open
        self.fetches: List[str] = []
        self.sessions: List[FakeSession] = []
        self.lock = threading.Lock()

    def open_session(self, proxy=None) -> FakeSession:
        if self.fail_open:
            raise RuntimeError("browser failed to launch")
        session = FakeSession(self)
        with self.lock:
            self.sessions.append(session)
        return session

    def fetch_count(self, url: str) -> int:
        with self.lock:
            return self.fetches.count(url)


class FakeStore:
    """RecordStore with the ON CONFLICT semantics of PostgresStore."""

    def __init__(self, fail_tables=()) -> None:
        self.fail_tables = set(fail_tables)
        self.rows: Dict[str, Dict[str, dict]] = {"sellers": {}, "products": {}, "listings": {}}
        self.calls: List[tuple] = []
        self.enrichment: List[str] = []
        self.lock = threading.Lock()

    def upsert(self, table, record, conflict_key) -> None:
        with self.lock:
            self.calls.append((table, record[conflict_key]))
            if table in self.fail_tables:
                raise RuntimeError(f"relation {table} is locked")
            key = record[conflict_key]
            existing = self.rows[table].get(key)
            row = dict(record)
            if existing is not None:
                for column, value in existing.items():
                    if column in PRESERVED_COLUMNS or row.get(column) is None:
                        row[column] = value
            self.rows[table][key] = row

    def queue_seller_for_enrichment(self, seller_id) -> None:
        with self.lock:
            self.enrichment.append(seller_id)


def product_page(url: str, seller_url: Optional[str], *, title="Widget", price="€12,50", brand="by Acme"):
    texts = {"#bylineInfo": brand, ".a-price .a-offscreen": price}
    links = {"a[href]": [url + "#reviews"] + ([seller_url] if seller_url else [])}
    return FakePage(url, title=title, texts=texts, links=links)


def seller_page(url: str, name: str = "Acme Trading"):
    return FakePage(
        url,
        title=name,
        texts={
            "h1": name,
            ".a-icon-alt": "4.7 out of 5 stars",
            ".a-spacing-mini": "Ships from Leipzig, Germany",
        },
    )


def category_page(url: str, product_urls: List[str]):
    return FakePage(url, title="Category", links={'a[href*="/dp/"]': product_urls})


def build_shop(domain: str = "example-shop.test", products: int = 5, seller_for=None):
    """Category → products → sellers site; seller_for(i) returns a seller URL."""
    seller_for = seller_for or (lambda i: f"https://{domain}/sp?seller=S{i}")
    category_url = f"https://{domain}/electronics/"
    product_urls = [f"https://{domain}/item-{i}/dp/B00000000{i}" for i in range(products)]
    pages: Dict[str, object] = {category_url: category_page(category_url, product_urls)}
    for i, url in enumerate(product_urls):
        seller_url = seller_for(i)
        pages[url] = product_page(url, seller_url)
        if seller_url and seller_url not in pages:
            pages[seller_url] = seller_page(seller_url, name=f"Seller {i}")
    return pages


@pytest.fixture
def make_config():
    def _make(**overrides):
        values = dict(
            domains=["example-shop.test"],
            categories=["electronics"],
            max_items=1000,
            max_concurrency=1,
            min_delay=0.0,
            max_delay=0.0,
        )
        values.update(overrides)
        return CrawlConfig(**values)

    return _make
