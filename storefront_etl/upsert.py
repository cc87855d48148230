"""Database helpers for idempotent upsert logic."""
from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Protocol, Sequence

from psycopg2 import OperationalError, sql
from psycopg2.pool import ThreadedConnectionPool
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_random

from .antibot import PersistenceError
from .db import pooled_connection
from .models import RecordBundle, utcnow

LOGGER = logging.getLogger(__name__)

# Never rewritten on conflict: first_seen belongs to the first insert and
# enrichment_status to the enrichment pipeline
PRESERVED_COLUMNS = {"first_seen", "enrichment_status"}

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS sellers (
    seller_id VARCHAR(128) PRIMARY KEY,
    name TEXT,
    rating TEXT,
    location TEXT,
    url TEXT,
    domain VARCHAR(255),
    enrichment_status VARCHAR(20) DEFAULT 'pending',
    first_seen TIMESTAMPTZ DEFAULT NOW(),
    last_seen TIMESTAMPTZ DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS products (
    asin VARCHAR(10) PRIMARY KEY,
    title TEXT,
    brand TEXT,
    category TEXT,
    first_seen TIMESTAMPTZ DEFAULT NOW(),
    last_seen TIMESTAMPTZ DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS listings (
    id VARCHAR(160) PRIMARY KEY,
    seller_id VARCHAR(128) REFERENCES sellers(seller_id),
    asin VARCHAR(10) REFERENCES products(asin),
    price NUMERIC(14, 2),
    currency VARCHAR(8),
    scraped_at TIMESTAMPTZ,
    first_seen TIMESTAMPTZ DEFAULT NOW(),
    last_seen TIMESTAMPTZ DEFAULT NOW()
);
"""


def upsert_query(table: str, columns: Sequence[str], conflict_key: str) -> sql.Composed:
    """Build ``INSERT ... ON CONFLICT DO UPDATE`` for one keyed row.

    On conflict every column outside ``PRESERVED_COLUMNS`` takes the new
    value, but a NULL never overwrites a stored value: a re-crawl that misses
    a price or brand, or never fills ``category``, leaves what is there.
    """
    if conflict_key not in columns:
        raise ValueError(f"Record for {table} lacks conflict key {conflict_key!r}")

    target = sql.Identifier(table)
    updates = [
        sql.SQL("{col} = COALESCE(EXCLUDED.{col}, {table}.{col})").format(col=sql.Identifier(col), table=target)
        for col in columns
        if col != conflict_key and col not in PRESERVED_COLUMNS
    ]
    return sql.SQL(
        "INSERT INTO {table} ({columns}) VALUES ({values}) "
        "ON CONFLICT ({key}) DO UPDATE SET {updates}"
    ).format(
        table=target,
        columns=sql.SQL(", ").join(sql.Identifier(col) for col in columns),
        values=sql.SQL(", ").join(sql.Placeholder(col) for col in columns),
        key=sql.Identifier(conflict_key),
        updates=sql.SQL(", ").join(updates),
    )


class RecordStore(Protocol):
    """Idempotent keyed upsert capability."""

    def upsert(self, table: str, record: Mapping[str, Any], conflict_key: str) -> None:
        """Insert or update one row; raise on failure."""
        ...

    def queue_seller_for_enrichment(self, seller_id: str) -> None:
        ...


class PostgresStore:
    """RecordStore over a psycopg2 connection pool."""

    def __init__(self, pool: ThreadedConnectionPool) -> None:
        self.pool = pool

    def ensure_schema(self) -> None:
        with pooled_connection(self.pool) as conn:
            with conn.cursor() as cur:
                cur.execute(SCHEMA_SQL)
        LOGGER.info("Ensured sellers/products/listings tables exist")

    @retry(
        retry=retry_if_exception_type(OperationalError),
        stop=stop_after_attempt(3),
        wait=wait_random(0.5, 2),
        reraise=True,
    )
    def upsert(self, table: str, record: Mapping[str, Any], conflict_key: str) -> None:
        """Insert or update one row (see :func:`upsert_query`).

        Dropped connections (``OperationalError``) are retried up to three
        times; anything else propagates immediately.
        """
        query = upsert_query(table, list(record), conflict_key)
        with pooled_connection(self.pool) as conn:
            with conn.cursor() as cur:
                cur.execute(query, dict(record))

    def queue_seller_for_enrichment(self, seller_id: str) -> None:
        with pooled_connection(self.pool) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT queue_seller_for_enrichment(%s)", (seller_id,))


class NullStore:
    """Store used when no database is configured: records are only logged."""

    def upsert(self, table: str, record: Mapping[str, Any], conflict_key: str) -> None:
        LOGGER.debug("Dry run: skip upsert into %s (%s=%s)", table, conflict_key, record.get(conflict_key))

    def queue_seller_for_enrichment(self, seller_id: str) -> None:
        pass


def _payload(model) -> Dict[str, Any]:
    now = utcnow()
    data = model.model_dump()
    data["first_seen"] = data.get("first_seen") or now
    data["last_seen"] = now
    return data


def persist_bundle(store: RecordStore, bundle: RecordBundle) -> None:
    """Upsert seller, product and listing, then request seller enrichment.

    Raises
    ------
    PersistenceError
        If any of the three upserts fails
    """
    try:
        store.upsert("sellers", _payload(bundle.seller), "seller_id")
        store.upsert("products", _payload(bundle.product), "asin")
        store.upsert("listings", _payload(bundle.listing), "id")
    except Exception as exc:
        raise PersistenceError(f"Upsert of listing {bundle.listing.id} failed: {exc}") from exc

    try:
        store.queue_seller_for_enrichment(bundle.seller.seller_id)
    except Exception as exc:
        LOGGER.warning(
            "queue_seller_for_enrichment failed for %s: %s",
            bundle.seller.seller_id,
            exc,
        )
