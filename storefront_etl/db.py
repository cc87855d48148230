"""Database connection utilities."""
from __future__ import annotations

import os
from contextlib import contextmanager
from typing import Iterator, Optional

from psycopg2.extensions import connection as PGConnection
from psycopg2.pool import ThreadedConnectionPool


def get_dsn() -> Optional[str]:
    """
    Resolve the PostgreSQL DSN from the environment.

    Priority:
    1. PG_DSN or DATABASE_URL (full connection string)
    2. Individual components: PG_USER, PG_PASS, PG_HOST, PG_PORT, PG_DB

    Returns:
        The DSN, or None when the database is not configured.
    """
    if dsn := os.getenv("PG_DSN") or os.getenv("DATABASE_URL"):
        return dsn

    user = os.getenv("PG_USER")
    password = os.getenv("PG_PASS")
    host = os.getenv("PG_HOST", "localhost")
    port = os.getenv("PG_PORT", "5432")
    database = os.getenv("PG_DB")
    if not all([user, password, database]):
        return None
    return f"postgresql://{user}:{password}@{host}:{port}/{database}"


def create_pool(dsn: str, maxconn: int = 5) -> ThreadedConnectionPool:
    """Connection pool sized for the crawler's worker threads."""
    return ThreadedConnectionPool(minconn=1, maxconn=max(1, maxconn), dsn=dsn)


@contextmanager
def pooled_connection(pool: ThreadedConnectionPool) -> Iterator[PGConnection]:
    """Borrow a connection; commit on success, roll back on error."""
    conn = pool.getconn()
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        pool.putconn(conn)
