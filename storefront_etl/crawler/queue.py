"""Work queue for crawl items.

Two backends share one interface:
- ``MemoryWorkQueue``: in-process deque guarded by a condition variable
- ``PostgresWorkQueue``: durable table claimed with ``FOR UPDATE SKIP LOCKED``

Both skip items whose ``unique_key`` was already enqueued during the run and
re-add transient failures with an incremented retry count.
"""
from __future__ import annotations

import json
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Deque, Dict, List, Optional, Protocol, Set

from psycopg2 import OperationalError
from psycopg2.extras import DictCursor, Json
from psycopg2.pool import ThreadedConnectionPool
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_random

from ..antibot import ErrorClass, classify
from ..db import pooled_connection
from ..models import Label, WorkItem

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3

# Dropped connections are retried; other database errors propagate
_retry_db = retry(
    retry=retry_if_exception_type(OperationalError),
    stop=stop_after_attempt(3),
    wait=wait_random(0.5, 2),
    reraise=True,
)


class ItemStatus(str, Enum):
    """Work item execution status."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    RETRYING = "retrying"


@dataclass(frozen=True)
class FailedItem:
    """A work item dropped for good."""

    item: WorkItem
    error_class: ErrorClass
    error_message: str


class WorkQueue(Protocol):
    """Abstract work queue interface."""

    def add(self, item: WorkItem) -> bool:
        """Enqueue item.

        Returns
        -------
        bool
            False when an item with the same unique key was already enqueued
        """
        ...

    def take(self, timeout: Optional[float] = None) -> Optional[WorkItem]:
        """Claim the next item.

        Blocks while other items are in flight and may still produce work.
        Returns None once the queue is drained or closed (or on timeout).
        """
        ...

    def mark_done(self, item: WorkItem) -> None:
        ...

    def mark_failed(self, item: WorkItem, error: BaseException) -> bool:
        """Report a failure.

        Returns
        -------
        bool
            True if the item was re-enqueued for another attempt
        """
        ...

    def close(self) -> None:
        """Stop handing out items; pending work stays where it is."""
        ...

    def stats(self) -> Dict[str, int]:
        ...


class MemoryWorkQueue:
    """Thread-safe in-memory work queue."""

    def __init__(self, max_retries: int = DEFAULT_MAX_RETRIES) -> None:
        self.max_retries = max_retries
        self.failures: List[FailedItem] = []
        self._pending: Deque[WorkItem] = deque()
        self._enqueued: Set[str] = set()
        self._in_flight = 0
        self._completed = 0
        self._closed = False
        self._cond = threading.Condition()

    def add(self, item: WorkItem) -> bool:
        key = item.unique_key
        with self._cond:
            if key in self._enqueued:
                LOGGER.debug("Skipping already enqueued %s", key)
                return False
            self._enqueued.add(key)
            self._pending.append(item)
            self._cond.notify()
        LOGGER.debug("Enqueued [%s] %s", item.label.value, item.url)
        return True

    def take(self, timeout: Optional[float] = None) -> Optional[WorkItem]:
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while True:
                if self._closed:
                    return None
                if self._pending:
                    self._in_flight += 1
                    return self._pending.popleft()
                if self._in_flight == 0:
                    return None
                if deadline is None:
                    self._cond.wait()
                else:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        return None
                    self._cond.wait(remaining)

    def mark_done(self, item: WorkItem) -> None:
        with self._cond:
            self._in_flight -= 1
            self._completed += 1
            self._cond.notify_all()

    def mark_failed(self, item: WorkItem, error: BaseException) -> bool:
        decision = classify(error)
        should_retry = decision.retryable and item.retry_count < self.max_retries
        with self._cond:
            self._in_flight -= 1
            if should_retry:
                self._pending.append(item.with_retry())
            else:
                self.failures.append(FailedItem(item, decision.error_class, str(error)))
            self._cond.notify_all()

        if should_retry:
            LOGGER.warning(
                "Retrying %s (attempt %d/%d): %s",
                item.url,
                item.retry_count + 1,
                self.max_retries,
                error,
            )
        else:
            LOGGER.warning(
                "Dropped %s after %d retries [%s]: %s",
                item.url,
                item.retry_count,
                decision.error_class.value,
                error,
            )
        return should_retry

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    @property
    def drained(self) -> bool:
        with self._cond:
            return not self._pending and self._in_flight == 0

    def stats(self) -> Dict[str, int]:
        with self._cond:
            return {
                ItemStatus.PENDING.value: len(self._pending),
                ItemStatus.IN_PROGRESS.value: self._in_flight,
                ItemStatus.COMPLETED.value: self._completed,
                ItemStatus.FAILED.value: len(self.failures),
                "enqueued": len(self._enqueued),
            }


class PostgresWorkQueue:
    """Durable work queue in the ``crawl_queue`` table.

    Items are scoped by ``run_id``; re-opening a run resumes it, moving items
    left ``in_progress`` by a dead process back to ``retrying``.
    """

    def __init__(
        self,
        pool: ThreadedConnectionPool,
        run_id: str,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        poll_interval: float = 1.0,
        worker_id: str = "",
        resume: bool = True,
    ) -> None:
        """Initialize Postgres queue.

        Parameters
        ----------
        pool : ThreadedConnectionPool
            Shared connection pool
        run_id : str
            Crawl run the items belong to
        max_retries : int
            Retry ceiling for transient failures
        poll_interval : float
            Seconds between polls while other workers hold items
        worker_id : str
            Recorded on claimed rows for diagnostics
        resume : bool
            Move rows left in_progress by a dead process back to retrying
        """
        self.pool = pool
        self.run_id = run_id
        self.max_retries = max_retries
        self.poll_interval = poll_interval
        self.worker_id = worker_id
        self._closed = threading.Event()
        self.ensure_table()
        if resume:
            self._reset_stale()

    def ensure_table(self) -> None:
        """Create queue table if not exists."""
        create_sql = """
        CREATE TABLE IF NOT EXISTS crawl_queue (
            item_id BIGSERIAL PRIMARY KEY,
            run_id VARCHAR(64) NOT NULL,
            unique_key TEXT NOT NULL,
            url TEXT NOT NULL,
            label VARCHAR(16) NOT NULL,
            domain VARCHAR(255) NOT NULL,
            carried_data JSONB,
            status VARCHAR(20) DEFAULT 'pending',
            retry_count INTEGER DEFAULT 0,
            error_class VARCHAR(20),
            error_message TEXT,
            worker_id VARCHAR(100),
            created_at TIMESTAMPTZ DEFAULT NOW(),
            started_at TIMESTAMPTZ,
            completed_at TIMESTAMPTZ,

            CONSTRAINT uq_crawl_queue_run_key UNIQUE (run_id, unique_key)
        );

        CREATE INDEX IF NOT EXISTS idx_crawl_queue_run_status
            ON crawl_queue(run_id, status, created_at);
        """
        with pooled_connection(self.pool) as conn:
            with conn.cursor() as cur:
                cur.execute(create_sql)

        LOGGER.info("Ensured crawl_queue table exists")

    def _reset_stale(self) -> None:
        with pooled_connection(self.pool) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE crawl_queue
                    SET status = 'retrying', worker_id = NULL
                    WHERE run_id = %s AND status = 'in_progress'
                    """,
                    (self.run_id,),
                )
                count = cur.rowcount
        if count:
            LOGGER.info("Resumed %d in-progress item(s) of run %s", count, self.run_id)

    @_retry_db
    def add(self, item: WorkItem) -> bool:
        insert_sql = """
        INSERT INTO crawl_queue
            (run_id, unique_key, url, label, domain, carried_data, retry_count)
        VALUES (%s, %s, %s, %s, %s, %s, %s)
        ON CONFLICT (run_id, unique_key) DO NOTHING
        """
        with pooled_connection(self.pool) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    insert_sql,
                    (
                        self.run_id,
                        item.unique_key,
                        item.url,
                        item.label.value,
                        item.domain,
                        Json(item.carried_data) if item.carried_data is not None else None,
                        item.retry_count,
                    ),
                )
                added = cur.rowcount == 1

        if added:
            LOGGER.debug("Enqueued [%s] %s", item.label.value, item.url)
        return added

    @_retry_db
    def _claim(self) -> Optional[WorkItem]:
        claim_sql = """
        UPDATE crawl_queue
        SET status = 'in_progress',
            started_at = NOW(),
            worker_id = %s
        WHERE item_id = (
            SELECT item_id
            FROM crawl_queue
            WHERE run_id = %s AND status IN ('pending', 'retrying')
            ORDER BY created_at ASC, item_id ASC
            LIMIT 1
            FOR UPDATE SKIP LOCKED
        )
        RETURNING url, label, domain, carried_data, retry_count
        """
        with pooled_connection(self.pool) as conn:
            with conn.cursor(cursor_factory=DictCursor) as cur:
                cur.execute(claim_sql, (self.worker_id, self.run_id))
                row = cur.fetchone()
        if row is None:
            return None
        carried = row["carried_data"]
        if isinstance(carried, str):
            carried = json.loads(carried)
        return WorkItem(
            url=row["url"],
            label=Label(row["label"]),
            domain=row["domain"],
            carried_data=carried,
            retry_count=row["retry_count"],
        )

    @_retry_db
    def _in_flight(self) -> int:
        with pooled_connection(self.pool) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT COUNT(*) FROM crawl_queue WHERE run_id = %s AND status = 'in_progress'",
                    (self.run_id,),
                )
                return cur.fetchone()[0]

    def take(self, timeout: Optional[float] = None) -> Optional[WorkItem]:
        deadline = None if timeout is None else time.monotonic() + timeout
        while not self._closed.is_set():
            item = self._claim()
            if item is not None:
                return item
            if self._in_flight() == 0:
                return None
            if deadline is not None and time.monotonic() >= deadline:
                return None
            self._closed.wait(self.poll_interval)
        return None

    @_retry_db
    def mark_done(self, item: WorkItem) -> None:
        with pooled_connection(self.pool) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE crawl_queue
                    SET status = 'completed', completed_at = NOW()
                    WHERE run_id = %s AND unique_key = %s
                    """,
                    (self.run_id, item.unique_key),
                )

    @_retry_db
    def mark_failed(self, item: WorkItem, error: BaseException) -> bool:
        decision = classify(error)
        should_retry = decision.retryable and item.retry_count < self.max_retries
        new_status = ItemStatus.RETRYING if should_retry else ItemStatus.FAILED

        with pooled_connection(self.pool) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE crawl_queue
                    SET status = %s,
                        retry_count = CASE WHEN %s THEN retry_count + 1 ELSE retry_count END,
                        error_class = %s,
                        error_message = %s,
                        completed_at = CASE WHEN %s THEN NULL ELSE NOW() END
                    WHERE run_id = %s AND unique_key = %s
                    """,
                    (
                        new_status.value,
                        should_retry,
                        decision.error_class.value,
                        str(error),
                        should_retry,
                        self.run_id,
                        item.unique_key,
                    ),
                )

        LOGGER.warning("Marked %s as %s: %s", item.url, new_status.value, error)
        return should_retry

    def close(self) -> None:
        self._closed.set()

    def stats(self) -> Dict[str, int]:
        """Get queue statistics for this run."""
        stats: Dict[str, int] = {}
        with pooled_connection(self.pool) as conn:
            with conn.cursor(cursor_factory=DictCursor) as cur:
                cur.execute(
                    """
                    SELECT status, COUNT(*) AS count
                    FROM crawl_queue
                    WHERE run_id = %s
                    GROUP BY status
                    """,
                    (self.run_id,),
                )
                for row in cur.fetchall():
                    stats[row["status"]] = row["count"]
        return stats
