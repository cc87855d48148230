"""Crawl orchestration: seeding, the worker pool and the global stop condition."""
from __future__ import annotations

import logging
import random
import re
import signal
import threading
import time
from typing import Callable, List, Optional

from tenacity import Retrying, stop_after_attempt, wait_random

from ..antibot import CrawlError, ErrorClass, PersistenceError, classify
from ..browser import BrowserEngine, BrowserSession
from ..models import Label, RecordBundle, RunSummary, WorkItem, utcnow
from ..upsert import RecordStore, persist_bundle
from .config import CrawlConfig
from .dedup import DedupGuard
from .metrics import CrawlMetrics
from .queue import MemoryWorkQueue, WorkQueue
from .router import WorkItemRouter

LOGGER = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")

# Attempts at reporting an item outcome to the queue before giving up on it
QUEUE_ACK_ATTEMPTS = 3


def category_path(category: str) -> str:
    """Normalise a category name or path into a URL path with a trailing slash.

    Human-readable names ("Home Audio") become slugs ("home-audio/"); values
    that already contain a slash are used as paths.
    """
    path = category.strip()
    if "/" not in path:
        path = _WHITESPACE.sub("-", path).lower()
    path = path.lstrip("/")
    if not path.endswith("/"):
        path += "/"
    return path


def seed_items(domains: List[str], categories: List[str]) -> List[WorkItem]:
    """One CATEGORY item per (domain, category), or the domain root."""
    items: List[WorkItem] = []
    for domain in domains:
        if categories:
            for category in categories:
                url = f"https://{domain}/{category_path(category)}"
                items.append(WorkItem(url=url, label=Label.CATEGORY, domain=domain))
        else:
            items.append(WorkItem(url=f"https://{domain}/", label=Label.CATEGORY, domain=domain))
    return items


class CrawlOrchestrator:
    """Runs a bounded pool of worker threads over the work queue."""

    def __init__(
        self,
        config: CrawlConfig,
        engine: BrowserEngine,
        store: RecordStore,
        *,
        queue: Optional[WorkQueue] = None,
        dedup: Optional[DedupGuard] = None,
        metrics: Optional[CrawlMetrics] = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        """Initialize orchestrator.

        Parameters
        ----------
        config : CrawlConfig
            Validated run configuration
        engine : BrowserEngine
            Source of browser sessions, one per worker
        store : RecordStore
            Idempotent upsert target
        queue, dedup, metrics : optional
            Shared state; fresh instances are created when omitted
        sleep : callable
            Used for the politeness delay
        rng : random.Random, optional
            Source of politeness delay values
        """
        config.validate()
        self.config = config
        self.engine = engine
        self.store = store
        self.queue = queue if queue is not None else MemoryWorkQueue(max_retries=config.max_retries)
        self.dedup = dedup if dedup is not None else DedupGuard()
        self.metrics = metrics if metrics is not None else CrawlMetrics()
        self.router = WorkItemRouter(
            self.dedup,
            category_link_cap=config.category_link_cap,
            default_currency=config.default_currency,
        )
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._stop = threading.Event()

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def request_stop(self, reason: str) -> None:
        """Stop handing out work; in-flight items finish normally."""
        if self._stop.is_set():
            return
        LOGGER.info("%s. Stopping crawl.", reason)
        self._stop.set()
        self.queue.close()

    def install_signal_handlers(self) -> None:
        """Turn SIGINT/SIGTERM into a graceful stop (main thread only)."""

        def _handle_shutdown(signum, frame) -> None:
            self.request_stop(f"Received shutdown signal {signum}")

        signal.signal(signal.SIGINT, _handle_shutdown)
        signal.signal(signal.SIGTERM, _handle_shutdown)

    def seed(self) -> int:
        added = 0
        for item in seed_items(self.config.domains, self.config.categories):
            if self.queue.add(item):
                added += 1
        return added

    def run(self) -> RunSummary:
        """Seed the queue, run all workers to completion and return the summary."""
        started_at = utcnow()
        seeded = self.seed()
        LOGGER.info(
            "Starting crawl for %d domain(s), %d seed(s); target max_items=%d, workers=%d",
            len(self.config.domains),
            seeded,
            self.config.max_items,
            self.config.max_concurrency,
        )

        workers = [
            threading.Thread(target=self._worker_loop, args=(f"worker-{n}",), name=f"crawl-worker-{n}", daemon=True)
            for n in range(self.config.max_concurrency)
        ]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join()

        LOGGER.info("Crawl finished; queue stats: %s", self.queue.stats())
        return self.metrics.finalize(self.config.domains, self.config.categories, started_at)

    def _worker_loop(self, worker_id: str) -> None:
        try:
            session = self.engine.open_session(self.config.proxy)
        except Exception as exc:
            LOGGER.error("%s could not open a browser session: %s", worker_id, exc, exc_info=True)
            return

        processed = 0
        try:
            while not self._stop.is_set():
                try:
                    item = self.queue.take()
                except Exception as exc:
                    LOGGER.error("%s could not take work from the queue: %s", worker_id, exc, exc_info=True)
                    break
                if item is None:
                    break
                self.process_item(session, item)
                processed += 1
        finally:
            try:
                session.close()
            except Exception as exc:
                LOGGER.warning("%s failed to close its browser session: %s", worker_id, exc)
            LOGGER.info("%s shutting down: processed=%d", worker_id, processed)

    def process_item(self, session: BrowserSession, item: WorkItem) -> None:
        """Fetch, route and persist one item; never raises."""
        try:
            self._sleep(self._rng.uniform(self.config.min_delay, self.config.max_delay))
            page = session.fetch(item.url)
            if not page.wait_for_load(self.config.load_timeout, self.config.idle_timeout):
                LOGGER.debug("Page load did not settle for %s; continuing", item.url)
            self.metrics.incr("pages_fetched")

            result = self.router.route(item, page)
            for new_item in result.new_items:
                self.queue.add(new_item)
            if result.record is not None:
                self._persist(result.record)
        except Exception as exc:
            self._handle_failure(item, exc)
        else:
            self._acknowledge(item, self.queue.mark_done, item)

        listings = self.metrics.get("listings_processed")
        if listings >= self.config.max_items:
            self.request_stop(f"Reached max_items={self.config.max_items} ({listings} listings)")

    def _persist(self, bundle: RecordBundle) -> None:
        try:
            persist_bundle(self.store, bundle)
        except PersistenceError:
            if self.config.rollback_dedup_on_persist_failure:
                self.dedup.discard(bundle.listing.id)
            raise
        total = self.metrics.record_persisted()
        LOGGER.info("Persisted listing %s (%d/%d)", bundle.listing.id, total, self.config.max_items)

    def _handle_failure(self, item: WorkItem, exc: Exception) -> None:
        decision = classify(exc)
        if decision.error_class == ErrorClass.BLOCKED:
            self.metrics.incr("blocked_pages")
            LOGGER.warning("Blocked on [%s] %s: %s", item.label.value, item.url, exc)
        elif decision.error_class in (ErrorClass.PARSE, ErrorClass.PERSISTENCE):
            self.metrics.incr("parse_errors")
            LOGGER.warning("Parse failure on [%s] %s: %s", item.label.value, item.url, exc)
        else:
            LOGGER.warning(
                "Failed [%s] %s (%d retries): %s",
                item.label.value,
                item.url,
                item.retry_count,
                exc,
                exc_info=not isinstance(exc, CrawlError),
            )

        requeued = self._acknowledge(item, self.queue.mark_failed, item, exc)
        if not requeued and decision.error_class == ErrorClass.TRANSIENT:
            self.metrics.incr("requests_failed")

    def _acknowledge(self, item: WorkItem, report: Callable, *args):
        """Report an item outcome to the queue, retrying briefly.

        An item the queue never hears back about stays in flight and would keep
        every other worker waiting, so when all attempts fail the crawl is
        stopped instead. Returns None in that case.
        """
        try:
            for attempt in Retrying(
                stop=stop_after_attempt(QUEUE_ACK_ATTEMPTS),
                wait=wait_random(0.05, 0.25),
                reraise=True,
            ):
                with attempt:
                    return report(*args)
        except Exception as exc:
            LOGGER.error("Queue update failed for %s: %s", item.url, exc, exc_info=True)
            self.request_stop("Work queue unavailable")
        return None
