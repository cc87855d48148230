"""Thread-safe crawl counters and the end-of-run summary."""
from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Dict, Iterable, Optional

from ..models import RunSummary, utcnow

LOGGER = logging.getLogger(__name__)

COUNTERS = (
    "pages_fetched",
    "sellers_processed",
    "products_processed",
    "listings_processed",
    "blocked_pages",
    "parse_errors",
    "requests_failed",
)


class CrawlMetrics:
    """Shared counter set; every operation is atomic."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counts: Dict[str, int] = {name: 0 for name in COUNTERS}
        self._summary: Optional[RunSummary] = None

    def incr(self, name: str, n: int = 1) -> int:
        """Increment a counter and return its new value."""
        if name not in self._counts:
            raise KeyError(f"Unknown metric: {name}")
        with self._lock:
            self._counts[name] += n
            return self._counts[name]

    def record_persisted(self) -> int:
        """Count one persisted seller/product/listing bundle.

        Returns
        -------
        int
            Cumulative listings persisted, read under the same lock
        """
        with self._lock:
            self._counts["sellers_processed"] += 1
            self._counts["products_processed"] += 1
            self._counts["listings_processed"] += 1
            return self._counts["listings_processed"]

    def get(self, name: str) -> int:
        with self._lock:
            return self._counts[name]

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._counts)

    def success_rate(self) -> int:
        """Persisted listings per fetched page, as a rounded percentage."""
        with self._lock:
            listings = self._counts["listings_processed"]
            pages = self._counts["pages_fetched"]
        return round(100 * listings / max(1, pages))

    def finalize(
        self,
        domains: Iterable[str],
        categories: Iterable[str],
        started_at: datetime,
    ) -> RunSummary:
        """Freeze counters into the run summary; later calls return the same record."""
        with self._lock:
            if self._summary is not None:
                return self._summary
            counts = dict(self._counts)
            self._summary = RunSummary(
                run_started_at=started_at,
                run_completed_at=utcnow(),
                success_rate=round(100 * counts["listings_processed"] / max(1, counts["pages_fetched"])),
                domains_processed=list(domains),
                categories_processed=list(categories),
                **counts,
            )
        LOGGER.info("Final metrics: %s", self._summary.model_dump_json(by_alias=True))
        return self._summary
