"""Queue-based crawl orchestration.

This package provides the crawl engine:
- Work queue with URL dedup and retry (memory or Postgres)
- Label-keyed router over the extraction adapters
- Run-scoped dedup guard and metrics
- Thread pool orchestrator with a global item target
"""

from .config import CrawlConfig
from .dedup import DedupGuard, listing_key
from .metrics import CrawlMetrics
from .orchestrator import CrawlOrchestrator, category_path, seed_items
from .queue import FailedItem, ItemStatus, MemoryWorkQueue, PostgresWorkQueue, WorkQueue
from .router import RouteResult, WorkItemRouter

__all__ = [
    "CrawlConfig",
    "DedupGuard",
    "listing_key",
    "CrawlMetrics",
    "CrawlOrchestrator",
    "category_path",
    "seed_items",
    "FailedItem",
    "ItemStatus",
    "MemoryWorkQueue",
    "PostgresWorkQueue",
    "WorkQueue",
    "RouteResult",
    "WorkItemRouter",
]
