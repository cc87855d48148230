"""Run-scoped guard against persisting the same seller/product pair twice."""
from __future__ import annotations

import threading
from typing import Set


def listing_key(seller_id: str, asin: str) -> str:
    """Composite dedup key, identical to the listing id."""
    return f"{seller_id}-{asin}"


class DedupGuard:
    """Thread-safe in-memory set of listing keys."""

    def __init__(self) -> None:
        self._keys: Set[str] = set()
        self._lock = threading.Lock()

    def seen(self, key: str) -> bool:
        with self._lock:
            return key in self._keys

    def record(self, key: str) -> None:
        with self._lock:
            self._keys.add(key)

    def check_and_record(self, key: str) -> bool:
        """Record key atomically; True if it was not seen before."""
        with self._lock:
            if key in self._keys:
                return False
            self._keys.add(key)
            return True

    def discard(self, key: str) -> None:
        with self._lock:
            self._keys.discard(key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)
