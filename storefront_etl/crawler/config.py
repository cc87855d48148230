"""Crawl run configuration and input validation."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..antibot import ProxyConfig

_HOSTNAME = re.compile(r"^(?=.{1,253}$)([A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?)(\.[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?)*$")


@dataclass
class CrawlConfig:
    """Crawl run configuration."""

    domains: List[str]
    categories: List[str] = field(default_factory=list)
    max_items: int = 1000  # Target persisted listings
    max_concurrency: int = 5
    max_retries: int = 3
    category_link_cap: int = 50  # Product links taken per category page
    min_delay: float = 0.8  # Politeness delay bounds (seconds)
    max_delay: float = 2.2
    navigation_timeout: float = 60.0
    load_timeout: float = 30.0
    idle_timeout: float = 10.0
    headless: bool = True
    proxy: Optional[ProxyConfig] = None
    rollback_dedup_on_persist_failure: bool = False
    default_currency: str = "EUR"

    def validate(self) -> None:
        """Raise ValueError on invalid settings."""
        if not self.domains:
            raise ValueError('Input must include a non-empty "domains" list (e.g. ["amazon.co.uk", "amazon.de"])')
        for domain in self.domains:
            if not isinstance(domain, str) or not _HOSTNAME.match(domain):
                raise ValueError(f"Invalid domain {domain!r}: expected a bare hostname")
        for category in self.categories:
            if not isinstance(category, str) or not category.strip():
                raise ValueError(f"Invalid category {category!r}")
        for name in ("max_items", "max_concurrency", "category_link_cap"):
            value = getattr(self, name)
            if not isinstance(value, int) or value < 1:
                raise ValueError(f"{name} must be a positive integer, got {value!r}")
        if not isinstance(self.max_retries, int) or self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries!r}")
        if not 0 <= self.min_delay <= self.max_delay:
            raise ValueError(f"Invalid politeness delay range {self.min_delay}..{self.max_delay}")
        if self.navigation_timeout <= 0 or self.load_timeout <= 0 or self.idle_timeout <= 0:
            raise ValueError("Timeouts must be positive")

    @classmethod
    def from_input(cls, data: Dict[str, Any]) -> CrawlConfig:
        """Build from a JSON input document.

        Keys: ``domains``, ``categories``, ``maxItems``, ``maxConcurrency``,
        ``maxRetries``, ``categoryLinkCap``, ``minDelay``, ``maxDelay``,
        ``headless``, ``proxy``.
        """
        if not isinstance(data, dict):
            raise ValueError("Crawl input must be a JSON object")
        domains = data.get("domains")
        if not isinstance(domains, list):
            raise ValueError('Input must include a non-empty "domains" array')
        config = cls(
            domains=list(domains),
            categories=list(data.get("categories") or []),
            max_items=data.get("maxItems", 1000),
            max_concurrency=data.get("maxConcurrency", 5),
            max_retries=data.get("maxRetries", 3),
            category_link_cap=data.get("categoryLinkCap", 50),
            min_delay=data.get("minDelay", 0.8),
            max_delay=data.get("maxDelay", 2.2),
            headless=data.get("headless", True),
            proxy=ProxyConfig.from_input(data.get("proxy")),
        )
        config.validate()
        return config
