"""User agents rotated across browser sessions."""
from __future__ import annotations

import random
from typing import List, Optional, Sequence

_CHROME = "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/{version}.0.0.0 Safari/537.36"


class UserAgentPool:
    """Desktop Chromium user agents; one is drawn per session."""

    USER_AGENTS: List[str] = [
        f"Mozilla/5.0 (Windows NT 10.0; Win64; x64) {_CHROME.format(version=126)}",
        f"Mozilla/5.0 (Windows NT 10.0; Win64; x64) {_CHROME.format(version=125)}",
        f"Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) {_CHROME.format(version=126)}",
        f"Mozilla/5.0 (X11; Linux x86_64) {_CHROME.format(version=125)}",
        f"Mozilla/5.0 (Windows NT 10.0; Win64; x64) {_CHROME.format(version=126)} Edg/126.0.0.0",
    ]

    def __init__(self, agents: Optional[Sequence[str]] = None, *, rng: Optional[random.Random] = None) -> None:
        self.agents = list(agents) if agents is not None else list(self.USER_AGENTS)
        if not self.agents:
            raise ValueError("UserAgentPool requires at least one user agent")
        self._rng = rng or random.Random()

    def get_random(self) -> str:
        return self._rng.choice(self.agents)
