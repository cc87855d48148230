"""Browser automation boundary: protocols plus the Playwright implementation.

The crawler only needs "open a session", "fetch this URL" and a handful of
read-only queries against the rendered page. Everything else (stealth
arguments, user agents, proxies) stays inside this module.
"""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Protocol, Sequence

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from .antibot import ProxyConfig, TransientFetchError, UserAgentPool

LOGGER = logging.getLogger(__name__)

LAUNCH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--disable-dev-shm-usage",
    "--no-sandbox",
]
VIEWPORT = {"width": 1280, "height": 800}


class PageHandle(Protocol):
    """Read-only view of a rendered page."""

    def url(self) -> str:
        ...

    def title(self) -> str:
        ...

    def content(self) -> str:
        ...

    def query_text(self, selectors: Sequence[str]) -> Optional[str]:
        """Trimmed text of the first selector that matches a non-empty element."""
        ...

    def links(self, selectors: Sequence[str]) -> List[str]:
        """Absolute hrefs of all anchors matched by the selectors, in order."""
        ...

    def wait_for_load(self, load_timeout: float, idle_timeout: float) -> bool:
        """Wait for the page to settle; return False on timeout."""
        ...


class BrowserSession(Protocol):
    """A browser identity able to fetch pages."""

    def fetch(self, url: str) -> PageHandle:
        """Navigate to url; raise TransientFetchError on network failure."""
        ...

    def close(self) -> None:
        ...


class BrowserEngine(Protocol):
    """Factory of browser sessions."""

    def open_session(self, proxy: Optional[ProxyConfig] = None) -> BrowserSession:
        ...


class PlaywrightPage:
    """PageHandle over a Playwright page."""

    def __init__(self, page: Page) -> None:
        self._page = page

    def url(self) -> str:
        return self._page.url

    def title(self) -> str:
        return self._page.title()

    def content(self) -> str:
        return self._page.content()

    def query_text(self, selectors: Sequence[str]) -> Optional[str]:
        for selector in selectors:
            element = self._page.query_selector(selector)
            if element is None:
                continue
            text = element.text_content()
            if text and text.strip():
                return text.strip()
        return None

    def links(self, selectors: Sequence[str]) -> List[str]:
        hrefs: List[str] = []
        for selector in selectors:
            # el.href is resolved against the document base URL
            hrefs.extend(
                self._page.eval_on_selector_all(selector, "els => els.map(a => a.href).filter(Boolean)")
            )
        return hrefs

    def wait_for_load(self, load_timeout: float, idle_timeout: float) -> bool:
        try:
            self._page.wait_for_selector("body", timeout=load_timeout * 1000)
            self._page.wait_for_load_state("networkidle", timeout=idle_timeout * 1000)
        except PlaywrightTimeoutError:
            LOGGER.debug("wait_for_load: timed out on %s; continuing", self._page.url)
            return False
        return True


class PlaywrightSession:
    """One Chromium browser + context, confined to the thread that opened it."""

    def __init__(
        self,
        *,
        proxy: Optional[ProxyConfig] = None,
        headless: bool = True,
        navigation_timeout: float = 60.0,
        user_agent_pool: Optional[UserAgentPool] = None,
    ) -> None:
        self.navigation_timeout = navigation_timeout
        user_agent = (user_agent_pool or UserAgentPool()).get_random()

        self._playwright = sync_playwright().start()
        try:
            launch_kwargs = {"headless": headless, "args": LAUNCH_ARGS}
            if proxy is not None:
                launch_kwargs["proxy"] = proxy.to_playwright_dict()
                LOGGER.info("Creating browser with proxy: %s", proxy.server)
            self._browser = self._playwright.chromium.launch(**launch_kwargs)
            self._context = self._browser.new_context(user_agent=user_agent, viewport=VIEWPORT)
            self._page = self._context.new_page()
        except PlaywrightError:
            self._playwright.stop()
            raise

    def fetch(self, url: str) -> PlaywrightPage:
        try:
            self._page.goto(url, wait_until="domcontentloaded", timeout=self.navigation_timeout * 1000)
        except PlaywrightError as exc:
            raise TransientFetchError(f"Navigation to {url} failed: {exc}") from exc
        return PlaywrightPage(self._page)

    def close(self) -> None:
        try:
            self._context.close()
            self._browser.close()
        finally:
            self._playwright.stop()

    def __enter__(self) -> PlaywrightSession:
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class PlaywrightEngine:
    """BrowserEngine backed by Playwright Chromium."""

    def __init__(
        self,
        *,
        headless: bool = True,
        navigation_timeout: float = 60.0,
        user_agents: Optional[Iterable[str]] = None,
    ) -> None:
        self.headless = headless
        self.navigation_timeout = navigation_timeout
        self.user_agents = list(user_agents) if user_agents else None

    def open_session(self, proxy: Optional[ProxyConfig] = None) -> PlaywrightSession:
        return PlaywrightSession(
            proxy=proxy,
            headless=self.headless,
            navigation_timeout=self.navigation_timeout,
            user_agent_pool=UserAgentPool(self.user_agents),
        )
