"""Shared headless browser pool using patchright.

Rules:
  - One browser per process, launched lazily on first use
  - One fresh context + page per call, closed on release
  - Launch and page creation/teardown serialized; pages may run concurrently
  - patchright, not vanilla playwright (automation fingerprint patches)
"""

import asyncio
import logging
import random
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from types import TracebackType

from patchright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

from harvester.core.config import BrowserConfig
from harvester.core.http import USER_AGENTS

logger = logging.getLogger(__name__)

LAUNCH_ARGS: tuple[str, ...] = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
)

# Hides the most common automation tell that survives patchright's own patches.
_STEALTH_INIT_SCRIPT = "Object.defineProperty(navigator, 'webdriver', {get: () => undefined});"


class BrowserPool:
    """Explicitly owned, lazily-launched browser with acquire/release/shutdown.

    Usage::

        pool = BrowserPool(config)
        async with pool.page() as page:
            await page.goto("https://...")
        await pool.shutdown()
    """

    def __init__(self, config: BrowserConfig, *, rng: random.Random | None = None) -> None:
        self._config = config
        self._rng = rng or random.Random()
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._contexts: dict[int, BrowserContext] = {}
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._browser is not None

    @property
    def open_pages(self) -> int:
        return len(self._contexts)

    async def _ensure_browser(self) -> Browser:
        if self._browser is None:
            logger.info("Launching shared browser (headless=%s)", self._config.headless)
            playwright = await async_playwright().start()
            try:
                self._browser = await playwright.chromium.launch(
                    headless=self._config.headless,
                    args=list(LAUNCH_ARGS),
                )
            except Exception:
                await playwright.stop()
                raise
            self._playwright = playwright
        return self._browser

    async def acquire(self) -> Page:
        """Open a fresh context + page with fingerprint mitigations applied."""
        async with self._lock:
            browser = await self._ensure_browser()
            context = await browser.new_context(
                user_agent=self._rng.choice(USER_AGENTS),
                viewport={
                    "width": self._config.viewport_width,
                    "height": self._config.viewport_height,
                },
                locale="en-US",
            )
            try:
                await context.add_init_script(_STEALTH_INIT_SCRIPT)
                context.set_default_timeout(self._config.timeout_ms)
                page = await context.new_page()
            except Exception:
                await context.close()
                raise
            self._contexts[id(page)] = context
            return page

    async def release(self, page: Page) -> None:
        async with self._lock:
            context = self._contexts.pop(id(page), None)
            if context is not None:
                await context.close()
            else:
                await page.close()

    @asynccontextmanager
    async def page(self) -> AsyncIterator[Page]:
        page = await self.acquire()
        try:
            yield page
        finally:
            await self.release(page)

    async def shutdown(self) -> None:
        """Close every open context and the browser. Safe to call more than once."""
        async with self._lock:
            for context in list(self._contexts.values()):
                await context.close()
            self._contexts.clear()
            if self._browser is not None:
                await self._browser.close()
                self._browser = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None
            logger.debug("Browser pool shut down")

    async def __aenter__(self) -> "BrowserPool":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.shutdown()
