"""
Browser lifecycle: one cached Playwright browser per manager.

The engine is chosen when the browser is launched. A "random" engine or the
rotate_browsers flag draws from chromium/firefox/webkit, but only at launch;
a long-lived manager keeps its engine until release() is called.

Every crawl gets its own browser context so cookies and storage never leak
between sites:

    manager = BrowserSessionManager(config)
    async with manager.page_session() as page:
        await page.goto(url)
    await manager.release()
"""

import asyncio
import random
import threading
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncIterator, Callable

from loguru import logger
from playwright.async_api import async_playwright

from .config import BROWSER_ENGINES, CrawlerConfig

if TYPE_CHECKING:
    from playwright.async_api import Browser, Page, Playwright


class UserAgentRotator:
    """
    Round-robin user agent selection.

    The index advances on every call and wraps modulo the pool size.
    Increments are serialized so concurrent crawls never share an index.
    """

    def __init__(self, pool: list[str]):
        if not pool:
            raise ValueError("user agent pool must not be empty")
        self._pool = list(pool)
        self._index = 0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._pool)

    def next(self) -> str:
        with self._lock:
            agent = self._pool[self._index % len(self._pool)]
            self._index += 1
        return agent


class BrowserSessionManager:
    """Owns a lazily launched, reused browser handle."""

    def __init__(
        self,
        config: CrawlerConfig | None = None,
        playwright_factory: Callable = async_playwright,
        rng: random.Random | None = None,
    ):
        self.config = config or CrawlerConfig()
        self._playwright_factory = playwright_factory
        self._rng = rng or random.Random()
        self._rotator = UserAgentRotator(self.config.user_agents)
        self._launch_lock = asyncio.Lock()
        self._playwright: "Playwright | None" = None
        self._browser: "Browser | None" = None
        self.engine: str | None = None

    # ------------------------------------------------------------------
    # Selection policy
    # ------------------------------------------------------------------

    def select_engine(self) -> str:
        """Fixed engine, or a uniform draw when random/rotation is on."""
        if self.config.browser == 'random' or self.config.rotate_browsers:
            return self._rng.choice(BROWSER_ENGINES)
        return self.config.browser

    def next_user_agent(self) -> str:
        """Fixed user agent, or the next entry of the rotation pool."""
        if self.config.rotate_user_agents:
            return self._rotator.next()
        return self.config.user_agent

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_launched(self) -> bool:
        return self._browser is not None

    async def acquire(self) -> "Browser":
        """Launch the browser on first use; return the cached handle after."""
        if self._browser is not None:
            return self._browser

        async with self._launch_lock:
            if self._browser is None:
                engine = self.select_engine()
                self._playwright = await self._playwright_factory().start()
                browser_type = getattr(self._playwright, engine, None) or self._playwright.chromium

                launch_args = {'headless': self.config.headless}
                if engine == 'chromium':
                    launch_args['args'] = ['--no-sandbox', '--disable-setuid-sandbox']

                try:
                    self._browser = await browser_type.launch(**launch_args)
                except BaseException:
                    await self._playwright.stop()
                    self._playwright = None
                    raise
                self.engine = engine
                logger.info(f"Launched {engine} browser")

        return self._browser

    async def release(self) -> None:
        """Close the cached browser; the next acquire() launches a new one."""
        async with self._launch_lock:
            browser, self._browser = self._browser, None
            pw, self._playwright = self._playwright, None
            self.engine = None
            try:
                if browser is not None:
                    await browser.close()
            finally:
                if pw is not None:
                    await pw.stop()

    @asynccontextmanager
    async def page_session(self, user_agent: str | None = None) -> AsyncIterator["Page"]:
        """
        Open an isolated context and page; both are closed on every exit path.

        Args:
            user_agent: Override; defaults to next_user_agent()
        """
        browser = await self.acquire()
        width, height = self.config.viewport
        context = await browser.new_context(
            user_agent=user_agent or self.next_user_agent(),
            viewport={'width': width, 'height': height},
        )
        try:
            page = await context.new_page()
            try:
                if self.config.stealth:
                    from playwright_stealth import Stealth
                    await Stealth().apply_stealth_async(page)
                yield page
            finally:
                await page.close()
        finally:
            await context.close()

    async def __aenter__(self) -> "BrowserSessionManager":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.release()
