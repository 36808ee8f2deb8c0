"""
Crawl orchestration: one URL in, one CrawlResult out.

Per request:
    check policy -> acquire browser -> open page -> navigate ->
    detect captcha -> lazy-load scroll -> extract -> close page

A robots.txt denial ends the request before the browser is touched.
Navigation plus extraction is retried with linear backoff; the page and its
context are closed on every attempt, successful or not.
"""

import asyncio
import base64
import time
from typing import TYPE_CHECKING
from urllib.parse import urlparse

from loguru import logger
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .browser import BrowserSessionManager
from .captcha import find_captcha_markers
from .config import CrawlerConfig
from .errors import NavigationError, NavigationTimeout
from .extractor import (
    extract_css_variables,
    extract_logos,
    extract_structured_data,
    extract_text_content,
    sample_computed_styles,
)
from .lazy_load import scroll_for_lazy_content
from .models import CrawlOptions, CrawlResult
from .retry import RetryPolicy, with_retry
from .robots import PolicyGate

if TYPE_CHECKING:
    from playwright.async_api import Page


class CrawlOrchestrator:
    """Drives a single-page brand crawl against a shared browser."""

    def __init__(
        self,
        config: CrawlerConfig | None = None,
        browser: BrowserSessionManager | None = None,
        policy: PolicyGate | None = None,
        retry: RetryPolicy | None = None,
    ):
        self.config = config or CrawlerConfig()
        self.browser = browser or BrowserSessionManager(self.config)
        self.policy = policy or PolicyGate(
            user_agent=self.config.user_agent,
            timeout=self.config.robots_timeout,
        )
        self.retry = retry or RetryPolicy.from_crawler_config(self.config)

    async def crawl(
        self,
        url: str,
        options: CrawlOptions | None = None,
        deadline: float | None = None,
    ) -> CrawlResult:
        """
        Crawl one URL and extract its brand signals.

        Args:
            url: Absolute http(s) URL
            options: Screenshot/cache options
            deadline: Overall budget in seconds; caps navigation timeouts
                and stops further retries once spent

        Returns:
            CrawlResult

        Raises:
            PolicyError: robots.txt disallows the URL (never retried)
            NavigationError: last attempt's failure after retries
            asyncio.TimeoutError: deadline exceeded
        """
        options = options or CrawlOptions()

        if deadline is None:
            return await self._crawl(url, options, None)

        expires_at = time.monotonic() + deadline
        return await asyncio.wait_for(self._crawl(url, options, expires_at), timeout=deadline)

    async def _crawl(self, url: str, options: CrawlOptions, expires_at: float | None) -> CrawlResult:
        await self.policy.ensure_allowed(url)

        await self.browser.acquire()

        async def attempt() -> CrawlResult:
            async with self.browser.page_session() as page:
                return await self._visit(page, url, options, expires_at)

        return await with_retry(
            attempt,
            attempts=self.retry.attempts,
            base_delay=self.retry.base_delay,
            deadline=expires_at,
        )

    def _navigation_timeout_ms(self, expires_at: float | None) -> int:
        timeout = self.config.request_timeout_ms
        if expires_at is not None:
            remaining_ms = int((expires_at - time.monotonic()) * 1000)
            timeout = max(1, min(timeout, remaining_ms))
        return timeout

    async def navigate(self, page: "Page", url: str, expires_at: float | None = None) -> None:
        try:
            await page.goto(
                url,
                wait_until=self.config.wait_until,
                timeout=self._navigation_timeout_ms(expires_at),
            )
        except PlaywrightTimeoutError as e:
            raise NavigationTimeout(url, str(e).splitlines()[0] if str(e) else 'timeout') from e
        except PlaywrightError as e:
            raise NavigationError(url, str(e).splitlines()[0] if str(e) else type(e).__name__) from e

    async def _visit(self, page: "Page", url: str, options: CrawlOptions, expires_at: float | None) -> CrawlResult:
        await self.navigate(page, url, expires_at)

        # Wait for page to be fully rendered
        if self.config.settle_ms:
            await page.wait_for_timeout(self.config.settle_ms)

        html = await page.content()
        markers = find_captcha_markers(html)
        if markers:
            logger.warning(f"CAPTCHA detected on {url}: {', '.join(markers)}")

        if self.config.handle_lazy_load:
            await scroll_for_lazy_content(page, self.config.scroll_steps, self.config.scroll_delay_ms)
            html = await page.content()

        css_variables = await extract_css_variables(page)
        computed = await sample_computed_styles(page, self.config.sample_size)

        screenshot = None
        if options.take_screenshot:
            screenshot = await self._screenshot(page)

        parsed = urlparse(url)
        origin = f"{parsed.scheme}://{parsed.netloc}"
        structured = extract_structured_data(html, base_url=page.url or url)
        logos = await extract_logos(
            page,
            origin,
            structured.meta,
            favicon_timeout=self.config.favicon_timeout,
            user_agent=self.config.user_agent,
        )
        text_content = await extract_text_content(page)

        return CrawlResult(
            url=url,
            domain=parsed.hostname or parsed.netloc,
            html=html,
            computed_styles=computed,
            css_variables=css_variables,
            structured_data=structured,
            text_content=text_content,
            logos=logos,
            engine_used=self.browser.engine or self.config.browser,
            captcha_detected=bool(markers),
            captcha_markers=markers,
            screenshot=screenshot,
            final_url=page.url or url,
        )

    async def _screenshot(self, page: "Page") -> str | None:
        try:
            data = await page.screenshot(full_page=True, type='png')
        except PlaywrightError as e:
            logger.warning(f"Screenshot failed: {e}")
            return None
        return base64.b64encode(data).decode('ascii') if data else None

    async def close(self) -> None:
        await self.browser.release()
