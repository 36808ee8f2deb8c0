"""
Tests for brandsnap/crawler.py against an in-memory browser.
"""

import asyncio
import random

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from brandsnap.browser import BrowserSessionManager
from brandsnap.config import CrawlerConfig
from brandsnap.crawler import CrawlOrchestrator
from brandsnap.errors import NavigationError, NavigationTimeout, PolicyError
from brandsnap.models import CrawlOptions
from brandsnap.retry import RetryPolicy

from fakes import FakePlaywright, FakePolicy


@pytest.fixture(autouse=True)
def no_favicon(monkeypatch):
    monkeypatch.setattr('brandsnap.extractor._fetch_favicon', lambda *a: None)


def _orchestrator(allowed=True, configure=None, **config_kwargs):
    config_kwargs.setdefault('settle_ms', 0)
    config_kwargs.setdefault('scroll_delay_ms', 0)
    config = CrawlerConfig(**config_kwargs)
    playwright = FakePlaywright(configure=configure)
    browser = BrowserSessionManager(config, playwright_factory=playwright, rng=random.Random(1))
    policy = FakePolicy(allowed=allowed)
    crawler = CrawlOrchestrator(
        config=config,
        browser=browser,
        policy=policy,
        retry=RetryPolicy(attempts=3, base_delay=0),
    )
    return crawler, playwright, policy


class TestPolicy:
    """robots.txt denial ends the request before the browser starts."""

    def test_denied_never_launches(self):
        crawler, playwright, policy = _orchestrator(allowed=False)
        with pytest.raises(PolicyError):
            asyncio.run(crawler.crawl('https://blocked.test/page'))
        assert policy.checked == ['https://blocked.test/page']
        assert playwright.starts == 0
        assert playwright.launch_count == 0


class TestCrawl:
    """Happy path produces a full CrawlResult."""

    def test_result_fields(self):
        crawler, playwright, _ = _orchestrator()
        result = asyncio.run(crawler.crawl('https://acme.test/home'))

        assert result.url == 'https://acme.test/home'
        assert result.domain == 'acme.test'
        assert result.engine_used == 'chromium'
        assert result.css_variables == {'--brand-primary': '#ff0000'}
        assert result.computed_styles.fonts == ['Inter, sans-serif']
        assert result.structured_data.emails == ['hello@acme.test']
        assert result.structured_data.products[0]['url'] == 'https://acme.test/skates'
        assert result.text_content == 'We build widgets with care.'
        assert result.captcha_detected is False
        assert result.screenshot is not None
        assert [logo.tier for logo in result.logos] == ['og:image']
        assert result.logos[0].src == 'https://acme.test/og.png'

    def test_no_screenshot_option(self):
        crawler, _, _ = _orchestrator()
        result = asyncio.run(crawler.crawl('https://acme.test/', CrawlOptions(take_screenshot=False)))
        assert result.screenshot is None

    def test_captcha_is_advisory(self):
        def configure(browser):
            browser.html = '<html><body><iframe src="https://hcaptcha.com/x"></iframe></body></html>'

        crawler, _, _ = _orchestrator(configure=configure)
        result = asyncio.run(crawler.crawl('https://acme.test/'))
        assert result.captcha_detected is True
        assert 'iframe:hcaptcha' in result.captcha_markers

    def test_navigation_options(self):
        crawler, playwright, _ = _orchestrator(request_timeout_ms=1234, wait_until='load')
        asyncio.run(crawler.crawl('https://acme.test/'))
        call = playwright.browsers[0].goto_calls[0]
        assert call['timeout'] == 1234
        assert call['wait_until'] == 'load'

    def test_lazy_load_can_be_disabled(self):
        crawler, playwright, _ = _orchestrator(handle_lazy_load=False)
        asyncio.run(crawler.crawl('https://acme.test/'))
        page = playwright.browsers[0].pages[0]
        assert not any('scrollTo' in script for script, _ in page.evaluations)

    def test_browser_reused_across_crawls(self):
        crawler, playwright, _ = _orchestrator()

        async def run():
            await crawler.crawl('https://acme.test/a')
            await crawler.crawl('https://acme.test/b')

        asyncio.run(run())
        assert playwright.launch_count == 1
        assert len(playwright.browsers[0].contexts) == 2


class TestRetries:
    """Navigation failures are retried; pages never leak."""

    def test_flaky_navigation_recovers(self):
        def configure(browser):
            browser.goto_errors = [PlaywrightError('net::ERR_CONNECTION_RESET')]

        crawler, playwright, _ = _orchestrator(configure=configure)
        result = asyncio.run(crawler.crawl('https://acme.test/'))

        browser = playwright.browsers[0]
        assert result.domain == 'acme.test'
        assert len(browser.goto_calls) == 2
        assert all(p.closed for p in browser.pages)
        assert all(c.closed for c in browser.contexts)

    def test_exhausted_raises_last_error(self):
        def configure(browser):
            browser.goto_errors = [
                PlaywrightError('first'),
                PlaywrightError('second'),
                PlaywrightTimeoutError('Timeout 60000ms exceeded'),
            ]

        crawler, playwright, _ = _orchestrator(configure=configure)
        with pytest.raises(NavigationTimeout) as exc:
            asyncio.run(crawler.crawl('https://acme.test/'))

        assert isinstance(exc.value, NavigationError)
        assert exc.value.url == 'https://acme.test/'
        browser = playwright.browsers[0]
        assert len(browser.pages) == 3
        assert all(p.closed for p in browser.pages)
        assert all(c.closed for c in browser.contexts)

    def test_deadline_exceeded(self):
        crawler, _, _ = _orchestrator(settle_ms=0)

        async def slow_visit(page, url, options, expires_at):
            await asyncio.sleep(1)

        crawler._visit = slow_visit
        with pytest.raises(asyncio.TimeoutError):
            asyncio.run(crawler.crawl('https://acme.test/', deadline=0.05))


def test_close_releases_browser():
    crawler, playwright, _ = _orchestrator()

    async def run():
        await crawler.crawl('https://acme.test/')
        await crawler.close()

    asyncio.run(run())
    assert playwright.browsers[0].closed is True
    assert crawler.browser.is_launched is False
