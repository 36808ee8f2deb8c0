"""
Crawl-and-persist flow for design-token analysis.

    crawl -> raw token rows -> LLM normalization -> brand voice -> embedding
          -> company metadata -> persist -> summary response

Responses are cached per URL for cache_ttl seconds. A cached response is
returned with fromCache set; skip_cache forces a fresh crawl.
"""

import asyncio
import json
import re
import time
from typing import Any, Callable

from loguru import logger

from .crawler import CrawlOrchestrator
from .llm import BrandVoiceEnricher
from .models import CrawlOptions, CrawlResult
from .persistence import BrandRepository
from .tokens import build_token_rows, major_colors, major_fonts, spacing_scale


RESPONSE_TOKEN_SAMPLE = 20


class ResultCache:
    """Per-key TTL cache; expired entries are dropped on read and swept on write."""

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: Any) -> None:
        if self.ttl <= 0:
            return
        now = self._clock()
        self.sweep(now)
        self._entries[key] = (now + self.ttl, value)

    def sweep(self, now: float | None = None) -> int:
        """Drop every expired entry; returns how many were removed."""
        if now is None:
            now = self._clock()
        expired = [k for k, (expires_at, _) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def _slugify(name: str) -> str:
    return re.sub(r'\s+', '-', name.strip().lower())


def voice_embedding_text(analysis: dict) -> str:
    """Text embedded for similarity search: tone, personality, themes."""
    personality = analysis.get('personality') or []
    if isinstance(personality, list):
        personality = ','.join(str(p) for p in personality)
    return f"{analysis.get('tone', '')} {personality} {json.dumps(analysis.get('themes') or [])}"


class DesignTokenPipeline:
    """
    Runs the full analysis for one URL.

    Persistence is optional: without a repository the response is built from
    the in-memory results and site ids are None.
    """

    def __init__(
        self,
        crawler: CrawlOrchestrator,
        enricher: BrandVoiceEnricher,
        repository: BrandRepository | None = None,
        cache_ttl: float = 3600,
        max_tokens: int = 50,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.crawler = crawler
        self.enricher = enricher
        self.repository = repository
        self.max_tokens = max_tokens
        self.cache = ResultCache(cache_ttl, clock)

    async def analyze(self, url: str, options: CrawlOptions | None = None) -> dict:
        """
        Crawl, normalize, enrich and store one site.

        Returns:
            {site, companyInfo, designTokens, brandVoice, stats}, plus
            fromCache=True when served from the cache
        """
        options = options or CrawlOptions()
        cache_key = f"crawl:{url}"

        if not options.skip_cache:
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.info(f"Cache hit for {url}")
                return {**cached, 'fromCache': True}

        logger.info(f"Crawling {url}...")
        crawl = await self.crawler.crawl(url, CrawlOptions(take_screenshot=True, skip_cache=options.skip_cache))

        rows = build_token_rows(
            crawl.css_variables,
            major_colors(crawl.computed_styles),
            major_fonts(crawl.computed_styles),
            spacing_scale(crawl.computed_styles),
        )

        logger.info("Normalizing design tokens...")
        normalized = await self.enricher.normalize_design_tokens(rows[:self.max_tokens])

        logger.info("Analyzing brand voice...")
        voice = await self.enricher.summarize_brand_voice(crawl.text_content)
        embedding = await self.enricher.generate_embedding(voice_embedding_text(voice))

        logger.info("Extracting company metadata...")
        company = await self.enricher.extract_company_metadata(crawl.html, crawl.structured_data.to_dict())

        if self.repository is not None:
            stored = await asyncio.to_thread(self._persist, crawl, normalized, voice, embedding, company)
        else:
            stored = self._unsaved(crawl, normalized, company)

        site, company_row, tokens = stored
        response = {
            'site': {
                'id': site['id'],
                'url': site['url'],
                'domain': site['domain'],
                'title': site['title'],
                'description': site['description'],
            },
            'companyInfo': {
                'name': company_row['company_name'],
                'emails': company_row['contact_emails'],
                'phones': company_row['contact_phones'],
                'socialLinks': company_row['structured_json'].get('socialLinks', []),
            },
            'designTokens': tokens[:RESPONSE_TOKEN_SAMPLE],
            'brandVoice': {
                'tone': voice.get('tone'),
                'personality': voice.get('personality'),
                'themes': voice.get('themes'),
            },
            'stats': {
                'totalTokens': len(tokens),
                'totalProducts': len(crawl.structured_data.products),
                'crawledAt': _iso(site.get('crawled_at')),
            },
        }

        self.cache.set(cache_key, response)
        return response

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    @staticmethod
    def _site_fields(crawl: CrawlResult, company: dict) -> dict:
        return {
            'title': crawl.meta.get('title') or None,
            'description': crawl.meta.get('description') or company.get('description'),
            'raw_html': crawl.html,
            'screenshot': crawl.screenshot,
        }

    @staticmethod
    def _company_fields(crawl: CrawlResult, company: dict) -> dict:
        return {
            'company_name': company.get('companyName'),
            'legal_name': company.get('legalName'),
            'contact_emails': list(crawl.structured_data.emails),
            'contact_phones': list(crawl.structured_data.phones),
            'addresses': list(crawl.structured_data.addresses),
            'structured_json': {
                'socialLinks': [dict(s) for s in crawl.structured_data.social_links],
                'industry': company.get('industry'),
                **(company.get('metadata') or {}),
            },
        }

    @staticmethod
    def _token_rows(site_id: int | None, normalized: list[dict]) -> list[dict]:
        return [
            {
                'site_id': site_id,
                'token_key': token.get('normalizedKey') or token.get('originalKey'),
                'token_type': token.get('category'),
                'token_value': token.get('value'),
                'source': 'normalized',
                'meta': {
                    'originalKey': token.get('originalKey'),
                    'description': token.get('description'),
                },
            }
            for token in normalized
        ]

    def _persist(self, crawl: CrawlResult, normalized: list[dict], voice: dict,
                 embedding: list[float], company: dict) -> tuple[dict, dict, list[dict]]:
        repo = self.repository
        fields = self._site_fields(crawl, company)

        site = repo.get_site_by_url(crawl.url)
        if site is None:
            site = repo.create_site(url=crawl.url, domain=crawl.domain, **fields)
        else:
            site = repo.update_site(site['id'], **fields)

        company_row = repo.create_company_info(site['id'], **self._company_fields(crawl, company))
        tokens = repo.create_design_tokens_bulk(self._token_rows(site['id'], normalized))

        products = crawl.structured_data.products
        if products:
            repo.create_products_bulk([
                {
                    'site_id': site['id'],
                    'name': p['name'],
                    'slug': _slugify(p['name']),
                    'price': p.get('price'),
                    'product_url': p.get('url'),
                }
                for p in products
            ])

        repo.create_brand_voice(
            site['id'],
            summary=json.dumps(voice),
            guidelines=voice.get('guidelines') or {},
            embedding=embedding,
        )
        logger.info(f"Stored site {site['id']} ({len(tokens)} tokens, {len(products)} products)")
        return site, company_row, tokens

    def _unsaved(self, crawl: CrawlResult, normalized: list[dict], company: dict) -> tuple[dict, dict, list[dict]]:
        site = {'id': None, 'url': crawl.url, 'domain': crawl.domain, 'crawled_at': None,
                **self._site_fields(crawl, company)}
        return site, self._company_fields(crawl, company), self._token_rows(None, normalized)


def _iso(value: Any) -> Any:
    return value.isoformat() if hasattr(value, 'isoformat') else value
