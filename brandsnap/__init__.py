"""
Brand snapshot crawler.

Primary interface:
    from brandsnap import CrawlOrchestrator, BrandVoiceEnricher, SnapshotStore

    crawler = CrawlOrchestrator()
    store = SnapshotStore(crawler, BrandVoiceEnricher.from_config(LLMConfig()))
    snapshot = await store.capture_brand("https://example.com")

    # BrandSnapshot with:
    # - id, domain, version ("v1", "v2", ...)
    # - structure (contacts, social links, products, logos, meta)
    # - design_tokens (colors, fonts, spacing, CSS variables)
    # - brand_voice (tone, personality, guidelines, themes)
    # - screenshot (base64 PNG), created_at
"""

from .browser import BrowserSessionManager
from .config import CrawlerConfig, LLMConfig, Settings, StoreConfig, load_settings
from .crawler import CrawlOrchestrator
from .errors import (
    BrandSnapError,
    ConfigError,
    EnrichmentError,
    NavigationError,
    NavigationTimeout,
    PolicyError,
    SnapshotNotFound,
    StoreTransactionError,
)
from .llm import BrandVoiceEnricher
from .models import BrandSnapshot, CrawlOptions, CrawlResult
from .pipeline import DesignTokenPipeline
from .robots import PolicyGate
from .snapshots import SnapshotStore


__all__ = [
    'BrowserSessionManager',
    'PolicyGate',
    'CrawlOrchestrator',
    'BrandVoiceEnricher',
    'SnapshotStore',
    'DesignTokenPipeline',
    'CrawlerConfig',
    'LLMConfig',
    'StoreConfig',
    'Settings',
    'load_settings',
    'CrawlOptions',
    'CrawlResult',
    'BrandSnapshot',
    'BrandSnapError',
    'ConfigError',
    'PolicyError',
    'NavigationError',
    'NavigationTimeout',
    'EnrichmentError',
    'SnapshotNotFound',
    'StoreTransactionError',
]
