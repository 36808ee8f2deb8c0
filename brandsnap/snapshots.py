"""
Append-only, versioned brand snapshots per domain.

History for a domain only grows: captures and edits append a new snapshot
labeled v1, v2, ... and never modify an existing one. Appends for a domain
are serialized, so concurrent edits each see the previous edit's result.

Usage:
    store = SnapshotStore(crawler, enricher)
    v1 = await store.capture_brand("https://acme.test")
    v2 = await store.edit_snapshot("acme.test", "make it friendlier")
    store.get_snapshot("acme.test")        # v2
    store.get_snapshot("acme.test", "v1")  # v1
"""

import asyncio
import copy
import uuid
from collections import defaultdict
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable
from urllib.parse import urlparse

from loguru import logger

from .crawler import CrawlOrchestrator
from .errors import SnapshotNotFound
from .llm import BrandVoiceEnricher
from .models import BrandSnapshot, CrawlOptions, design_tokens_from_crawl, version_label
from .tokens import major_colors, major_fonts, spacing_scale


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_domain(domain_or_url: str) -> str:
    """Accept either a bare host or a URL."""
    if '://' in domain_or_url:
        parsed = urlparse(domain_or_url)
        return parsed.hostname or parsed.netloc
    return domain_or_url.strip().lower()


class SnapshotStore:
    """In-process snapshot history keyed by domain."""

    def __init__(
        self,
        crawler: CrawlOrchestrator,
        enricher: BrandVoiceEnricher,
        clock: Callable[[], str] = _utc_now,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ):
        self.crawler = crawler
        self.enricher = enricher
        self._clock = clock
        self._id_factory = id_factory
        self._snapshots: dict[str, list[BrandSnapshot]] = {}
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def domains(self) -> list[str]:
        return list(self._snapshots)

    def history(self, domain: str) -> tuple[BrandSnapshot, ...]:
        """Copies of every snapshot for the domain, oldest first."""
        return tuple(copy.deepcopy(s) for s in self._snapshots.get(normalize_domain(domain), ()))

    def get_snapshot(self, domain: str, version: str | None = None) -> BrandSnapshot | None:
        """
        Latest snapshot, or the first one labeled version; None if absent.

        Returns a copy, so mutating its dicts leaves the history intact.
        """
        stored = self._find(domain, version)
        return copy.deepcopy(stored) if stored is not None else None

    def _find(self, domain: str, version: str | None = None) -> BrandSnapshot | None:
        versions = self._snapshots.get(normalize_domain(domain))
        if not versions:
            return None
        if version is None:
            return versions[-1]
        return next((s for s in versions if s.version == version), None)

    def approve_snapshot(self, domain: str, version: str) -> BrandSnapshot | None:
        """
        Look up the version to activate.

        No active marker is stored here; callers persist activation.
        """
        return self.get_snapshot(domain, version)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _append(self, domain: str, build: Callable[[str], BrandSnapshot]) -> BrandSnapshot:
        # Caller holds the domain lock
        history = self._snapshots.setdefault(domain, [])
        snapshot = build(version_label(len(history) + 1))
        history.append(snapshot)
        logger.info(f"Stored {domain} {snapshot.version}")
        return copy.deepcopy(snapshot)

    async def capture_brand(self, url: str, options: CrawlOptions | None = None) -> BrandSnapshot:
        """
        Crawl, aggregate and enrich a site, then append a new snapshot.

        Raises whatever the crawl or enrichment step raised; nothing is
        appended in that case.
        """
        options = options or CrawlOptions(take_screenshot=True)
        crawl = await self.crawler.crawl(url, options)

        colors = major_colors(crawl.computed_styles)
        fonts = major_fonts(crawl.computed_styles)
        spacing = spacing_scale(crawl.computed_styles)
        brand_voice = await self.enricher.summarize_brand_voice(crawl.text_content)

        structure = crawl.structured_data.to_dict()
        structure['logos'] = [logo.to_dict() for logo in crawl.logos]
        meta = dict(crawl.meta)
        meta['captchaDetected'] = crawl.captcha_detected
        meta['engine'] = crawl.engine_used

        def build(version: str) -> BrandSnapshot:
            return BrandSnapshot(
                id=self._id_factory(),
                domain=crawl.domain,
                version=version,
                structure=structure,
                design_tokens=design_tokens_from_crawl(colors, fonts, spacing, crawl),
                brand_voice=brand_voice,
                meta=meta,
                screenshot=crawl.screenshot,
                created_at=self._clock(),
            )

        async with self._locks[crawl.domain]:
            return self._append(crawl.domain, build)

    async def edit_snapshot(self, domain: str, command: str) -> BrandSnapshot:
        """
        Apply a natural-language edit as a new version.

        The enricher returns a partial patch; its keys are shallow-merged
        over copies of the latest designTokens and brandVoice. All other
        fields carry over unchanged.

        Raises:
            SnapshotNotFound: no history for the domain
            EnrichmentError: the edit could not be interpreted
        """
        domain = normalize_domain(domain)
        async with self._locks[domain]:
            base = self._find(domain)
            if base is None:
                raise SnapshotNotFound(domain)

            patch = await self.enricher.interpret_edit(
                copy.deepcopy(base.design_tokens),
                copy.deepcopy(base.brand_voice),
                command,
            )

            design_tokens = {**copy.deepcopy(base.design_tokens), **copy.deepcopy(patch.design_tokens)}
            brand_voice = {**copy.deepcopy(base.brand_voice), **copy.deepcopy(patch.brand_voice)}

            def build(version: str) -> BrandSnapshot:
                return replace(
                    base,
                    id=self._id_factory(),
                    version=version,
                    structure=copy.deepcopy(base.structure),
                    meta=copy.deepcopy(base.meta),
                    design_tokens=design_tokens,
                    brand_voice=brand_voice,
                    created_at=self._clock(),
                )

            return self._append(domain, build)

    # ------------------------------------------------------------------
    # Export / import
    # ------------------------------------------------------------------

    def export_domain(self, domain: str) -> list[dict]:
        return [s.to_dict() for s in self.history(domain)]

    def load_history(self, domain: str, documents: list[dict]) -> int:
        """
        Seed an empty domain history from exported documents.

        Labels must run v1..vN in order. Existing history is never rewritten.
        """
        domain = normalize_domain(domain)
        if self._snapshots.get(domain):
            raise ValueError(f"History for {domain} already exists")

        snapshots = [BrandSnapshot.from_dict(doc) for doc in documents]
        for index, snapshot in enumerate(snapshots, start=1):
            if snapshot.version != version_label(index):
                raise ValueError(f"Expected {version_label(index)}, found {snapshot.version}")
            if snapshot.domain != domain:
                raise ValueError(f"Snapshot {snapshot.version} belongs to {snapshot.domain}")

        if snapshots:
            self._snapshots[domain] = snapshots
        return len(snapshots)
