#!/usr/bin/env python3
"""
Capture, analyze and edit brand snapshots from the command line.

Snapshot history is kept in a JSON file (--store) mapping each domain to its
list of exported snapshots, so versions carry over between invocations.

Usage:
    python scripts/brandsnap.py capture https://example.com
    python scripts/brandsnap.py capture https://example.com --no-screenshot
    python scripts/brandsnap.py analyze https://example.com --skip-cache
    python scripts/brandsnap.py edit example.com "use a warmer primary color"
    python scripts/brandsnap.py --config brandsnap.yaml --json-out out.json capture https://example.com
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from loguru import logger

# Add parent dir to path for brandsnap package
sys.path.insert(0, str(Path(__file__).parent.parent))

from brandsnap.config import Settings, load_settings
from brandsnap.crawler import CrawlOrchestrator
from brandsnap.errors import BrandSnapError, ConfigError
from brandsnap.llm import BrandVoiceEnricher
from brandsnap.logging_conf import configure_logging
from brandsnap.models import CrawlOptions
from brandsnap.persistence import BrandRepository
from brandsnap.pipeline import DesignTokenPipeline
from brandsnap.snapshots import SnapshotStore, normalize_domain


DEFAULT_STORE = "snapshots.json"


def load_store_file(path: Path) -> dict:
    """Load {domain: [snapshot documents]}; a missing file is empty."""
    if not path.exists():
        return {}
    with open(path, 'r', encoding='utf-8') as f:
        content = f.read().strip()
    if not content:
        return {}
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Snapshot store {path} is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Snapshot store {path} must map domains to snapshot lists")
    return data


def save_store_file(path: Path, data: dict):
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2)


def build_store(settings: Settings, crawler: CrawlOrchestrator, documents: dict) -> SnapshotStore:
    store = SnapshotStore(crawler, BrandVoiceEnricher.from_config(settings.llm))
    for domain, history in documents.items():
        try:
            store.load_history(domain, history)
        except (ValueError, KeyError, TypeError) as e:
            raise ConfigError(f"Snapshot store has an invalid history for {domain}: {e}") from e
    return store


def write_output(result: dict, json_out: str | None):
    text = json.dumps(result, indent=2, default=str)
    if json_out:
        Path(json_out).write_text(text, encoding='utf-8')
        logger.info(f"Wrote {json_out}")
    else:
        print(text)


async def cmd_capture(args, settings: Settings) -> dict:
    store_path = Path(args.store)
    documents = load_store_file(store_path)
    crawler = CrawlOrchestrator(settings.crawler)
    try:
        store = build_store(settings, crawler, documents)
        snapshot = await store.capture_brand(args.url, CrawlOptions(take_screenshot=not args.no_screenshot))
    finally:
        await crawler.close()

    documents[snapshot.domain] = store.export_domain(snapshot.domain)
    save_store_file(store_path, documents)
    return snapshot.to_dict()


async def cmd_analyze(args, settings: Settings) -> dict:
    crawler = CrawlOrchestrator(settings.crawler)
    repository = BrandRepository(settings.store.database_url) if settings.store.database_url else None
    pipeline = DesignTokenPipeline(
        crawler,
        BrandVoiceEnricher.from_config(settings.llm),
        repository=repository,
        cache_ttl=settings.store.cache_ttl_seconds,
        max_tokens=settings.store.max_normalized_tokens,
    )
    try:
        return await pipeline.analyze(args.url, CrawlOptions(skip_cache=args.skip_cache))
    finally:
        await crawler.close()
        if repository is not None:
            repository.close()


async def cmd_edit(args, settings: Settings) -> dict:
    store_path = Path(args.store)
    documents = load_store_file(store_path)
    domain = normalize_domain(args.domain)
    crawler = CrawlOrchestrator(settings.crawler)
    store = build_store(settings, crawler, documents)

    snapshot = await store.edit_snapshot(domain, args.command)

    documents[domain] = store.export_domain(domain)
    save_store_file(store_path, documents)
    return snapshot.to_dict()


COMMANDS = {
    'capture': cmd_capture,
    'analyze': cmd_analyze,
    'edit': cmd_edit,
}


def main():
    parser = argparse.ArgumentParser(description="Brand snapshot crawler")
    parser.add_argument("--config", help="Path to YAML/JSON settings file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    parser.add_argument("--json-out", help="Write the result JSON to this path instead of stdout")
    parser.add_argument("--store", default=DEFAULT_STORE, help=f"Snapshot history file (default: {DEFAULT_STORE})")

    sub = parser.add_subparsers(dest="command_name", required=True)

    p_capture = sub.add_parser("capture", help="Crawl a site and append a new snapshot version")
    p_capture.add_argument("url", help="Absolute URL to capture")
    p_capture.add_argument("--no-screenshot", action="store_true", help="Skip the full-page screenshot")

    p_analyze = sub.add_parser("analyze", help="Run the design-token pipeline for a site")
    p_analyze.add_argument("url", help="Absolute URL to analyze")
    p_analyze.add_argument("--skip-cache", action="store_true", help="Ignore cached results")

    p_edit = sub.add_parser("edit", help="Apply a natural-language edit to the latest snapshot")
    p_edit.add_argument("domain", help="Domain (or URL) with existing history")
    p_edit.add_argument("command", help='Edit instruction, e.g. "make the tone more playful"')

    args = parser.parse_args()

    configure_logging("DEBUG" if args.verbose else "INFO")

    try:
        settings = load_settings(args.config)
        settings.validate()
        result = asyncio.run(COMMANDS[args.command_name](args, settings))
    except BrandSnapError as e:
        logger.error(str(e))
        sys.exit(1)

    write_output(result, args.json_out)


if __name__ == "__main__":
    main()
