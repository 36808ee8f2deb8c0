"""
Configuration for crawl, enrichment and storage.

Settings are plain dataclasses with defaults. They can be layered from the
environment (same variable names the dashboard deployment uses) and from a
YAML or JSON file:

    from brandsnap.config import load_settings

    settings = load_settings("brandsnap.yaml")
    settings.crawler.retry_attempts  # 3
"""

import json
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Mapping

import yaml

from .errors import ConfigError


# User agents for rotation
USER_AGENTS = [
    # Chrome on Windows
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    # Chrome on macOS
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    # Firefox on Windows
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
    # Firefox on macOS
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:121.0) Gecko/20100101 Firefox/121.0",
    # Safari on macOS
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.1 Safari/605.1.15",
    # Edge on Windows
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 Edg/120.0.0.0",
    # Chrome on Android
    "Mozilla/5.0 (Linux; Android 10; SM-G973F) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Mobile Safari/537.36",
    # Safari on iOS
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_1 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.1 Mobile/15E148 Safari/604.1",
]

BROWSER_ENGINES = ("chromium", "firefox", "webkit")

DEFAULT_USER_AGENT = "BrandSnapBot/1.0"

# Default request headers for plain HTTP fetches (robots.txt, favicon)
DEFAULT_HEADERS = {
    'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
    'Accept-Language': 'en-US,en;q=0.9',
    'DNT': '1',
}

LLM_PROVIDERS = ("openai", "anthropic", "ollama")


@dataclass
class CrawlerConfig:
    """Browser, navigation and extraction settings."""

    # Identity
    user_agent: str = DEFAULT_USER_AGENT  # also the robots.txt agent name
    rotate_user_agents: bool = False
    user_agents: list[str] = field(default_factory=lambda: list(USER_AGENTS))

    # Browser
    browser: str = "chromium"  # chromium, firefox, webkit or random
    rotate_browsers: bool = False
    headless: bool = True
    stealth: bool = False  # apply playwright-stealth to every page
    viewport: tuple[int, int] = (1440, 900)

    # Navigation
    request_timeout_ms: int = 60000
    wait_until: str = "networkidle"
    settle_ms: int = 2000  # pause after navigation for late rendering

    # Retry
    retry_attempts: int = 3
    retry_delay_ms: int = 1000  # linear: delay before retry i is i * base

    # Lazy loading
    handle_lazy_load: bool = True
    scroll_steps: int = 3
    scroll_delay_ms: int = 500

    # Side fetches
    robots_timeout: float = 5.0
    favicon_timeout: float = 5.0

    # Computed-style sampling
    sample_size: int = 200


@dataclass
class LLMConfig:
    """Enrichment provider settings."""

    provider: str = "openai"  # openai, anthropic or ollama
    openai_api_key: str | None = None
    openai_model: str = "gpt-4-turbo-preview"
    embedding_model: str = "text-embedding-ada-002"
    anthropic_api_key: str | None = None
    anthropic_model: str = "claude-sonnet-4-20250514"
    ollama_url: str = "http://localhost:11434"
    ollama_model: str = "llama2"
    temperature: float = 0.3
    max_tokens: int = 1024
    timeout: float = 120.0


@dataclass
class StoreConfig:
    """Persistence and result cache settings."""

    database_url: str | None = None  # None disables the relational store
    cache_ttl_seconds: int = 3600
    max_normalized_tokens: int = 50


@dataclass
class Settings:
    crawler: CrawlerConfig = field(default_factory=CrawlerConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    store: StoreConfig = field(default_factory=StoreConfig)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """Build settings from environment variables, defaults elsewhere."""
        env = os.environ if environ is None else environ
        crawler = CrawlerConfig()
        llm = LLMConfig()
        store = StoreConfig()

        crawler = replace(
            crawler,
            rotate_user_agents=_env_bool(env, "ROTATE_USER_AGENTS", crawler.rotate_user_agents),
            browser=env.get("BROWSER_TYPE", crawler.browser),
            rotate_browsers=_env_bool(env, "ROTATE_BROWSERS", crawler.rotate_browsers),
            request_timeout_ms=_env_int(env, "REQUEST_TIMEOUT_MS", crawler.request_timeout_ms),
            retry_attempts=_env_int(env, "RETRY_ATTEMPTS", crawler.retry_attempts),
            retry_delay_ms=_env_int(env, "RETRY_DELAY_MS", crawler.retry_delay_ms),
            # Lazy loading is on unless explicitly disabled
            handle_lazy_load=env.get("HANDLE_LAZY_LOAD", "true").lower() != "false",
            scroll_steps=_env_int(env, "SCROLL_STEPS", crawler.scroll_steps),
            scroll_delay_ms=_env_int(env, "SCROLL_DELAY_MS", crawler.scroll_delay_ms),
        )
        llm = replace(
            llm,
            provider=env.get("LLM_PROVIDER", llm.provider),
            openai_api_key=env.get("OPENAI_API_KEY") or None,
            anthropic_api_key=env.get("ANTHROPIC_API_KEY") or None,
            ollama_url=env.get("OLLAMA_URL", llm.ollama_url),
            ollama_model=env.get("OLLAMA_MODEL", llm.ollama_model),
        )
        store = replace(
            store,
            database_url=env.get("DATABASE_URL") or None,
            cache_ttl_seconds=_env_int(env, "CACHE_TTL_SECONDS", store.cache_ttl_seconds),
        )

        settings = cls(crawler=crawler, llm=llm, store=store)
        settings.validate()
        return settings

    def validate(self) -> None:
        if self.crawler.browser not in BROWSER_ENGINES + ("random",):
            raise ConfigError(f"Unknown browser type: {self.crawler.browser}")
        if self.llm.provider not in LLM_PROVIDERS:
            raise ConfigError(f"Unknown LLM provider: {self.llm.provider}")
        if self.crawler.retry_attempts < 1:
            raise ConfigError("retry_attempts must be at least 1")
        if not self.crawler.user_agents:
            raise ConfigError("user_agents pool must not be empty")


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None:
        return default
    return raw.strip().lower() == "true"


def _apply_section(section, values: dict, name: str):
    known = {f.name for f in fields(section)}
    unknown = set(values) - known
    if unknown:
        raise ConfigError(f"Unknown {name} settings: {', '.join(sorted(unknown))}")
    if "viewport" in values and values["viewport"] is not None:
        values = {**values, "viewport": tuple(values["viewport"])}
    return replace(section, **values)


def load_settings(path: str | Path | None = None, environ: Mapping[str, str] | None = None) -> Settings:
    """
    Load settings from a YAML or JSON file layered over the environment.

    Args:
        path: Config file with optional crawler/llm/store sections
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Validated Settings
    """
    settings = Settings.from_env(environ)
    if path is None:
        return settings

    p = Path(path)
    if not p.exists():
        raise ConfigError(f"Config file not found: {path}")

    # Handle empty files (e.g., /dev/null) gracefully
    content = p.read_text(encoding="utf-8").strip()
    if not content:
        return settings

    try:
        if p.suffix.lower() in (".yaml", ".yml"):
            data = yaml.safe_load(content)
        else:
            data = json.loads(content)
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Could not parse config file {path}: {exc}") from exc

    data = data or {}
    if not isinstance(data, dict):
        raise ConfigError("Config file must contain a mapping")

    unknown = set(data) - {"crawler", "llm", "store"}
    if unknown:
        raise ConfigError(f"Unknown config sections: {', '.join(sorted(unknown))}")

    settings = Settings(
        crawler=_apply_section(settings.crawler, data.get("crawler") or {}, "crawler"),
        llm=_apply_section(settings.llm, data.get("llm") or {}, "llm"),
        store=_apply_section(settings.store, data.get("store") or {}, "store"),
    )
    settings.validate()
    return settings
