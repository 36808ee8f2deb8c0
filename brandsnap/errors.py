"""
Exception taxonomy for brandsnap.

Policy and enrichment errors always reach the caller. Navigation errors are
retried by the orchestrator before surfacing. Extraction errors are caught at
the point of occurrence and degrade to empty results.
"""


class BrandSnapError(Exception):
    """Base class for all brandsnap errors."""


class ConfigError(BrandSnapError):
    """Invalid or unreadable configuration."""


class PolicyError(BrandSnapError):
    """Crawling the URL is disallowed by robots.txt."""

    def __init__(self, url: str, robots_url: str | None = None):
        self.url = url
        self.robots_url = robots_url
        super().__init__(f"Crawling not allowed by robots.txt: {url}")


class NavigationError(BrandSnapError):
    """Browser navigation failed."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Navigation to {url} failed: {reason}")


class NavigationTimeout(NavigationError):
    """Browser navigation did not finish within its timeout."""


class ExtractionError(BrandSnapError):
    """A single in-page heuristic failed."""

    def __init__(self, heuristic: str, reason: str):
        self.heuristic = heuristic
        self.reason = reason
        super().__init__(f"{heuristic} failed: {reason}")


class EnrichmentError(BrandSnapError):
    """LLM call failed, was misconfigured, or returned an unusable payload."""

    def __init__(self, provider: str, reason: str):
        self.provider = provider
        self.reason = reason
        super().__init__(f"{provider}: {reason}")


class SnapshotNotFound(BrandSnapError):
    """No snapshot history exists for the requested domain."""

    def __init__(self, domain: str):
        self.domain = domain
        super().__init__(f"Brand snapshot not found: {domain}")


class StoreTransactionError(BrandSnapError):
    """A bulk write failed and the whole batch was rolled back."""
