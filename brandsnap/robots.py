"""
Robots.txt policy gate.

Every crawl asks the gate first. A missing, unreachable or non-200
robots.txt counts as permission (fail-open); an explicit Disallow for the
configured user agent is fatal for the request.

Usage:
    from brandsnap.robots import PolicyGate

    gate = PolicyGate(user_agent="BrandSnapBot/1.0")
    if await gate.is_allowed("https://example.com/pricing"):
        # proceed with crawl
    await gate.ensure_allowed(url)  # raises PolicyError instead
"""

import asyncio
from dataclasses import dataclass, field
from urllib.parse import urlparse, urljoin
from urllib.robotparser import RobotFileParser

import requests
from loguru import logger

from .config import DEFAULT_USER_AGENT
from .errors import PolicyError


REQUEST_TIMEOUT = 5.0

# Statuses that mean "no robots.txt here", as opposed to a transient failure
DEFINITIVE_MISSING = (404, 410)


@dataclass
class RobotsVerdict:
    """Parsed robots.txt data for one origin."""
    robots_url: str
    found: bool = False
    crawl_delay: float | None = None
    sitemaps: list[str] = field(default_factory=list)
    disallowed_sample: list[str] = field(default_factory=list)
    error: str | None = None
    status: int | None = None
    parser: RobotFileParser | None = None

    @property
    def definitive(self) -> bool:
        """True when the server answered with robots.txt or said it has none."""
        return self.found or self.status in DEFINITIVE_MISSING

    def allows(self, url: str, user_agent: str) -> bool:
        # If no robots.txt found, everything is allowed
        if not self.found or self.parser is None:
            return True
        return self.parser.can_fetch(user_agent, url)


def parse_robots(robots_url: str, content: str, user_agent: str) -> RobotsVerdict:
    """
    Parse robots.txt content into a verdict.

    Rule matching goes through RobotFileParser; Crawl-delay and Sitemap
    lines are read separately for the section that applies to us.
    """
    verdict = RobotsVerdict(robots_url=robots_url, found=True)
    agent_name = user_agent.split('/')[0].lower()
    our_agent_section = False

    for line in content.splitlines():
        line = line.strip()

        # Skip comments and empty lines
        if not line or line.startswith('#') or ':' not in line:
            continue

        directive, _, value = line.partition(':')
        directive = directive.strip().lower()
        value = value.split('#')[0].strip()

        if directive == 'user-agent':
            current_agent = value.lower()
            our_agent_section = current_agent == '*' or (
                bool(current_agent) and current_agent in agent_name
            )

        elif directive == 'crawl-delay' and our_agent_section:
            try:
                verdict.crawl_delay = float(value)
            except ValueError:
                pass

        elif directive == 'sitemap':
            # Sitemaps are global, not per user-agent
            if value and value not in verdict.sitemaps:
                verdict.sitemaps.append(value)

        elif directive == 'disallow' and our_agent_section:
            if value and len(verdict.disallowed_sample) < 10:
                verdict.disallowed_sample.append(value)

    parser = RobotFileParser()
    parser.set_url(robots_url)
    parser.parse(content.splitlines())
    verdict.parser = parser
    return verdict


class PolicyGate:
    """
    Robots.txt compliance checker with a per-origin cache.

    The cache lives on the instance, so a fresh gate re-reads robots.txt.
    Only definitive answers are cached: a parsed robots.txt or a 404/410.
    """

    def __init__(self, user_agent: str = DEFAULT_USER_AGENT, timeout: float = REQUEST_TIMEOUT, use_cache: bool = True):
        self.user_agent = user_agent
        self.timeout = timeout
        self.use_cache = use_cache
        self._cache: dict[str, RobotsVerdict] = {}

    @staticmethod
    def robots_url_for(url: str) -> str:
        parsed = urlparse(url)
        return urljoin(f"{parsed.scheme}://{parsed.netloc}", '/robots.txt')

    def _fetch(self, robots_url: str) -> RobotsVerdict:
        try:
            resp = requests.get(
                robots_url,
                timeout=self.timeout,
                headers={'User-Agent': self.user_agent},
                allow_redirects=True,
            )
        except requests.RequestException as e:
            logger.debug(f"robots.txt fetch failed for {robots_url}, treating as allowed: {e}")
            return RobotsVerdict(robots_url=robots_url, error=str(e))

        if resp.status_code != 200:
            # No usable robots.txt = everything allowed
            return RobotsVerdict(robots_url=robots_url, error=f"status {resp.status_code}", status=resp.status_code)

        return parse_robots(robots_url, resp.text, self.user_agent)

    async def check(self, url: str) -> RobotsVerdict:
        """Fetch (or reuse) the robots.txt verdict for the URL's origin."""
        robots_url = self.robots_url_for(url)
        if self.use_cache and robots_url in self._cache:
            return self._cache[robots_url]

        verdict = await asyncio.to_thread(self._fetch, robots_url)

        # Errors and 5xx are re-fetched next time
        if self.use_cache and verdict.definitive:
            self._cache[robots_url] = verdict
        return verdict

    async def is_allowed(self, url: str) -> bool:
        """
        Check if a URL may be crawled.

        Args:
            url: Full URL to check

        Returns:
            False only when robots.txt was fetched and disallows the URL
        """
        verdict = await self.check(url)
        return verdict.allows(url, self.user_agent)

    async def ensure_allowed(self, url: str) -> RobotsVerdict:
        verdict = await self.check(url)
        if not verdict.allows(url, self.user_agent):
            raise PolicyError(url, verdict.robots_url)
        return verdict

    def clear_cache(self) -> None:
        self._cache.clear()
