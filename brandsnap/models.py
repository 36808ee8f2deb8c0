"""
Data model for crawl results and brand snapshots.

CrawlResult, ExtractionSample and LogoCandidate live for one crawl.
BrandSnapshot is the immutable, versioned record kept by SnapshotStore.
"""

import copy
import re
from dataclasses import dataclass, field
from typing import Any, Literal


LogoTier = Literal['favicon', 'og:image', 'site-logo']


@dataclass
class CrawlOptions:
    """Per-request crawl options."""
    take_screenshot: bool = True
    skip_cache: bool = False


@dataclass
class ExtractionSample:
    """
    Observations from a capped random sample of DOM elements.

    The per-category lists are de-duplicated in first-seen order.
    color_frequency and font_frequency count every sampled occurrence.
    """
    colors: list[str] = field(default_factory=list)
    fonts: list[str] = field(default_factory=list)
    font_sizes: list[str] = field(default_factory=list)
    spacing: list[str] = field(default_factory=list)
    border_radius: list[str] = field(default_factory=list)
    shadows: list[str] = field(default_factory=list)
    color_frequency: dict[str, int] = field(default_factory=dict)
    font_frequency: dict[str, int] = field(default_factory=dict)
    sampled_elements: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> "ExtractionSample":
        """Build from the object returned by the in-page sampling script."""
        return cls(
            colors=list(data.get('colors') or []),
            fonts=list(data.get('fonts') or []),
            font_sizes=list(data.get('fontSizes') or []),
            spacing=list(data.get('spacing') or []),
            border_radius=list(data.get('borderRadius') or []),
            shadows=list(data.get('shadows') or []),
            color_frequency=dict(data.get('colorCounts') or {}),
            font_frequency=dict(data.get('fontCounts') or {}),
            sampled_elements=int(data.get('sampled') or 0),
        )


@dataclass
class LogoCandidate:
    """Possible brand logo found on a page."""
    src: str
    alt: str
    width: int
    height: int
    tier: LogoTier
    selector: str | None = None

    @property
    def area(self) -> int:
        return self.width * self.height

    def to_dict(self) -> dict:
        data = {
            'type': self.tier,
            'src': self.src,
            'alt': self.alt,
            'width': self.width,
            'height': self.height,
        }
        if self.selector:
            data['selector'] = self.selector
        return data


@dataclass
class StructuredData:
    """Contacts, social links, products and meta scraped from a page."""
    emails: list[str] = field(default_factory=list)
    phones: list[str] = field(default_factory=list)
    social_links: list[dict] = field(default_factory=list)
    products: list[dict] = field(default_factory=list)
    addresses: list[str] = field(default_factory=list)
    meta: dict = field(default_factory=dict)
    jsonld: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            'emails': list(self.emails),
            'phones': list(self.phones),
            'socialLinks': [dict(s) for s in self.social_links],
            'products': [dict(p) for p in self.products],
            'addresses': list(self.addresses),
            'meta': dict(self.meta),
            'jsonld': copy.deepcopy(self.jsonld),
        }


@dataclass
class CrawlResult:
    """Everything observed during one crawl of one URL."""
    url: str
    domain: str
    html: str
    computed_styles: ExtractionSample
    css_variables: dict[str, str]
    structured_data: StructuredData
    text_content: str
    logos: list[LogoCandidate]
    engine_used: str
    captcha_detected: bool = False
    captcha_markers: list[str] = field(default_factory=list)
    screenshot: str | None = None  # base64 PNG
    final_url: str | None = None

    @property
    def meta(self) -> dict:
        return self.structured_data.meta


_VERSION_RE = re.compile(r'^v(\d+)$')


def version_label(number: int) -> str:
    return f"v{number}"


def parse_version(label: str) -> int | None:
    match = _VERSION_RE.match(label or '')
    return int(match.group(1)) if match else None


@dataclass(frozen=True)
class BrandSnapshot:
    """
    Immutable, versioned capture of a domain's brand.

    Edits never touch an existing snapshot; they produce a new one. The
    dict sections are deep-copied on construction so a snapshot never
    shares them with the caller.
    """
    id: str
    domain: str
    version: str
    structure: dict
    design_tokens: dict
    brand_voice: dict
    meta: dict
    screenshot: str | None
    created_at: str

    def __post_init__(self):
        for name in ('structure', 'design_tokens', 'brand_voice', 'meta'):
            object.__setattr__(self, name, copy.deepcopy(getattr(self, name)))

    @property
    def version_number(self) -> int | None:
        return parse_version(self.version)

    def to_dict(self) -> dict:
        """JSON document form with camelCase keys."""
        return {
            'id': self.id,
            'domain': self.domain,
            'version': self.version,
            'structure': copy.deepcopy(self.structure),
            'designTokens': copy.deepcopy(self.design_tokens),
            'brandVoice': copy.deepcopy(self.brand_voice),
            'meta': copy.deepcopy(self.meta),
            'screenshot': self.screenshot,
            'createdAt': self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BrandSnapshot":
        return cls(
            id=data['id'],
            domain=data['domain'],
            version=data['version'],
            structure=data.get('structure') or {},
            design_tokens=data.get('designTokens') or {},
            brand_voice=data.get('brandVoice') or {},
            meta=data.get('meta') or {},
            screenshot=data.get('screenshot'),
            created_at=data['createdAt'],
        )


def design_tokens_from_crawl(
    colors: list[str],
    fonts: list[str],
    spacing: list[str],
    crawl: CrawlResult,
) -> dict[str, Any]:
    """Assemble the designTokens section of a snapshot."""
    return {
        'colors': list(colors),
        'fonts': list(fonts),
        'spacing': list(spacing),
        'borderRadius': list(crawl.computed_styles.border_radius),
        'shadows': list(crawl.computed_styles.shadows),
        'cssVariables': dict(crawl.css_variables),
    }
