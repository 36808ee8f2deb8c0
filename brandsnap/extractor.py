"""
In-page extraction heuristics.

Extracts:
- CSS custom properties (stylesheet rules + computed :root)
- Computed-style samples: colors, fonts, sizes, spacing, radius, shadows
- Structured data: contacts, social links, products, meta, JSON-LD
- Logo candidates: favicon, og:image, logo-ish DOM images

Each heuristic degrades to an empty result on failure; one broken
stylesheet or script never aborts the rest of the extraction.

Usage:
    from brandsnap.extractor import extract_structured_data

    data = extract_structured_data(html, base_url="https://example.com")
    data.emails, data.social_links, data.meta['ogImage']
"""

import asyncio
import base64
import json
import re
from typing import TYPE_CHECKING, Any
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup
from loguru import logger
from playwright.async_api import Error as PlaywrightError

from .config import DEFAULT_HEADERS, DEFAULT_USER_AGENT
from .errors import ExtractionError
from .models import ExtractionSample, LogoCandidate, StructuredData

if TYPE_CHECKING:
    from playwright.async_api import Page


MAX_SAMPLE_SIZE = 200
MAX_DOM_LOGOS = 3
MAX_LOGOS = 5
MIN_LOGO_DIMENSION = 50
OG_IMAGE_SIZE = (1200, 630)  # nominal, the meta tag carries no dimensions
FAVICON_SIZE = (16, 16)

EMAIL_RE = re.compile(r'[a-zA-Z0-9._-]+@[a-zA-Z0-9._-]+\.[a-zA-Z0-9_-]+')
PHONE_RE = re.compile(r'(?:\+?\d{1,3}[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}')

SOCIAL_DOMAINS = [
    'facebook.com', 'twitter.com', 'linkedin.com', 'instagram.com',
    'youtube.com', 'github.com', 'tiktok.com', 'pinterest.com',
]

PRODUCT_SELECTOR = '.product, .item, [class*="product"]'
PRODUCT_NAME_SELECTOR = '.name, .title, h2, h3'
PRODUCT_PRICE_SELECTOR = '.price, [class*="price"]'

LOGO_SELECTORS = [
    'img[alt*="logo" i]',
    'img[src*="logo" i]',
    '.logo img',
    '.header-logo img',
    'header .logo img',
    'nav .logo img',
    '[class*="logo"] img',
]

LOGO_EXCLUDE = ('social', 'icon')


# =============================================================================
# In-page scripts
# =============================================================================

CSS_VARIABLES_JS = """
() => {
    const variables = {};
    for (const sheet of Array.from(document.styleSheets)) {
        let rules;
        try {
            rules = Array.from(sheet.cssRules || []);
        } catch (e) {
            continue;  // cross-origin sheet
        }
        for (const rule of rules) {
            if (!rule.style) continue;
            for (let i = 0; i < rule.style.length; i++) {
                const prop = rule.style[i];
                if (prop.startsWith('--')) {
                    variables[prop] = rule.style.getPropertyValue(prop).trim();
                }
            }
        }
    }
    const rootStyles = getComputedStyle(document.documentElement);
    for (let i = 0; i < rootStyles.length; i++) {
        const prop = rootStyles[i];
        if (prop.startsWith('--')) {
            variables[prop] = rootStyles.getPropertyValue(prop).trim();
        }
    }
    return variables;
}
"""

COMPUTED_STYLES_JS = """
(maxSample) => {
    const sets = {
        colors: new Set(), fonts: new Set(), fontSizes: new Set(),
        spacing: new Set(), borderRadius: new Set(), shadows: new Set()
    };
    const colorCounts = {};
    const fontCounts = {};
    const bump = (counts, key) => { counts[key] = (counts[key] || 0) + 1; };
    const TRANSPARENT = 'rgba(0, 0, 0, 0)';

    const elements = document.querySelectorAll('*');
    const sampleSize = Math.min(elements.length, maxSample);

    for (let i = 0; i < sampleSize; i++) {
        const el = elements[Math.floor(Math.random() * elements.length)];
        const computed = getComputedStyle(el);

        for (const c of [computed.color, computed.backgroundColor, computed.borderColor]) {
            if (c && c !== TRANSPARENT) { sets.colors.add(c); bump(colorCounts, c); }
        }
        if (computed.fontFamily) { sets.fonts.add(computed.fontFamily); bump(fontCounts, computed.fontFamily); }
        if (computed.fontSize) sets.fontSizes.add(computed.fontSize);
        if (computed.padding) sets.spacing.add(computed.padding);
        if (computed.margin) sets.spacing.add(computed.margin);
        if (computed.borderRadius && computed.borderRadius !== '0px') sets.borderRadius.add(computed.borderRadius);
        if (computed.boxShadow && computed.boxShadow !== 'none') sets.shadows.add(computed.boxShadow);
    }

    const out = { colorCounts, fontCounts, sampled: sampleSize };
    for (const [key, set] of Object.entries(sets)) out[key] = Array.from(set);
    return out;
}
"""

DOM_LOGOS_JS = """
(selectors) => {
    const candidates = [];
    for (const selector of selectors) {
        let nodes;
        try {
            nodes = document.querySelectorAll(selector);
        } catch (e) {
            continue;
        }
        nodes.forEach(img => {
            candidates.push({
                src: img.src || img.getAttribute('src') || '',
                alt: img.alt || '',
                width: img.naturalWidth || img.width || 0,
                height: img.naturalHeight || img.height || 0,
                selector
            });
        });
    }
    return candidates;
}
"""

TEXT_CONTENT_JS = "() => document.body ? document.body.innerText : ''"


# =============================================================================
# CSS variables and computed styles
# =============================================================================

async def run_page_script(page: "Page", script: str, *args, heuristic: str) -> Any:
    """Evaluate an extraction script; browser-side failures raise ExtractionError."""
    try:
        return await page.evaluate(script, *args)
    except PlaywrightError as e:
        raise ExtractionError(heuristic, str(e)) from e


async def extract_css_variables(page: "Page") -> dict[str, str]:
    """
    Collect custom properties from readable stylesheets and :root.

    Later declarations of the same name win. Cross-origin sheets are skipped
    inside the page script.
    """
    try:
        variables = await run_page_script(page, CSS_VARIABLES_JS, heuristic="CSS variable extraction")
    except ExtractionError as e:
        logger.warning(str(e))
        return {}
    return {k: v for k, v in (variables or {}).items() if k.startswith('--')}


async def sample_computed_styles(page: "Page", sample_size: int = MAX_SAMPLE_SIZE) -> ExtractionSample:
    """
    Sample computed styles from a random subset of DOM elements.

    Args:
        page: Playwright page object
        sample_size: Cap on sampled elements (never above 200)

    Returns:
        ExtractionSample (empty on failure)
    """
    size = max(0, min(sample_size, MAX_SAMPLE_SIZE))
    try:
        raw = await run_page_script(page, COMPUTED_STYLES_JS, size, heuristic="Computed style sampling")
    except ExtractionError as e:
        logger.warning(str(e))
        return ExtractionSample()
    return ExtractionSample.from_dict(raw or {})


async def extract_text_content(page: "Page") -> str:
    try:
        return await run_page_script(page, TEXT_CONTENT_JS, heuristic="Text content extraction") or ''
    except ExtractionError as e:
        logger.warning(str(e))
        return ''


# =============================================================================
# Structured data
# =============================================================================

def _unique(values) -> list[str]:
    return list(dict.fromkeys(v for v in values if v))


def _visible_text(soup: BeautifulSoup) -> str:
    body = soup.body or soup
    for tag in body.find_all(['script', 'style', 'noscript', 'template']):
        tag.decompose()
    return body.get_text(' ')


def _meta_content(soup: BeautifulSoup, **attrs) -> str:
    tag = soup.find('meta', attrs=attrs)
    if tag is None:
        return ''
    return (tag.get('content') or '').strip()


def extract_meta(soup: BeautifulSoup) -> dict:
    """Title, description, keywords and Open Graph fields."""
    title_tag = soup.find('title')
    return {
        'title': title_tag.get_text().strip() if title_tag else '',
        'description': _meta_content(soup, name='description'),
        'keywords': _meta_content(soup, name='keywords'),
        'ogTitle': _meta_content(soup, property='og:title'),
        'ogDescription': _meta_content(soup, property='og:description'),
        'ogImage': _meta_content(soup, property='og:image'),
    }


def extract_social_links(soup: BeautifulSoup) -> list[dict]:
    links = []
    seen = set()
    for a in soup.find_all('a', href=True):
        href = a['href']
        for domain in SOCIAL_DOMAINS:
            if domain in href and (domain, href) not in seen:
                seen.add((domain, href))
                links.append({'platform': domain.replace('.com', ''), 'url': href})
    return links


def extract_products(soup: BeautifulSoup) -> list[dict]:
    """Loose product-card heuristic: name, price and link per card."""
    products = []
    for el in soup.select(PRODUCT_SELECTOR):
        name_el = el.select_one(PRODUCT_NAME_SELECTOR)
        name = name_el.get_text().strip() if name_el else ''
        if not name:
            continue
        price_el = el.select_one(PRODUCT_PRICE_SELECTOR)
        price = price_el.get_text().strip() if price_el else ''
        link = el.find('a', href=True)
        products.append({
            'name': name,
            'price': price or None,
            'url': link['href'] if link else None,
        })
    return products


def _jsonld_type(item: dict) -> str:
    t = item.get('@type')
    if isinstance(t, list):
        t = t[0] if t else None
    return (t or '').lower() if isinstance(t, str) else ''


def _first_image(value: Any) -> str | None:
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        return value.get('url')
    if isinstance(value, list) and value:
        return _first_image(value[0])
    return None


def extract_jsonld(soup: BeautifulSoup) -> dict:
    """
    Schema.org Organization, WebSite and Product objects from JSON-LD.

    Malformed blocks are skipped.
    """
    result: dict = {'organization': None, 'website': None, 'products': []}

    for script in soup.find_all('script', type='application/ld+json'):
        content = (script.string or '').strip()
        if not content:
            continue
        try:
            data = json.loads(content)
        except json.JSONDecodeError:
            continue

        # Handle @graph wrapper
        if isinstance(data, dict) and '@graph' in data:
            items = data['@graph']
        elif isinstance(data, list):
            items = data
        else:
            items = [data]

        for item in items:
            if not isinstance(item, dict):
                continue
            item_type = _jsonld_type(item)

            if item_type in ('organization', 'corporation', 'localbusiness', 'store'):
                contact = item.get('contactPoint')
                if isinstance(contact, list):
                    contact = contact[0] if contact else None
                contact = contact if isinstance(contact, dict) else {}
                same_as = item.get('sameAs') or []
                result['organization'] = {
                    'name': item.get('name'),
                    'legalName': item.get('legalName'),
                    'url': item.get('url'),
                    'logo': _first_image(item.get('logo')),
                    'telephone': item.get('telephone') or contact.get('telephone'),
                    'email': item.get('email') or contact.get('email'),
                    'sameAs': same_as if isinstance(same_as, list) else [same_as],
                }
            elif item_type == 'website':
                result['website'] = {'name': item.get('name'), 'url': item.get('url')}
            elif item_type == 'product':
                offers = item.get('offers')
                if isinstance(offers, list):
                    offers = offers[0] if offers else None
                offers = offers if isinstance(offers, dict) else {}
                result['products'].append({
                    'name': item.get('name'),
                    'price': offers.get('price'),
                    'currency': offers.get('priceCurrency'),
                    'image': _first_image(item.get('image')),
                })

    return result


def extract_structured_data(html: str, base_url: str | None = None) -> StructuredData:
    """
    Scrape contacts, social links, products and meta from rendered HTML.

    Args:
        html: Rendered page HTML
        base_url: Page URL, used to resolve relative product links

    Returns:
        StructuredData (fields empty where nothing was found)
    """
    soup = BeautifulSoup(html or '', 'lxml')

    meta = extract_meta(soup)
    jsonld = extract_jsonld(soup)
    social_links = extract_social_links(soup)
    products = extract_products(soup)
    if base_url:
        for product in products:
            if product['url']:
                product['url'] = urljoin(base_url, product['url'])

    # Anchors before the text scan; _visible_text strips script nodes
    mailto = [
        a['href'][len('mailto:'):].split('?')[0]
        for a in soup.select('a[href^="mailto:"]')
    ]
    tel = [a['href'][len('tel:'):] for a in soup.select('a[href^="tel:"]')]

    text = _visible_text(soup)
    emails = _unique(EMAIL_RE.findall(text) + mailto)
    phones = _unique([m.group(0).strip() for m in PHONE_RE.finditer(text)] + tel)

    return StructuredData(
        emails=emails,
        phones=phones,
        social_links=social_links,
        products=products,
        addresses=[],
        meta=meta,
        jsonld=jsonld,
    )


# =============================================================================
# Logos
# =============================================================================

def _fetch_favicon(origin: str, timeout: float, user_agent: str) -> LogoCandidate | None:
    url = f"{origin}/favicon.ico"
    headers = {**DEFAULT_HEADERS, 'User-Agent': user_agent}
    try:
        resp = requests.get(url, timeout=timeout, headers=headers)
    except requests.RequestException as e:
        logger.debug(f"Favicon fetch failed for {origin}: {e}")
        return None

    if resp.status_code != 200 or not resp.content:
        return None

    encoded = base64.b64encode(resp.content).decode('ascii')
    width, height = FAVICON_SIZE
    return LogoCandidate(
        src=f"data:image/x-icon;base64,{encoded}",
        alt='Favicon',
        width=width,
        height=height,
        tier='favicon',
    )


async def fetch_favicon(origin: str, timeout: float = 5.0, user_agent: str = DEFAULT_USER_AGENT) -> LogoCandidate | None:
    """GET {origin}/favicon.ico and inline it as a data URI."""
    return await asyncio.to_thread(_fetch_favicon, origin, timeout, user_agent)


def og_image_logo(meta: dict, origin: str) -> LogoCandidate | None:
    og_image = (meta or {}).get('ogImage')
    if not og_image:
        return None
    src = og_image if og_image.startswith('http') else urljoin(origin + '/', og_image)
    width, height = OG_IMAGE_SIZE
    return LogoCandidate(src=src, alt='Open Graph Image', width=width, height=height, tier='og:image')


def _as_int(value: Any) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def rank_dom_logos(raw: list[dict], origin: str, limit: int = MAX_DOM_LOGOS) -> list[LogoCandidate]:
    """
    Filter, de-duplicate and rank raw DOM logo candidates.

    Keeps images larger than 50px in either dimension whose src mentions
    neither "social" nor "icon", resolves src against origin, and ranks by
    pixel area.
    """
    unique: dict[str, LogoCandidate] = {}
    for item in raw or []:
        src = item.get('src') or ''
        width = _as_int(item.get('width'))
        height = _as_int(item.get('height'))
        if not src or src.startswith('data:'):
            continue
        if not (width > MIN_LOGO_DIMENSION or height > MIN_LOGO_DIMENSION):
            continue
        if any(word in src for word in LOGO_EXCLUDE):
            continue
        resolved = src if src.startswith('http') else urljoin(origin + '/', src)
        unique[resolved] = LogoCandidate(
            src=resolved,
            alt=item.get('alt') or '',
            width=width,
            height=height,
            tier='site-logo',
            selector=item.get('selector'),
        )

    ranked = sorted(unique.values(), key=lambda c: c.area, reverse=True)
    return ranked[:limit]


def merge_logos(candidates: list[LogoCandidate], limit: int = MAX_LOGOS) -> list[LogoCandidate]:
    """De-duplicate by src (first position, last value wins) and cap."""
    merged: dict[str, LogoCandidate] = {}
    for candidate in candidates:
        merged[candidate.src] = candidate
    return list(merged.values())[:limit]


async def extract_logos(
    page: "Page",
    origin: str,
    meta: dict,
    favicon_timeout: float = 5.0,
    user_agent: str = DEFAULT_USER_AGENT,
) -> list[LogoCandidate]:
    """
    Detect logo candidates in three tiers and merge them.

    Args:
        page: Playwright page object
        origin: scheme://host of the crawled page
        meta: Meta dict from extract_structured_data
        favicon_timeout: Seconds for the favicon GET

    Returns:
        Up to 5 candidates with unique src values
    """
    candidates: list[LogoCandidate] = []

    favicon = await fetch_favicon(origin, favicon_timeout, user_agent)
    if favicon:
        candidates.append(favicon)

    og = og_image_logo(meta, origin)
    if og:
        candidates.append(og)

    try:
        raw = await run_page_script(page, DOM_LOGOS_JS, LOGO_SELECTORS, heuristic="DOM logo detection")
    except ExtractionError as e:
        logger.warning(str(e))
        raw = []
    candidates.extend(rank_dom_logos(raw, origin))

    return merge_logos(candidates)
