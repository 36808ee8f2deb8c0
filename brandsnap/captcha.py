"""
Anti-bot challenge detection.

Advisory only: the crawl continues and the result is recorded on the
CrawlResult so downstream consumers can judge the extracted data.
"""

from bs4 import BeautifulSoup


CONTENT_INDICATORS = [
    'recaptcha',
    'hcaptcha',
    'captcha',
    'cloudflare',
    'cf-browser-verification',
    'cf-challenge',
    'checking your browser',
]

IFRAME_INDICATORS = ['recaptcha', 'hcaptcha', 'challenges.cloudflare.com']


def find_captcha_markers(html: str) -> list[str]:
    """
    Scan rendered HTML for challenge markers.

    Args:
        html: Rendered page HTML

    Returns:
        Matched indicator names, each reported once (empty when nothing was found)
    """
    if not html:
        return []

    html_lower = html.lower()
    matched = [ind for ind in CONTENT_INDICATORS if ind in html_lower]
    # Generic indicators are dropped when a more specific one contains them
    markers = [ind for ind in matched if not any(ind != other and ind in other for other in matched)]

    soup = BeautifulSoup(html, 'lxml')
    for iframe in soup.find_all('iframe', src=True):
        src = iframe['src'].lower()
        for ind in IFRAME_INDICATORS:
            marker = f"iframe:{ind}"
            if ind in src and marker not in markers:
                markers.append(marker)

    if soup.select_one('[class*="captcha"]') is not None:
        markers.append('element:captcha-class')

    return markers


def has_captcha(html: str) -> bool:
    return bool(find_captcha_markers(html))
