"""
Reduce raw computed-style samples into design tokens.

    colors = major_colors(sample)     # top 10 by frequency
    fonts = major_fonts(sample)       # top 5 by frequency
    spacing = spacing_scale(sample)   # distinct non-zero lengths, sorted as strings
"""

import re
from collections import Counter
from typing import Iterable, Mapping

from .models import ExtractionSample


MAX_COLORS = 10
MAX_FONTS = 5

_OPAQUE_RGBA = re.compile(r'rgba\((\d+),\s*(\d+),\s*(\d+),\s*1\)')


def normalize_color(color: str) -> str:
    """Fold rgba(r, g, b, 1) to rgb(r, g, b)."""
    return _OPAQUE_RGBA.sub(r'rgb(\1, \2, \3)', color.strip())


def _rank(values: Iterable[str], weights: Mapping[str, int] | None, limit: int, normalize=None) -> list[str]:
    counts: Counter = Counter()
    for value in values:
        key = normalize(value) if normalize else value
        # A value missing from the frequency map still counts once
        counts[key] += (weights or {}).get(value, 0) or 1
    # Counter.most_common keeps first-seen order among ties
    return [value for value, _ in counts.most_common(limit)]


def major_colors(sample: ExtractionSample, limit: int = MAX_COLORS) -> list[str]:
    """
    Most frequent normalized colors.

    Counts come from color_frequency when the sampler recorded it;
    otherwise every distinct sampled color counts once.
    """
    return _rank(sample.colors, sample.color_frequency, limit, normalize_color)


def major_fonts(sample: ExtractionSample, limit: int = MAX_FONTS) -> list[str]:
    return _rank(sample.fonts, sample.font_frequency, limit)


def spacing_scale(sample: ExtractionSample) -> list[str]:
    """
    Distinct padding/margin components, "0px" dropped.

    Sorted lexicographically, so "16px" comes before "8px".
    """
    values = set()
    for shorthand in sample.spacing:
        for token in shorthand.split():
            if token and token != '0px':
                values.add(token)
    return sorted(values)


def build_token_rows(
    css_variables: Mapping[str, str],
    colors: list[str],
    fonts: list[str],
    spacing: list[str],
) -> list[dict]:
    """
    Flatten extracted values into raw design-token rows.

    Returns:
        Rows with tokenKey, tokenType, tokenValue and source
    """
    rows = [
        {'tokenKey': key, 'tokenType': 'css-variable', 'tokenValue': value, 'source': 'css'}
        for key, value in css_variables.items()
    ]
    for index, color in enumerate(colors, start=1):
        rows.append({'tokenKey': f'color-{index}', 'tokenType': 'color', 'tokenValue': color, 'source': 'computed'})
    for index, font in enumerate(fonts, start=1):
        rows.append({'tokenKey': f'font-family-{index}', 'tokenType': 'typography', 'tokenValue': font, 'source': 'computed'})
    for index, value in enumerate(spacing, start=1):
        rows.append({'tokenKey': f'spacing-{index}', 'tokenType': 'spacing', 'tokenValue': value, 'source': 'computed'})
    return rows
