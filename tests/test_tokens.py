"""
Tests for brandsnap/tokens.py.
"""

from brandsnap.models import ExtractionSample
from brandsnap.tokens import (
    build_token_rows,
    major_colors,
    major_fonts,
    normalize_color,
    spacing_scale,
)


class TestColors:
    """Top colors by frequency, normalized."""

    def test_normalize_opaque_rgba(self):
        assert normalize_color('rgba(10, 20, 30, 1)') == 'rgb(10, 20, 30)'
        assert normalize_color('rgba(10, 20, 30, 0.5)') == 'rgba(10, 20, 30, 0.5)'

    def test_ranked_by_frequency(self):
        sample = ExtractionSample(
            colors=['rgb(1, 1, 1)', 'rgb(2, 2, 2)', 'rgb(3, 3, 3)'],
            color_frequency={'rgb(1, 1, 1)': 1, 'rgb(2, 2, 2)': 9, 'rgb(3, 3, 3)': 4},
        )
        assert major_colors(sample) == ['rgb(2, 2, 2)', 'rgb(3, 3, 3)', 'rgb(1, 1, 1)']

    def test_rgba_and_rgb_merge(self):
        sample = ExtractionSample(
            colors=['rgb(0, 0, 0)', 'rgba(0, 0, 0, 1)', 'rgb(9, 9, 9)'],
            color_frequency={'rgb(0, 0, 0)': 2, 'rgba(0, 0, 0, 1)': 2, 'rgb(9, 9, 9)': 3},
        )
        assert major_colors(sample) == ['rgb(0, 0, 0)', 'rgb(9, 9, 9)']

    def test_capped_at_ten(self):
        colors = [f'rgb({i}, {i}, {i})' for i in range(25)]
        assert len(major_colors(ExtractionSample(colors=colors))) == 10

    def test_without_frequency_keeps_first_seen_order(self):
        sample = ExtractionSample(colors=['rgb(5, 5, 5)', 'rgb(6, 6, 6)'])
        assert major_colors(sample) == ['rgb(5, 5, 5)', 'rgb(6, 6, 6)']

    def test_empty(self):
        assert major_colors(ExtractionSample()) == []


class TestFonts:

    def test_capped_at_five(self):
        fonts = [f'Font{i}' for i in range(8)]
        assert len(major_fonts(ExtractionSample(fonts=fonts))) == 5

    def test_ranked_by_frequency(self):
        sample = ExtractionSample(
            fonts=['Arial', 'Inter'],
            font_frequency={'Arial': 2, 'Inter': 12},
        )
        assert major_fonts(sample) == ['Inter', 'Arial']


class TestSpacing:
    """Distinct non-zero components, sorted as strings."""

    def test_split_dedupe_sort(self):
        sample = ExtractionSample(spacing=['0px 16px', '8px 16px 8px 16px', '0px', '24px'])
        assert spacing_scale(sample) == ['16px', '24px', '8px']

    def test_no_zero(self):
        sample = ExtractionSample(spacing=['0px 0px 0px 0px'])
        assert spacing_scale(sample) == []


class TestTokenRows:

    def test_row_keys_and_order(self):
        rows = build_token_rows(
            {'--brand': '#f00'},
            ['rgb(0, 0, 0)', 'rgb(255, 255, 255)'],
            ['Inter'],
            ['8px'],
        )
        assert [r['tokenKey'] for r in rows] == ['--brand', 'color-1', 'color-2', 'font-family-1', 'spacing-1']
        assert rows[0] == {'tokenKey': '--brand', 'tokenType': 'css-variable', 'tokenValue': '#f00', 'source': 'css'}
        assert rows[3]['tokenType'] == 'typography'
        assert rows[4]['source'] == 'computed'
