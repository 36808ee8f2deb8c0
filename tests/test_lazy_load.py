"""
Tests for brandsnap/lazy_load.py.
"""

import asyncio

from brandsnap.lazy_load import SCROLL_STEP_JS, scroll_for_lazy_content


class ScrollPage:
    def __init__(self):
        self.calls = []

    async def evaluate(self, script, arg=None):
        self.calls.append((script, arg))


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def test_steps_then_back_to_top():
    page = ScrollPage()
    sleep = RecordingSleep()
    steps = asyncio.run(scroll_for_lazy_content(page, steps=3, delay_ms=500, sleep=sleep))

    assert steps == 3
    step_calls = [arg for script, arg in page.calls if script == SCROLL_STEP_JS]
    assert step_calls == [
        {'step': 0, 'total': 3},
        {'step': 1, 'total': 3},
        {'step': 2, 'total': 3},
    ]
    # Final call returns to the top
    assert 'scrollTo(0, 0)' in page.calls[-1][0]
    assert sleep.delays == [0.5, 0.5, 0.5, 0.5]


def test_zero_steps_does_nothing():
    page = ScrollPage()
    assert asyncio.run(scroll_for_lazy_content(page, steps=0, sleep=RecordingSleep())) == 0
    assert page.calls == []
