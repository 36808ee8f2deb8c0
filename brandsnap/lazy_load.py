"""
Lazy content triggering before extraction.

Scrolls the page in a fixed number of steps proportional to its height,
pausing between steps so deferred images and sections render, then returns
to the top so screenshots and layout sampling start from the header.
"""

import asyncio
from typing import TYPE_CHECKING, Awaitable, Callable

if TYPE_CHECKING:
    from playwright.async_api import Page


SCROLL_STEP_JS = """
({ step, total }) => {
    const scrollHeight = document.body ? document.body.scrollHeight : 0;
    const stepHeight = scrollHeight / total;
    window.scrollTo(0, stepHeight * (step + 1));
    return scrollHeight;
}
"""


async def scroll_for_lazy_content(
    page: "Page",
    steps: int = 3,
    delay_ms: int = 500,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> int:
    """
    Scroll page in discrete steps to trigger lazy loading.

    Args:
        page: Playwright page object
        steps: Number of scroll positions between top and bottom
        delay_ms: Pause after each step (and after returning to top)
        sleep: Awaitable sleep (injected in tests)

    Returns:
        Number of scroll steps performed
    """
    if steps <= 0:
        return 0

    for i in range(steps):
        await page.evaluate(SCROLL_STEP_JS, {'step': i, 'total': steps})
        await sleep(delay_ms / 1000)

    # Scroll back to top
    await page.evaluate("() => window.scrollTo(0, 0)")
    await sleep(delay_ms / 1000)

    return steps
