"""Reusable browser actions: randomized pauses and lazy-load scrolling.

Design rules:
  - Scroll in viewport-sized steps, not one jump; bounded attempts.
  - Pauses randomized with a floor so lazy loaders get time to fire.
"""

import asyncio
import logging
import random
from typing import Any

logger = logging.getLogger(__name__)

MAX_SCROLL_ATTEMPTS = 5
SCROLL_DELAY_FLOOR = 0.5

_PAGE_HEIGHT_JS = "document.body ? document.body.scrollHeight : 0"
_SCROLL_STEP_JS = "window.scrollBy(0, window.innerHeight)"
_SCROLL_END_JS = "window.scrollTo(0, document.body.scrollHeight)"


async def random_sleep(min_s: float, max_s: float) -> float:
    """Sleep for a random duration in [min_s, max_s]; returns the duration slept."""
    floor = max(min_s, 0.0)
    ceiling = max(max_s, floor)
    duration = random.uniform(floor, ceiling)
    await asyncio.sleep(duration)
    return duration


async def count_cards(page: Any, selectors: tuple[str, ...]) -> int:
    """Count job cards using the first selector that matches anything."""
    for selector in selectors:
        cards = await page.query_selector_all(selector)
        if cards:
            return len(cards)
    return 0


async def scroll_to_load(
    page: Any,
    *,
    card_selectors: tuple[str, ...],
    max_attempts: int = MAX_SCROLL_ATTEMPTS,
    delay_min: float = 0.5,
    delay_max: float = 1.5,
) -> int:
    """Scroll until neither page height nor job-card count grows.

    Args:
        page: Browser page object (patchright Page or mock).
        card_selectors: CSS selectors to count cards with.
        max_attempts: Max scroll rounds before giving up.

    Returns:
        Final card count on the page.
    """
    delay_min = max(delay_min, SCROLL_DELAY_FLOOR)
    delay_max = max(delay_max, delay_min)

    previous: tuple[int, int] | None = None
    cards = 0
    for attempt in range(1, max_attempts + 1):
        height = await page.evaluate(_PAGE_HEIGHT_JS)
        cards = await count_cards(page, card_selectors)
        if previous == (height, cards):
            logger.debug("Page settled after %d scrolls (%d cards)", attempt - 1, cards)
            break
        previous = (height, cards)
        await page.evaluate(_SCROLL_STEP_JS)
        await page.evaluate(_SCROLL_END_JS)
        await random_sleep(delay_min, delay_max)
    return cards
