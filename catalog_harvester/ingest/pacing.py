"""Request and item pacing to stay under storefront rate limits."""

import asyncio
import logging
import random

from playwright.async_api import Error as PlaywrightError, Page, Route

logger = logging.getLogger(__name__)


def jittered_ms(min_ms: float, jitter_ms: float) -> float:
    """Delay of ``min_ms`` plus up to ``jitter_ms`` of random jitter."""
    return min_ms + random.uniform(0, jitter_ms)


def discovery_item_delay_ms(index: int) -> float:
    """Delay before reading the ``index``-th item card; grows up to +1s."""
    return 200 + min(index * 10, 1000) + random.uniform(0, 200)


def detail_item_delay_ms(index: int) -> float:
    """Delay before a worker fetches the ``index``-th item detail."""
    return 200 + (index % 10) * 50 + random.uniform(0, 100)


def click_delay_ms() -> float:
    return jittered_ms(300, 200)


async def install_request_pacing(page: Page, min_ms: float, jitter_ms: float) -> None:
    """Delay every request issued by ``page`` by a randomized amount."""

    async def _paced(route: Route) -> None:
        await asyncio.sleep(jittered_ms(min_ms, jitter_ms) / 1000)
        try:
            await route.continue_()
        except PlaywrightError as e:
            # Page closed while the request was held
            logger.debug(f"Paced request dropped: {e}")

    await page.route("**/*", _paced)
