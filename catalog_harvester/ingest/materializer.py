"""Forces lazily loaded storefront content into the DOM."""

import logging
import math
import time
from dataclasses import dataclass
from typing import List, Optional

from playwright.async_api import (
    Error as PlaywrightError,
    Locator,
    Page,
    TimeoutError as PlaywrightTimeoutError,
)

from catalog_harvester.config import settings as default_settings
from catalog_harvester.ingest.selectors import (
    COOKIE_BUTTON_SELECTORS,
    FALLBACK_ITEM_SELECTOR,
    PRIMARY_ITEM_SELECTOR,
    SEE_MORE_SELECTORS,
)

logger = logging.getLogger(__name__)

SCROLL_TO_BOTTOM_JS = "() => window.scrollBy(0, document.body.scrollHeight)"
SCROLL_BOUNCE_JS = "() => { window.scrollTo(0, document.body.scrollHeight); window.scrollTo(0, 0); }"

# Section-local scroll moves, tried in order before gentle centering
SECTION_SCROLL_JS = [
    "(el) => el.scrollIntoView({behavior: 'smooth', block: 'start'})",
    "(el) => el.scrollIntoView({behavior: 'smooth', block: 'center'})",
    "(el) => el.scrollIntoView({behavior: 'smooth', block: 'end'})",
]
SECTION_CENTER_JS = """(el) => {
    const rect = el.getBoundingClientRect();
    window.scrollBy(0, rect.top - window.innerHeight / 2);
}"""
SECTION_SWEEP_JS = """(el) => {
    const rect = el.getBoundingClientRect();
    const steps = Math.ceil(rect.height / 200);
    for (let i = 0; i < steps; i++) {
        window.scrollTo(0, rect.top + i * 200);
    }
}"""


@dataclass
class StabilizationResult:
    """Outcome of a scroll-until-stable run."""
    passes: int
    item_count: int
    stable: bool


async def count_items(scope: Page | Locator) -> int:
    """Item count using the primary selector with the fallback selector (max of the two)."""
    primary = await scope.locator(PRIMARY_ITEM_SELECTOR).count()
    fallback = await scope.locator(FALLBACK_ITEM_SELECTOR).count()
    return max(primary, fallback)


async def stabilize(
    page: Page,
    pause_ms: Optional[int] = None,
    max_passes: Optional[int] = None,
) -> StabilizationResult:
    """
    Scroll to the bottom until the item count stops growing.

    Stops after the first pass whose count does not exceed the previous
    pass, or after ``max_passes`` passes.
    """
    pause_ms = default_settings.scroll_pause_ms if pause_ms is None else pause_ms
    max_passes = default_settings.scroll_max_passes if max_passes is None else max_passes

    last_count = -1
    count = 0
    for i in range(max_passes):
        await page.evaluate(SCROLL_TO_BOTTOM_JS)
        await page.wait_for_timeout(pause_ms)

        count = await count_items(page)
        logger.debug(f"Autoscroll pass {i + 1}/{max_passes}: {count} items")
        if count <= last_count:
            logger.info(f"Content stable after {i + 1} passes ({count} items)")
            return StabilizationResult(passes=i + 1, item_count=count, stable=True)
        last_count = count

    logger.info(f"Autoscroll hit pass limit {max_passes} ({count} items)")
    return StabilizationResult(passes=max_passes, item_count=count, stable=False)


async def accept_cookies_if_present(page: Page) -> bool:
    """Click the first cookie-consent button found. Returns True if one was clicked."""
    for selector in COOKIE_BUTTON_SELECTORS:
        button = page.locator(selector).first
        if await button.count() == 0:
            continue
        try:
            await button.click(force=True)
            await page.wait_for_timeout(300)
            logger.debug(f"Dismissed cookie banner via {selector}")
            return True
        except PlaywrightError as e:
            logger.debug(f"Cookie button {selector} not clickable: {e}")
    return False


async def wait_for_any_selector(
    page: Page,
    selectors: List[str],
    timeout_ms: int,
    poll_ms: Optional[int] = None,
) -> Optional[str]:
    """
    Poll until any selector matches.

    Returns:
        The first matching selector, or None once ``timeout_ms`` elapsed
    """
    poll_ms = poll_ms or default_settings.content_probe_poll_ms
    deadline = time.monotonic() + timeout_ms / 1000
    max_polls = max(1, math.ceil(timeout_ms / poll_ms))

    for attempt in range(max_polls):
        for selector in selectors:
            locator = page.locator(selector)
            if await locator.count() > 0:
                try:
                    await locator.first.wait_for(state="visible", timeout=1000)
                except PlaywrightTimeoutError:
                    logger.debug(f"Selector {selector} present but not visible yet")
                return selector

        if time.monotonic() >= deadline:
            break
        await page.wait_for_timeout(poll_ms)

    logger.info(f"None of {len(selectors)} selectors appeared within {timeout_ms}ms")
    return None


async def expand_see_more(page: Page, max_clicks: Optional[int] = None) -> int:
    """Click "see more" style buttons until they stop disappearing. Returns clicks made."""
    max_clicks = max_clicks or default_settings.see_more_max_clicks
    clicks = 0

    for selector in SEE_MORE_SELECTORS:
        button_count = await page.locator(selector).count()
        attempts = 0
        while button_count > 0 and attempts < max_clicks:
            attempts += 1
            try:
                await page.locator(selector).first.click(force=True)
            except PlaywrightError as e:
                logger.debug(f"Expand button {selector} not clickable: {e}")
                break
            clicks += 1
            await page.wait_for_timeout(500)
            new_count = await page.locator(selector).count()
            if new_count >= button_count:
                break
            button_count = new_count

    return clicks


async def bounce_scroll(page: Page, settle_ms: int = 2000) -> None:
    """Jump to the bottom and back to the top to wake lazy loaders."""
    await page.evaluate(SCROLL_BOUNCE_JS)
    await page.wait_for_timeout(settle_ms)


async def materialize_section(
    page: Page,
    section: Locator,
    max_attempts: Optional[int] = None,
) -> int:
    """
    Scroll a section into view in several ways until it shows items.

    Returns:
        Number of primary item anchors in the section (0 if none appeared)
    """
    max_attempts = max_attempts or default_settings.section_wait_attempts

    try:
        await section.scroll_into_view_if_needed()
        await page.wait_for_timeout(500)
        handle = await section.element_handle()
    except PlaywrightError as e:
        logger.debug(f"Section not scrollable: {e}")
        return 0

    moves = [None] + SECTION_SCROLL_JS
    for attempt in range(max_attempts):
        try:
            if attempt < len(moves):
                if moves[attempt] is None:
                    await section.scroll_into_view_if_needed()
                else:
                    await page.evaluate(moves[attempt], handle)
                await page.wait_for_timeout(800)
            else:
                await page.evaluate(SECTION_CENTER_JS, handle)
                await page.wait_for_timeout(500)
        except PlaywrightError as e:
            logger.debug(f"Section scroll move {attempt} failed: {e}")

        item_count = await section.locator(PRIMARY_ITEM_SELECTOR).count()
        if item_count > 0:
            # Give the rest of the section a moment to fill in
            await page.wait_for_timeout(1000)
            return await section.locator(PRIMARY_ITEM_SELECTOR).count()

    return 0


async def sweep_section(page: Page, section: Locator, settle_ms: int = 1000) -> int:
    """Scroll through a section in 200px steps and re-count primary items."""
    try:
        handle = await section.element_handle()
        await page.evaluate(SECTION_SWEEP_JS, handle)
    except PlaywrightError as e:
        logger.debug(f"Section sweep failed: {e}")
    await page.wait_for_timeout(settle_ms)
    return await section.locator(PRIMARY_ITEM_SELECTOR).count()
