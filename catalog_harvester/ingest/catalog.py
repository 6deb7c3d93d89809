"""Catalog walk: page preparation and per-section item collection."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import List, Optional

from playwright.async_api import Error as PlaywrightError, Page, TimeoutError as PlaywrightTimeoutError

from catalog_harvester.config import Settings, settings as default_settings
from catalog_harvester.ingest.debug_trace import DebugTrace
from catalog_harvester.ingest.discovery import ResultSet, discover_section_items
from catalog_harvester.ingest.extraction import Category, RawItem, extract_category_name, extract_item
from catalog_harvester.ingest.materializer import (
    accept_cookies_if_present,
    bounce_scroll,
    count_items,
    expand_see_more,
    materialize_section,
    stabilize,
    wait_for_any_selector,
)
from catalog_harvester.ingest.pacing import discovery_item_delay_ms, jittered_ms
from catalog_harvester.ingest.selectors import (
    CONTENT_PROBE_SELECTORS,
    CONTENT_SELECTORS,
    SECTION_SELECTORS,
    STORE_NAME_SELECTORS,
)
from catalog_harvester.worker.cancellation import CancellationToken
from catalog_harvester.worker.job_store import JobStore

logger = logging.getLogger(__name__)

# Checked against the raw page HTML when the content probe fails
BLOCKING_INDICATORS = ["too many requests", "rate limit", "blocked"]


class ContentNotFoundError(Exception):
    """The page never reached a scrapeable state."""
    def __init__(self, url: Optional[str], reason: str):
        self.url = url
        self.reason = reason
        super().__init__(reason)


@dataclass
class PreparedPage:
    """What page preparation learned about the storefront."""

    store_name: Optional[str] = None
    content_selector: Optional[str] = None
    see_more_clicks: int = 0
    scroll_passes: int = 0


@dataclass
class CollectedCatalog:
    """Categories in discovery order plus the items that can be detail-fetched."""

    categories: List[Category] = field(default_factory=list)
    detail_items: List[RawItem] = field(default_factory=list)
    store_uuid: Optional[str] = None
    cancelled: bool = False

    @property
    def total_items(self) -> int:
        return sum(len(c.items) for c in self.categories)


def _diagnose_missing_content(html: str) -> str:
    if any(indicator in html for indicator in BLOCKING_INDICATORS):
        return "Website is rate limiting requests. Please try again later."
    if len(html) < 1000 and "<pre>" in html:
        return "Website returned an error page. The URL may be invalid or automated requests are blocked."
    return "Store content not found after waiting for multiple selectors"


async def read_store_name(page: Page) -> Optional[str]:
    for selector in STORE_NAME_SELECTORS:
        locator = page.locator(selector)
        if await locator.count() > 0:
            name = (await locator.first.inner_text()).strip()
            logger.debug(f"Store name '{name}' via {selector}")
            return name or None
    return None


async def prepare_page(
    page: Page,
    trace: DebugTrace,
    settings: Optional[Settings] = None,
) -> PreparedPage:
    """
    Bring a freshly navigated storefront page into a scrapeable state.

    Cookie consent is dismissed before the store name is read so the banner
    text never ends up as the name.

    Raises:
        ContentNotFoundError: If no content selector appears in time
    """
    settings = settings or default_settings
    prepared = PreparedPage()

    trace.step("page_title", title=await page.title())

    for selector in CONTENT_SELECTORS:
        count = await page.locator(selector).count()
        if count > 0:
            trace.step("content_found", selector=selector, count=count)
            break
    else:
        trace.step("no_content_selectors_found")

    await accept_cookies_if_present(page)
    trace.step("cookies_checked")

    prepared.store_name = await read_store_name(page)
    if prepared.store_name:
        trace.step("store_name_found", store_name=prepared.store_name)

    try:
        await page.wait_for_load_state("networkidle")
    except (PlaywrightTimeoutError, PlaywrightError) as e:
        logger.debug(f"networkidle not reached: {e}")

    found = await wait_for_any_selector(
        page, CONTENT_PROBE_SELECTORS, settings.content_probe_timeout_ms, settings.content_probe_poll_ms
    )
    trace.step("content_probe", found_selector=found)
    if found is None:
        html = await page.content()
        trace.step("content_missing", snippet=html[:5000])
        raise ContentNotFoundError(page.url, _diagnose_missing_content(html))
    prepared.content_selector = found

    await page.wait_for_timeout(3000)

    sections_count = await page.locator(SECTION_SELECTORS[0]).count()
    items_count = await count_items(page)
    trace.step("content_counts", sections=sections_count, items=items_count)
    if sections_count == 0 and items_count == 0:
        await bounce_scroll(page)

    prepared.see_more_clicks = await expand_see_more(page, settings.see_more_max_clicks)
    trace.step("expanded_all_see_more", clicks=prepared.see_more_clicks)

    result = await stabilize(page, settings.scroll_pause_ms, settings.scroll_max_passes)
    prepared.scroll_passes = result.passes
    trace.step("autoscrolled", passes=result.passes, items=result.item_count, stable=result.stable)

    return prepared


async def collect_categories(
    page: Page,
    sections: ResultSet,
    token: CancellationToken,
    store: Optional[JobStore] = None,
    job_id: Optional[str] = None,
    trace: Optional[DebugTrace] = None,
    settings: Optional[Settings] = None,
) -> CollectedCatalog:
    """
    Walk every section, discover its items and read each item card.

    A category whose name was already seen in this run is skipped entirely.
    Items without all three identifiers are kept for display but left out of
    ``detail_items``.
    """
    settings = settings or default_settings
    trace = trace or DebugTrace()
    catalog = CollectedCatalog()
    seen_names = set()
    sections_processed = 0
    items_discovered = 0
    n_sections = sections.count

    trace.step("collect_categories_start", sections=n_sections)

    for i, section in enumerate(sections.handles):
        if token.cancelled:
            trace.step("collect_categories_cancelled", index=i)
            catalog.cancelled = True
            break

        name = (await extract_category_name(section)).strip() or "Untitled"
        loaded = await materialize_section(page, section, settings.section_wait_attempts)
        if loaded == 0:
            trace.step("items_not_loaded_warning", index=i, category=name)

        if name in seen_names:
            trace.step("category_duplicate_skipped", index=i, category=name)
            continue
        seen_names.add(name)

        discovery = await discover_section_items(page, section)
        trace.step(
            "category_scan",
            index=i,
            category=name,
            items=discovery.count,
            tier=discovery.tier,
            attempts=[asdict(a) for a in discovery.attempts],
        )

        category = Category(name=name)
        for j, anchor in enumerate(discovery.items.handles):
            if token.cancelled:
                catalog.cancelled = True
                break
            if j > 0:
                await page.wait_for_timeout(discovery_item_delay_ms(j))

            item = await extract_item(page, anchor)
            if item.store_uuid and not catalog.store_uuid:
                catalog.store_uuid = item.store_uuid
            category.items.append(item)
            if item.is_resolvable:
                catalog.detail_items.append(item)

        catalog.categories.append(category)
        sections_processed += 1
        items_discovered += len(category.items)
        logger.info(f"Category '{name}': {len(category.items)} items")
        if store is not None and job_id:
            store.update(
                job_id,
                stage="scanning_items",
                sections_processed=sections_processed,
                items_discovered=items_discovered,
            )

        if catalog.cancelled:
            break
        if i < n_sections - 1:
            await page.wait_for_timeout(
                jittered_ms(settings.section_delay_min_ms, settings.section_delay_jitter_ms)
            )

    trace.step(
        "collect_categories_complete",
        categories=len(catalog.categories),
        detail_items=len(catalog.detail_items),
        items_discovered=items_discovered,
    )
    return catalog
