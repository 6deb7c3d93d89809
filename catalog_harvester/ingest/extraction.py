"""Reads catalog items and category names out of discovered elements."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from playwright.async_api import (
    Error as PlaywrightError,
    Locator,
    Page,
    TimeoutError as PlaywrightTimeoutError,
)

from catalog_harvester.config import settings as default_settings
from catalog_harvester.ingest.pacing import click_delay_ms
from catalog_harvester.ingest.parsing import ItemIdentifiers, extract_ids_from_href, find_uuids
from catalog_harvester.ingest.selectors import (
    CATEGORY_CONTEXT_XPATH,
    CATEGORY_HEADER_SELECTORS,
    DETAIL_ENDPOINT,
    ITEM_NAME_SELECTOR,
    ITEM_PLAIN_SPAN_SELECTOR,
    ITEM_PRICE_SELECTOR,
    ITEM_TEXT_COLUMN_SELECTOR,
    MODAL_CLOSE_SELECTOR,
)

logger = logging.getLogger(__name__)

PRICE_RX = re.compile(
    r"(\$|€|£|¥|₹|₩|₱|₪|R\$|S/\.|\bUSD\b|\bCOP\b|\bMXN\b|\bCLP\b|\bPEN\b|\bBRL\b)\s*\d"
)
UNTITLED_CATEGORY = "Untitled"


@dataclass
class RawItem:
    """One catalog item as read from the list view."""

    name: Optional[str] = None
    description_card: Optional[str] = None
    price_card: Optional[str] = None
    image_card: Optional[str] = None
    item_uuid: Optional[str] = None
    section_uuid: Optional[str] = None
    subsection_uuid: Optional[str] = None
    href: Optional[str] = None
    store_uuid: Optional[str] = None
    detail_raw: Optional[Any] = None

    @property
    def is_resolvable(self) -> bool:
        """Detail fetch needs all three identifiers."""
        return bool(self.item_uuid and self.section_uuid and self.subsection_uuid)

    def failure_summary(self) -> Dict[str, Optional[str]]:
        return {"id": self.item_uuid, "href": self.href, "title": self.name}


@dataclass
class Category:
    """A named, ordered group of items."""

    name: str
    items: List[RawItem] = field(default_factory=list)


def _clean_text(text: str) -> str:
    return re.sub(r"\s+", " ", text.replace(" ", " ")).strip()


def _is_junk(text: str) -> bool:
    """Bullets, percentages and rating counts."""
    return text == "•" or bool(re.match(r"^\d+%", text)) or bool(re.search(r"\(\d+\)", text))


async def text_or_none(scope: Page | Locator, selector: str) -> Optional[str]:
    locator = scope.locator(selector)
    if await locator.count() == 0:
        return None
    text = (await locator.first.inner_text()).strip()
    return text or None


async def extract_category_name(section: Locator) -> str:
    """Header text of a section, else an inferred ancestor label, else "Untitled"."""
    for selector in CATEGORY_HEADER_SELECTORS:
        try:
            text = await text_or_none(section, selector)
        except PlaywrightError as e:
            logger.debug(f"Header selector {selector} failed: {e}")
            continue
        if text:
            return text

    first_item = section.locator('a, button, [role="button"]').first
    if await first_item.count() > 0:
        try:
            context = first_item.locator(CATEGORY_CONTEXT_XPATH).first
            if await context.count() > 0:
                parent_text = await context.inner_text()
                if parent_text:
                    return parent_text.split("\n")[0].strip()
        except PlaywrightError as e:
            logger.debug(f"Could not infer category from context: {e}")

    return UNTITLED_CATEGORY


async def read_card_fields(anchor: Locator) -> Dict[str, Optional[str]]:
    """Name, price text, description and image of an item card."""
    name = None
    name_el = anchor.locator(ITEM_NAME_SELECTOR).first
    if await name_el.count() > 0:
        name = (await name_el.inner_text()).strip()

    price_text = None
    price_el = anchor.locator(ITEM_PRICE_SELECTOR).first
    if await price_el.count() > 0:
        price_text = (await price_el.inner_text()).strip()

    text_column = anchor.locator(ITEM_TEXT_COLUMN_SELECTOR).first
    plain = [_clean_text(t) for t in await text_column.locator(ITEM_PLAIN_SPAN_SELECTOR).all_inner_texts()]
    plain = [t for t in plain if t]

    description = None
    if plain:
        description = max(plain, key=len)
    else:
        rich = [t.strip() for t in await text_column.locator(ITEM_NAME_SELECTOR).all_inner_texts()]
        for text in rich:
            if text and text != name and not PRICE_RX.search(text) and not _is_junk(text):
                description = text
                break

    image = None
    image_el = anchor.locator("img")
    if await image_el.count() > 0:
        image = await image_el.first.get_attribute("src")

    return {
        "name": name,
        "price_card": price_text,
        "description_card": description,
        "image_card": image or None,
    }


async def identifiers_from_click(
    page: Page,
    anchor: Locator,
    data_testid: Optional[str],
    timeout_ms: Optional[int] = None,
) -> Optional[Dict[str, Any]]:
    """
    Click an item and capture the detail request it triggers.

    Returns:
        The request's JSON body, or None if no matching request was seen
    """
    timeout_ms = timeout_ms or default_settings.click_request_timeout_ms
    hints = find_uuids(data_testid)
    item_hint = hints[0] if hints else None

    def _is_detail_request(request) -> bool:
        if request.method != "POST" or DETAIL_ENDPOINT not in request.url:
            return False
        return item_hint is None or item_hint in (request.post_data or "")

    try:
        await anchor.scroll_into_view_if_needed()
    except PlaywrightError as e:
        logger.debug(f"Could not scroll item into view: {e}")

    await page.wait_for_timeout(click_delay_ms())

    body = None
    try:
        async with page.expect_request(_is_detail_request, timeout=timeout_ms) as request_info:
            await anchor.click(force=True)
        request = await request_info.value
        body = request.post_data_json
    except PlaywrightTimeoutError:
        logger.debug(f"No detail request observed for {data_testid}")
    except (PlaywrightError, ValueError) as e:
        logger.debug(f"Click interception failed for {data_testid}: {e}")

    close = page.locator(MODAL_CLOSE_SELECTOR)
    if await close.count() > 0:
        try:
            await close.first.click()
        except PlaywrightError as e:
            logger.debug(f"Could not close item modal: {e}")

    return body if isinstance(body, dict) else None


async def resolve_identifiers(
    page: Page,
    anchor: Locator,
    href: str,
    data_testid: Optional[str],
) -> ItemIdentifiers:
    """Identifiers from the link first, then from a real click."""
    ids = extract_ids_from_href(href, data_testid)
    if ids.is_complete:
        return ids

    body = await identifiers_from_click(page, anchor, data_testid)
    if body:
        ids.item_uuid = body.get("menuItemUuid") or ids.item_uuid
        ids.section_uuid = body.get("sectionUuid") or ids.section_uuid
        ids.subsection_uuid = body.get("subsectionUuid") or ids.subsection_uuid
        if not ids.store_uuid and isinstance(body.get("storeUuid"), str):
            ids.store_uuid = body["storeUuid"]
    return ids


async def extract_item(page: Page, anchor: Locator) -> RawItem:
    """Build a RawItem from an item anchor."""
    href = await anchor.get_attribute("href") or ""
    data_testid = await anchor.get_attribute("data-testid")

    ids = await resolve_identifiers(page, anchor, href, data_testid)
    fields = await read_card_fields(anchor)

    return RawItem(
        name=fields["name"],
        description_card=fields["description_card"],
        price_card=fields["price_card"],
        image_card=fields["image_card"],
        item_uuid=ids.item_uuid,
        section_uuid=ids.section_uuid,
        subsection_uuid=ids.subsection_uuid,
        store_uuid=ids.store_uuid,
        href=href,
    )
