"""Fold collected categories and detail payloads into the scraped catalog."""

import logging
import re
from typing import Annotated, Any, Dict, List, Literal, Optional, Sequence, Union

from pydantic import BaseModel, Field

from catalog_harvester.ingest.extraction import Category
from catalog_harvester.normalize.modifiers import option_price_cents, raw_group_list

logger = logging.getLogger(__name__)

DEFAULT_STORE_NAME = "Restaurant"
DEFAULT_CURRENCY = "USD"


class Price(BaseModel):
    amount: float
    currency_code: str = DEFAULT_CURRENCY


class KnownDetail(BaseModel):
    """Detail payload in the ``{"data": {...}}`` shape the storefront returns."""
    kind: Literal["known"] = "known"
    title: Optional[str] = None
    description: Optional[str] = None
    group_count: int = 0


class OpaqueDetail(BaseModel):
    """Anything else; passed through untouched."""
    kind: Literal["opaque"] = "opaque"


DetailPayload = Annotated[Union[KnownDetail, OpaqueDetail], Field(discriminator="kind")]


def classify_detail(detail_raw: Any) -> DetailPayload:
    if not isinstance(detail_raw, dict) or not isinstance(detail_raw.get("data"), dict):
        return OpaqueDetail()

    data = detail_raw["data"]
    title = data.get("title") if isinstance(data.get("title"), str) else None
    description = None
    for key in ("itemDescription", "description"):
        if isinstance(data.get(key), str) and data[key].strip():
            description = data[key].strip()
            break
    return KnownDetail(title=title, description=description, group_count=len(raw_group_list(detail_raw)))


class Store(BaseModel):
    name: str = DEFAULT_STORE_NAME


class ScrapedItem(BaseModel):
    id: str
    title: str = ""
    description: str = ""
    price: Optional[Price] = None
    image_url: Optional[str] = None
    item_uuid: Optional[str] = None
    section_uuid: Optional[str] = None
    subsection_uuid: Optional[str] = None
    store_uuid: Optional[str] = None
    detail_raw: Optional[Any] = None


class ScrapedCategory(BaseModel):
    id: str
    title: str
    items: List[ScrapedItem] = []


class ScrapedMenu(BaseModel):
    """Canonical scraped catalog handed to export writers."""
    store: Store = Store()
    categories: List[ScrapedCategory] = []

    @property
    def total_items(self) -> int:
        return sum(len(c.items) for c in self.categories)


def normalize_price(price_text: Optional[str]) -> Optional[Price]:
    """Parse card price text such as ``"$12.50"``; None when no number is present."""
    if not price_text:
        return None
    digits = re.sub(r"[^0-9.]", "", price_text)
    match = re.match(r"\d*\.?\d+", digits)
    if not match:
        return None
    return Price(amount=float(match.group(0)))


def _description(detail: DetailPayload, card_description: Optional[str]) -> str:
    """Detail description first, then the card text, then empty."""
    if isinstance(detail, KnownDetail) and detail.description:
        return detail.description
    return card_description or ""


def build_scraped(
    categories: Sequence[Category],
    store_name: Optional[str],
    store_uuid: Optional[str],
) -> ScrapedMenu:
    """
    Assemble categories into a ScrapedMenu.

    Category and item order follow discovery order. Items without an item
    uuid get a positional id of ``"<category>-<item>"``.
    """
    scraped_categories = []
    for idx, category in enumerate(categories):
        items = []
        for j, item in enumerate(category.items):
            detail = classify_detail(item.detail_raw)
            items.append(ScrapedItem(
                id=str(item.item_uuid or f"{idx}-{j}"),
                title=item.name or "",
                description=_description(detail, item.description_card),
                price=normalize_price(item.price_card),
                image_url=item.image_card,
                item_uuid=item.item_uuid,
                section_uuid=item.section_uuid,
                subsection_uuid=item.subsection_uuid,
                store_uuid=item.store_uuid or store_uuid,
                detail_raw=item.detail_raw,
            ))
        scraped_categories.append(ScrapedCategory(id=str(idx), title=category.name, items=items))

    return ScrapedMenu(
        store=Store(name=store_name or DEFAULT_STORE_NAME),
        categories=scraped_categories,
    )


class NormalizedModifier(BaseModel):
    id: str
    title: str
    price: Optional[Price] = None


class NormalizedModifierGroup(BaseModel):
    id: str
    title: str
    min_required: int = 0
    max_allowed: int = 0
    modifiers: List[NormalizedModifier] = []


class NormalizedItem(BaseModel):
    id: str
    title: str
    description: str = ""
    price: Optional[Price] = None
    image_url: Optional[str] = None
    modifier_groups: List[NormalizedModifierGroup] = []
    detail_raw: Optional[Any] = None


class NormalizedCategory(BaseModel):
    id: str
    title: str
    items: List[NormalizedItem] = []


class NormalizedMenu(BaseModel):
    """Display-oriented view of a ScrapedMenu with per-item modifier groups."""
    store: Store
    categories: List[NormalizedCategory] = []


def _first_number(raw: Dict[str, Any], keys: Sequence[str]) -> Optional[int]:
    for key in keys:
        value = raw.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return int(value)
    return None


def _normalize_group(raw: Dict[str, Any], fallback_id: str) -> NormalizedModifierGroup:
    options = raw.get("options") or raw.get("modifiers") or []
    options = [o for o in options if isinstance(o, dict)]

    modifiers = []
    for k, option in enumerate(options):
        cents = option_price_cents(option)
        modifiers.append(NormalizedModifier(
            id=str(option.get("uuid") or option.get("id") or option.get("title") or f"{fallback_id}-{k}"),
            title=option.get("title") or option.get("name") or "",
            price=Price(amount=cents / 100) if cents is not None else None,
        ))

    min_required = _first_number(raw, ("minPermitted", "minRequired", "min"))
    max_allowed = _first_number(raw, ("maxPermitted", "maxAllowed", "max"))
    return NormalizedModifierGroup(
        id=str(raw.get("uuid") or raw.get("id") or raw.get("title") or fallback_id),
        title=raw.get("title") or raw.get("name") or "Options",
        min_required=min_required if min_required is not None else 0,
        max_allowed=max_allowed if max_allowed is not None else len(options),
        modifiers=modifiers,
    )


def normalize_menu(scraped: ScrapedMenu) -> NormalizedMenu:
    categories = []
    for category in scraped.categories:
        items = []
        for item in category.items:
            groups = [
                _normalize_group(raw, f"{item.id}-g{g}")
                for g, raw in enumerate(raw_group_list(item.detail_raw))
            ]
            items.append(NormalizedItem(
                id=item.id,
                title=item.title,
                description=item.description,
                price=item.price,
                image_url=item.image_url,
                modifier_groups=groups,
                detail_raw=item.detail_raw,
            ))
        categories.append(NormalizedCategory(id=category.id, title=category.title or "Category", items=items))

    return NormalizedMenu(store=Store(name=scraped.store.name or DEFAULT_STORE_NAME), categories=categories)
