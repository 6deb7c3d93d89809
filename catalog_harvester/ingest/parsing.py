"""Pure parsing helpers for storefront URLs and item identifiers."""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple
from urllib.parse import parse_qs, unquote, urljoin, urlparse, urlunparse

logger = logging.getLogger(__name__)

UUID_RX = re.compile(
    r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}",
    re.IGNORECASE,
)


@dataclass
class ItemIdentifiers:
    """Identifier triple (plus optional store id) for one catalog item."""

    item_uuid: Optional[str] = None
    section_uuid: Optional[str] = None
    subsection_uuid: Optional[str] = None
    store_uuid: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return bool(self.item_uuid and self.section_uuid and self.subsection_uuid)


def find_uuids(text: Optional[str]) -> List[str]:
    """Return every UUID in ``text`` in order of appearance."""
    if not text:
        return []
    return UUID_RX.findall(text)


def sanitize_store_url(url: str) -> str:
    """
    Clean a pasted storefront URL.

    Drops encoded spaces inside path segments ("/%20store" -> "/store") and
    collapses duplicate slashes.
    """
    try:
        parsed = urlparse(url)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError("not an absolute URL")
        path = re.sub(r"%20", "", parsed.path, flags=re.IGNORECASE)
        path = re.sub(r"/+", "/", path)
        return urlunparse(parsed._replace(path=path))
    except ValueError:
        return re.sub(r"/%20store", "/store", url, flags=re.IGNORECASE)


def is_valid_target_url(url: Any) -> bool:
    if not url or not isinstance(url, str):
        return False
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def parse_lat_lng_from_url(url: str) -> Tuple[Optional[float], Optional[float]]:
    """
    Extract delivery coordinates from a storefront URL.

    Looks at ``latitude``/``longitude`` query params first, then at a
    percent-encoded JSON ``pl`` param.

    Returns:
        (latitude, longitude), or (None, None) when absent
    """
    try:
        params = parse_qs(urlparse(url).query)
    except ValueError:
        return None, None

    lat_raw = params.get("latitude", [None])[0]
    lng_raw = params.get("longitude", [None])[0]
    if lat_raw and lng_raw:
        try:
            return float(lat_raw), float(lng_raw)
        except ValueError:
            logger.debug(f"Non-numeric coordinates in URL: {lat_raw}, {lng_raw}")

    pl = params.get("pl", [None])[0]
    if pl:
        decoded = unquote(pl).strip()
        if decoded.startswith("{"):
            try:
                obj = json.loads(decoded)
            except json.JSONDecodeError as e:
                logger.debug(f"Could not parse 'pl' param: {e}")
                return None, None
            latitude = obj.get("latitude")
            longitude = obj.get("longitude")
            if _is_number(latitude) and _is_number(longitude):
                return float(latitude), float(longitude)

    return None, None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def extract_ids_from_href(
    href: Optional[str],
    data_testid: Optional[str] = None,
) -> ItemIdentifiers:
    """
    Parse item identifiers out of an item link.

    1. The last three UUIDs in the path are (section, subsection, item).
    2. Otherwise a ``modctx`` query param holding (possibly double-encoded)
       JSON is decoded.
    3. Otherwise a ``store-item-<uuid>`` test id yields the item id alone.
    """
    raw = href or ""
    path = re.sub(r"^https?://[^/]+", "", raw, flags=re.IGNORECASE)
    path = path.split("?")[0].split("#")[0]

    matches = find_uuids(path)
    if len(matches) >= 3:
        section_uuid, subsection_uuid, item_uuid = matches[-3:]
        return ItemIdentifiers(
            item_uuid=item_uuid,
            section_uuid=section_uuid,
            subsection_uuid=subsection_uuid,
        )

    from_modctx = _ids_from_modctx(raw)
    if from_modctx is not None:
        return from_modctx

    if data_testid and re.search(r"store-item-", data_testid, re.IGNORECASE):
        found = find_uuids(data_testid)
        if found:
            return ItemIdentifiers(item_uuid=found[0])

    return ItemIdentifiers()


def _ids_from_modctx(raw: str) -> Optional[ItemIdentifiers]:
    if "?" not in raw:
        return None
    query = raw.split("?", 1)[1].split("#")[0]
    # parse_qs already decodes once
    modctx = parse_qs(query).get("modctx", [None])[0]
    if not modctx:
        return None

    decoded = modctx
    if re.search(r"%7B", decoded, re.IGNORECASE):
        decoded = unquote(decoded)

    try:
        obj = json.loads(decoded)
    except json.JSONDecodeError:
        logger.debug(f"modctx is not JSON: {decoded[:80]}")
        return None
    if not isinstance(obj, dict):
        return None

    ids = ItemIdentifiers(
        item_uuid=obj.get("itemUuid") or obj.get("menuItemUuid"),
        section_uuid=obj.get("sectionUuid"),
        subsection_uuid=obj.get("subsectionUuid"),
        store_uuid=obj.get("storeUuid"),
    )
    if ids.item_uuid or ids.store_uuid:
        return ids
    return None


def to_absolute_url(base_url: str, href: str) -> str:
    if not href:
        return ""
    try:
        return urljoin(base_url, href)
    except ValueError:
        if href.startswith("/"):
            return base_url.rstrip("/") + href
        return href


def find_store_uuid_deep(payload: Any) -> Optional[str]:
    """Search any JSON-like structure for a string ``storeUuid``."""
    stack = [payload]
    while stack:
        current = stack.pop()
        if isinstance(current, dict):
            for key, value in current.items():
                if key == "storeUuid" and isinstance(value, str):
                    return value
                stack.append(value)
        elif isinstance(current, list):
            stack.extend(current)
    return None
