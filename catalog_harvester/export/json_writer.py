"""Writes assembled catalogs as JSON documents."""

import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from catalog_harvester.config import settings
from catalog_harvester.export.base import CredentialProvider, ExportError, ExportResult, ExportWriter
from catalog_harvester.normalize.assembler import ScrapedMenu
from catalog_harvester.normalize.modifiers import build_modifier_groups, parse_group, raw_group_list

logger = logging.getLogger(__name__)


def _slug(text: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return slug or "menu"


def build_export_document(scraped: ScrapedMenu) -> Dict[str, Any]:
    """Catalog rows plus the merged modifier groups each item references."""
    groups = build_modifier_groups(
        item.detail_raw for category in scraped.categories for item in category.items
    )

    categories = []
    for category in scraped.categories:
        rows = []
        for item in category.items:
            item_groups = [parse_group(raw) for raw in raw_group_list(item.detail_raw)]
            rows.append({
                "title": item.title,
                "description": item.description,
                "price": item.price.amount if item.price else None,
                "currency_code": item.price.currency_code if item.price else None,
                "modifier_groups": [g.title for g in item_groups if g is not None],
            })
        categories.append({"title": category.title, "items": rows})

    return {
        "store": scraped.store.name,
        "exported_at": datetime.now(timezone.utc).isoformat(),
        "categories": categories,
        "modifier_groups": [g.to_dict() for g in groups.values()],
    }


class JsonFileExportWriter(ExportWriter):
    """
    Export writer that writes one JSON file per export.

    ``destination`` is a file name inside the output directory; by default the
    name is derived from the store name.
    """

    def __init__(self, output_dir: Optional[str] = None, credentials: Optional[CredentialProvider] = None):
        super().__init__(credentials)
        self.output_dir = Path(output_dir or settings.export_output_dir)

    async def write(self, scraped: ScrapedMenu, destination: Optional[str] = None) -> ExportResult:
        document = build_export_document(scraped)

        name = destination or f"menu-{_slug(scraped.store.name)}.json"
        if Path(name).name != name:
            raise ExportError(destination, "destination must be a plain file name")
        if not name.endswith(".json"):
            name = f"{name}.json"

        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.output_dir / name
        with open(path, "w", encoding="utf-8") as f:
            json.dump(document, f, indent=2, ensure_ascii=False, default=str)

        logger.info(f"Exported {scraped.store.name} to {path}")
        return ExportResult(
            location=str(path),
            categories=len(document["categories"]),
            items=scraped.total_items,
            modifier_groups=len(document["modifier_groups"]),
        )
