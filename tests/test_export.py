"""Tests for the JSON export writer."""

import json

import pytest

from catalog_harvester.export.base import ExportError
from catalog_harvester.export.json_writer import JsonFileExportWriter, build_export_document
from catalog_harvester.normalize.assembler import (
    Price,
    ScrapedCategory,
    ScrapedItem,
    ScrapedMenu,
    Store,
)


def size_group(*options):
    return {
        "title": "Size",
        "minPermitted": 1,
        "maxPermitted": 1,
        "options": [{"title": t, "price": p} for t, p in options],
    }


@pytest.fixture
def scraped():
    tea = ScrapedItem(
        id="1",
        title="Tea",
        price=Price(amount=2.5),
        detail_raw={"data": {"customizationsList": [size_group(("Small", 0), ("Large", 50))]}},
    )
    coffee = ScrapedItem(
        id="2",
        title="Coffee",
        price=Price(amount=3.0),
        detail_raw={"data": {"customizationsList": [size_group(("Large", 50), ("Huge", 100))]}},
    )
    cake = ScrapedItem(id="3", title="Cake")
    return ScrapedMenu(
        store=Store(name="Corner Café"),
        categories=[
            ScrapedCategory(id="0", title="Drinks", items=[tea, coffee]),
            ScrapedCategory(id="1", title="Desserts", items=[cake]),
        ],
    )


def test_export_document_merges_shared_groups(scraped):
    document = build_export_document(scraped)

    assert document["store"] == "Corner Café"
    assert len(document["modifier_groups"]) == 1
    group = document["modifier_groups"][0]
    assert [o["title"] for o in group["options"]] == ["Small", "Large", "Huge"]

    drinks = document["categories"][0]
    assert drinks["items"][0]["modifier_groups"] == ["Size"]
    assert drinks["items"][0]["price"] == 2.5
    assert document["categories"][1]["items"][0]["price"] is None


@pytest.mark.asyncio
async def test_writer_uses_store_slug_by_default(scraped, tmp_path):
    writer = JsonFileExportWriter(output_dir=str(tmp_path))

    result = await writer.write(scraped)

    assert result.location == str(tmp_path / "menu-corner-caf.json")
    assert result.categories == 2
    assert result.items == 3
    assert result.modifier_groups == 1
    with open(result.location, encoding="utf-8") as f:
        assert json.load(f)["store"] == "Corner Café"


@pytest.mark.asyncio
async def test_writer_appends_json_suffix(scraped, tmp_path):
    result = await JsonFileExportWriter(output_dir=str(tmp_path)).write(scraped, "weekly")

    assert result.location.endswith("weekly.json")


@pytest.mark.asyncio
async def test_writer_rejects_paths(scraped, tmp_path):
    writer = JsonFileExportWriter(output_dir=str(tmp_path / "out"))

    with pytest.raises(ExportError) as exc_info:
        await writer.write(scraped, "nested/dir.json")

    assert exc_info.value.destination == "nested/dir.json"
    assert not (tmp_path / "out").exists()
