"""Tests for the scraped-data assembler."""

from catalog_harvester.ingest.extraction import Category, RawItem
from catalog_harvester.normalize.assembler import (
    KnownDetail,
    OpaqueDetail,
    build_scraped,
    classify_detail,
    normalize_menu,
    normalize_price,
)


def test_build_scraped_keeps_order_and_defaults():
    categories = [
        Category(name="Drinks", items=[
            RawItem(name="Tea", item_uuid="t-1", price_card="$2.50", description_card="Hot"),
            RawItem(name=None, price_card=None),
        ]),
        Category(name="Mains", items=[RawItem(name="Soup", item_uuid="s-1", store_uuid="store-x")]),
    ]

    scraped = build_scraped(categories, None, "store-default")

    assert scraped.store.name == "Restaurant"
    assert [c.title for c in scraped.categories] == ["Drinks", "Mains"]
    assert [c.id for c in scraped.categories] == ["0", "1"]

    tea, unnamed = scraped.categories[0].items
    assert tea.id == "t-1"
    assert tea.price.amount == 2.5
    assert tea.price.currency_code == "USD"
    assert tea.description == "Hot"
    assert tea.store_uuid == "store-default"
    assert unnamed.id == "0-1"
    assert unnamed.title == ""
    assert unnamed.price is None
    assert unnamed.description == ""

    assert scraped.categories[1].items[0].store_uuid == "store-x"
    assert scraped.total_items == 3


def test_detail_description_takes_precedence():
    detail = {"data": {"itemDescription": "From detail"}}
    categories = [Category(name="A", items=[RawItem(name="X", item_uuid="x", description_card="Card", detail_raw=detail)])]

    item = build_scraped(categories, "Shop", None).categories[0].items[0]

    assert item.description == "From detail"
    assert item.detail_raw == detail


def test_classify_detail():
    assert isinstance(classify_detail({"data": {"title": "X"}}), KnownDetail)
    assert isinstance(classify_detail({"error": "nope"}), OpaqueDetail)
    assert isinstance(classify_detail(None), OpaqueDetail)


def test_normalize_price():
    assert normalize_price("$1,299.99").amount == 1299.99
    assert normalize_price("Free") is None
    assert normalize_price(None) is None


def test_normalized_view_has_modifier_groups():
    detail = {"data": {"customizationsList": [{
        "uuid": "g-1",
        "title": "Size",
        "minPermitted": 1,
        "maxPermitted": 1,
        "options": [{"uuid": "o-1", "title": "Large", "priceCents": 150}],
    }]}}
    categories = [Category(name="A", items=[RawItem(name="Pizza", item_uuid="p", detail_raw=detail)])]

    normalized = normalize_menu(build_scraped(categories, "Shop", None))

    group = normalized.categories[0].items[0].modifier_groups[0]
    assert group.id == "g-1"
    assert group.min_required == 1
    assert group.max_allowed == 1
    assert group.modifiers[0].price.amount == 1.5
