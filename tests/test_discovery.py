"""Tests for the section and item discovery cascades."""

import pytest

from catalog_harvester.ingest.discovery import (
    NoSectionsFoundError,
    discover_section_items,
    discover_sections,
    run_item_cascade,
)
from catalog_harvester.ingest.discovery.base import DiscoveryStrategy, ResultSet
from catalog_harvester.ingest.discovery.items import (
    BruteForceAnchorStrategy,
    PreciseSelectorStrategy,
    looks_like_item_reference,
)
from conftest import FakeElement, FakePage, make_item, make_section


def plain_anchor(href: str) -> FakeElement:
    return FakeElement(matches={"a"}, attrs={"href": href})


class FixedStrategy(DiscoveryStrategy):
    def __init__(self, tier: str, count: int):
        self.tier = tier
        self.count = count

    async def attempt(self, scope):
        if not self.count:
            return None
        return ResultSet(tier=self.tier, handles=[object()] * self.count)


@pytest.mark.asyncio
async def test_precise_result_beats_smaller_brute_force():
    page = FakePage()
    page.body.append(make_section("Mains", [make_item(1, "A"), make_item(2, "B"), plain_anchor("/about")]))
    section = page.locator("li").first

    discovery = await run_item_cascade(section, [PreciseSelectorStrategy(), BruteForceAnchorStrategy()])

    assert discovery.tier == "precise"
    assert discovery.count == 2


@pytest.mark.asyncio
async def test_brute_force_adopted_only_when_strictly_larger():
    page = FakePage()
    anchors = [plain_anchor(f"/store/x/item-{i}") for i in range(3)]
    page.body.append(make_section("Mains", [make_item(1, "A"), *anchors]))
    section = page.locator("li").first

    discovery = await run_item_cascade(section, [PreciseSelectorStrategy(), BruteForceAnchorStrategy()])

    assert discovery.tier == "brute_force"
    assert discovery.count == 4


@pytest.mark.asyncio
async def test_ties_keep_the_earlier_tier():
    discovery = await run_item_cascade(None, [FixedStrategy("first", 3), FixedStrategy("second", 3)])
    assert discovery.tier == "first"
    assert [a.adopted for a in discovery.attempts] == [True, False]


@pytest.mark.asyncio
async def test_brute_force_skipped_above_threshold():
    strategies = [FixedStrategy("precise", 6), BruteForceAnchorStrategy(threshold=5)]
    discovery = await run_item_cascade(None, strategies)
    assert [a.tier for a in discovery.attempts] == ["precise"]


@pytest.mark.asyncio
async def test_layout_agnostic_tier_used_when_precise_finds_nothing():
    page = FakePage()
    odd_items = [
        FakeElement(matches={"a", 'a[href*="item"]'}, attrs={"href": f"/menu/item-{i}"})
        for i in range(2)
    ]
    page.body.append(make_section("Sides", odd_items))
    section = page.locator("li").first

    discovery = await discover_section_items(page, section)

    assert discovery.count == 2
    assert discovery.tier == "layout_agnostic"


@pytest.mark.asyncio
async def test_candidate_selector_wins_for_sections():
    page = FakePage()
    page.body.append(make_section("Drinks", [make_item(1, "Tea")]))
    page.body.append(make_section("Mains", [make_item(2, "Soup")]))

    discovery = await discover_sections(page)

    assert discovery.count == 2
    assert discovery.sections.tier == "candidate_selector"


@pytest.mark.asyncio
async def test_container_scan_groups_item_rich_containers():
    page = FakePage()
    container = FakeElement(matches={"div"}, children=[make_item(i, f"Item {i}") for i in range(1, 4)])
    page.body.append(container)

    discovery = await discover_sections(page)

    assert discovery.sections.tier == "item_containers"
    assert discovery.count == 1


@pytest.mark.asyncio
async def test_whole_page_is_last_section_fallback():
    page = FakePage()
    page.body.append(make_item(1, "Lonely"))

    discovery = await discover_sections(page)

    assert discovery.sections.tier == "body_container"
    assert discovery.count == 1


@pytest.mark.asyncio
async def test_no_sections_raises():
    page = FakePage()
    page.body.append(FakeElement(matches={"div"}, text="Closed today"))

    with pytest.raises(NoSectionsFoundError):
        await discover_sections(page)


def test_looks_like_item_reference():
    assert looks_like_item_reference("/store/x/y", None)
    assert looks_like_item_reference("/menu/item/3", None)
    assert looks_like_item_reference(None, "store-item-abc")
    assert not looks_like_item_reference("/about", "footer-link")
