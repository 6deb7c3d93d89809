"""Item discovery cascade, run inside one section.

Every tier may only replace the current item set with a strictly larger one,
so on ties the earlier, more specific tier wins.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from playwright.async_api import Error as PlaywrightError

from catalog_harvester import metrics
from catalog_harvester.config import settings as default_settings
from catalog_harvester.ingest.discovery.base import (
    DiscoveryStrategy,
    ResultSet,
    TierAttempt,
    expand_locator,
)
from catalog_harvester.ingest.selectors import (
    CONTAINER_ITEM_SELECTOR,
    ITEM_CONTAINER_SELECTORS,
    LAYOUT_AGNOSTIC_ITEM_SELECTORS,
    PRIMARY_ITEM_SELECTOR,
    UNION_ITEM_PATTERNS,
)
from catalog_harvester.ingest.materializer import sweep_section

logger = logging.getLogger(__name__)


def looks_like_item_reference(href: Optional[str], data_testid: Optional[str]) -> bool:
    """Whether an anchor's href or test id points at a catalog item."""
    if href and ("/store/" in href or "/item" in href):
        return True
    return bool(data_testid and "store-item" in data_testid)


class PreciseSelectorStrategy(DiscoveryStrategy):
    tier = "precise"

    def __init__(self, selector: str = PRIMARY_ITEM_SELECTOR):
        self.selector = selector

    async def attempt(self, scope) -> Optional[ResultSet]:
        handles = await expand_locator(scope.locator(self.selector))
        if not handles:
            return None
        return ResultSet(tier=self.tier, handles=handles, selector=self.selector)


class LayoutAgnosticStrategy(DiscoveryStrategy):
    """First alternative selector with any match wins."""

    tier = "layout_agnostic"

    def __init__(self, selectors: Sequence[str] = LAYOUT_AGNOSTIC_ITEM_SELECTORS):
        self.selectors = list(selectors)

    def applies(self, best_count: int) -> bool:
        return best_count == 0

    async def attempt(self, scope) -> Optional[ResultSet]:
        for selector in self.selectors:
            handles = await expand_locator(scope.locator(selector))
            if handles:
                return ResultSet(tier=self.tier, handles=handles, selector=selector)
        return None


class ContainerAggregationStrategy(DiscoveryStrategy):
    """Collects items from every known container pattern, not just the first."""

    tier = "container_aggregation"

    def __init__(
        self,
        container_selectors: Sequence[str] = ITEM_CONTAINER_SELECTORS,
        item_selector: str = CONTAINER_ITEM_SELECTOR,
    ):
        self.container_selectors = list(container_selectors)
        self.item_selector = item_selector

    def applies(self, best_count: int) -> bool:
        return best_count == 0

    async def attempt(self, scope) -> Optional[ResultSet]:
        collected = []
        seen = set()

        for container_selector in self.container_selectors:
            containers = scope.locator(container_selector)
            container_count = await containers.count()

            for c in range(container_count):
                items = containers.nth(c).locator(self.item_selector)
                for item in await expand_locator(items):
                    # Nested containers report the same anchors again
                    key = (await item.get_attribute("href"), await item.get_attribute("data-testid"))
                    if key in seen:
                        continue
                    seen.add(key)
                    collected.append(item)

        if not collected:
            return None
        return ResultSet(tier=self.tier, handles=collected)


class UnionOfPatternsStrategy(DiscoveryStrategy):
    tier = "union"

    def __init__(self, patterns: Sequence[str] = UNION_ITEM_PATTERNS):
        self.selector = ", ".join(patterns)

    async def attempt(self, scope) -> Optional[ResultSet]:
        handles = await expand_locator(scope.locator(self.selector))
        if not handles:
            return None
        return ResultSet(tier=self.tier, handles=handles, selector=self.selector)


class BruteForceAnchorStrategy(DiscoveryStrategy):
    """Inspects every anchor and keeps the ones that reference an item."""

    tier = "brute_force"

    def __init__(self, threshold: Optional[int] = None):
        self.threshold = threshold

    def applies(self, best_count: int) -> bool:
        threshold = self.threshold if self.threshold is not None else default_settings.brute_force_threshold
        return best_count < threshold

    async def attempt(self, scope) -> Optional[ResultSet]:
        kept = []
        for anchor in await expand_locator(scope.locator("a")):
            href = await anchor.get_attribute("href")
            data_testid = await anchor.get_attribute("data-testid")
            if looks_like_item_reference(href, data_testid):
                kept.append(anchor)

        if not kept:
            return None
        return ResultSet(tier=self.tier, handles=kept, selector="a")


ITEM_STRATEGIES: List[DiscoveryStrategy] = [
    PreciseSelectorStrategy(),
    LayoutAgnosticStrategy(),
    ContainerAggregationStrategy(),
    UnionOfPatternsStrategy(),
    BruteForceAnchorStrategy(),
]


@dataclass
class ItemDiscovery:
    """Adopted item handles for one section."""

    items: ResultSet
    attempts: List[TierAttempt] = field(default_factory=list)

    @property
    def count(self) -> int:
        return self.items.count

    @property
    def tier(self) -> str:
        return self.items.tier


async def run_item_cascade(
    section,
    strategies: Optional[Sequence[DiscoveryStrategy]] = None,
) -> ItemDiscovery:
    """Run the item tiers over ``section``, keeping the strictly-largest result."""
    strategies = ITEM_STRATEGIES if strategies is None else strategies
    best = ResultSet(tier="none")
    attempts: List[TierAttempt] = []

    for strategy in strategies:
        if not strategy.applies(best.count):
            continue
        try:
            result = await strategy.attempt(section)
        except PlaywrightError as e:
            logger.debug(f"Item tier {strategy.tier} errored: {e}")
            attempts.append(TierAttempt(tier=strategy.tier, count=0, adopted=False, error=str(e)))
            continue

        count = result.count if result is not None else 0
        adopted = result is not None and count > best.count
        attempts.append(TierAttempt(tier=strategy.tier, count=count, adopted=adopted))
        if adopted:
            best = result

    if best.count:
        metrics.discovery_tier_selected_total.labels(kind="item", tier=best.tier).inc()
    return ItemDiscovery(items=best, attempts=attempts)


async def discover_section_items(
    page,
    section,
    strategies: Optional[Sequence[DiscoveryStrategy]] = None,
) -> ItemDiscovery:
    """
    Discover items in a section, then re-scroll it once.

    If the sweep makes the precise selector match more items than the
    cascade produced, the precise result is adopted.
    """
    discovery = await run_item_cascade(section, strategies)
    if discovery.count == 0:
        return discovery

    final_count = await sweep_section(page, section)
    if final_count > discovery.count:
        logger.debug(f"Final sweep found {final_count} items (was {discovery.count})")
        locator = section.locator(PRIMARY_ITEM_SELECTOR)
        discovery.items = ResultSet(
            tier="precise_after_sweep",
            handles=await expand_locator(locator),
            selector=PRIMARY_ITEM_SELECTOR,
        )
        discovery.attempts.append(
            TierAttempt(tier="precise_after_sweep", count=discovery.items.count, adopted=True)
        )
    return discovery
