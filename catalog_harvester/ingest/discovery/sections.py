"""Section (category container) discovery cascade.

Tiers, first success wins:
1. Candidate selectors, strict to loose. A candidate is accepted only when
   its first match holds something that looks purchasable.
2. Container scan: every div/section/li holding at least three item-like
   descendants becomes a synthetic section.
3. The whole page body as one section.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from playwright.async_api import Error as PlaywrightError

from catalog_harvester import metrics
from catalog_harvester.ingest.discovery.base import (
    DiscoveryStrategy,
    ResultSet,
    TierAttempt,
    expand_locator,
)
from catalog_harvester.ingest.selectors import (
    ITEM_LIKE_SELECTOR,
    MIN_ITEMS_PER_CONTAINER,
    SECTION_CONTAINER_SELECTOR,
    SECTION_SELECTORS,
)

logger = logging.getLogger(__name__)


class NoSectionsFoundError(Exception):
    """No section tier found anything; the job cannot continue."""
    def __init__(self, url: Optional[str] = None):
        self.url = url
        super().__init__("No menu sections could be detected")


class CandidateSelectorStrategy(DiscoveryStrategy):
    tier = "candidate_selector"

    def __init__(self, selectors: Sequence[str] = SECTION_SELECTORS):
        self.selectors = list(selectors)

    async def attempt(self, scope) -> Optional[ResultSet]:
        for selector in self.selectors:
            elements = scope.locator(selector)
            count = await elements.count()
            if count == 0:
                continue

            has_items = await elements.first.locator(ITEM_LIKE_SELECTOR).count()
            logger.debug(f"Section candidate {selector}: {count} matches, first has {has_items} items")
            if has_items > 0:
                return ResultSet(
                    tier=self.tier,
                    handles=await expand_locator(elements),
                    selector=selector,
                )
        return None


class ContainerScanStrategy(DiscoveryStrategy):
    tier = "item_containers"

    def __init__(self, min_items: int = MIN_ITEMS_PER_CONTAINER):
        self.min_items = min_items

    async def attempt(self, scope) -> Optional[ResultSet]:
        containers = scope.locator(SECTION_CONTAINER_SELECTOR)
        total = await containers.count()

        valid = []
        for i in range(total):
            container = containers.nth(i)
            if await container.locator(ITEM_LIKE_SELECTOR).count() >= self.min_items:
                valid.append(container)

        logger.debug(f"Container scan: {len(valid)}/{total} containers qualify")
        if not valid:
            return None
        return ResultSet(tier=self.tier, handles=valid, selector=SECTION_CONTAINER_SELECTOR)


class WholePageStrategy(DiscoveryStrategy):
    tier = "body_container"

    async def attempt(self, scope) -> Optional[ResultSet]:
        if await scope.locator(ITEM_LIKE_SELECTOR).count() == 0:
            return None
        return ResultSet(tier=self.tier, handles=[scope.locator("body")], selector="body")


SECTION_STRATEGIES: List[DiscoveryStrategy] = [
    CandidateSelectorStrategy(),
    ContainerScanStrategy(),
    WholePageStrategy(),
]


@dataclass
class SectionDiscovery:
    """Adopted section set plus the attempts that led to it."""

    sections: ResultSet
    attempts: List[TierAttempt] = field(default_factory=list)

    @property
    def count(self) -> int:
        return self.sections.count


async def discover_sections(
    page,
    strategies: Optional[Sequence[DiscoveryStrategy]] = None,
) -> SectionDiscovery:
    """
    Run the section cascade over ``page``.

    Raises:
        NoSectionsFoundError: If every tier came back empty
    """
    strategies = SECTION_STRATEGIES if strategies is None else strategies
    attempts: List[TierAttempt] = []

    for strategy in strategies:
        try:
            result = await strategy.attempt(page)
        except PlaywrightError as e:
            logger.debug(f"Section tier {strategy.tier} errored: {e}")
            attempts.append(TierAttempt(tier=strategy.tier, count=0, adopted=False, error=str(e)))
            continue

        if result is not None and result.count > 0:
            attempts.append(TierAttempt(tier=strategy.tier, count=result.count, adopted=True))
            metrics.discovery_tier_selected_total.labels(kind="section", tier=strategy.tier).inc()
            logger.info(
                f"Detected {result.count} sections via {strategy.tier} ({result.selector})"
            )
            return SectionDiscovery(sections=result, attempts=attempts)

        attempts.append(TierAttempt(tier=strategy.tier, count=0, adopted=False))

    raise NoSectionsFoundError(getattr(page, "url", None))
