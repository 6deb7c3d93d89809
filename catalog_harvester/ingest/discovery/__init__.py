"""Section and item discovery cascades."""

from catalog_harvester.ingest.discovery.base import DiscoveryStrategy, ResultSet, TierAttempt
from catalog_harvester.ingest.discovery.items import (
    ITEM_STRATEGIES,
    ItemDiscovery,
    discover_section_items,
    run_item_cascade,
)
from catalog_harvester.ingest.discovery.sections import (
    SECTION_STRATEGIES,
    NoSectionsFoundError,
    SectionDiscovery,
    discover_sections,
)


__all__ = [
    "DiscoveryStrategy",
    "ResultSet",
    "TierAttempt",
    "ITEM_STRATEGIES",
    "ItemDiscovery",
    "discover_section_items",
    "run_item_cascade",
    "SECTION_STRATEGIES",
    "NoSectionsFoundError",
    "SectionDiscovery",
    "discover_sections",
]
