"""Discovery strategy base classes."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class ResultSet:
    """Elements found by one discovery strategy."""

    tier: str
    handles: List[Any] = field(default_factory=list)
    selector: Optional[str] = None

    @property
    def count(self) -> int:
        return len(self.handles)


@dataclass
class TierAttempt:
    """Record of one strategy attempt, kept for the debug trace."""

    tier: str
    count: int
    adopted: bool
    error: Optional[str] = None


class DiscoveryStrategy:
    """One heuristic in a discovery cascade."""

    tier: str = "generic"

    def applies(self, best_count: int) -> bool:
        """Whether the strategy should run given the best count so far."""
        return True

    async def attempt(self, scope) -> Optional[ResultSet]:
        """Look for elements inside ``scope``; None when nothing matched."""
        return None


async def expand_locator(locator) -> List[Any]:
    """Turn a multi-match locator into a list of per-element locators."""
    count = await locator.count()
    return [locator.nth(i) for i in range(count)]
