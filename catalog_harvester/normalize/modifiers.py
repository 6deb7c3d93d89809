"""Modifier-group derivation from raw item detail payloads."""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)


class RequirementTier(str, Enum):
    REQUIRED = "Required"
    OPTIONAL = "Optional"


@dataclass
class ModifierOption:
    title: str
    upcharge: Optional[float] = None


@dataclass
class ModifierGroup:
    """A modifier group merged across every item that carries it."""

    title: str
    required: RequirementTier
    min: Optional[int] = None
    max: Optional[int] = None
    options: List[ModifierOption] = field(default_factory=list)

    def merge(self, other: "ModifierGroup") -> None:
        """
        Union ``other`` into this group.

        Options are merged by case-insensitive title, ``min`` is only filled
        when still unknown, ``max`` widens, and the requirement only ever
        escalates to Required.
        """
        seen = {o.title.lower() for o in self.options}
        for option in other.options:
            if option.title.lower() not in seen:
                self.options.append(option)
                seen.add(option.title.lower())

        if self.min is None:
            self.min = other.min
        if self.max is None or other.max is None:
            self.max = self.max if other.max is None else other.max
        else:
            self.max = max(self.max, other.max)
        if other.required is RequirementTier.REQUIRED:
            self.required = RequirementTier.REQUIRED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "required": self.required.value,
            "min": self.min,
            "max": self.max,
            "options": [{"title": o.title, "upcharge": o.upcharge} for o in self.options],
        }


def _finite_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value if math.isfinite(value) else None


def raw_group_list(detail_raw: Any) -> List[Dict[str, Any]]:
    """Raw modifier groups of a detail payload, or an empty list."""
    if not isinstance(detail_raw, dict) or not isinstance(detail_raw.get("data"), dict):
        return []
    data = detail_raw["data"]
    groups = data.get("customizationsList") or data.get("modifierGroups") or []
    return [g for g in groups if isinstance(g, dict)] if isinstance(groups, list) else []


def option_price_cents(option: Dict[str, Any]) -> Optional[float]:
    for key in ("price", "priceCents"):
        cents = _finite_number(option.get(key))
        if cents is not None:
            return cents
    return None


def parse_group(raw: Dict[str, Any]) -> Optional[ModifierGroup]:
    """Turn one raw group into a ModifierGroup; None when it has no title."""
    title = raw.get("title")
    if not isinstance(title, str) or not title.strip():
        return None

    min_permitted = _finite_number(raw.get("minPermitted"))
    max_permitted = _finite_number(raw.get("maxPermitted"))

    options = []
    for option in raw.get("options") or []:
        if not isinstance(option, dict):
            continue
        option_title = str(option.get("title") or "").strip()
        if not option_title:
            continue
        cents = option_price_cents(option)
        options.append(ModifierOption(
            title=option_title,
            upcharge=cents / 100 if cents is not None else None,
        ))

    return ModifierGroup(
        title=title.strip(),
        required=RequirementTier.REQUIRED if (min_permitted or 0) > 0 else RequirementTier.OPTIONAL,
        min=int(min_permitted) if min_permitted is not None else None,
        max=int(max_permitted) if max_permitted is not None else None,
        options=options,
    )


def build_modifier_groups(detail_payloads: Iterable[Any]) -> Dict[str, ModifierGroup]:
    """
    Merge modifier groups across detail payloads, keyed by lowercase title.

    Insertion order follows the first occurrence of each group.
    """
    groups: Dict[str, ModifierGroup] = {}
    for detail_raw in detail_payloads:
        for raw in raw_group_list(detail_raw):
            group = parse_group(raw)
            if group is None:
                continue
            key = group.title.lower()
            if key in groups:
                groups[key].merge(group)
            else:
                groups[key] = group

    logger.debug(f"Derived {len(groups)} modifier groups")
    return groups
