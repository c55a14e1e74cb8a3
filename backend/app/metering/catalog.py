"""Static catalog definitions for talk-time tiers."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional, Tuple

from .models import Entitlement, Tier


@dataclass(frozen=True)
class TierDefinition:
    """Describes how a tier is reported, renewed and prioritized."""

    tier: Tier
    display_name: str
    is_paid: bool = False
    renewal_seconds: Optional[int] = None
    bucket_per_entitlement: bool = False


# Recurring subscriptions drain before purchased add-on minutes; free time is
# always the last resort.
DEDUCTION_PRIORITY: Tuple[Tier, ...] = (
    Tier.SILVER,
    Tier.PREMIUM,
    Tier.GOLD,
    Tier.PLATINUM,
    Tier.ADD_ON,
    Tier.FREE,
)

TIER_CATALOG: Dict[Tier, TierDefinition] = {
    Tier.FREE: TierDefinition(
        tier=Tier.FREE,
        display_name="Free",
        renewal_seconds=900,
    ),
    Tier.SILVER: TierDefinition(
        tier=Tier.SILVER,
        display_name="Silver",
        is_paid=True,
        renewal_seconds=1800,
    ),
    Tier.PREMIUM: TierDefinition(
        tier=Tier.PREMIUM,
        display_name="Premium",
        is_paid=True,
        renewal_seconds=3600,
    ),
    Tier.GOLD: TierDefinition(
        tier=Tier.GOLD,
        display_name="Gold",
        is_paid=True,
    ),
    Tier.PLATINUM: TierDefinition(
        tier=Tier.PLATINUM,
        display_name="Platinum",
        is_paid=True,
    ),
    Tier.ADD_ON: TierDefinition(
        tier=Tier.ADD_ON,
        display_name="Add-on minutes",
        bucket_per_entitlement=True,
    ),
}

PAID_TIERS: FrozenSet[Tier] = frozenset(
    definition.tier for definition in TIER_CATALOG.values() if definition.is_paid
)


def get_tier_definition(tier: Tier) -> TierDefinition:
    try:
        return TIER_CATALOG[tier]
    except KeyError as exc:  # pragma: no cover - enum is closed
        raise LookupError(f"Unknown tier {tier}") from exc


def deduction_rank(tier: Tier) -> int:
    """Position of ``tier`` in the deduction priority order."""

    return DEDUCTION_PRIORITY.index(tier)


def bucket_key(entitlement: Entitlement) -> str:
    """Reporting key: one per tier, except add-ons which get one per purchase."""

    if get_tier_definition(entitlement.tier).bucket_per_entitlement:
        return f"{entitlement.tier.value}_{entitlement.id}"
    return entitlement.tier.value


def renewal_ceilings(overrides: Optional[Dict[Tier, int]] = None) -> Dict[Tier, int]:
    """Return the nightly reset ceiling for every renewable tier."""

    ceilings = {
        definition.tier: definition.renewal_seconds
        for definition in TIER_CATALOG.values()
        if definition.renewal_seconds is not None
    }
    for tier, seconds in (overrides or {}).items():
        if seconds < 0:
            raise ValueError(f"renewal ceiling for {tier.value} must be >= 0")
        ceilings[tier] = seconds
    return ceilings


__all__ = [
    "DEDUCTION_PRIORITY",
    "PAID_TIERS",
    "TIER_CATALOG",
    "TierDefinition",
    "bucket_key",
    "deduction_rank",
    "get_tier_definition",
    "renewal_ceilings",
]
