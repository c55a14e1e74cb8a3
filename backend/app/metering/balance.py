"""Balance aggregation over a user's active entitlements."""
from __future__ import annotations

from typing import Dict, Iterable, List, Tuple

from .catalog import PAID_TIERS, bucket_key, deduction_rank
from .models import BalanceBucket, Entitlement, TalkTimeBalance, Tier


def deduction_sort_key(entitlement: Entitlement) -> Tuple[int, int, float, str]:
    """Priority rank, then soonest expiration (missing expiration last), then id."""

    expiration = entitlement.expiration
    return (
        deduction_rank(entitlement.tier),
        1 if expiration is None else 0,
        expiration.timestamp() if expiration is not None else 0.0,
        entitlement.id,
    )


def has_paid_entitlement(entitlements: Iterable[Entitlement]) -> bool:
    """Whether any active entitlement belongs to a paid tier, even an empty one."""

    return any(entitlement.is_active and entitlement.tier in PAID_TIERS for entitlement in entitlements)


def eligible_entitlements(entitlements: Iterable[Entitlement]) -> List[Entitlement]:
    """Active entitlements with time left, in deduction order.

    Free time is hidden as soon as the user holds any active paid tier.
    """

    active = [entitlement for entitlement in entitlements if entitlement.is_active]
    suppress_free = has_paid_entitlement(active)
    eligible = [
        entitlement
        for entitlement in active
        if entitlement.remaining_seconds > 0
        and not (suppress_free and entitlement.tier == Tier.FREE)
    ]
    return sorted(eligible, key=deduction_sort_key)


def summarize_balance(user_id: str, entitlements: Iterable[Entitlement]) -> TalkTimeBalance:
    """Group usable entitlements into reporting buckets and total them."""

    breakdown: Dict[str, BalanceBucket] = {}
    for entitlement in eligible_entitlements(entitlements):
        key = bucket_key(entitlement)
        existing = breakdown.get(key)
        if existing is None:
            breakdown[key] = BalanceBucket(
                entitlement_id=entitlement.id,
                tier=entitlement.tier,
                seconds=entitlement.remaining_seconds,
            )
        else:
            breakdown[key] = existing.model_copy(
                update={"seconds": existing.seconds + entitlement.remaining_seconds}
            )

    total = sum(bucket.seconds for bucket in breakdown.values())
    return TalkTimeBalance(user_id=user_id, total_seconds=total, breakdown=breakdown)


__all__ = [
    "deduction_sort_key",
    "eligible_entitlements",
    "has_paid_entitlement",
    "summarize_balance",
]
