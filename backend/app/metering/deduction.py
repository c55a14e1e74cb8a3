"""Deduction planning across prioritized entitlements."""
from __future__ import annotations

import numbers
from typing import Iterable, List

from .balance import eligible_entitlements
from .exceptions import MeteringValidationError
from .models import DeductionEntry, DeductionPlan, Entitlement


def validate_seconds(value: object) -> int:
    """Coerce a requested number of seconds, rejecting anything malformed.

    Integral floats (``10.0``) are accepted because JSON clients send them.
    """

    if value is None:
        raise MeteringValidationError("secondsToDeduct is required")
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise MeteringValidationError("secondsToDeduct must be an integer")
    if isinstance(value, numbers.Integral):
        seconds = int(value)
    else:
        as_float = float(value)
        if not as_float.is_integer():
            raise MeteringValidationError("secondsToDeduct must be an integer")
        seconds = int(as_float)
    if seconds < 0:
        raise MeteringValidationError("secondsToDeduct must be >= 0")
    return seconds


def plan_deduction(
    user_id: str,
    seconds_requested: int,
    entitlements: Iterable[Entitlement],
) -> DeductionPlan:
    """Walk eligible entitlements in priority order until the request is covered.

    The returned plan may fall short of ``seconds_requested``; callers check
    :attr:`DeductionPlan.is_satisfied` before persisting anything.
    """

    still_needed = seconds_requested
    entries: List[DeductionEntry] = []
    for entitlement in eligible_entitlements(entitlements):
        if still_needed == 0:
            break
        taken = min(entitlement.remaining_seconds, still_needed)
        entries.append(
            DeductionEntry(
                entitlement_id=entitlement.id,
                tier=entitlement.tier,
                seconds_deducted=taken,
                new_balance=entitlement.remaining_seconds - taken,
            )
        )
        still_needed -= taken

    return DeductionPlan(
        user_id=user_id,
        seconds_requested=seconds_requested,
        entries=tuple(entries),
    )


__all__ = ["plan_deduction", "validate_seconds"]
