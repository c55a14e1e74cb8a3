"""Core service coordinating balance inquiries and talk-time deductions."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import ContextManager, Dict, Mapping, Optional, Protocol, Sequence

from .balance import summarize_balance
from .catalog import renewal_ceilings
from .deduction import plan_deduction, validate_seconds
from .exceptions import InsufficientBalance, MeteringValidationError
from .models import (
    DeductionPlan,
    DeductionResult,
    Entitlement,
    MeteringAuditEvent,
    MeteringAuditEventType,
    TalkTimeBalance,
    Tier,
)

logger = logging.getLogger("metering")


class LockedEntitlements(Protocol):
    """A user's active entitlements held exclusively for one read-modify-write."""

    @property
    def entitlements(self) -> Sequence[Entitlement]:
        ...

    def set_balances(self, balances: Mapping[str, int]) -> None:
        """Stage new balances; they are committed together when the lock is released cleanly."""


class EntitlementRepository(Protocol):
    """Persistence operations required by the metering service."""

    def list_active_entitlements(self, user_id: str) -> Sequence[Entitlement]:
        ...

    def lock_active_entitlements(self, user_id: str) -> ContextManager[LockedEntitlements]:
        ...

    def reset_balances(self, ceilings: Mapping[Tier, int]) -> int:
        ...


class MeteringEventLogger(Protocol):
    """Captures structured metering audit events."""

    def log(self, event: MeteringAuditEvent) -> None:
        ...


@dataclass(slots=True)
class MeteringService:
    """Computes remaining talk-time and applies all-or-nothing deductions."""

    repository: EntitlementRepository
    event_logger: MeteringEventLogger
    renewal_overrides: Optional[Dict[Tier, int]] = None

    def get_active_balance(self, user_id: str) -> TalkTimeBalance:
        _require_user(user_id)
        entitlements = self.repository.list_active_entitlements(user_id)
        return summarize_balance(user_id, entitlements)

    def deduct(self, user_id: str, seconds_requested: object) -> DeductionResult:
        seconds = validate_seconds(seconds_requested)
        _require_user(user_id)

        if seconds == 0:
            empty_plan = DeductionPlan(user_id=user_id, seconds_requested=0)
            return DeductionResult(plan=empty_plan, balance=self.get_active_balance(user_id))

        try:
            with self.repository.lock_active_entitlements(user_id) as locked:
                entitlements = list(locked.entitlements)
                plan = plan_deduction(user_id, seconds, entitlements)
                if not plan.is_satisfied:
                    raise InsufficientBalance(plan)
                locked.set_balances(plan.new_balances())
        except InsufficientBalance as exc:
            logger.info(
                "Insufficient talk time user=%s requested=%s available=%s",
                user_id,
                exc.seconds_requested,
                exc.seconds_available,
            )
            self.event_logger.log(
                MeteringAuditEvent(
                    event_type=MeteringAuditEventType.TALK_TIME_INSUFFICIENT,
                    user_id=user_id,
                    metadata={
                        "seconds_requested": str(exc.seconds_requested),
                        "seconds_available": str(exc.seconds_available),
                    },
                )
            )
            raise

        logger.info(
            "Deducted talk time user=%s seconds=%s entries=%s",
            user_id,
            seconds,
            len(plan.entries),
        )
        self.event_logger.log(
            MeteringAuditEvent(
                event_type=MeteringAuditEventType.TALK_TIME_DEDUCTED,
                user_id=user_id,
                metadata={
                    "seconds_deducted": str(plan.seconds_deducted),
                    "entitlement_ids": ",".join(entry.entitlement_id for entry in plan.entries),
                },
            )
        )
        return DeductionResult(plan=plan, balance=_balance_after(user_id, entitlements, plan))

    def reset_talk_time(self) -> int:
        """Reset every renewable active entitlement to its tier ceiling."""

        ceilings = renewal_ceilings(self.renewal_overrides)
        updated = self.repository.reset_balances(ceilings)
        self.event_logger.log(
            MeteringAuditEvent(
                event_type=MeteringAuditEventType.TALK_TIME_RESET,
                metadata={
                    "entitlements_reset": str(updated),
                    "tiers": ",".join(sorted(tier.value for tier in ceilings)),
                },
            )
        )
        return updated


def _require_user(user_id: str) -> None:
    if not user_id:
        raise MeteringValidationError("Authenticated user id is required", code="missing_identity")


def _balance_after(
    user_id: str,
    entitlements: Sequence[Entitlement],
    plan: DeductionPlan,
) -> TalkTimeBalance:
    new_balances = plan.new_balances()
    updated = [
        entitlement.model_copy(update={"remaining_seconds": new_balances[entitlement.id]})
        if entitlement.id in new_balances
        else entitlement
        for entitlement in entitlements
    ]
    return summarize_balance(user_id, updated)


__all__ = [
    "EntitlementRepository",
    "LockedEntitlements",
    "MeteringEventLogger",
    "MeteringService",
]
