"""Error taxonomy for talk-time metering."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from fastapi import status
from fastapi.responses import JSONResponse

from .models import DeductionPlan


@dataclass
class MeteringError(Exception):
    """Represents a metering failure surfaced to API callers."""

    code: str
    message: str
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail: Optional[Mapping[str, Any]] = None

    def __post_init__(self) -> None:
        base_detail: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.detail:
            base_detail.update(self.detail)
        object.__setattr__(self, "_payload", base_detail)
        super().__init__(self.message)

    @property
    def payload(self) -> Mapping[str, Any]:
        """Serialized representation suitable for JSON responses."""

        return self._payload

    def to_response(self) -> JSONResponse:
        """Convert the domain error into a JSON response with its status code."""

        return JSONResponse(status_code=self.status_code, content=dict(self.payload))


class MeteringValidationError(MeteringError):
    """Malformed request: bad seconds value or missing identity."""

    def __init__(self, message: str, *, code: str = "invalid_seconds_to_deduct") -> None:
        super().__init__(code=code, message=message, status_code=status.HTTP_400_BAD_REQUEST)


class InsufficientBalance(MeteringError):
    """The user's eligible entitlements cannot cover the request.

    Carries the would-be plan so callers can see how much was found. Nothing
    from that plan has been written.
    """

    def __init__(self, plan: DeductionPlan) -> None:
        self.plan = plan
        super().__init__(
            code="insufficient_talk_time",
            message="Insufficient talk time",
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "secondsRequested": plan.seconds_requested,
                "secondsAvailable": plan.seconds_deducted,
                "deductions": [
                    {
                        "entitlementId": entry.entitlement_id,
                        "tier": entry.tier.value,
                        "secondsDeducted": entry.seconds_deducted,
                        "newBalance": entry.new_balance,
                    }
                    for entry in plan.entries
                ],
            },
        )

    @property
    def seconds_requested(self) -> int:
        return self.plan.seconds_requested

    @property
    def seconds_available(self) -> int:
        return self.plan.seconds_deducted


class EntitlementLookupFailed(MeteringError):
    """Reading entitlements from the store failed."""

    def __init__(self, message: str = "Failed to fetch entitlements") -> None:
        super().__init__(code="entitlement_lookup_failed", message=message)


class EntitlementWriteFailed(MeteringError):
    """Persisting new balances failed; no balance was changed."""

    def __init__(self, message: str = "Failed to update entitlements") -> None:
        super().__init__(code="entitlement_write_failed", message=message)


__all__ = [
    "EntitlementLookupFailed",
    "EntitlementWriteFailed",
    "InsufficientBalance",
    "MeteringError",
    "MeteringValidationError",
]
