"""Domain models for talk-time entitlements and deductions."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Tier(str, Enum):
    """Canonical entitlement tiers."""

    FREE = "free"
    SILVER = "silver"
    PREMIUM = "premium"
    GOLD = "gold"
    PLATINUM = "platinum"
    ADD_ON = "add_on"


class EntitlementStatus(str, Enum):
    """Lifecycle state for entitlements."""

    ACTIVE = "active"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class Entitlement(BaseModel):
    """A pool of remaining talk-time owned by a user under a single tier."""

    id: str
    user_id: str
    tier: Tier
    remaining_seconds: int = Field(ge=0)
    status: EntitlementStatus = EntitlementStatus.ACTIVE
    expiration: Optional[datetime] = None

    model_config = ConfigDict(frozen=True)

    @field_validator("expiration")
    @classmethod
    def _ensure_timezone(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def is_active(self) -> bool:
        return self.status == EntitlementStatus.ACTIVE


class DeductionEntry(BaseModel):
    """Seconds taken from one entitlement during a deduction."""

    entitlement_id: str
    tier: Tier
    seconds_deducted: int = Field(ge=0)
    new_balance: int = Field(ge=0)

    model_config = ConfigDict(frozen=True)


class DeductionPlan(BaseModel):
    """Ordered record of how a request was spread across entitlements."""

    user_id: str
    seconds_requested: int = Field(ge=0)
    entries: Sequence[DeductionEntry] = Field(default_factory=tuple)

    model_config = ConfigDict(frozen=True)

    @property
    def seconds_deducted(self) -> int:
        return sum(entry.seconds_deducted for entry in self.entries)

    @property
    def seconds_remaining_to_cover(self) -> int:
        return self.seconds_requested - self.seconds_deducted

    @property
    def is_satisfied(self) -> bool:
        return self.seconds_remaining_to_cover == 0

    def new_balances(self) -> Dict[str, int]:
        """Map each touched entitlement id to its balance after the plan."""

        return {entry.entitlement_id: entry.new_balance for entry in self.entries}


class BalanceBucket(BaseModel):
    """Reported balance for a tier, or for a single add-on purchase."""

    entitlement_id: str
    tier: Tier
    seconds: int = Field(ge=0)

    model_config = ConfigDict(frozen=True)


class TalkTimeBalance(BaseModel):
    """Usable talk-time for a user, grouped into buckets."""

    user_id: str
    total_seconds: int = Field(ge=0)
    breakdown: Dict[str, BalanceBucket] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)


class DeductionResult(BaseModel):
    """Committed deduction plan together with the balance left afterwards."""

    plan: DeductionPlan
    balance: TalkTimeBalance

    model_config = ConfigDict(frozen=True)


class MeteringAuditEventType(str, Enum):
    """Audit event categories emitted by the metering subsystem."""

    TALK_TIME_DEDUCTED = "talk_time_deducted"
    TALK_TIME_INSUFFICIENT = "talk_time_insufficient"
    TALK_TIME_RESET = "talk_time_reset"


class MeteringAuditEvent(BaseModel):
    """Structured audit event for telemetry."""

    event_type: MeteringAuditEventType
    user_id: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)
