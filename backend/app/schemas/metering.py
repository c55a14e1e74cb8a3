"""API schemas for metering endpoints."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..metering import BalanceBucket, DeductionEntry, DeductionResult, TalkTimeBalance, Tier


class BalanceBucketOut(BaseModel):
    entitlement_id: str = Field(alias="entitlementId")
    tier: Tier
    seconds: int

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_bucket(cls, bucket: BalanceBucket) -> "BalanceBucketOut":
        return cls(entitlement_id=bucket.entitlement_id, tier=bucket.tier, seconds=bucket.seconds)


class DeductionEntryOut(BaseModel):
    entitlement_id: str = Field(alias="entitlementId")
    tier: Tier
    seconds_deducted: int = Field(alias="secondsDeducted")
    new_balance: int = Field(alias="newBalance")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_entry(cls, entry: DeductionEntry) -> "DeductionEntryOut":
        return cls(
            entitlement_id=entry.entitlement_id,
            tier=entry.tier,
            seconds_deducted=entry.seconds_deducted,
            new_balance=entry.new_balance,
        )


def _breakdown_out(balance: TalkTimeBalance) -> Dict[str, BalanceBucketOut]:
    return {key: BalanceBucketOut.from_bucket(bucket) for key, bucket in balance.breakdown.items()}


class TalkTimeResponse(BaseModel):
    user_id: str = Field(alias="userId")
    total_talk_time_seconds: int = Field(alias="totalTalkTimeSeconds")
    active_subscriptions: Dict[str, BalanceBucketOut] = Field(alias="activeSubscriptions")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_balance(cls, balance: TalkTimeBalance) -> "TalkTimeResponse":
        return cls(
            user_id=balance.user_id,
            total_talk_time_seconds=balance.total_seconds,
            active_subscriptions=_breakdown_out(balance),
        )


class DeductTalkTimeRequest(BaseModel):
    # Validated by the metering service; malformed values must surface as 400.
    seconds_to_deduct: Optional[Any] = Field(alias="secondsToDeduct", default=None)

    model_config = ConfigDict(populate_by_name=True)


class DeductTalkTimeResponse(BaseModel):
    user_id: str = Field(alias="userId")
    seconds_deducted: int = Field(alias="secondsDeducted")
    deductions: List[DeductionEntryOut]
    talk_time_remaining: Dict[str, BalanceBucketOut] = Field(alias="talkTimeRemaining")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_result(cls, result: DeductionResult) -> "DeductTalkTimeResponse":
        return cls(
            user_id=result.plan.user_id,
            seconds_deducted=result.plan.seconds_deducted,
            deductions=[DeductionEntryOut.from_entry(entry) for entry in result.plan.entries],
            talk_time_remaining=_breakdown_out(result.balance),
        )
