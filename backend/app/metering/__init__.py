"""Talk-time metering: balance inquiry and prioritized deduction."""

from .balance import eligible_entitlements, summarize_balance
from .catalog import DEDUCTION_PRIORITY, PAID_TIERS, TIER_CATALOG, get_tier_definition, renewal_ceilings
from .config import MeteringConfig, load_metering_config
from .deduction import plan_deduction, validate_seconds
from .exceptions import (
    EntitlementLookupFailed,
    EntitlementWriteFailed,
    InsufficientBalance,
    MeteringError,
    MeteringValidationError,
)
from .models import (
    BalanceBucket,
    DeductionEntry,
    DeductionPlan,
    DeductionResult,
    Entitlement,
    EntitlementStatus,
    MeteringAuditEvent,
    MeteringAuditEventType,
    TalkTimeBalance,
    Tier,
)
from .service import (
    EntitlementRepository,
    LockedEntitlements,
    MeteringEventLogger,
    MeteringService,
)

__all__ = [
    "DEDUCTION_PRIORITY",
    "PAID_TIERS",
    "TIER_CATALOG",
    "get_tier_definition",
    "renewal_ceilings",
    "eligible_entitlements",
    "summarize_balance",
    "plan_deduction",
    "validate_seconds",
    "MeteringConfig",
    "load_metering_config",
    "EntitlementLookupFailed",
    "EntitlementWriteFailed",
    "InsufficientBalance",
    "MeteringError",
    "MeteringValidationError",
    "BalanceBucket",
    "DeductionEntry",
    "DeductionPlan",
    "DeductionResult",
    "Entitlement",
    "EntitlementStatus",
    "MeteringAuditEvent",
    "MeteringAuditEventType",
    "TalkTimeBalance",
    "Tier",
    "EntitlementRepository",
    "LockedEntitlements",
    "MeteringEventLogger",
    "MeteringService",
]
