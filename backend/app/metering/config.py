"""Metering configuration helpers."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

from .models import Tier


@dataclass(frozen=True)
class MeteringConfig:
    """Configuration for the nightly talk-time reset."""

    reset_enabled: bool
    reset_hour_utc: int
    renewal_overrides: Dict[Tier, int] = field(default_factory=dict)


def _to_bool(value: Optional[str], *, default: bool) -> bool:
    if value is None:
        return default
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    return default


def _to_int(value: Optional[str], *, default: Optional[int]) -> Optional[int]:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected integer value, got {value!r}") from exc


_RENEWAL_ENV_KEYS = {
    Tier.FREE: "TALK_TIME_RESET_FREE_SECONDS",
    Tier.SILVER: "TALK_TIME_RESET_SILVER_SECONDS",
    Tier.PREMIUM: "TALK_TIME_RESET_PREMIUM_SECONDS",
}


def load_metering_config(env: Optional[Mapping[str, str]] = None) -> MeteringConfig:
    """Load :class:`MeteringConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    reset_enabled = _to_bool(env_mapping.get("TALK_TIME_RESET_ENABLED"), default=True)
    reset_hour = _to_int(env_mapping.get("TALK_TIME_RESET_HOUR_UTC"), default=0)
    if not 0 <= reset_hour <= 23:
        raise ValueError("TALK_TIME_RESET_HOUR_UTC must be between 0 and 23")

    overrides: Dict[Tier, int] = {}
    for tier, key in _RENEWAL_ENV_KEYS.items():
        seconds = _to_int(env_mapping.get(key), default=None)
        if seconds is None:
            continue
        if seconds < 0:
            raise ValueError(f"{key} must be non-negative")
        overrides[tier] = seconds

    return MeteringConfig(
        reset_enabled=reset_enabled,
        reset_hour_utc=reset_hour,
        renewal_overrides=overrides,
    )
