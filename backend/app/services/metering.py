"""Application wiring for the metering service."""
from __future__ import annotations

import logging
from functools import lru_cache

from ..metering import MeteringAuditEvent, MeteringEventLogger, MeteringService, load_metering_config
from ..metering.repository import PostgresEntitlementRepository


logger = logging.getLogger("metering")


class LoggingMeteringEventLogger(MeteringEventLogger):
    """Forwards metering audit events to the application logger."""

    def log(self, event: MeteringAuditEvent) -> None:
        logger.info(
            "Metering event %s user=%s metadata=%s",
            event.event_type.value,
            event.user_id,
            event.metadata,
        )


@lru_cache(maxsize=1)
def get_metering_service() -> MeteringService:
    config = load_metering_config()
    return MeteringService(
        repository=PostgresEntitlementRepository(),
        event_logger=LoggingMeteringEventLogger(),
        renewal_overrides=dict(config.renewal_overrides),
    )


__all__ = ["get_metering_service", "LoggingMeteringEventLogger"]
