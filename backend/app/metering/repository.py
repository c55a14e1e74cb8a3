"""Persistence layer for talk-time entitlements."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from threading import Lock
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence

import psycopg2
import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from backend.app_context import get_conn

from .exceptions import EntitlementLookupFailed, EntitlementWriteFailed
from .models import Entitlement, EntitlementStatus, Tier

logger = logging.getLogger("metering.repository")


@contextmanager
def managed_connection(conn: Optional[PgConnection] = None):
    """Context manager that manages transaction boundaries for optional connections."""

    if conn is not None:
        yield conn, False
        return

    connection = get_conn()
    try:
        yield connection, True
        connection.commit()
    except Exception:
        connection.rollback()
        raise
    finally:
        connection.close()


def _row_to_entitlement(row: dict) -> Entitlement:
    return Entitlement(
        id=str(row["id"]),
        user_id=str(row["user_id"]),
        tier=Tier(row["tier"]),
        remaining_seconds=max(int(row.get("talk_seconds_remaining") or 0), 0),
        status=EntitlementStatus(row["status"]),
        expiration=row.get("subscription_end_date"),
    )


class StagedEntitlements:
    """Locked snapshot of a user's active entitlements plus pending balance writes."""

    def __init__(self, user_id: str, entitlements: Iterable[Entitlement]) -> None:
        self.user_id = user_id
        self._entitlements = tuple(entitlements)
        self._known_ids = {entitlement.id for entitlement in self._entitlements}
        self.pending: Dict[str, int] = {}

    @property
    def entitlements(self) -> Sequence[Entitlement]:
        return self._entitlements

    def set_balances(self, balances: Mapping[str, int]) -> None:
        for entitlement_id, seconds in balances.items():
            if entitlement_id not in self._known_ids:
                raise EntitlementWriteFailed(
                    f"Entitlement {entitlement_id} is not an active entitlement of user {self.user_id}"
                )
            if seconds < 0:
                raise EntitlementWriteFailed(f"Refusing negative balance for entitlement {entitlement_id}")
            self.pending[entitlement_id] = int(seconds)


class PostgresEntitlementRepository:
    """Entitlements stored in the ``subscriptions`` table.

    Deductions hold ``SELECT ... FOR UPDATE`` row locks on the user's active
    rows for the whole read-modify-write, so concurrent deductions for the
    same user run one after another and every write lands in one transaction.
    """

    _COLUMNS = "id, user_id, tier, talk_seconds_remaining, status, subscription_end_date"

    def __init__(self, *, conn: Optional[PgConnection] = None) -> None:
        self._conn = conn

    @contextmanager
    def _cursor(self) -> Iterator[PgCursor]:
        with managed_connection(self._conn) as (connection, managed):
            cursor = connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            try:
                yield cursor
                if managed:
                    connection.commit()
            except Exception:
                if managed:
                    connection.rollback()
                raise
            finally:
                cursor.close()

    def _select_active(self, cursor: PgCursor, user_id: str, *, for_update: bool) -> List[Entitlement]:
        cursor.execute(
            f"""
            SELECT {self._COLUMNS}
            FROM subscriptions
            WHERE user_id = %s AND status = %s
            ORDER BY id
            {"FOR UPDATE" if for_update else ""}
            """,
            (user_id, EntitlementStatus.ACTIVE.value),
        )
        rows = cursor.fetchall() or []
        try:
            return [_row_to_entitlement(row) for row in rows]
        except ValueError as exc:
            logger.exception("Unreadable entitlement row for user %s", user_id)
            raise EntitlementLookupFailed() from exc

    def list_active_entitlements(self, user_id: str) -> Sequence[Entitlement]:
        try:
            with self._cursor() as cursor:
                return self._select_active(cursor, user_id, for_update=False)
        except psycopg2.Error as exc:
            logger.exception("Failed to fetch entitlements for user %s", user_id)
            raise EntitlementLookupFailed() from exc

    @contextmanager
    def lock_active_entitlements(self, user_id: str) -> Iterator[StagedEntitlements]:
        staged: Optional[StagedEntitlements] = None
        try:
            with self._cursor() as cursor:
                staged = StagedEntitlements(user_id, self._select_active(cursor, user_id, for_update=True))
                yield staged
                self._write_balances(cursor, staged)
        except psycopg2.Error as exc:
            if staged is None:
                logger.exception("Failed to lock entitlements for user %s", user_id)
                raise EntitlementLookupFailed() from exc
            logger.exception("Failed to write entitlement balances for user %s", user_id)
            raise EntitlementWriteFailed() from exc

    def _write_balances(self, cursor: PgCursor, staged: StagedEntitlements) -> None:
        for entitlement_id, seconds in staged.pending.items():
            cursor.execute(
                """
                UPDATE subscriptions
                SET talk_seconds_remaining = %s
                WHERE id = %s AND user_id = %s AND status = %s
                """,
                (seconds, entitlement_id, staged.user_id, EntitlementStatus.ACTIVE.value),
            )
            if cursor.rowcount != 1:
                raise EntitlementWriteFailed(
                    f"Entitlement {entitlement_id} changed while locked; deduction rolled back"
                )

    def reset_balances(self, ceilings: Mapping[Tier, int]) -> int:
        updated = 0
        try:
            with self._cursor() as cursor:
                for tier, seconds in ceilings.items():
                    cursor.execute(
                        """
                        UPDATE subscriptions
                        SET talk_seconds_remaining = %s
                        WHERE tier = %s AND status = %s
                        """,
                        (seconds, tier.value, EntitlementStatus.ACTIVE.value),
                    )
                    updated += max(cursor.rowcount, 0)
        except psycopg2.Error as exc:
            logger.exception("Failed to reset talk time balances")
            raise EntitlementWriteFailed("Failed to reset talk time balances") from exc
        return updated


class InMemoryEntitlementRepository:
    """Thread-safe in-memory repository suitable for tests and local development."""

    def __init__(self, entitlements: Iterable[Entitlement] = ()) -> None:
        self._entitlements: Dict[str, Entitlement] = {}
        self._guard = Lock()
        self._user_locks: Dict[str, Lock] = {}
        for entitlement in entitlements:
            self.add(entitlement)

    def add(self, entitlement: Entitlement) -> None:
        with self._guard:
            self._entitlements[entitlement.id] = entitlement

    def get(self, entitlement_id: str) -> Optional[Entitlement]:
        with self._guard:
            return self._entitlements.get(entitlement_id)

    def _lock_for(self, user_id: str) -> Lock:
        with self._guard:
            return self._user_locks.setdefault(user_id, Lock())

    def list_active_entitlements(self, user_id: str) -> Sequence[Entitlement]:
        with self._guard:
            return [
                entitlement
                for entitlement in self._entitlements.values()
                if entitlement.user_id == user_id and entitlement.is_active
            ]

    @contextmanager
    def lock_active_entitlements(self, user_id: str) -> Iterator[StagedEntitlements]:
        with self._lock_for(user_id):
            staged = StagedEntitlements(user_id, self.list_active_entitlements(user_id))
            yield staged
            self._commit(staged)

    def _commit(self, staged: StagedEntitlements) -> None:
        with self._guard:
            for entitlement_id in staged.pending:
                current = self._entitlements.get(entitlement_id)
                if current is None or not current.is_active:
                    raise EntitlementWriteFailed(
                        f"Entitlement {entitlement_id} changed while locked; deduction rolled back"
                    )
            for entitlement_id, seconds in staged.pending.items():
                self._entitlements[entitlement_id] = self._entitlements[entitlement_id].model_copy(
                    update={"remaining_seconds": seconds}
                )

    def reset_balances(self, ceilings: Mapping[Tier, int]) -> int:
        updated = 0
        with self._guard:
            for entitlement_id, entitlement in list(self._entitlements.items()):
                if entitlement.is_active and entitlement.tier in ceilings:
                    self._entitlements[entitlement_id] = entitlement.model_copy(
                        update={"remaining_seconds": ceilings[entitlement.tier]}
                    )
                    updated += 1
        return updated


__all__ = [
    "InMemoryEntitlementRepository",
    "PostgresEntitlementRepository",
    "StagedEntitlements",
    "managed_connection",
]
