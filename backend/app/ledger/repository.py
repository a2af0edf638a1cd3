"""PostgreSQL implementation of the usage ledger."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Dict, Iterable, Optional

import psycopg2
from psycopg2.extensions import cursor as PgCursor

from ..persistence import PostgresRepository
from .models import (
    ChargeResult,
    Charged,
    InsufficientBalance,
    LedgerUnavailable,
    UsageOutcome,
    UsageRecord,
)

logger = logging.getLogger(__name__)

_INSERT_RECORD = """
    INSERT INTO usage_records (
        record_id,
        user_id,
        feature_key,
        outcome,
        credits_delta,
        balance_after,
        reason
    )
    VALUES (%(record_id)s, %(user_id)s, %(feature_key)s, %(outcome)s,
            %(credits_delta)s, %(balance_after)s, %(reason)s)
    RETURNING *
"""


def _row_to_usage_record(row: dict) -> UsageRecord:
    return UsageRecord(
        record_id=row["record_id"],
        user_id=str(row["user_id"]),
        feature_key=row.get("feature_key"),
        outcome=UsageOutcome(row["outcome"]),
        credits_delta=int(row.get("credits_delta") or 0),
        balance_after=row.get("balance_after"),
        reason=row.get("reason"),
        occurred_at=row["occurred_at"],
    )


class PostgresUsageLedger(PostgresRepository):
    """Ledger backed by ``users.credits`` and the ``usage_records`` table.

    Each charge is a single conditional ``UPDATE ... WHERE credits > 0`` so the
    row lock taken by PostgreSQL serializes concurrent charges for one user
    while leaving other users untouched.
    """

    @contextmanager
    def _ledger_cursor(self) -> Iterable[PgCursor]:
        try:
            with self._cursor() as cursor:
                yield cursor
        except psycopg2.Error as exc:
            raise LedgerUnavailable(f"Usage ledger store error: {exc}") from exc

    def _insert_record(self, cursor: PgCursor, record: UsageRecord) -> UsageRecord:
        cursor.execute(
            _INSERT_RECORD,
            {
                "record_id": record.record_id,
                "user_id": record.user_id,
                "feature_key": record.feature_key,
                "outcome": record.outcome.value,
                "credits_delta": record.credits_delta,
                "balance_after": record.balance_after,
                "reason": record.reason,
            },
        )
        row = cursor.fetchone()
        if not row:
            raise RuntimeError("Failed to persist usage record")
        return _row_to_usage_record(row)

    def balance(self, user_id: str) -> int:
        with self._ledger_cursor() as cursor:
            cursor.execute("SELECT credits FROM users WHERE id = %s", (user_id,))
            row = cursor.fetchone()
            return int(row["credits"]) if row else 0

    def try_charge(self, user_id: str, feature_key: str) -> ChargeResult:
        with self._ledger_cursor() as cursor:
            cursor.execute(
                """
                UPDATE users
                SET credits = credits - 1
                WHERE id = %s AND credits > 0
                RETURNING credits
                """,
                (user_id,),
            )
            row = cursor.fetchone()
            if not row:
                return InsufficientBalance(user_id=user_id, feature_key=feature_key)
            remaining = int(row["credits"])
            record = self._insert_record(
                cursor,
                UsageRecord(
                    user_id=user_id,
                    feature_key=feature_key,
                    outcome=UsageOutcome.CHARGED,
                    credits_delta=-1,
                    balance_after=remaining,
                ),
            )
        logger.debug("Charged user=%s feature=%s balance=%s", user_id, feature_key, remaining)
        return Charged(record=record, balance=remaining)

    def _increment(self, cursor: PgCursor, user_id: str, credits: int) -> Optional[int]:
        cursor.execute(
            """
            UPDATE users
            SET credits = credits + %s
            WHERE id = %s
            RETURNING credits
            """,
            (credits, user_id),
        )
        row = cursor.fetchone()
        return int(row["credits"]) if row else None

    def refund(self, user_id: str, feature_key: str) -> UsageRecord:
        with self._ledger_cursor() as cursor:
            restored = self._increment(cursor, user_id, 1)
            if restored is None:
                logger.warning("Refund for user=%s without a ledger balance", user_id)
            record = self._insert_record(
                cursor,
                UsageRecord(
                    user_id=user_id,
                    feature_key=feature_key,
                    outcome=UsageOutcome.REFUNDED,
                    credits_delta=1 if restored is not None else 0,
                    balance_after=restored,
                ),
            )
        logger.debug("Refunded user=%s feature=%s balance=%s", user_id, feature_key, restored)
        return record

    def record_failure(self, user_id: str, feature_key: str, *, reason: Optional[str] = None) -> UsageRecord:
        with self._ledger_cursor() as cursor:
            return self._insert_record(
                cursor,
                UsageRecord(
                    user_id=user_id,
                    feature_key=feature_key,
                    outcome=UsageOutcome.FAILED_NOT_CHARGED,
                    reason=reason,
                ),
            )

    def grant(self, user_id: str, credits: int, *, reason: str) -> UsageRecord:
        if credits < 1:
            raise ValueError("credits must be >= 1")
        with self._ledger_cursor() as cursor:
            updated = self._increment(cursor, user_id, credits)
            if updated is None:
                raise LookupError(f"Unknown user: {user_id}")
            return self._insert_record(
                cursor,
                UsageRecord(
                    user_id=user_id,
                    outcome=UsageOutcome.GRANTED,
                    credits_delta=credits,
                    balance_after=updated,
                    reason=reason,
                ),
            )

    def set_balance(self, user_id: str, credits: int, *, reason: str) -> UsageRecord:
        if credits < 0:
            raise ValueError("credits must be >= 0")
        with self._ledger_cursor() as cursor:
            cursor.execute(
                """
                UPDATE users AS u
                SET credits = %s
                FROM (SELECT id, credits FROM users WHERE id = %s FOR UPDATE) AS prev
                WHERE u.id = prev.id
                RETURNING prev.credits AS previous_credits
                """,
                (credits, user_id),
            )
            row = cursor.fetchone()
            if not row:
                raise LookupError(f"Unknown user: {user_id}")
            return self._insert_record(
                cursor,
                UsageRecord(
                    user_id=user_id,
                    outcome=UsageOutcome.GRANTED,
                    credits_delta=credits - int(row["previous_credits"]),
                    balance_after=credits,
                    reason=reason,
                ),
            )

    def list_records(self, user_id: str, *, limit: int = 50) -> list[UsageRecord]:
        with self._ledger_cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM usage_records
                WHERE user_id = %s
                ORDER BY occurred_at DESC
                LIMIT %s
                """,
                (user_id, limit),
            )
            rows = cursor.fetchall() or []
            return [_row_to_usage_record(row) for row in rows]

    def usage_counts(self, user_id: str) -> Dict[str, int]:
        with self._ledger_cursor() as cursor:
            cursor.execute(
                """
                SELECT feature_key,
                       SUM(CASE WHEN outcome = %s THEN 1 WHEN outcome = %s THEN -1 ELSE 0 END) AS used
                FROM usage_records
                WHERE user_id = %s AND feature_key IS NOT NULL
                GROUP BY feature_key
                """,
                (UsageOutcome.CHARGED.value, UsageOutcome.REFUNDED.value, user_id),
            )
            rows = cursor.fetchall() or []
            return {row["feature_key"]: int(row["used"]) for row in rows if int(row["used"] or 0) > 0}


__all__ = ["PostgresUsageLedger"]
