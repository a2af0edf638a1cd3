"""Subscription and premium status stores."""
from __future__ import annotations

from typing import Dict, List, Optional

from ..persistence import PostgresRepository
from .models import PlanType, PremiumFlag, SubscriptionRecord, SubscriptionStatus


def _row_to_subscription(row: dict) -> SubscriptionRecord:
    return SubscriptionRecord(
        id=str(row["id"]),
        user_id=str(row["user_id"]),
        plan_type=PlanType(row["plan_type"]),
        status=SubscriptionStatus(row["status"]),
        expires_at=row["end_date"],
        auto_renew=bool(row.get("auto_renew", True)),
    )


class PostgresSubscriptionRepository(PostgresRepository):
    """Reads ``subscriptions`` rows and the legacy ``users.is_premium`` flag."""

    def get_latest_subscription(self, user_id: str) -> Optional[SubscriptionRecord]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT id, user_id, plan_type, status, end_date, auto_renew
                FROM subscriptions
                WHERE user_id = %s AND status = %s
                ORDER BY end_date DESC
                LIMIT 1
                """,
                (user_id, SubscriptionStatus.ACTIVE.value),
            )
            row = cursor.fetchone()
            return _row_to_subscription(row) if row else None

    def get_premium_flag(self, user_id: str) -> Optional[PremiumFlag]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT id, is_premium, premium_expires_at
                FROM users
                WHERE id = %s
                LIMIT 1
                """,
                (user_id,),
            )
            row = cursor.fetchone()
            if not row:
                return None
            return PremiumFlag(
                user_id=str(row["id"]),
                is_premium=bool(row["is_premium"]),
                premium_expires_at=row.get("premium_expires_at"),
            )


class InMemorySubscriptionRepository:
    """Subscription store for local development and the in-memory backend."""

    def __init__(self) -> None:
        self._subscriptions: Dict[str, List[SubscriptionRecord]] = {}
        self._premium_flags: Dict[str, PremiumFlag] = {}

    def add_subscription(self, record: SubscriptionRecord) -> None:
        self._subscriptions.setdefault(record.user_id, []).append(record)

    def set_premium_flag(self, flag: PremiumFlag) -> None:
        self._premium_flags[flag.user_id] = flag

    def get_latest_subscription(self, user_id: str) -> Optional[SubscriptionRecord]:
        active = [
            record
            for record in self._subscriptions.get(user_id, ())
            if record.status == SubscriptionStatus.ACTIVE
        ]
        if not active:
            return None
        return max(active, key=lambda record: record.expires_at)

    def get_premium_flag(self, user_id: str) -> Optional[PremiumFlag]:
        return self._premium_flags.get(user_id)


__all__ = ["InMemorySubscriptionRepository", "PostgresSubscriptionRepository"]
