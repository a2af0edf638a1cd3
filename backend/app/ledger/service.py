"""Usage ledger contract and the in-process implementation."""
from __future__ import annotations

import logging
from collections import Counter, defaultdict
from datetime import datetime, timezone
from threading import Lock
from typing import Callable, Dict, List, Mapping, Optional, Protocol, Sequence

from .models import (
    ChargeResult,
    Charged,
    InsufficientBalance,
    UsageOutcome,
    UsageRecord,
)

logger = logging.getLogger(__name__)


class UsageLedger(Protocol):
    """Authoritative per-user credit balance and usage audit trail.

    ``try_charge`` is the only operation that consumes credit. It must behave
    as a compare-and-decrement that is serialized with every other charge for
    the same user.
    """

    def balance(self, user_id: str) -> int:
        ...

    def try_charge(self, user_id: str, feature_key: str) -> ChargeResult:
        ...

    def refund(self, user_id: str, feature_key: str) -> UsageRecord:
        ...

    def record_failure(self, user_id: str, feature_key: str, *, reason: Optional[str] = None) -> UsageRecord:
        ...

    def grant(self, user_id: str, credits: int, *, reason: str) -> UsageRecord:
        ...

    def set_balance(self, user_id: str, credits: int, *, reason: str) -> UsageRecord:
        ...

    def list_records(self, user_id: str, *, limit: int = 50) -> Sequence[UsageRecord]:
        ...

    def usage_counts(self, user_id: str) -> Mapping[str, int]:
        ...


class InMemoryUsageLedger:
    """Single-process ledger guarding each user's balance with its own mutex.

    Meant for tests and local development: balances live only in memory and
    the per-user lock table grows with every user seen, never shrinking.
    """

    def __init__(
        self,
        balances: Optional[Mapping[str, int]] = None,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._balances: Dict[str, int] = {}
        self._records: Dict[str, List[UsageRecord]] = defaultdict(list)
        self._locks: Dict[str, Lock] = {}
        self._locks_guard = Lock()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        for user_id, credits in (balances or {}).items():
            if credits < 0:
                raise ValueError("balance must be >= 0")
            self._balances[user_id] = credits

    def _lock_for(self, user_id: str) -> Lock:
        with self._locks_guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = self._locks[user_id] = Lock()
            return lock

    def _append(self, record: UsageRecord) -> UsageRecord:
        self._records[record.user_id].append(record)
        return record

    def balance(self, user_id: str) -> int:
        with self._lock_for(user_id):
            return self._balances.get(user_id, 0)

    def try_charge(self, user_id: str, feature_key: str) -> ChargeResult:
        with self._lock_for(user_id):
            current = self._balances.get(user_id, 0)
            if current <= 0:
                return InsufficientBalance(user_id=user_id, feature_key=feature_key, balance=current)
            remaining = current - 1
            self._balances[user_id] = remaining
            record = self._append(
                UsageRecord(
                    user_id=user_id,
                    feature_key=feature_key,
                    outcome=UsageOutcome.CHARGED,
                    credits_delta=-1,
                    balance_after=remaining,
                    occurred_at=self._clock(),
                )
            )
        logger.debug("Charged user=%s feature=%s balance=%s", user_id, feature_key, remaining)
        return Charged(record=record, balance=remaining)

    def refund(self, user_id: str, feature_key: str) -> UsageRecord:
        with self._lock_for(user_id):
            if user_id not in self._balances:
                logger.warning("Refund for user=%s without a ledger balance", user_id)
            restored = self._balances.get(user_id, 0) + 1
            self._balances[user_id] = restored
            record = self._append(
                UsageRecord(
                    user_id=user_id,
                    feature_key=feature_key,
                    outcome=UsageOutcome.REFUNDED,
                    credits_delta=1,
                    balance_after=restored,
                    occurred_at=self._clock(),
                )
            )
        logger.debug("Refunded user=%s feature=%s balance=%s", user_id, feature_key, restored)
        return record

    def record_failure(self, user_id: str, feature_key: str, *, reason: Optional[str] = None) -> UsageRecord:
        with self._lock_for(user_id):
            return self._append(
                UsageRecord(
                    user_id=user_id,
                    feature_key=feature_key,
                    outcome=UsageOutcome.FAILED_NOT_CHARGED,
                    balance_after=self._balances.get(user_id, 0),
                    reason=reason,
                    occurred_at=self._clock(),
                )
            )

    def grant(self, user_id: str, credits: int, *, reason: str) -> UsageRecord:
        if credits < 1:
            raise ValueError("credits must be >= 1")
        with self._lock_for(user_id):
            updated = self._balances.get(user_id, 0) + credits
            self._balances[user_id] = updated
            record = self._append(
                UsageRecord(
                    user_id=user_id,
                    outcome=UsageOutcome.GRANTED,
                    credits_delta=credits,
                    balance_after=updated,
                    reason=reason,
                    occurred_at=self._clock(),
                )
            )
        logger.debug("Granted user=%s credits=%s reason=%s", user_id, credits, reason)
        return record

    def set_balance(self, user_id: str, credits: int, *, reason: str) -> UsageRecord:
        if credits < 0:
            raise ValueError("credits must be >= 0")
        with self._lock_for(user_id):
            previous = self._balances.get(user_id, 0)
            self._balances[user_id] = credits
            return self._append(
                UsageRecord(
                    user_id=user_id,
                    outcome=UsageOutcome.GRANTED,
                    credits_delta=credits - previous,
                    balance_after=credits,
                    reason=reason,
                    occurred_at=self._clock(),
                )
            )

    def list_records(self, user_id: str, *, limit: int = 50) -> list[UsageRecord]:
        with self._lock_for(user_id):
            records = list(self._records.get(user_id, ()))
        return list(reversed(records))[:limit]

    def usage_counts(self, user_id: str) -> Dict[str, int]:
        with self._lock_for(user_id):
            records = list(self._records.get(user_id, ()))
        counts: Counter[str] = Counter()
        for record in records:
            if record.feature_key is None:
                continue
            if record.outcome == UsageOutcome.CHARGED:
                counts[record.feature_key] += 1
            elif record.outcome == UsageOutcome.REFUNDED:
                counts[record.feature_key] -= 1
        return {key: value for key, value in counts.items() if value > 0}


__all__ = ["InMemoryUsageLedger", "UsageLedger"]
