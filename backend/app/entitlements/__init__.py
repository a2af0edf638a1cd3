"""Entitlement resolution: subscription status combined with ledger balance."""

from .cache import InMemorySnapshotCache, SnapshotCache
from .models import (
    EntitlementSnapshot,
    EntitlementUnavailable,
    PlanType,
    PremiumFlag,
    SubscriptionRecord,
    SubscriptionStatus,
)
from .reconciliation import EntitlementView, UsageReader
from .service import BalanceReader, EntitlementResolver, SubscriptionRepository

__all__ = [
    "BalanceReader",
    "EntitlementResolver",
    "EntitlementSnapshot",
    "EntitlementUnavailable",
    "EntitlementView",
    "InMemorySnapshotCache",
    "PlanType",
    "PremiumFlag",
    "SnapshotCache",
    "SubscriptionRecord",
    "SubscriptionRepository",
    "SubscriptionStatus",
    "UsageReader",
]
