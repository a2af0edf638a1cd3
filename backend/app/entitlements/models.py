"""Domain models for entitlement resolution."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class SubscriptionStatus(str, Enum):
    """Lifecycle state for subscriptions."""

    ACTIVE = "active"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class PlanType(str, Enum):
    """Subscription plans that grant unmetered access."""

    AI_PRO_MONTHLY = "ai-pro-monthly"
    AI_PRO_ANNUAL = "ai-pro-annual"


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SubscriptionRecord(BaseModel):
    """Subscription row as seen by the resolver."""

    id: str
    user_id: str
    plan_type: PlanType
    status: SubscriptionStatus
    expires_at: datetime
    auto_renew: bool = True

    model_config = ConfigDict(frozen=True)

    def is_active_at(self, now: datetime) -> bool:
        """Active only while the status is ``active`` and the end date lies ahead."""

        return self.status == SubscriptionStatus.ACTIVE and _as_utc(self.expires_at) > _as_utc(now)


class PremiumFlag(BaseModel):
    """User-level premium flag kept for accounts upgraded before subscriptions existed."""

    user_id: str
    is_premium: bool = False
    premium_expires_at: Optional[datetime] = None

    model_config = ConfigDict(frozen=True)

    def is_active_at(self, now: datetime) -> bool:
        if not self.is_premium:
            return False
        if self.premium_expires_at is None:
            return True
        return _as_utc(self.premium_expires_at) > _as_utc(now)


class EntitlementSnapshot(BaseModel):
    """Point-in-time view of a user's access; advisory outside the gateway."""

    user_id: str
    subscription_active: bool
    credits_remaining: int = Field(default=0, ge=0)
    subscription_expires_at: Optional[datetime] = None
    degraded: bool = False
    resolved_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)

    @property
    def metered(self) -> bool:
        return not self.subscription_active

    @property
    def can_invoke(self) -> bool:
        """Whether a metered feature may be attempted right now."""

        return self.subscription_active or self.credits_remaining > 0

    @classmethod
    def fail_closed(cls, user_id: str) -> "EntitlementSnapshot":
        """Snapshot used when entitlement stores are unreachable: metered, no credits."""

        return cls(user_id=user_id, subscription_active=False, credits_remaining=0, degraded=True)


class EntitlementUnavailable(Exception):
    """Raised when the subscription or ledger store cannot be read."""

    def __init__(self, store: str, message: str) -> None:
        super().__init__(message)
        self.store = store
