"""API schemas for entitlement, usage and feature endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..entitlements.models import EntitlementSnapshot
from ..feature_gates.quota import evaluate_quota
from ..features import FeatureDescriptor
from ..ledger import UsageRecord


class EntitlementResponse(BaseModel):
    user_id: str = Field(alias="userId")
    subscription_active: bool = Field(alias="subscriptionActive")
    is_premium: bool = Field(alias="isPremium")
    credits_remaining: int = Field(alias="creditsRemaining")
    subscription_expires_at: Optional[datetime] = Field(alias="subscriptionExpiresAt", default=None)
    metered: bool
    can_invoke: bool = Field(alias="canInvoke")
    low_credit_warning: bool = Field(alias="lowCreditWarning", default=False)
    degraded: bool = False

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_snapshot(cls, snapshot: EntitlementSnapshot) -> "EntitlementResponse":
        evaluation = evaluate_quota(snapshot)
        return cls(
            user_id=snapshot.user_id,
            subscription_active=snapshot.subscription_active,
            is_premium=snapshot.subscription_active,
            credits_remaining=snapshot.credits_remaining,
            subscription_expires_at=snapshot.subscription_expires_at,
            metered=snapshot.metered,
            can_invoke=evaluation.allowed,
            low_credit_warning=evaluation.should_warn,
            degraded=snapshot.degraded,
        )


class UsageResponse(BaseModel):
    user_id: str = Field(alias="userId")
    usage: Dict[str, int]
    total: int
    records: List[UsageRecord] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


class FeatureResponse(BaseModel):
    key: str
    title: str
    domains: List[str]
    group: str
    enabled: bool
    metered: bool
    coming_soon_message: Optional[str] = Field(alias="comingSoonMessage", default=None)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_descriptor(cls, descriptor: FeatureDescriptor) -> "FeatureResponse":
        return cls(
            key=descriptor.key,
            title=descriptor.title,
            domains=[domain.value for domain in descriptor.domains],
            group=descriptor.group.value,
            enabled=descriptor.enabled,
            metered=descriptor.metered,
            coming_soon_message=None if descriptor.enabled else descriptor.coming_soon_message,
        )


class FeatureListResponse(BaseModel):
    features: List[FeatureResponse]

    model_config = ConfigDict(populate_by_name=True)


class CreditAdjustmentRequest(BaseModel):
    user_id: str = Field(alias="userId", min_length=1)
    credits: int = Field(ge=0)
    mode: Literal["grant", "set"] = "grant"
    reason: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class CreditAdjustmentResponse(BaseModel):
    user_id: str = Field(alias="userId")
    credits_remaining: int = Field(alias="creditsRemaining")
    record: UsageRecord

    model_config = ConfigDict(populate_by_name=True)


__all__ = [
    "CreditAdjustmentRequest",
    "CreditAdjustmentResponse",
    "EntitlementResponse",
    "FeatureListResponse",
    "FeatureResponse",
    "UsageResponse",
]
