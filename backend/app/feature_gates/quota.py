"""Credit quota evaluation utilities for feature gating."""
from __future__ import annotations

from dataclasses import dataclass

from ..entitlements.models import EntitlementSnapshot

_DEFAULT_LOW_CREDIT_THRESHOLD = 1


@dataclass(frozen=True)
class QuotaEvaluation:
    """Represents the outcome of a credit quota check."""

    user_id: str
    metered: bool
    credits_remaining: int
    low_credit_threshold: int
    should_warn: bool
    allowed: bool

    def to_dict(self) -> dict[str, int | bool | str]:
        """Serialize the evaluation for logging or API responses."""

        return {
            "user_id": self.user_id,
            "metered": self.metered,
            "credits_remaining": self.credits_remaining,
            "low_credit_threshold": self.low_credit_threshold,
            "should_warn": self.should_warn,
            "allowed": self.allowed,
        }


def evaluate_quota(
    snapshot: EntitlementSnapshot,
    *,
    low_credit_threshold: int = _DEFAULT_LOW_CREDIT_THRESHOLD,
) -> QuotaEvaluation:
    """Determine whether a metered invocation may be attempted and whether to warn."""

    if not snapshot.metered:
        return QuotaEvaluation(
            user_id=snapshot.user_id,
            metered=False,
            credits_remaining=snapshot.credits_remaining,
            low_credit_threshold=low_credit_threshold,
            should_warn=False,
            allowed=True,
        )

    credits = max(snapshot.credits_remaining, 0)
    return QuotaEvaluation(
        user_id=snapshot.user_id,
        metered=True,
        credits_remaining=credits,
        low_credit_threshold=low_credit_threshold,
        should_warn=credits <= low_credit_threshold,
        allowed=credits > 0,
    )
