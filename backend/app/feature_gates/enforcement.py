"""Helpers for enforcing feature and credit checks on API and service layers."""
from __future__ import annotations

from typing import Optional

from ..entitlements.models import EntitlementSnapshot
from ..features.registry import FeatureRegistry
from .exceptions import FeatureDisabledError, QuotaExceededError


def require_feature_enabled(registry: FeatureRegistry, feature_key: str) -> None:
    """Ensure a feature is switched on before any entitlement is consulted.

    Parameters
    ----------
    registry:
        The :class:`FeatureRegistry` holding the effective feature snapshot.
    feature_key:
        Feature identifier, with or without the ``feature_`` settings prefix.
        Unknown keys are treated as disabled.
    """

    if registry.is_enabled(feature_key):
        return
    descriptor = registry.describe(feature_key)
    message: Optional[str] = descriptor.coming_soon_message if descriptor else None
    raise FeatureDisabledError.for_feature(feature_key, message)


def require_credit(snapshot: EntitlementSnapshot, feature_key: str) -> None:
    """Raise :class:`QuotaExceededError` when a metered user has no credit left."""

    if not snapshot.can_invoke:
        raise QuotaExceededError.for_feature(feature_key)
