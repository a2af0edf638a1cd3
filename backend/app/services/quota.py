"""Application wiring for the quota gateway."""
from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

from ..entitlements import EntitlementResolver, EntitlementView, InMemorySnapshotCache
from ..entitlements.repository import InMemorySubscriptionRepository, PostgresSubscriptionRepository
from ..features import FeatureRegistry
from ..features.repository import PostgresFeatureConfigRepository
from ..feature_gates import ChargePolicy, QuotaGateway
from ..ledger import InMemoryUsageLedger, UsageLedger, UsageRecord, get_credit_package
from ..ledger.repository import PostgresUsageLedger

try:  # pragma: no cover - resolve config when imported from FastAPI app
    from backend.config import GatewayConfig, load_gateway_config
except ModuleNotFoundError as exc:  # pragma: no cover
    if exc.name != "backend":
        raise
    from ...config import GatewayConfig, load_gateway_config  # type: ignore[no-redef]


logger = logging.getLogger("quota")


@lru_cache(maxsize=1)
def get_gateway_config() -> GatewayConfig:
    return load_gateway_config()


def _uses_postgres() -> bool:
    return get_gateway_config().ledger_backend == "postgres"


@lru_cache(maxsize=1)
def get_usage_ledger() -> UsageLedger:
    if _uses_postgres():
        return PostgresUsageLedger()
    logger.info("Using in-memory usage ledger; balances are lost on restart")
    return InMemoryUsageLedger()


@lru_cache(maxsize=1)
def get_subscription_repository():
    if _uses_postgres():
        return PostgresSubscriptionRepository()
    return InMemorySubscriptionRepository()


@lru_cache(maxsize=1)
def get_feature_registry() -> FeatureRegistry:
    config = get_gateway_config()
    registry = FeatureRegistry(
        config_repository=PostgresFeatureConfigRepository() if _uses_postgres() else None,
        disabled_features=config.disabled_features,
        disabled_domains=config.disabled_domains,
        refresh_interval_seconds=config.feature_refresh_seconds,
    )
    registry.refresh()
    return registry


@lru_cache(maxsize=1)
def get_entitlement_resolver() -> EntitlementResolver:
    return EntitlementResolver(get_subscription_repository(), get_usage_ledger())


@lru_cache(maxsize=1)
def get_entitlement_view() -> EntitlementView:
    return EntitlementView(
        get_entitlement_resolver(),
        get_usage_ledger(),
        InMemorySnapshotCache(),
        ttl_seconds=get_gateway_config().snapshot_ttl_seconds,
    )


@lru_cache(maxsize=1)
def get_quota_gateway() -> QuotaGateway:
    return QuotaGateway(
        get_feature_registry(),
        get_entitlement_resolver(),
        get_usage_ledger(),
        invalidator=get_entitlement_view(),
        policy=ChargePolicy(get_gateway_config().charge_policy),
    )


def grant_signup_bonus(user_id: str) -> Optional[UsageRecord]:
    """Credit a newly created account with the configured signup bonus."""

    credits = get_gateway_config().signup_bonus_credits
    if credits < 1:
        return None
    record = get_usage_ledger().grant(user_id, credits, reason="signup_bonus")
    get_entitlement_view().invalidate_user(user_id)
    return record


def grant_credit_package(user_id: str, package_id: str) -> UsageRecord:
    """Apply the credits of a confirmed purchase; payment itself happens elsewhere."""

    package = get_credit_package(package_id)
    record = get_usage_ledger().grant(user_id, package.credits, reason=f"purchase:{package.package_id}")
    get_entitlement_view().invalidate_user(user_id)
    logger.info("Granted %s credits to user=%s for package %s", package.credits, user_id, package.package_id)
    return record


def reset_quota_services() -> None:
    """Drop cached wiring so the next call re-reads configuration."""

    for factory in (
        get_quota_gateway,
        get_entitlement_view,
        get_entitlement_resolver,
        get_feature_registry,
        get_subscription_repository,
        get_usage_ledger,
        get_gateway_config,
    ):
        factory.cache_clear()


__all__ = [
    "get_entitlement_resolver",
    "get_entitlement_view",
    "get_feature_registry",
    "get_gateway_config",
    "get_quota_gateway",
    "get_subscription_repository",
    "get_usage_ledger",
    "grant_credit_package",
    "grant_signup_bonus",
    "reset_quota_services",
]
