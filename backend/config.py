"""Quota gateway configuration helpers."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional, Tuple
import os

_LEDGER_BACKENDS = {"memory", "postgres"}
_CHARGE_POLICIES = {"charge_after_success", "charge_before"}


@dataclass(frozen=True)
class GatewayConfig:
    """Configuration for the entitlement and usage-quota gateway."""

    ledger_backend: str
    database_url: str
    signup_bonus_credits: int
    disabled_features: Tuple[str, ...]
    disabled_domains: Tuple[str, ...]
    snapshot_ttl_seconds: int
    feature_refresh_seconds: int
    charge_policy: str
    log_level: str


def _to_int(value: Optional[str], *, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected integer value, got {value!r}") from exc


def _to_list(value: Optional[str]) -> Tuple[str, ...]:
    if not value:
        return ()
    return tuple(item.strip() for item in value.split(",") if item.strip())


def load_gateway_config(env: Optional[Mapping[str, str]] = None) -> GatewayConfig:
    """Load :class:`GatewayConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    ledger_backend = (env_mapping.get("QUOTA_LEDGER_BACKEND") or "memory").strip().lower()
    if ledger_backend not in _LEDGER_BACKENDS:
        raise ValueError(f"Unsupported QUOTA_LEDGER_BACKEND: {ledger_backend!r}")

    charge_policy = (env_mapping.get("QUOTA_CHARGE_POLICY") or "charge_after_success").strip().lower()
    if charge_policy not in _CHARGE_POLICIES:
        raise ValueError(f"Unsupported QUOTA_CHARGE_POLICY: {charge_policy!r}")

    return GatewayConfig(
        ledger_backend=ledger_backend,
        database_url=env_mapping.get("DATABASE_URL", "postgresql://localhost/devops_platform"),
        signup_bonus_credits=max(0, _to_int(env_mapping.get("QUOTA_SIGNUP_BONUS_CREDITS"), default=2)),
        disabled_features=_to_list(env_mapping.get("QUOTA_DISABLED_FEATURES")),
        disabled_domains=tuple(item.lower() for item in _to_list(env_mapping.get("QUOTA_DISABLED_DOMAINS"))),
        snapshot_ttl_seconds=max(1, _to_int(env_mapping.get("QUOTA_SNAPSHOT_TTL_SECONDS"), default=30)),
        feature_refresh_seconds=max(1, _to_int(env_mapping.get("QUOTA_FEATURE_REFRESH_SECONDS"), default=15)),
        charge_policy=charge_policy,
        log_level=(env_mapping.get("LOG_LEVEL") or "INFO").strip().upper(),
    )
