from __future__ import annotations

import pytest

from backend.config import load_gateway_config


def test_defaults_use_in_memory_ledger() -> None:
    config = load_gateway_config({})

    assert config.ledger_backend == "memory"
    assert config.signup_bonus_credits == 2
    assert config.disabled_features == ()
    assert config.snapshot_ttl_seconds == 30
    assert config.feature_refresh_seconds == 15
    assert config.charge_policy == "charge_after_success"
    assert config.log_level == "INFO"


def test_environment_overrides() -> None:
    config = load_gateway_config(
        {
            "QUOTA_LEDGER_BACKEND": "Postgres",
            "DATABASE_URL": "postgresql://db/quota",
            "QUOTA_SIGNUP_BONUS_CREDITS": "5",
            "QUOTA_DISABLED_FEATURES": "api_generation, feature_docker_generation,,",
            "QUOTA_DISABLED_DOMAINS": "Cybersecurity",
            "QUOTA_SNAPSHOT_TTL_SECONDS": "0",
            "QUOTA_FEATURE_REFRESH_SECONDS": "60",
            "QUOTA_CHARGE_POLICY": "charge_before",
            "LOG_LEVEL": "debug",
        }
    )

    assert config.ledger_backend == "postgres"
    assert config.database_url == "postgresql://db/quota"
    assert config.signup_bonus_credits == 5
    assert config.disabled_features == ("api_generation", "feature_docker_generation")
    assert config.disabled_domains == ("cybersecurity",)
    assert config.snapshot_ttl_seconds == 1
    assert config.feature_refresh_seconds == 60
    assert config.charge_policy == "charge_before"
    assert config.log_level == "DEBUG"


@pytest.mark.parametrize(
    "env",
    [
        {"QUOTA_LEDGER_BACKEND": "redis"},
        {"QUOTA_CHARGE_POLICY": "charge_whenever"},
        {"QUOTA_SIGNUP_BONUS_CREDITS": "two"},
    ],
)
def test_invalid_values_are_rejected(env) -> None:
    with pytest.raises(ValueError):
        load_gateway_config(env)
