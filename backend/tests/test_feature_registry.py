from __future__ import annotations

from typing import List, Sequence

import pytest

from backend.app.features import (
    FEATURE_CATALOG,
    Domain,
    DomainConfig,
    FeatureOverride,
    FeatureRegistry,
    normalize_feature_key,
)


class FakeFeatureConfigRepository:
    def __init__(
        self,
        overrides: Sequence[FeatureOverride] = (),
        domain_configs: Sequence[DomainConfig] = (),
    ) -> None:
        self.overrides: List[FeatureOverride] = list(overrides)
        self.domain_configs: List[DomainConfig] = list(domain_configs)
        self.fail = False

    def list_feature_overrides(self) -> List[FeatureOverride]:
        if self.fail:
            raise ConnectionError("settings store offline")
        return list(self.overrides)

    def list_domain_configs(self) -> List[DomainConfig]:
        return list(self.domain_configs)


def test_catalog_features_are_enabled_by_default() -> None:
    registry = FeatureRegistry()

    assert registry.is_enabled("api_generation") is True
    assert registry.is_enabled("docker_generation") is True
    assert registry.is_enabled("spark_generation") is False


def test_unknown_feature_is_disabled() -> None:
    registry = FeatureRegistry()

    assert registry.is_enabled("does_not_exist") is False
    assert registry.describe("does_not_exist") is None


def test_settings_prefix_is_accepted() -> None:
    registry = FeatureRegistry()

    assert normalize_feature_key("feature_api_generation") == "api_generation"
    assert registry.is_enabled("feature_api_generation") is True


def test_operator_override_turns_feature_off_after_refresh() -> None:
    repository = FakeFeatureConfigRepository(
        overrides=[FeatureOverride(key="feature_docker_generation", enabled=False)]
    )
    registry = FeatureRegistry(config_repository=repository)

    assert registry.is_enabled("docker_generation") is True

    registry.refresh()

    assert registry.is_enabled("docker_generation") is False
    assert registry.is_enabled("api_generation") is True


def test_override_can_enable_coming_soon_feature() -> None:
    repository = FakeFeatureConfigRepository(
        overrides=[FeatureOverride(key="spark_generation", enabled=True)]
    )
    registry = FeatureRegistry(config_repository=repository)
    registry.refresh()

    assert registry.is_enabled("spark_generation") is True


def test_forced_off_features_win_over_overrides() -> None:
    repository = FakeFeatureConfigRepository(
        overrides=[FeatureOverride(key="ai_assistance", enabled=True)]
    )
    registry = FeatureRegistry(config_repository=repository, disabled_features=["feature_ai_assistance"])
    registry.refresh()

    assert registry.is_enabled("ai_assistance") is False


def test_disabled_domain_uses_coming_soon_message() -> None:
    repository = FakeFeatureConfigRepository(
        domain_configs=[
            DomainConfig(
                domain=Domain.CYBERSECURITY,
                enabled=False,
                coming_soon_message="Security tools launch next month.",
            )
        ]
    )
    registry = FeatureRegistry(config_repository=repository)
    registry.refresh()

    scanner = registry.describe("vulnerability_scanner")
    assert scanner is not None
    assert scanner.enabled is False
    assert scanner.coming_soon_message == "Security tools launch next month."
    # Shared with devops, which is still on.
    assert registry.is_enabled("secret_scanner") is True


def test_feature_disabled_only_when_all_domains_are_off() -> None:
    registry = FeatureRegistry(disabled_domains=["devops", "data-engineering"])

    assert registry.is_enabled("api_generation") is False
    assert registry.is_enabled("ai_assistance") is True
    assert registry.is_enabled("vulnerability_scanner") is True


def test_refresh_failure_keeps_previous_snapshot(caplog) -> None:
    repository = FakeFeatureConfigRepository(
        overrides=[FeatureOverride(key="release_notes", enabled=False)]
    )
    registry = FeatureRegistry(config_repository=repository)
    registry.refresh()
    assert registry.is_enabled("release_notes") is False

    repository.fail = True
    repository.overrides = []
    registry.refresh()

    assert registry.is_enabled("release_notes") is False
    assert "keeping previous feature snapshot" in caplog.text


def test_list_features_filters_by_domain() -> None:
    registry = FeatureRegistry()

    data_features = registry.list_features(Domain.DATA_ENGINEERING)
    keys = {feature.key for feature in data_features}

    assert "snowflake_setup" in keys
    assert "api_generation" in keys
    assert "docker_generation" not in keys
    assert len(registry.list_features()) == len(FEATURE_CATALOG)


def test_unknown_disabled_domain_is_rejected() -> None:
    with pytest.raises(ValueError):
        FeatureRegistry(disabled_domains=["gardening"])


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_operator_toggle_is_picked_up_after_refresh_interval() -> None:
    repository = FakeFeatureConfigRepository()
    clock = FakeClock()
    registry = FeatureRegistry(config_repository=repository, refresh_interval_seconds=15, clock=clock)
    registry.refresh()
    assert registry.is_enabled("docker_generation") is True

    repository.overrides = [FeatureOverride(key="feature_docker_generation", enabled=False)]
    clock.now += 5
    assert registry.is_enabled("docker_generation") is True

    clock.now += 15
    assert registry.is_enabled("docker_generation") is False


def test_disabled_domain_is_picked_up_after_refresh_interval() -> None:
    repository = FakeFeatureConfigRepository()
    clock = FakeClock()
    registry = FeatureRegistry(config_repository=repository, refresh_interval_seconds=15, clock=clock)
    registry.refresh()

    repository.domain_configs = [DomainConfig(domain=Domain.CYBERSECURITY, enabled=False)]
    clock.now += 30

    features = {feature.key: feature for feature in registry.list_features(Domain.CYBERSECURITY)}
    assert features["vulnerability_scanner"].enabled is False


def test_unreachable_store_is_retried_once_per_interval() -> None:
    repository = FakeFeatureConfigRepository(
        overrides=[FeatureOverride(key="release_notes", enabled=False)]
    )
    clock = FakeClock()
    registry = FeatureRegistry(config_repository=repository, refresh_interval_seconds=15, clock=clock)
    registry.refresh()

    repository.fail = True
    calls = []
    original = repository.list_feature_overrides

    def counting():
        calls.append(clock.now)
        return original()

    repository.list_feature_overrides = counting
    clock.now += 20
    assert registry.is_enabled("release_notes") is False
    assert registry.is_enabled("release_notes") is False

    assert len(calls) == 1
