from __future__ import annotations

import pytest

from backend.app.entitlements import EntitlementSnapshot
from backend.app.feature_gates import (
    FeatureDisabledError,
    GatewayError,
    ErrorKind,
    QuotaEvaluation,
    QuotaExceededError,
    evaluate_quota,
    require_credit,
    require_feature_enabled,
)
from backend.app.features import FeatureRegistry


@pytest.fixture
def free_snapshot() -> EntitlementSnapshot:
    return EntitlementSnapshot(user_id="user-1", subscription_active=False, credits_remaining=1)


def test_require_feature_enabled_allows_catalog_feature() -> None:
    require_feature_enabled(FeatureRegistry(), "docker_generation")


def test_require_feature_enabled_raises_with_coming_soon_message() -> None:
    with pytest.raises(FeatureDisabledError) as exc:
        require_feature_enabled(FeatureRegistry(), "pentest_planner")

    assert exc.value.kind == ErrorKind.FEATURE_DISABLED
    assert exc.value.message == "Pentest planning is coming soon."
    assert exc.value.payload["feature"] == "pentest_planner"


def test_require_credit_allows_remaining_balance(free_snapshot: EntitlementSnapshot) -> None:
    require_credit(free_snapshot, "api_generation")


def test_require_credit_blocks_empty_balance() -> None:
    snapshot = EntitlementSnapshot(user_id="user-1", subscription_active=False, credits_remaining=0)

    with pytest.raises(QuotaExceededError) as exc:
        require_credit(snapshot, "api_generation")

    assert exc.value.payload["error"] == "quota_exceeded"
    assert exc.value.payload["remediationHint"]


def test_subscriber_passes_credit_check_without_balance() -> None:
    snapshot = EntitlementSnapshot(user_id="user-1", subscription_active=True, credits_remaining=0)

    require_credit(snapshot, "api_generation")


def test_quota_evaluation_warns_on_last_credit(free_snapshot: EntitlementSnapshot) -> None:
    evaluation = evaluate_quota(free_snapshot)

    assert isinstance(evaluation, QuotaEvaluation)
    assert evaluation.should_warn is True
    assert evaluation.allowed is True
    assert evaluation.to_dict()["credits_remaining"] == 1


def test_quota_evaluation_for_subscriber_never_warns() -> None:
    snapshot = EntitlementSnapshot(user_id="user-1", subscription_active=True, credits_remaining=0)

    evaluation = evaluate_quota(snapshot)

    assert evaluation.metered is False
    assert evaluation.allowed is True
    assert evaluation.should_warn is False


def test_gateway_error_converts_to_http_exception() -> None:
    error = GatewayError(kind=ErrorKind.SERVICE_NOT_CONFIGURED, message="")
    http_exc = error.to_http_exception()

    assert http_exc.status_code == 503
    assert http_exc.detail["error"] == "service_not_configured"
    assert http_exc.detail["title"] == "Service Not Configured"
