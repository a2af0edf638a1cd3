from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from fastapi import HTTPException

from backend.app.entitlements import PlanType, SubscriptionRecord, SubscriptionStatus
from backend.app.routes import quota as quota_routes
from backend.app.schemas.quota import (
    CreditAdjustmentRequest,
    CreditAdjustmentResponse,
    EntitlementResponse,
    FeatureListResponse,
    UsageResponse,
)
from backend.app.services import quota as quota_service


@pytest.fixture(autouse=True)
def in_memory_services(monkeypatch):
    monkeypatch.setenv("QUOTA_LEDGER_BACKEND", "memory")
    monkeypatch.setenv("QUOTA_SIGNUP_BONUS_CREDITS", "2")
    monkeypatch.setenv("QUOTA_CHARGE_POLICY", "charge_after_success")
    monkeypatch.delenv("QUOTA_DISABLED_FEATURES", raising=False)
    monkeypatch.delenv("QUOTA_DISABLED_DOMAINS", raising=False)
    quota_service.reset_quota_services()
    yield
    quota_service.reset_quota_services()


@pytest.fixture
def admin():
    return SimpleNamespace(id="admin-1", is_admin=True)


def test_new_user_has_no_credit() -> None:
    user = SimpleNamespace(id="user-1")

    response = quota_routes.read_my_entitlements(refresh=False, current_user=user)

    assert isinstance(response, EntitlementResponse)
    assert response.credits_remaining == 0
    assert response.can_invoke is False
    assert response.is_premium is False


def test_signup_bonus_then_gated_call(admin) -> None:
    user = SimpleNamespace(id="user-1")

    bonus = quota_routes.apply_signup_bonus("user-1", current_user=admin)
    assert isinstance(bonus, CreditAdjustmentResponse)
    assert bonus.credits_remaining == 2

    delivery = quota_routes.gated_call(user, "api_generation", lambda: "openapi: 3.0")
    assert delivery.value == "openapi: 3.0"
    assert delivery.credits_remaining == 1

    entitlements = quota_routes.read_my_entitlements(refresh=False, current_user=user)
    assert entitlements.credits_remaining == 1
    assert entitlements.low_credit_warning is True

    usage = quota_routes.read_my_usage(limit=10, current_user=user)
    assert isinstance(usage, UsageResponse)
    assert usage.usage["api_generation"] == 1
    assert usage.usage["docker_generation"] == 0
    assert usage.total == 1
    assert [record.outcome.value for record in usage.records] == ["charged", "granted"]


def test_gated_call_without_credit_returns_payment_required() -> None:
    user = SimpleNamespace(id="user-2")
    calls = []

    with pytest.raises(HTTPException) as exc:
        quota_routes.gated_call(user, "docker_generation", lambda: calls.append("ran"))

    assert exc.value.status_code == 402
    assert exc.value.detail["error"] == "quota_exceeded"
    assert exc.value.detail["isPremiumFeature"] is True
    assert calls == []


def test_subscriber_is_not_charged() -> None:
    user = SimpleNamespace(id="user-3")
    quota_service.get_subscription_repository().add_subscription(
        SubscriptionRecord(
            id="sub-1",
            user_id="user-3",
            plan_type=PlanType.AI_PRO_MONTHLY,
            status=SubscriptionStatus.ACTIVE,
            expires_at=datetime.now(timezone.utc) + timedelta(days=10),
        )
    )

    delivery = quota_routes.gated_call(user, "infra_chat", lambda: "kubectl get pods")

    assert delivery.metered is False
    assert quota_service.get_usage_ledger().balance("user-3") == 0
    entitlements = quota_routes.read_my_entitlements(refresh=True, current_user=user)
    assert entitlements.is_premium is True
    assert entitlements.can_invoke is True


def test_gated_acall_reports_classified_failure() -> None:
    user = SimpleNamespace(id="user-4")
    quota_service.get_usage_ledger().grant("user-4", 1, reason="test")

    async def operation():
        raise RuntimeError("QUOTA_EXCEEDED: upstream provider limit")

    with pytest.raises(HTTPException) as exc:
        asyncio.run(quota_routes.gated_acall(user, "ai_assistance", operation))

    assert exc.value.status_code == 429
    assert exc.value.detail["error"] == "upstream_quota_exceeded"
    assert quota_service.get_usage_ledger().balance("user-4") == 1


def test_list_features_by_domain() -> None:
    response = quota_routes.list_features(domain="cybersecurity")

    assert isinstance(response, FeatureListResponse)
    keys = {feature.key: feature for feature in response.features}
    assert "vulnerability_scanner" in keys
    assert "docker_generation" not in keys
    assert keys["pentest_planner"].enabled is False
    assert keys["pentest_planner"].coming_soon_message == "Pentest planning is coming soon."


def test_list_features_rejects_unknown_domain() -> None:
    with pytest.raises(HTTPException) as exc:
        quota_routes.list_features(domain="gardening")

    assert exc.value.status_code == 400


def test_admin_can_grant_and_set_credits(admin) -> None:
    granted = quota_routes.adjust_credits(
        CreditAdjustmentRequest(userId="user-5", credits=3),
        current_user=admin,
    )
    assert granted.credits_remaining == 3
    assert granted.record.reason == "admin:admin-1"

    adjusted = quota_routes.adjust_credits(
        CreditAdjustmentRequest(userId="user-5", credits=1, mode="set", reason="support ticket"),
        current_user=admin,
    )
    assert adjusted.credits_remaining == 1
    assert adjusted.record.credits_delta == -2


def test_zero_credit_grant_is_bad_request(admin) -> None:
    with pytest.raises(HTTPException) as exc:
        quota_routes.adjust_credits(CreditAdjustmentRequest(userId="user-5", credits=0), current_user=admin)

    assert exc.value.status_code == 400


def test_non_admin_cannot_adjust_credits() -> None:
    user = SimpleNamespace(id="user-6", is_admin=False)

    with pytest.raises(HTTPException) as exc:
        quota_routes.adjust_credits(CreditAdjustmentRequest(userId="user-6", credits=50), current_user=user)

    assert exc.value.status_code == 403
    assert quota_service.get_usage_ledger().balance("user-6") == 0


def test_credit_package_grant(admin) -> None:
    response = quota_routes.apply_credit_package("user-7", "pro", current_user=admin)

    assert response.credits_remaining == 10
    assert response.record.reason == "purchase:pro"

    with pytest.raises(HTTPException) as exc:
        quota_routes.apply_credit_package("user-7", "platinum", current_user=admin)
    assert exc.value.status_code == 404


def test_signup_bonus_can_be_disabled(monkeypatch, admin) -> None:
    monkeypatch.setenv("QUOTA_SIGNUP_BONUS_CREDITS", "0")
    quota_service.reset_quota_services()

    assert quota_routes.apply_signup_bonus("user-8", current_user=admin) is None
