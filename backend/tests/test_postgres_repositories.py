from __future__ import annotations

from datetime import datetime, timezone

from backend.app.entitlements import PlanType, SubscriptionStatus
from backend.app.entitlements.repository import PostgresSubscriptionRepository
from backend.app.features import Domain
from backend.app.features.repository import PostgresFeatureConfigRepository

END_DATE = datetime(2024, 6, 1, tzinfo=timezone.utc)


class FakeCursor:
    def __init__(self, *, fetchone_result=None, fetchall_result=None):
        self.fetchone_result = fetchone_result
        self.fetchall_result = list(fetchall_result or [])
        self.execute_calls = []

    def execute(self, query, params=None):
        self.execute_calls.append((" ".join(query.split()), params))

    def fetchone(self):
        return self.fetchone_result

    def fetchall(self):
        return list(self.fetchall_result)

    def close(self):
        pass


class FakeConnection:
    def __init__(self, *cursors):
        self._cursors = list(cursors)

    def cursor(self, *args, **kwargs):
        if not self._cursors:
            raise AssertionError("No cursor configured")
        return self._cursors.pop(0)


def test_latest_active_subscription_is_loaded():
    cursor = FakeCursor(
        fetchone_result={
            "id": 7,
            "user_id": 42,
            "plan_type": "ai-pro-annual",
            "status": "active",
            "end_date": END_DATE,
            "auto_renew": False,
        }
    )
    repository = PostgresSubscriptionRepository(conn=FakeConnection(cursor))

    record = repository.get_latest_subscription("42")

    assert record is not None
    assert record.id == "7"
    assert record.plan_type == PlanType.AI_PRO_ANNUAL
    assert record.status == SubscriptionStatus.ACTIVE
    assert record.expires_at == END_DATE
    query, params = cursor.execute_calls[0]
    assert "ORDER BY end_date DESC" in query
    assert params == ("42", "active")


def test_missing_user_has_no_premium_flag():
    repository = PostgresSubscriptionRepository(conn=FakeConnection(FakeCursor()))

    assert repository.get_premium_flag("ghost") is None


def test_feature_overrides_parse_setting_values():
    cursor = FakeCursor(
        fetchall_result=[
            {"key": "feature_api_generation", "value": "false", "updated_at": None},
            {"key": "feature_spark_generation", "value": "true", "updated_at": None},
        ]
    )
    repository = PostgresFeatureConfigRepository(conn=FakeConnection(cursor))

    overrides = repository.list_feature_overrides()

    assert [(item.key, item.enabled) for item in overrides] == [
        ("feature_api_generation", False),
        ("feature_spark_generation", True),
    ]
    assert cursor.execute_calls[0][1] == ("feature_%",)


def test_unknown_domains_are_skipped():
    cursor = FakeCursor(
        fetchall_result=[
            {"domain": "cybersecurity", "is_enabled": False, "coming_soon_message": "Soon", "updated_at": None},
            {"domain": "quantum", "is_enabled": False, "coming_soon_message": None, "updated_at": None},
        ]
    )
    repository = PostgresFeatureConfigRepository(conn=FakeConnection(cursor))

    configs = repository.list_domain_configs()

    assert len(configs) == 1
    assert configs[0].domain == Domain.CYBERSECURITY
    assert configs[0].coming_soon_message == "Soon"
