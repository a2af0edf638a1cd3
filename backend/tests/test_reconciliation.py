from __future__ import annotations

from datetime import datetime, timedelta, timezone

from backend.app.entitlements import EntitlementResolver, EntitlementView, InMemorySnapshotCache
from backend.app.entitlements.repository import InMemorySubscriptionRepository
from backend.app.feature_gates import QuotaGateway
from backend.app.features import FeatureRegistry
from backend.app.ledger import InMemoryUsageLedger


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += timedelta(seconds=seconds)


class FlakyLedger(InMemoryUsageLedger):
    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.offline = False

    def balance(self, user_id: str) -> int:
        if self.offline:
            raise ConnectionError("ledger offline")
        return super().balance(user_id)


def _build_view(ledger, *, clock=None, ttl_seconds: int = 30):
    clock = clock or FakeClock()
    resolver = EntitlementResolver(InMemorySubscriptionRepository(), ledger, clock=clock)
    view = EntitlementView(
        resolver,
        ledger,
        InMemorySnapshotCache(clock=clock),
        ttl_seconds=ttl_seconds,
        clock=clock,
    )
    return view, resolver, clock


def test_snapshot_is_cached_until_ttl() -> None:
    ledger = InMemoryUsageLedger({"user-1": 3})
    view, _, clock = _build_view(ledger)

    assert view.snapshot("user-1").credits_remaining == 3
    ledger.try_charge("user-1", "api_generation")
    assert view.snapshot("user-1").credits_remaining == 3

    clock.advance(31)
    assert view.snapshot("user-1").credits_remaining == 2


def test_gateway_invalidates_view_after_call() -> None:
    ledger = InMemoryUsageLedger({"user-1": 2})
    view, resolver, _ = _build_view(ledger)
    gateway = QuotaGateway(FeatureRegistry(), resolver, ledger, invalidator=view)

    assert view.snapshot("user-1").credits_remaining == 2
    assert view.usage("user-1") == {}

    gateway.invoke("user-1", "api_generation", lambda: "openapi: 3.0")

    assert view.snapshot("user-1").credits_remaining == 1
    assert view.usage("user-1") == {"api_generation": 1}


def test_refresh_forces_a_new_read() -> None:
    ledger = InMemoryUsageLedger({"user-1": 1})
    view, _, _ = _build_view(ledger)

    view.snapshot("user-1")
    ledger.grant("user-1", 5, reason="purchase:starter")

    assert view.refresh("user-1").credits_remaining == 6


def test_degraded_snapshot_is_not_cached() -> None:
    ledger = FlakyLedger({"user-1": 4})
    view, _, _ = _build_view(ledger)

    ledger.offline = True
    degraded = view.snapshot("user-1")
    assert degraded.degraded is True
    assert degraded.credits_remaining == 0

    ledger.offline = False
    recovered = view.snapshot("user-1")
    assert recovered.degraded is False
    assert recovered.credits_remaining == 4


def test_usage_copy_cannot_mutate_cache() -> None:
    ledger = InMemoryUsageLedger({"user-1": 1})
    ledger.try_charge("user-1", "docker_generation")
    view, _, _ = _build_view(ledger)

    usage = view.usage("user-1")
    usage["docker_generation"] = 99

    assert view.usage("user-1") == {"docker_generation": 1}
