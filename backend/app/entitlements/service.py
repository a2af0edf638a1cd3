"""Service resolving a user's current entitlement snapshot."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol

from .models import EntitlementSnapshot, EntitlementUnavailable, PremiumFlag, SubscriptionRecord

logger = logging.getLogger(__name__)


class SubscriptionRepository(Protocol):
    """Data access layer for subscription records."""

    def get_latest_subscription(self, user_id: str) -> Optional[SubscriptionRecord]:
        ...

    def get_premium_flag(self, user_id: str) -> Optional[PremiumFlag]:
        ...


class BalanceReader(Protocol):
    """Read side of the usage ledger."""

    def balance(self, user_id: str) -> int:
        ...


class EntitlementResolver:
    """Combines subscription status and ledger balance into a snapshot.

    The two reads are not transactional with each other. The snapshot is
    therefore only advisory; the gateway's charge is the authoritative
    decision.
    """

    def __init__(
        self,
        subscription_repository: SubscriptionRepository,
        ledger: BalanceReader,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._subscription_repository = subscription_repository
        self._ledger = ledger
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def resolve(self, user_id: str) -> EntitlementSnapshot:
        """Return the entitlement snapshot for ``user_id``.

        Raises :class:`EntitlementUnavailable` when a backing store fails.
        """

        now = self._clock()
        try:
            subscription = self._subscription_repository.get_latest_subscription(user_id)
            premium_flag = None
            if subscription is None or not subscription.is_active_at(now):
                premium_flag = self._subscription_repository.get_premium_flag(user_id)
        except Exception as exc:
            raise EntitlementUnavailable("subscription", f"Subscription store unavailable: {exc}") from exc

        expires_at: Optional[datetime] = None
        subscription_active = False
        if subscription is not None and subscription.is_active_at(now):
            subscription_active = True
            expires_at = subscription.expires_at
        elif premium_flag is not None and premium_flag.is_active_at(now):
            subscription_active = True
            expires_at = premium_flag.premium_expires_at

        if subscription_active:
            credits = self._display_balance(user_id)
        else:
            try:
                credits = self._ledger.balance(user_id)
            except Exception as exc:
                raise EntitlementUnavailable("ledger", f"Usage ledger unavailable: {exc}") from exc

        return EntitlementSnapshot(
            user_id=user_id,
            subscription_active=subscription_active,
            credits_remaining=max(credits, 0),
            subscription_expires_at=expires_at,
            resolved_at=now,
        )

    def resolve_or_fail_closed(self, user_id: str) -> EntitlementSnapshot:
        """Resolve, treating unavailable stores as metered with zero credits."""

        try:
            return self.resolve(user_id)
        except EntitlementUnavailable as exc:
            logger.warning(
                "Entitlement store %s unavailable for user=%s; failing closed: %s",
                exc.store,
                user_id,
                exc,
            )
            return EntitlementSnapshot.fail_closed(user_id)

    def _display_balance(self, user_id: str) -> int:
        # Subscribers are never metered, so a ledger outage must not block them.
        try:
            return self._ledger.balance(user_id)
        except Exception:
            logger.debug("Ledger balance unavailable for subscriber %s", user_id, exc_info=True)
            return 0


__all__ = ["BalanceReader", "EntitlementResolver", "SubscriptionRepository"]
