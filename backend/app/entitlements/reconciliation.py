"""Consumer-side entitlement state that is re-fetched after every gated call."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Mapping, Optional, Protocol

from .cache import SnapshotCache
from .models import EntitlementSnapshot
from .service import EntitlementResolver


class UsageReader(Protocol):
    def usage_counts(self, user_id: str) -> Mapping[str, int]:
        ...


class EntitlementView:
    """Disposable cache of entitlement and usage snapshots.

    Values here are never a source of truth. The gateway calls
    :meth:`invalidate_user` when an invocation settles, so the next read goes
    back to the resolver and the ledger.
    """

    def __init__(
        self,
        resolver: EntitlementResolver,
        usage_reader: UsageReader,
        cache: SnapshotCache,
        *,
        ttl_seconds: int = 30,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._resolver = resolver
        self._usage_reader = usage_reader
        self._cache = cache
        self._ttl = timedelta(seconds=max(int(ttl_seconds), 1))
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @staticmethod
    def _tags(user_id: str) -> set[str]:
        return {f"user:{user_id}"}

    def snapshot(self, user_id: str) -> EntitlementSnapshot:
        cache_key = f"entitlement:{user_id}"
        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached
        snapshot = self._resolver.resolve_or_fail_closed(user_id)
        # A fail-closed snapshot reflects an outage, not the ledger; do not keep it.
        if not snapshot.degraded:
            self._cache.set(cache_key, snapshot, self._clock() + self._ttl, self._tags(user_id))
        return snapshot

    def usage(self, user_id: str) -> Dict[str, int]:
        cache_key = f"usage:{user_id}"
        cached = self._cache.get(cache_key)
        if cached is not None:
            return dict(cached)
        counts = dict(self._usage_reader.usage_counts(user_id))
        self._cache.set(cache_key, counts, self._clock() + self._ttl, self._tags(user_id))
        return dict(counts)

    def refresh(self, user_id: str) -> EntitlementSnapshot:
        """Drop cached values for ``user_id`` and fetch a fresh snapshot."""

        self.invalidate_user(user_id)
        return self.snapshot(user_id)

    def invalidate_user(self, user_id: str) -> None:
        self._cache.invalidate(self._tags(user_id))


__all__ = ["EntitlementView", "UsageReader"]
