"""Feature registry answering whether a feature may be invoked at all."""
from __future__ import annotations

import logging
import time
from threading import Lock
from typing import Callable, Dict, Iterable, Mapping, Optional, Protocol, Sequence

from .catalog import FEATURE_CATALOG, features_for_domain, normalize_feature_key
from .models import Domain, DomainConfig, FeatureDescriptor, FeatureOverride

logger = logging.getLogger(__name__)


class FeatureConfigRepository(Protocol):
    """Source of operator-controlled feature and domain toggles."""

    def list_feature_overrides(self) -> Sequence[FeatureOverride]:
        ...

    def list_domain_configs(self) -> Sequence[DomainConfig]:
        ...


class FeatureRegistry:
    """Resolves effective feature descriptors from the static catalog and overrides.

    Lookups only read an immutable snapshot. Operator overrides are pulled into
    a new snapshot by :meth:`refresh`, so ``is_enabled`` cannot fail. With
    ``refresh_interval_seconds`` set, a lookup on a snapshot older than the
    interval reloads it first; a failed reload keeps serving the old one.
    """

    def __init__(
        self,
        catalog: Optional[Mapping[str, FeatureDescriptor]] = None,
        *,
        config_repository: Optional[FeatureConfigRepository] = None,
        disabled_features: Iterable[str] = (),
        disabled_domains: Iterable[Domain] = (),
        refresh_interval_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._catalog = dict(FEATURE_CATALOG if catalog is None else catalog)
        self._config_repository = config_repository
        self._forced_off = {normalize_feature_key(key) for key in disabled_features}
        self._forced_off_domains = {Domain(domain) for domain in disabled_domains}
        self._refresh_interval = refresh_interval_seconds
        self._clock = clock
        self._loaded_at: Optional[float] = None
        self._lock = Lock()
        self._refresh_lock = Lock()
        self._snapshot: Dict[str, FeatureDescriptor] = self._build(overrides=(), domain_configs=())

    def refresh(self) -> None:
        """Reload operator overrides, keeping the previous snapshot on failure."""

        if self._config_repository is None:
            return
        # Stamped before loading so an unreachable store is retried once per interval.
        self._loaded_at = self._clock()
        try:
            overrides = self._config_repository.list_feature_overrides()
            domain_configs = self._config_repository.list_domain_configs()
        except Exception:
            logger.exception("Failed to load feature overrides; keeping previous feature snapshot")
            return
        snapshot = self._build(overrides=overrides, domain_configs=domain_configs)
        with self._lock:
            self._snapshot = snapshot

    def is_enabled(self, feature_key: str) -> bool:
        """Return whether ``feature_key`` may be invoked. Unknown keys are disabled."""

        feature = self.describe(feature_key)
        return bool(feature and feature.enabled)

    def describe(self, feature_key: str) -> Optional[FeatureDescriptor]:
        self._refresh_if_stale()
        return self._snapshot.get(normalize_feature_key(feature_key))

    def list_features(self, domain: Optional[Domain] = None) -> list[FeatureDescriptor]:
        self._refresh_if_stale()
        features = list(self._snapshot.values())
        if domain is None:
            return features
        return features_for_domain(domain, features)

    def _refresh_if_stale(self) -> None:
        if self._config_repository is None or self._refresh_interval is None:
            return
        loaded_at = self._loaded_at
        if loaded_at is not None and self._clock() - loaded_at < self._refresh_interval:
            return
        # One caller reloads; the others keep reading the current snapshot.
        if not self._refresh_lock.acquire(blocking=False):
            return
        try:
            self.refresh()
        finally:
            self._refresh_lock.release()

    def _build(
        self,
        *,
        overrides: Iterable[FeatureOverride],
        domain_configs: Iterable[DomainConfig],
    ) -> Dict[str, FeatureDescriptor]:
        override_map = {normalize_feature_key(item.key): item.enabled for item in overrides}
        disabled_domains: Dict[Domain, Optional[str]] = {
            domain: None for domain in self._forced_off_domains
        }
        for config in domain_configs:
            if not config.enabled:
                disabled_domains[config.domain] = config.coming_soon_message
            elif config.domain not in self._forced_off_domains:
                disabled_domains.pop(config.domain, None)

        snapshot: Dict[str, FeatureDescriptor] = {}
        for key, feature in self._catalog.items():
            effective = feature
            if key in override_map:
                effective = effective.with_enabled(override_map[key])
            if key in self._forced_off:
                effective = effective.with_enabled(False)
            if all(domain in disabled_domains for domain in feature.domains):
                messages = [disabled_domains[domain] for domain in feature.domains if disabled_domains[domain]]
                effective = effective.with_enabled(False, message=messages[0] if messages else None)
            snapshot[key] = effective
        return snapshot


__all__ = ["FeatureConfigRepository", "FeatureRegistry"]
