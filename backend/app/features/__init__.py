"""Feature registry: static catalog plus operator toggles."""

from .catalog import (
    FEATURE_CATALOG,
    USAGE_REPORT_KEYS,
    features_for_domain,
    normalize_feature_key,
)
from .models import Domain, DomainConfig, FeatureDescriptor, FeatureGroup, FeatureOverride
from .registry import FeatureConfigRepository, FeatureRegistry

__all__ = [
    "FEATURE_CATALOG",
    "USAGE_REPORT_KEYS",
    "Domain",
    "DomainConfig",
    "FeatureConfigRepository",
    "FeatureDescriptor",
    "FeatureGroup",
    "FeatureOverride",
    "FeatureRegistry",
    "features_for_domain",
    "normalize_feature_key",
]
