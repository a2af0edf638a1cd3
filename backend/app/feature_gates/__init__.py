"""Quota gateway: feature gating, credit charging and failure classification."""
from .classifier import classify
from .enforcement import require_credit, require_feature_enabled
from .exceptions import (
    ClassifiedOperationError,
    EmptyResultError,
    FeatureDisabledError,
    GatewayError,
    OperationError,
    QuotaExceededError,
)
from .gateway import ChargePolicy, Delivery, QuotaGateway, SnapshotInvalidator, is_empty_result
from .kinds import ERROR_CATALOG, ErrorDescription, ErrorKind, describe_kind
from .quota import QuotaEvaluation, evaluate_quota

__all__ = [
    "ERROR_CATALOG",
    "ChargePolicy",
    "ClassifiedOperationError",
    "Delivery",
    "EmptyResultError",
    "ErrorDescription",
    "ErrorKind",
    "FeatureDisabledError",
    "GatewayError",
    "OperationError",
    "QuotaEvaluation",
    "QuotaExceededError",
    "QuotaGateway",
    "SnapshotInvalidator",
    "classify",
    "describe_kind",
    "evaluate_quota",
    "is_empty_result",
    "require_credit",
    "require_feature_enabled",
]
