"""Custom exceptions raised by operations and by the quota gateway."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from fastapi import HTTPException

from .kinds import ErrorKind, describe_kind


class OperationError(Exception):
    """Raised by an operation that already knows which kind of failure occurred."""

    def __init__(self, kind: ErrorKind, message: str = "") -> None:
        self.kind = ErrorKind(kind)
        self.message = message or describe_kind(self.kind).default_message
        super().__init__(self.message)


class EmptyResultError(OperationError):
    """Raised when an operation finished but produced nothing usable."""

    def __init__(self, message: str = "") -> None:
        super().__init__(ErrorKind.EMPTY_RESULT, message)


@dataclass(eq=False)
class GatewayError(Exception):
    """Represents a classified gateway failure surfaced to API callers."""

    kind: ErrorKind
    message: str
    remediation_hint: str = ""
    status_code: int = 0
    detail: Optional[Mapping[str, Any]] = None

    def __post_init__(self) -> None:
        description = describe_kind(self.kind)
        self.kind = description.kind
        if not self.message:
            self.message = description.default_message
        if not self.remediation_hint:
            self.remediation_hint = description.remediation_hint
        if not self.status_code:
            self.status_code = description.status_code
        base_detail: Dict[str, Any] = {
            "error": self.kind.value,
            "title": description.title,
            "message": self.message,
            "remediationHint": self.remediation_hint,
        }
        if self.detail:
            base_detail.update(self.detail)
        object.__setattr__(self, "_payload", base_detail)
        super().__init__(self.message)

    @property
    def payload(self) -> Mapping[str, Any]:
        """Serialized representation suitable for JSON responses."""

        return self._payload

    def to_http_exception(self) -> HTTPException:
        """Convert the domain error into a FastAPI HTTPException."""

        return HTTPException(status_code=self.status_code, detail=dict(self.payload))


class FeatureDisabledError(GatewayError):
    """The operator has switched the feature off."""

    @classmethod
    def for_feature(cls, feature_key: str, message: Optional[str] = None) -> "FeatureDisabledError":
        return cls(
            kind=ErrorKind.FEATURE_DISABLED,
            message=message or f"Feature '{feature_key}' is currently disabled.",
            detail={"feature": feature_key},
        )


class QuotaExceededError(GatewayError):
    """A metered user has no credit left for this invocation."""

    @classmethod
    def for_feature(cls, feature_key: str, *, race_lost: bool = False) -> "QuotaExceededError":
        detail: Dict[str, Any] = {"feature": feature_key, "isPremiumFeature": True}
        if race_lost:
            detail["raceLost"] = True
        return cls(kind=ErrorKind.QUOTA_EXCEEDED, message="", detail=detail)


class ClassifiedOperationError(GatewayError):
    """An operation failure after classification; ``__cause__`` holds the raw error."""


__all__ = [
    "ClassifiedOperationError",
    "EmptyResultError",
    "FeatureDisabledError",
    "GatewayError",
    "OperationError",
    "QuotaExceededError",
]
