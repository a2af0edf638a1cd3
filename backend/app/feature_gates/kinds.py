"""Closed taxonomy of gateway failure kinds and their user-facing framing."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict

from fastapi import status


class ErrorKind(str, Enum):
    """Every failure surfaced by the quota gateway is one of these."""

    FEATURE_DISABLED = "feature_disabled"
    QUOTA_EXCEEDED = "quota_exceeded"
    SERVICE_NOT_CONFIGURED = "service_not_configured"
    UPSTREAM_QUOTA_EXCEEDED = "upstream_quota_exceeded"
    INVALID_CREDENTIAL = "invalid_credential"
    TRANSIENT_UPSTREAM_FAILURE = "transient_upstream_failure"
    PERMISSION_DENIED = "permission_denied"
    EMPTY_RESULT = "empty_result"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ErrorDescription:
    """Presentation metadata attached to an :class:`ErrorKind`."""

    kind: ErrorKind
    title: str
    default_message: str
    remediation_hint: str
    status_code: int
    admin_actionable: bool = False
    retryable: bool = False


ERROR_CATALOG: Dict[ErrorKind, ErrorDescription] = {
    ErrorKind.FEATURE_DISABLED: ErrorDescription(
        kind=ErrorKind.FEATURE_DISABLED,
        title="Feature Unavailable",
        default_message="This feature is currently disabled.",
        remediation_hint="This feature has been turned off by the operators. Check back later.",
        status_code=status.HTTP_403_FORBIDDEN,
    ),
    ErrorKind.QUOTA_EXCEEDED: ErrorDescription(
        kind=ErrorKind.QUOTA_EXCEEDED,
        title="Free Limit Reached",
        default_message="Free limit reached. Please purchase credits to continue.",
        remediation_hint="Purchase a credit pack or subscribe to AI Pro for unlimited access.",
        status_code=status.HTTP_402_PAYMENT_REQUIRED,
    ),
    ErrorKind.SERVICE_NOT_CONFIGURED: ErrorDescription(
        kind=ErrorKind.SERVICE_NOT_CONFIGURED,
        title="Service Not Configured",
        default_message="The service is not set up yet.",
        remediation_hint="Contact the administrator to configure the required API key for this service.",
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        admin_actionable=True,
    ),
    ErrorKind.UPSTREAM_QUOTA_EXCEEDED: ErrorDescription(
        kind=ErrorKind.UPSTREAM_QUOTA_EXCEEDED,
        title="Provider Quota Exceeded",
        default_message="The upstream provider's quota has been exhausted.",
        remediation_hint="Wait a few minutes and try again, or ask the administrator to upgrade the API plan.",
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        retryable=True,
    ),
    ErrorKind.INVALID_CREDENTIAL: ErrorDescription(
        kind=ErrorKind.INVALID_CREDENTIAL,
        title="API Key Issue",
        default_message="The upstream provider rejected the configured credentials.",
        remediation_hint="Contact the administrator to verify the API key configuration.",
        status_code=status.HTTP_502_BAD_GATEWAY,
        admin_actionable=True,
    ),
    ErrorKind.TRANSIENT_UPSTREAM_FAILURE: ErrorDescription(
        kind=ErrorKind.TRANSIENT_UPSTREAM_FAILURE,
        title="Temporary Issue",
        default_message="The upstream service is temporarily unavailable.",
        remediation_hint="Try again in a moment; this is usually a temporary issue.",
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        retryable=True,
    ),
    ErrorKind.PERMISSION_DENIED: ErrorDescription(
        kind=ErrorKind.PERMISSION_DENIED,
        title="Permission Denied",
        default_message="The upstream provider denied access to this API.",
        remediation_hint="Contact the administrator to enable the API on the provider account.",
        status_code=status.HTTP_502_BAD_GATEWAY,
        admin_actionable=True,
    ),
    ErrorKind.EMPTY_RESULT: ErrorDescription(
        kind=ErrorKind.EMPTY_RESULT,
        title="Empty Response",
        default_message="No output could be generated for this request.",
        remediation_hint="Rephrase your request with more detail or be more specific about what you need.",
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
    ),
    ErrorKind.UNKNOWN: ErrorDescription(
        kind=ErrorKind.UNKNOWN,
        title="Error",
        default_message="An unexpected error occurred.",
        remediation_hint="Please try again or rephrase your request.",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    ),
}


def describe_kind(kind: ErrorKind) -> ErrorDescription:
    return ERROR_CATALOG[ErrorKind(kind)]
