"""Maps raw operation, ledger and upstream failures onto :class:`ErrorKind`.

``classify`` is a pure function: it only inspects the error it is given, so
classifying the same error twice always yields the same kind. New upstream
failure strings are supported by extending the tables below.
"""
from __future__ import annotations

import asyncio
import re
from typing import Iterable, Mapping, Optional, Pattern, Tuple

from ..entitlements.models import EntitlementUnavailable
from ..ledger.models import InsufficientBalance, LedgerError
from .exceptions import GatewayError, OperationError
from .kinds import ErrorKind

# Error codes reported by upstream clients, matched case-insensitively.
_CODE_KINDS: Mapping[str, ErrorKind] = {
    "AI_NOT_CONFIGURED": ErrorKind.SERVICE_NOT_CONFIGURED,
    "SEARCH_NOT_CONFIGURED": ErrorKind.SERVICE_NOT_CONFIGURED,
    "NOT_CONFIGURED": ErrorKind.SERVICE_NOT_CONFIGURED,
    "QUOTA_EXCEEDED": ErrorKind.UPSTREAM_QUOTA_EXCEEDED,
    "RESOURCE_EXHAUSTED": ErrorKind.UPSTREAM_QUOTA_EXCEEDED,
    "RATE_LIMITED": ErrorKind.UPSTREAM_QUOTA_EXCEEDED,
    "INVALID_API_KEY": ErrorKind.INVALID_CREDENTIAL,
    "API_KEY_INVALID": ErrorKind.INVALID_CREDENTIAL,
    "UNAUTHENTICATED": ErrorKind.INVALID_CREDENTIAL,
    "MODEL_NOT_FOUND": ErrorKind.TRANSIENT_UPSTREAM_FAILURE,
    "UNAVAILABLE": ErrorKind.TRANSIENT_UPSTREAM_FAILURE,
    "DEADLINE_EXCEEDED": ErrorKind.TRANSIENT_UPSTREAM_FAILURE,
    "PERMISSION_DENIED": ErrorKind.PERMISSION_DENIED,
    "EMPTY_RESPONSE": ErrorKind.EMPTY_RESULT,
}

_STATUS_KINDS: Mapping[int, ErrorKind] = {
    401: ErrorKind.INVALID_CREDENTIAL,
    403: ErrorKind.PERMISSION_DENIED,
    404: ErrorKind.TRANSIENT_UPSTREAM_FAILURE,
    408: ErrorKind.TRANSIENT_UPSTREAM_FAILURE,
    429: ErrorKind.UPSTREAM_QUOTA_EXCEEDED,
    502: ErrorKind.TRANSIENT_UPSTREAM_FAILURE,
    503: ErrorKind.TRANSIENT_UPSTREAM_FAILURE,
    504: ErrorKind.TRANSIENT_UPSTREAM_FAILURE,
}

# Order matters: "API key is not configured" must not read as an invalid key.
_MESSAGE_PATTERNS: Tuple[Tuple[Pattern[str], ErrorKind], ...] = (
    (
        re.compile(r"not[ _]configured|api[ _]key is not set|missing api[ _]key", re.IGNORECASE),
        ErrorKind.SERVICE_NOT_CONFIGURED,
    ),
    (
        re.compile(r"resource_exhausted|quota|rate[ _]limit|too many requests", re.IGNORECASE),
        ErrorKind.UPSTREAM_QUOTA_EXCEEDED,
    ),
    (
        re.compile(r"api_key_invalid|invalid[ _]api[ _]key|api key not valid|invalid credential", re.IGNORECASE),
        ErrorKind.INVALID_CREDENTIAL,
    ),
    (
        re.compile(r"permission[ _]denied|has not been used in project|api .*is disabled", re.IGNORECASE),
        ErrorKind.PERMISSION_DENIED,
    ),
    (
        re.compile(r"empty[ _]response|no content generated", re.IGNORECASE),
        ErrorKind.EMPTY_RESULT,
    ),
    (
        re.compile(
            r"model[ _]not[ _]found|is not found|temporarily|unavailable|overloaded|timed out|timeout",
            re.IGNORECASE,
        ),
        ErrorKind.TRANSIENT_UPSTREAM_FAILURE,
    ),
)

_CODE_ATTRIBUTES = ("error_type", "errorType", "code", "status", "reason")
_STATUS_ATTRIBUTES = ("status_code", "status", "http_status")


def _code_kind(raw: object) -> Optional[ErrorKind]:
    for attribute in _CODE_ATTRIBUTES:
        value = getattr(raw, attribute, None)
        if isinstance(value, str):
            kind = _CODE_KINDS.get(value.strip().upper())
            if kind is not None:
                return kind
    return None


def _status_values(raw: object) -> Iterable[object]:
    for attribute in _STATUS_ATTRIBUTES:
        yield getattr(raw, attribute, None)
    response = getattr(raw, "response", None)
    if response is not None:
        yield getattr(response, "status_code", None)


def _status_kind(raw: object) -> Optional[ErrorKind]:
    for value in _status_values(raw):
        if isinstance(value, bool) or not isinstance(value, int):
            continue
        kind = _STATUS_KINDS.get(value)
        if kind is not None:
            return kind
    return None


def _message_kind(raw: object) -> Optional[ErrorKind]:
    text = raw if isinstance(raw, str) else str(raw)
    if not text:
        return None
    code = _CODE_KINDS.get(text.strip().split(":", 1)[0].strip().upper())
    if code is not None:
        return code
    for pattern, kind in _MESSAGE_PATTERNS:
        if pattern.search(text):
            return kind
    return None


def classify(raw_error: object) -> ErrorKind:
    """Return the :class:`ErrorKind` for any error the gateway may observe."""

    if isinstance(raw_error, GatewayError):
        return raw_error.kind
    if isinstance(raw_error, OperationError):
        return raw_error.kind
    if isinstance(raw_error, InsufficientBalance):
        return ErrorKind.QUOTA_EXCEEDED
    if isinstance(raw_error, (EntitlementUnavailable, LedgerError)):
        return ErrorKind.TRANSIENT_UPSTREAM_FAILURE
    if isinstance(raw_error, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return ErrorKind.TRANSIENT_UPSTREAM_FAILURE

    for resolver in (_code_kind, _status_kind, _message_kind):
        kind = resolver(raw_error)
        if kind is not None:
            return kind
    return ErrorKind.UNKNOWN


__all__ = ["classify"]
