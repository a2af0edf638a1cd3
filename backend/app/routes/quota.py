"""API routes exposing entitlement, usage and feature state."""
from __future__ import annotations

import os
from functools import lru_cache
from typing import Any, Awaitable, Callable, Optional, TypeVar

from fastapi import APIRouter, Cookie, Depends, HTTPException, Query, status

from ..features import USAGE_REPORT_KEYS, Domain
from ..feature_gates import Delivery, GatewayError
from ..ledger import LedgerError, UsageRecord, get_credit_package
from ..schemas.quota import (
    CreditAdjustmentRequest,
    CreditAdjustmentResponse,
    EntitlementResponse,
    FeatureListResponse,
    FeatureResponse,
    UsageResponse,
)
from ..services.quota import (
    get_entitlement_view,
    get_feature_registry,
    get_quota_gateway,
    get_usage_ledger,
    grant_credit_package,
    grant_signup_bonus,
)

T = TypeVar("T")


def _resolve_get_current_user() -> Callable[..., Any]:  # pragma: no cover
    try:
        from backend.main import get_current_user as resolved
    except ModuleNotFoundError as exc:
        if exc.name != "backend":
            raise
        from ...main import get_current_user as resolved  # type: ignore[no-redef]
    return resolved


@lru_cache(maxsize=1)
def _get_current_user_callable() -> Callable[..., Any]:
    return _resolve_get_current_user()


_SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "session")


def _get_current_user(
    session_token: Optional[str] = Cookie(None, alias=_SESSION_COOKIE_NAME),
):
    resolved = _get_current_user_callable()
    return resolved(session_token=session_token)


def _ledger_unavailable(exc: LedgerError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc) or "Usage ledger unavailable")


def _require_admin(current_user) -> None:
    if not getattr(current_user, "is_admin", False):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")


def _adjustment_response(user_id: str, record: UsageRecord) -> CreditAdjustmentResponse:
    balance = record.balance_after if record.balance_after is not None else get_usage_ledger().balance(user_id)
    return CreditAdjustmentResponse(user_id=user_id, credits_remaining=balance, record=record)


def gated_call(current_user, feature_key: str, operation: Callable[[], T]) -> Delivery[T]:
    """Run ``operation`` through the quota gateway on behalf of ``current_user``."""

    try:
        return get_quota_gateway().invoke(str(current_user.id), feature_key, operation)
    except GatewayError as exc:
        raise exc.to_http_exception() from exc


async def gated_acall(current_user, feature_key: str, operation: Callable[[], Awaitable[T]]) -> Delivery[T]:
    try:
        return await get_quota_gateway().ainvoke(str(current_user.id), feature_key, operation)
    except GatewayError as exc:
        raise exc.to_http_exception() from exc


entitlements_router = APIRouter(prefix="/api/entitlements", tags=["entitlements"])
usage_router = APIRouter(prefix="/api/usage", tags=["usage"])
features_router = APIRouter(prefix="/api/features", tags=["features"])
admin_router = APIRouter(prefix="/api/admin", tags=["admin"])


@entitlements_router.get("/me", response_model=EntitlementResponse)
def read_my_entitlements(
    *,
    refresh: bool = Query(False),
    current_user=Depends(_get_current_user),
) -> EntitlementResponse:
    view = get_entitlement_view()
    user_id = str(current_user.id)
    snapshot = view.refresh(user_id) if refresh else view.snapshot(user_id)
    return EntitlementResponse.from_snapshot(snapshot)


@usage_router.get("", response_model=UsageResponse)
def read_my_usage(
    *,
    limit: int = Query(20, ge=0, le=200),
    current_user=Depends(_get_current_user),
) -> UsageResponse:
    user_id = str(current_user.id)
    try:
        counts = get_entitlement_view().usage(user_id)
        records = list(get_usage_ledger().list_records(user_id, limit=limit)) if limit else []
    except LedgerError as exc:
        raise _ledger_unavailable(exc) from exc
    usage = {key: 0 for key in USAGE_REPORT_KEYS}
    usage.update(counts)
    return UsageResponse(user_id=user_id, usage=usage, total=sum(counts.values()), records=records)


@features_router.get("", response_model=FeatureListResponse)
def list_features(domain: Optional[str] = Query(None)) -> FeatureListResponse:
    selected: Optional[Domain] = None
    if domain:
        try:
            selected = Domain(domain.strip().lower())
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown domain: {domain}") from exc
    features = get_feature_registry().list_features(selected)
    return FeatureListResponse(features=[FeatureResponse.from_descriptor(item) for item in features])


@admin_router.post("/credits", response_model=CreditAdjustmentResponse)
def adjust_credits(
    payload: CreditAdjustmentRequest,
    *,
    current_user=Depends(_get_current_user),
) -> CreditAdjustmentResponse:
    _require_admin(current_user)

    ledger = get_usage_ledger()
    reason = payload.reason or f"admin:{current_user.id}"
    try:
        if payload.mode == "set":
            record = ledger.set_balance(payload.user_id, payload.credits, reason=reason)
        else:
            record = ledger.grant(payload.user_id, payload.credits, reason=reason)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found") from exc
    except LedgerError as exc:
        raise _ledger_unavailable(exc) from exc

    get_entitlement_view().invalidate_user(payload.user_id)
    return _adjustment_response(payload.user_id, record)


@admin_router.post("/users/{user_id}/signup-bonus", response_model=Optional[CreditAdjustmentResponse])
def apply_signup_bonus(
    user_id: str,
    *,
    current_user=Depends(_get_current_user),
) -> Optional[CreditAdjustmentResponse]:
    _require_admin(current_user)
    try:
        record = grant_signup_bonus(user_id)
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found") from exc
    except LedgerError as exc:
        raise _ledger_unavailable(exc) from exc
    if record is None:
        return None
    return _adjustment_response(user_id, record)


@admin_router.post("/users/{user_id}/packages/{package_id}", response_model=CreditAdjustmentResponse)
def apply_credit_package(
    user_id: str,
    package_id: str,
    *,
    current_user=Depends(_get_current_user),
) -> CreditAdjustmentResponse:
    _require_admin(current_user)
    try:
        get_credit_package(package_id)
    except KeyError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown credit package: {package_id}") from exc
    try:
        record = grant_credit_package(user_id, package_id)
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found") from exc
    except LedgerError as exc:
        raise _ledger_unavailable(exc) from exc
    return _adjustment_response(user_id, record)


routers = (entitlements_router, usage_router, features_router, admin_router)


__all__ = [
    "adjust_credits",
    "admin_router",
    "apply_credit_package",
    "apply_signup_bonus",
    "entitlements_router",
    "features_router",
    "gated_acall",
    "gated_call",
    "list_features",
    "read_my_entitlements",
    "read_my_usage",
    "routers",
    "usage_router",
]
