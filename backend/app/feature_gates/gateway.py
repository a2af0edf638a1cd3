"""Quota gateway wrapping metered operations with entitlement checks and charging."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Optional, Protocol, Tuple, TypeVar

from ..entitlements.models import EntitlementSnapshot
from ..entitlements.service import EntitlementResolver
from ..features.catalog import normalize_feature_key
from ..features.registry import FeatureRegistry
from ..ledger.models import Charged, LedgerError, UsageRecord
from ..ledger.service import UsageLedger
from .classifier import classify
from .enforcement import require_credit, require_feature_enabled
from .exceptions import (
    ClassifiedOperationError,
    EmptyResultError,
    GatewayError,
    OperationError,
    QuotaExceededError,
)
from .kinds import ErrorKind, describe_kind

logger = logging.getLogger("quota")

T = TypeVar("T")


class ChargePolicy(str, Enum):
    """When the metered path takes the credit relative to running the operation."""

    CHARGE_AFTER_SUCCESS = "charge_after_success"
    CHARGE_BEFORE = "charge_before"


class SnapshotInvalidator(Protocol):
    """Drops cached entitlement/usage snapshots once an invocation settles."""

    def invalidate_user(self, user_id: str) -> None:
        ...


@dataclass(frozen=True)
class Delivery(Generic[T]):
    """Successful gateway outcome carrying the operation's value."""

    value: T
    feature_key: str
    metered: bool
    credits_remaining: Optional[int] = None
    record: Optional[UsageRecord] = None


def is_empty_result(value: Any) -> bool:
    """Default emptiness check: ``None`` or a blank string."""

    if value is None:
        return True
    return isinstance(value, str) and not value.strip()


class QuotaGateway:
    """Runs an operation for a user only if the feature and entitlement allow it.

    The metered path charges exactly once, after the operation succeeded. When
    two requests race for the last credit both operations run, but only the
    winner's charge commits; the loser receives ``QuotaExceeded`` and its
    result is discarded. No lock is held while the operation runs.
    """

    def __init__(
        self,
        registry: FeatureRegistry,
        resolver: EntitlementResolver,
        ledger: UsageLedger,
        *,
        invalidator: Optional[SnapshotInvalidator] = None,
        policy: ChargePolicy = ChargePolicy.CHARGE_AFTER_SUCCESS,
        empty_result: Callable[[Any], bool] = is_empty_result,
    ) -> None:
        self._registry = registry
        self._resolver = resolver
        self._ledger = ledger
        self._invalidator = invalidator
        self._policy = ChargePolicy(policy)
        self._empty_result = empty_result

    @property
    def policy(self) -> ChargePolicy:
        return self._policy

    def invoke(self, user_id: str, feature_key: str, operation: Callable[[], T]) -> Delivery[T]:
        """Run ``operation`` under the quota policy for ``feature_key``.

        Returns a :class:`Delivery` on success and raises a
        :class:`GatewayError` subclass for every other terminal state.
        """

        try:
            key, metered, precharge = self._begin(user_id, feature_key)
            try:
                value = operation()
            except Exception as exc:
                raise self._settle_failure(user_id, key, exc, metered=metered, precharge=precharge) from exc
            return self._deliver(user_id, key, value, metered=metered, precharge=precharge)
        finally:
            self._settled(user_id)

    async def ainvoke(
        self,
        user_id: str,
        feature_key: str,
        operation: Callable[[], Awaitable[T]],
    ) -> Delivery[T]:
        """Async variant of :meth:`invoke`; cancellation counts as a failed operation.

        Entitlement reads and ledger writes run in worker threads so blocking
        store drivers never stall the event loop. A cancellation that lands
        after the operation returned does not undo the charge.
        """

        try:
            begin = asyncio.ensure_future(asyncio.to_thread(self._begin, user_id, feature_key))
            try:
                key, metered, precharge = await asyncio.shield(begin)
            except asyncio.CancelledError:
                begin.add_done_callback(lambda done: self._abandon(user_id, done))
                raise
            try:
                value = await operation()
            except asyncio.CancelledError:
                logger.info("Invocation cancelled user=%s feature=%s; not charged", user_id, key)
                # Stays on the loop: a second cancel must not skip the refund.
                self._compensate(user_id, key, precharge)
                if metered:
                    self._record_failure(user_id, key, reason="cancelled")
                raise
            except Exception as exc:
                error = await asyncio.to_thread(
                    self._settle_failure, user_id, key, exc, metered=metered, precharge=precharge
                )
                raise error from exc
            # Empty-result check and charge commit happen in one worker call.
            return await asyncio.to_thread(
                self._deliver, user_id, key, value, metered=metered, precharge=precharge
            )
        finally:
            self._settled(user_id)

    def _begin(self, user_id: str, feature_key: str) -> Tuple[str, bool, Optional[Charged]]:
        key, metered = self._admit(user_id, feature_key)
        precharge = self._precharge(user_id, key) if metered else None
        return key, metered, precharge

    def _abandon(self, user_id: str, begin: "asyncio.Future[Tuple[str, bool, Optional[Charged]]]") -> None:
        """Return a precharge taken for a caller that was cancelled while admitting."""

        if begin.cancelled() or begin.exception() is not None:
            return
        key, metered, precharge = begin.result()
        if precharge is None:
            return
        self._compensate(user_id, key, precharge)
        if metered:
            self._record_failure(user_id, key, reason="cancelled")

    def _settle_failure(
        self,
        user_id: str,
        key: str,
        raw: BaseException,
        *,
        metered: bool,
        precharge: Optional[Charged],
    ) -> GatewayError:
        self._compensate(user_id, key, precharge)
        return self._fail(user_id, key, raw, metered=metered)

    def _admit(self, user_id: str, feature_key: str) -> Tuple[str, bool]:
        key = normalize_feature_key(feature_key)
        try:
            require_feature_enabled(self._registry, key)
        except GatewayError:
            logger.info("Rejected disabled feature user=%s feature=%s", user_id, key)
            raise

        snapshot: EntitlementSnapshot = self._resolver.resolve_or_fail_closed(user_id)
        descriptor = self._registry.describe(key)
        metered = snapshot.metered and bool(descriptor and descriptor.metered)
        if metered:
            try:
                require_credit(snapshot, key)
            except QuotaExceededError:
                logger.warning("Quota exceeded user=%s feature=%s", user_id, key)
                raise
        return key, metered

    def _precharge(self, user_id: str, key: str) -> Optional[Charged]:
        if self._policy != ChargePolicy.CHARGE_BEFORE:
            return None
        return self._charge(user_id, key, race_lost=False)

    def _charge(self, user_id: str, key: str, *, race_lost: bool) -> Charged:
        try:
            result = self._ledger.try_charge(user_id, key)
        except LedgerError as exc:
            logger.error("Charge failed user=%s feature=%s: %s", user_id, key, exc)
            raise self._error_for(ErrorKind.TRANSIENT_UPSTREAM_FAILURE, key, str(exc)) from exc
        if isinstance(result, Charged):
            return result
        logger.warning(
            "Quota exceeded at charge user=%s feature=%s race_lost=%s",
            user_id,
            key,
            race_lost,
        )
        if race_lost:
            self._record_failure(user_id, key, reason="race_lost")
        raise QuotaExceededError.for_feature(key, race_lost=race_lost)

    def _compensate(self, user_id: str, key: str, precharge: Optional[Charged]) -> None:
        if precharge is None:
            return
        # The caller still raises the classified failure; the precharge record
        # id in this log line is what operators reconcile a lost refund with.
        try:
            self._ledger.refund(user_id, key)
        except LedgerError:
            logger.exception(
                "Refund failed user=%s feature=%s record=%s; credit needs manual reconciliation",
                user_id,
                key,
                precharge.record.record_id,
            )

    def _deliver(
        self,
        user_id: str,
        key: str,
        value: T,
        *,
        metered: bool,
        precharge: Optional[Charged],
    ) -> Delivery[T]:
        if self._empty_result(value):
            raise self._settle_failure(user_id, key, EmptyResultError(), metered=metered, precharge=precharge)

        if not metered:
            logger.info("Delivered unmetered user=%s feature=%s", user_id, key)
            return Delivery(value=value, feature_key=key, metered=False)

        charged = precharge or self._charge(user_id, key, race_lost=True)
        logger.info(
            "Delivered metered user=%s feature=%s credits_remaining=%s",
            user_id,
            key,
            charged.balance,
        )
        return Delivery(
            value=value,
            feature_key=key,
            metered=True,
            credits_remaining=charged.balance,
            record=charged.record,
        )

    def _fail(self, user_id: str, key: str, raw: BaseException, *, metered: bool) -> GatewayError:
        kind = classify(raw)
        message = ""
        if isinstance(raw, (GatewayError, OperationError)):
            message = raw.message
        elif kind != ErrorKind.UNKNOWN:
            message = str(raw)
        error = self._error_for(kind, key, message)

        if kind == ErrorKind.UNKNOWN:
            logger.error(
                "Unclassified failure user=%s feature=%s",
                user_id,
                key,
                exc_info=(type(raw), raw, raw.__traceback__),
            )
        else:
            logger.warning("Operation failed user=%s feature=%s kind=%s: %s", user_id, key, kind.value, raw)
        if metered:
            self._record_failure(user_id, key, reason=kind.value)
        return error

    def _error_for(self, kind: ErrorKind, key: str, message: str) -> GatewayError:
        description = describe_kind(kind)
        return ClassifiedOperationError(
            kind=kind,
            message=message or description.default_message,
            detail={"feature": key, "retryable": description.retryable},
        )

    def _record_failure(self, user_id: str, key: str, *, reason: str) -> None:
        # Audit only; a ledger outage here must not mask the original failure.
        try:
            self._ledger.record_failure(user_id, key, reason=reason)
        except LedgerError:
            logger.exception("Could not record failed invocation user=%s feature=%s", user_id, key)

    def _settled(self, user_id: str) -> None:
        if self._invalidator is None:
            return
        # Runs after the outcome is final; a cache failure must not replace it.
        try:
            self._invalidator.invalidate_user(user_id)
        except Exception:
            logger.exception("Snapshot invalidation failed user=%s", user_id)


__all__ = ["ChargePolicy", "Delivery", "QuotaGateway", "SnapshotInvalidator", "is_empty_result"]
