"""Domain models for the usage ledger."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class UsageOutcome(str, Enum):
    """Outcome stored on each appended usage record."""

    CHARGED = "charged"
    FAILED_NOT_CHARGED = "failed_not_charged"
    REFUNDED = "refunded"
    GRANTED = "granted"


class UsageRecord(BaseModel):
    """Append-only audit entry describing one ledger event."""

    record_id: str = Field(default_factory=lambda: f"ur_{uuid4().hex}")
    user_id: str
    feature_key: Optional[str] = None
    outcome: UsageOutcome
    credits_delta: int = 0
    balance_after: Optional[int] = None
    reason: Optional[str] = None
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)


@dataclass(frozen=True)
class Charged:
    """A credit was deducted and a ``charged`` record appended."""

    record: UsageRecord
    balance: int


@dataclass(frozen=True)
class InsufficientBalance:
    """The user had no credit left at the time of the charge."""

    user_id: str
    feature_key: str
    balance: int = 0


ChargeResult = Union[Charged, InsufficientBalance]


@dataclass(frozen=True)
class CreditPackage:
    """Purchasable credit bundle; only the credit amount matters to the ledger."""

    package_id: str
    name: str
    credits: int
    popular: bool = False


CREDIT_PACKAGES: Dict[str, CreditPackage] = {
    "starter": CreditPackage(package_id="starter", name="Starter Pack", credits=5, popular=True),
    "pro": CreditPackage(package_id="pro", name="Pro Pack", credits=10),
}


def get_credit_package(package_id: str) -> CreditPackage:
    try:
        return CREDIT_PACKAGES[package_id]
    except KeyError as exc:
        raise KeyError(f"Unknown credit package: {package_id}") from exc


class LedgerError(Exception):
    """Base class for ledger failures."""


class LedgerUnavailable(LedgerError):
    """The backing store could not be reached or rejected the statement."""
