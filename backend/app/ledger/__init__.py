"""Usage ledger: authoritative credit balances and the usage audit trail."""

from .models import (
    CREDIT_PACKAGES,
    ChargeResult,
    Charged,
    CreditPackage,
    InsufficientBalance,
    LedgerError,
    LedgerUnavailable,
    UsageOutcome,
    UsageRecord,
    get_credit_package,
)
from .service import InMemoryUsageLedger, UsageLedger

__all__ = [
    "CREDIT_PACKAGES",
    "ChargeResult",
    "Charged",
    "CreditPackage",
    "InMemoryUsageLedger",
    "InsufficientBalance",
    "LedgerError",
    "LedgerUnavailable",
    "UsageLedger",
    "UsageOutcome",
    "UsageRecord",
    "get_credit_package",
]
