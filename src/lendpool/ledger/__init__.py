"""Lending ledger: pooled reserves, collateralized fixed-period loans."""

from .models import Loan, LoanStatus, LedgerEvent, LedgerEventType
from .manager import LendingLedger
from .service import LedgerService

__all__ = [
    "Loan",
    "LoanStatus",
    "LedgerEvent",
    "LedgerEventType",
    "LendingLedger",
    "LedgerService"
]
