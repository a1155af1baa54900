"""
Ledger error taxonomy.

Every rejection raised by the lending ledger derives from ``LedgerError`` and
carries a stable ``code`` that callers surface verbatim.
"""

from datetime import datetime
from typing import Optional


class LedgerError(Exception):
    """Base exception for lending ledger rejections."""

    code = "LedgerError"

    def __init__(self, message: str, account: Optional[str] = None):
        self.account = account
        self.timestamp = datetime.utcnow()
        super().__init__(message)

    @property
    def message(self) -> str:
        return str(self)

    def to_dict(self) -> dict:
        """Serialize for API responses and event payloads."""
        return {"error": self.code, "detail": self.message}


class AccessDenied(LedgerError):
    """Raised when a non-administrator calls an administrator-only operation."""

    code = "AccessDenied"

    def __init__(self, caller: str, operation: str):
        self.operation = operation
        super().__init__(f"{caller} is not allowed to call {operation}", caller)


class InvalidAccount(LedgerError):
    """Raised when an account identity is null."""

    code = "InvalidAccount"


class InvalidReserve(LedgerError):
    """Raised for a null reserve or a reserve that does not match the loan."""

    code = "InvalidReserve"


class InvalidRatio(LedgerError):
    """Raised when a loan ratio is zero or the reserve has no ratio configured."""

    code = "InvalidRatio"


class InsufficientCollateral(LedgerError):
    """Raised when a borrow carries no native collateral."""

    code = "InsufficientCollateral"


class RepaymentRequired(LedgerError):
    """Raised when a borrower with an outstanding loan tries to borrow again."""

    code = "RepaymentRequired"


class InsufficientLiquidity(LedgerError):
    """Raised when the pool cannot cover the requested principal."""

    code = "InsufficientLiquidity"

    def __init__(self, reserve: str, requested: int, available: int):
        self.reserve = reserve
        self.requested = requested
        self.available = available
        super().__init__(
            f"Pool holds {available} of {reserve}, {requested} requested"
        )


class NoSuchLoan(LedgerError):
    """Raised when the borrower has no loan record."""

    code = "NoSuchLoan"


class AlreadyRepaid(LedgerError):
    """Raised when the borrower repays a loan that is already repaid."""

    code = "AlreadyRepaid"


class LoanExpired(LedgerError):
    """Raised when repayment is attempted after the loan period."""

    code = "LoanExpired"


class InsufficientRepayment(LedgerError):
    """Raised when the repayment does not cover principal plus interest."""

    code = "InsufficientRepayment"

    def __init__(self, account: str, amount: int, owed: int):
        self.amount = amount
        self.owed = owed
        super().__init__(f"Repayment {amount} is below owed amount {owed}", account)


class LoanRepaid(LedgerError):
    """Raised when the administrator claims collateral of a repaid loan."""

    code = "LoanRepaid"


class CollateralAlreadyClaimed(LedgerError):
    """Raised when collateral of a loan has already been claimed."""

    code = "CollateralAlreadyClaimed"


class LoanNotExpired(LedgerError):
    """Raised when collateral is claimed before the loan period has passed."""

    code = "LoanNotExpired"


class AssetError(LedgerError):
    """Base exception for failures reported by asset collaborators."""

    code = "AssetError"


class UnknownAsset(AssetError):
    """Raised when a reserve identifier has no registered token."""

    code = "UnknownAsset"


class InsufficientBalance(AssetError):
    """Raised when an account cannot cover a transfer."""

    code = "InsufficientBalance"

    def __init__(self, asset: str, account: str, balance: int, amount: int):
        self.asset = asset
        self.balance = balance
        self.amount = amount
        super().__init__(
            f"{account} holds {balance} {asset}, cannot transfer {amount}", account
        )


class InsufficientAllowance(AssetError):
    """Raised when a spender is not approved for the requested amount."""

    code = "InsufficientAllowance"

    def __init__(self, asset: str, owner: str, spender: str, allowance: int, amount: int):
        self.asset = asset
        self.spender = spender
        self.allowance = allowance
        self.amount = amount
        super().__init__(
            f"{spender} may spend {allowance} {asset} of {owner}, {amount} requested",
            owner,
        )
