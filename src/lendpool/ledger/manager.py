"""
Core lending ledger implementation.
"""

import threading
from contextlib import contextmanager
from typing import Optional, List, Dict, Any

from ..logging import get_logger, operation_context
from .assets import AssetRegistry, NativeBank
from .clock import Clock, SystemClock
from .errors import (
    AccessDenied, AlreadyRepaid, AssetError, CollateralAlreadyClaimed,
    InsufficientBalance, InsufficientCollateral, InsufficientLiquidity,
    InsufficientRepayment, InvalidAccount, InvalidRatio, InvalidReserve, LedgerError, LoanExpired,
    LoanNotExpired, LoanRepaid, NoSuchLoan, RepaymentRequired
)
from .interest import (
    LOAN_PERIOD, calculate_owed, calculate_principal, is_expired
)
from .models import (
    LedgerEvent, LedgerEventType, Loan, LoanStatus, LoanView, is_null_identity
)

logger = get_logger(__name__)


class LendingLedger:
    """Collateralized lending pool with one loan slot per borrower.

    Every public operation runs under a single lock and reads the clock once.
    All checks run before any balance or record changes, so a rejected call
    leaves the ledger exactly as it was.
    """

    def __init__(
        self,
        administrator: str,
        interest_rate: int = 500,
        assets: Optional[AssetRegistry] = None,
        native: Optional[NativeBank] = None,
        clock: Optional[Clock] = None,
        custody_account: str = "lendpool-custody",
        loan_period: int = LOAN_PERIOD,
        event_history_limit: int = 10000,
    ):
        if is_null_identity(administrator):
            raise InvalidAccount("Administrator identity must not be null")
        if interest_rate < 0:
            raise ValueError("Interest rate must be non-negative")

        self._administrator = administrator
        self._interest_rate = interest_rate
        self._loan_ratios: Dict[str, int] = {}
        self._loans: Dict[str, Loan] = {}

        self.assets = assets or AssetRegistry()
        self.native = native or NativeBank()
        self.clock = clock or SystemClock()
        self.custody_account = custody_account
        self.loan_period = loan_period

        self.event_history: List[LedgerEvent] = []
        self.event_history_limit = event_history_limit
        self._next_sequence = 1

        self._lock = threading.RLock()

        logger.info(f"Lending ledger created: administrator={administrator}, "
                    f"interest_rate={interest_rate}, loan_period={loan_period}s")

    @classmethod
    def from_settings(cls, ledger_settings, assets=None, native=None, clock=None) -> "LendingLedger":
        """Build a ledger from ``LedgerSettings``."""
        return cls(
            administrator=ledger_settings.administrator,
            interest_rate=ledger_settings.initial_interest_rate,
            assets=assets,
            native=native or NativeBank(ledger_settings.native_asset),
            clock=clock,
            custody_account=ledger_settings.custody_account,
            loan_period=ledger_settings.loan_period_seconds,
        )

    # Views

    @property
    def administrator(self) -> str:
        return self._administrator

    @property
    def interest_rate(self) -> int:
        return self._interest_rate

    def loan_ratio(self, reserve: str) -> int:
        """Configured ratio for ``reserve``; zero means borrowing is disabled."""
        return self._loan_ratios.get(reserve, 0)

    def loan_ratios(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._loan_ratios)

    def get_loan(self, borrower: str) -> Optional[Loan]:
        """Copy of the borrower's loan record, or None."""
        with self._lock:
            loan = self._loans.get(borrower)
            return loan.model_copy() if loan else None

    def pool_liquidity(self, reserve: str) -> int:
        """Reserve units held in custody."""
        return self.assets.get(reserve).balance_of(self.custody_account)

    def owed_amount(self, borrower: str) -> int:
        """Principal plus interest the borrower would owe right now."""
        with self._lock:
            loan = self._require_loan(borrower)
            return self._owed_for(loan, self.clock.now())

    def loan_view(self, borrower: str) -> LoanView:
        with self._lock:
            now = self.clock.now()
            loan = self._require_loan(borrower)
            return self._view(borrower, loan, now)

    def expired_loans(self) -> List[LoanView]:
        """Loans past their period that were neither repaid nor claimed."""
        with self._lock:
            now = self.clock.now()
            return [
                self._view(borrower, loan, now)
                for borrower, loan in self._loans.items()
                if loan.status(now, self.loan_period) == LoanStatus.EXPIRED
            ]

    def outstanding_collateral(self) -> int:
        """Native collateral locked by loans that are not yet resolved."""
        with self._lock:
            return sum(loan.collateral for loan in self._loans.values() if not loan.is_terminated)

    def events_since(self, sequence: int) -> List[LedgerEvent]:
        """Events with a sequence number greater than ``sequence``."""
        with self._lock:
            return [event for event in self.event_history if event.sequence > sequence]

    # Configuration

    def set_interest_rate(self, caller: str, rate: int) -> None:
        with self._operation("set_interest_rate", caller) as now:
            self._require_administrator(caller, "set_interest_rate")
            if rate < 0:
                raise ValueError("Interest rate must be non-negative")

            previous = self._interest_rate
            self._interest_rate = rate
            self._record(LedgerEventType.INTEREST_RATE_SET, now, caller,
                         data={"previous": previous, "rate": rate})

            logger.info(f"Interest rate set: {previous} -> {rate}")

    def set_loan_ratio(self, caller: str, reserve: str, ratio: int) -> None:
        with self._operation("set_loan_ratio", caller) as now:
            self._require_administrator(caller, "set_loan_ratio")
            if is_null_identity(reserve):
                raise InvalidReserve("Reserve must not be null", caller)
            if ratio <= 0:
                raise InvalidRatio(f"Loan ratio must be positive, got {ratio}", caller)

            previous = self._loan_ratios.get(reserve, 0)
            self._loan_ratios[reserve] = ratio
            self._record(LedgerEventType.LOAN_RATIO_SET, now, caller, reserve=reserve,
                         data={"previous": previous, "ratio": ratio})

            logger.info(f"Loan ratio for {reserve} set: {previous} -> {ratio}")

    def transfer_ownership(self, caller: str, new_administrator: str) -> None:
        with self._operation("transfer_ownership", caller) as now:
            self._require_administrator(caller, "transfer_ownership")
            if is_null_identity(new_administrator):
                raise InvalidAccount("New administrator must not be null", caller)

            self._administrator = new_administrator
            self._record(LedgerEventType.OWNERSHIP_TRANSFERRED, now, caller,
                         data={"previous": caller, "administrator": new_administrator})

            logger.info(f"Ownership transferred: {caller} -> {new_administrator}")

    # Liquidity

    def deposit(self, caller: str, reserve: str, amount: int) -> None:
        """Pull ``amount`` of ``reserve`` from the caller into the pool."""
        with self._operation("deposit", caller) as now:
            if is_null_identity(reserve):
                raise InvalidReserve("Reserve must not be null", caller)

            token = self.assets.get(reserve)
            token.transfer_from(self.custody_account, caller, self.custody_account, amount)

            self._record(LedgerEventType.DEPOSIT, now, caller, reserve=reserve, amount=amount)

            logger.info(f"Deposit: {caller} added {amount} {token.symbol}, "
                        f"pool now {token.balance_of(self.custody_account)}")

    # Loan lifecycle

    def borrow(self, caller: str, reserve: str, value: int) -> Loan:
        """Lock ``value`` native units and issue principal in ``reserve``."""
        with self._operation("borrow", caller) as now:
            if is_null_identity(reserve):
                raise InvalidReserve("Reserve must not be null", caller)
            if value <= 0:
                raise InsufficientCollateral("Collateral must be positive", caller)

            existing = self._loans.get(caller)
            if existing is not None and not existing.is_terminated:
                raise RepaymentRequired("Outstanding loan must be repaid first", caller)

            principal = calculate_principal(value, self.loan_ratio(reserve))
            token = self.assets.get(reserve)
            available = token.balance_of(self.custody_account)
            if principal > available:
                raise InsufficientLiquidity(reserve, principal, available)
            if principal == 0:
                raise InvalidRatio(f"No loan ratio configured for {reserve}", caller)

            self.native.transfer(caller, self.custody_account, value)
            try:
                token.transfer(self.custody_account, caller, principal)
            except AssetError:
                self.native.transfer(self.custody_account, caller, value)
                raise

            loan = Loan(
                reserve=reserve,
                collateral=value,
                principal=principal,
                origination_time=now
            )
            self._loans[caller] = loan
            self._record(LedgerEventType.LOAN_OPENED, now, caller, reserve=reserve,
                         amount=principal, data={"collateral": value})

            logger.info(f"Loan opened: {caller} locked {value} {self.native.symbol}, "
                        f"received {principal} {token.symbol}")

            return loan.model_copy()

    def repay(self, caller: str, reserve: str, amount: int) -> Loan:
        """Settle the caller's loan and return the collateral.

        The whole ``amount`` is kept by the pool, including any excess over
        the owed amount.
        """
        with self._operation("repay", caller) as now:
            if is_null_identity(reserve):
                raise InvalidReserve("Reserve must not be null", caller)
            loan = self._require_loan(caller)
            if loan.reserve != reserve:
                raise InvalidReserve(f"Loan was issued in {loan.reserve}, not {reserve}", caller)
            if loan.repaid:
                raise AlreadyRepaid("Loan is already repaid", caller)
            if is_expired(loan.origination_time, now, self.loan_period):
                raise LoanExpired("Loan period has ended", caller)

            owed = self._owed_for(loan, now)
            interest = owed - loan.principal
            if amount < owed:
                raise InsufficientRepayment(caller, amount, owed)

            token = self.assets.get(reserve)
            held = self.native.balance_of(self.custody_account)
            if held < loan.collateral:
                raise InsufficientBalance(self.native.symbol, self.custody_account, held, loan.collateral)

            token.transfer_from(self.custody_account, caller, self.custody_account, amount)
            try:
                self.native.transfer(self.custody_account, caller, loan.collateral)
            except AssetError:
                # Undo the pull, allowance included
                token.transfer(self.custody_account, caller, amount)
                token.approve(caller, self.custody_account,
                              token.allowance(caller, self.custody_account) + amount)
                raise

            loan.repaid = True
            self._record(LedgerEventType.LOAN_REPAID, now, caller, reserve=reserve, amount=amount,
                         data={"owed": owed, "interest": interest, "collateral": loan.collateral})

            logger.info(f"Loan repaid: {caller} paid {amount} {token.symbol} "
                        f"(owed {owed}, interest {interest}), collateral {loan.collateral} returned")

            return loan.model_copy()

    def claim_collateral(self, caller: str, borrower: str) -> Loan:
        """Seize the collateral of an expired, unpaid loan."""
        with self._operation("claim_collateral", caller) as now:
            self._require_administrator(caller, "claim_collateral")
            loan = self._require_loan(borrower)
            if loan.repaid:
                raise LoanRepaid(f"Loan of {borrower} was repaid", borrower)
            if loan.collateral_claimed:
                raise CollateralAlreadyClaimed(f"Collateral of {borrower} already claimed", borrower)
            if not is_expired(loan.origination_time, now, self.loan_period):
                raise LoanNotExpired(f"Loan of {borrower} has not expired", borrower)

            self.native.transfer(self.custody_account, caller, loan.collateral)

            loan.collateral_claimed = True
            self._record(LedgerEventType.COLLATERAL_CLAIMED, now, caller, reserve=loan.reserve,
                         amount=loan.collateral, data={"borrower": borrower, "principal": loan.principal})

            logger.warning(f"Collateral claimed: {loan.collateral} {self.native.symbol} "
                           f"from {borrower} (principal {loan.principal} unpaid)")

            return loan.model_copy()

    # Reporting

    def get_ledger_metrics(self) -> Dict[str, Any]:
        """Get comprehensive ledger metrics."""
        with self._lock:
            now = self.clock.now()
            statuses = [loan.status(now, self.loan_period) for loan in self._loans.values()]
            open_loans = [loan for loan in self._loans.values() if not loan.is_terminated]

            return {
                'administrator': self._administrator,
                'interest_rate': self._interest_rate,
                'loan_period': self.loan_period,
                'loan_ratios': dict(self._loan_ratios),
                'pool_liquidity': {
                    reserve: self.assets.get(reserve).balance_of(self.custody_account)
                    for reserve in self.assets.reserves()
                },
                'collateral_held': self.native.balance_of(self.custody_account),
                'outstanding_collateral': sum(loan.collateral for loan in open_loans),
                'outstanding_principal': sum(loan.principal for loan in open_loans),
                'total_loans': len(self._loans),
                'active_loans': statuses.count(LoanStatus.ACTIVE),
                'expired_loans': statuses.count(LoanStatus.EXPIRED),
                'repaid_loans': statuses.count(LoanStatus.REPAID),
                'claimed_loans': statuses.count(LoanStatus.CLAIMED),
                'events_recorded': self._next_sequence - 1,
                'timestamp': now
            }

    # Internals

    @contextmanager
    def _operation(self, name: str, caller: str):
        """Serialize one public operation and log its rejection, if any."""
        with self._lock, operation_context(name, caller):
            try:
                yield self.clock.now()
            except LedgerError as e:
                logger.warning(f"{name} rejected for {caller}: {e.code} - {e}")
                raise

    def _require_administrator(self, caller: str, operation: str) -> None:
        if caller != self._administrator:
            raise AccessDenied(caller, operation)

    def _require_loan(self, borrower: str) -> Loan:
        loan = self._loans.get(borrower)
        if loan is None:
            raise NoSuchLoan(f"No loan found for {borrower}", borrower)
        return loan

    def _owed_for(self, loan: Loan, now: int) -> int:
        return calculate_owed(loan.principal, self._interest_rate, loan.origination_time,
                              now, self.loan_period)

    def _view(self, borrower: str, loan: Loan, now: int) -> LoanView:
        owed = self._owed_for(loan, now)
        interest = owed - loan.principal
        return LoanView(
            borrower=borrower,
            loan=loan.model_copy(),
            status=loan.status(now, self.loan_period),
            owed=owed,
            interest=interest,
            expires_at=loan.origination_time + self.loan_period,
            as_of=now
        )

    def _record(
        self,
        event_type: LedgerEventType,
        now: int,
        account: str,
        reserve: Optional[str] = None,
        amount: Optional[int] = None,
        data: Optional[Dict[str, Any]] = None
    ) -> LedgerEvent:
        event = LedgerEvent(
            sequence=self._next_sequence,
            event_type=event_type,
            timestamp=now,
            account=account,
            reserve=reserve,
            amount=amount,
            data=data or {}
        )
        self._next_sequence += 1
        self.event_history.append(event)
        if len(self.event_history) > self.event_history_limit:
            del self.event_history[:len(self.event_history) - self.event_history_limit]
        return event
