"""
Unit tests for LendingLedger class.
"""

import pytest
from unittest.mock import patch

from src.lendpool.ledger.errors import (
    AccessDenied, AlreadyRepaid, CollateralAlreadyClaimed, InsufficientAllowance,
    InsufficientBalance, InsufficientCollateral, InsufficientLiquidity,
    InsufficientRepayment, InvalidAccount, InvalidRatio, InvalidReserve,
    LoanExpired, LoanNotExpired, LoanRepaid, NoSuchLoan, RepaymentRequired,
    UnknownAsset
)
from src.lendpool.ledger.manager import LendingLedger
from src.lendpool.ledger.models import NULL_ADDRESS, LedgerEventType, LoanStatus
from tests.conftest import (
    ALICE, BOB, CAROL, CUSTODY, DAY, OWNER, TOKEN_ADDRESS, units
)


class TestDeployment:
    """Test ledger construction."""

    def test_sets_interest_rate(self, ledger):
        """Test initial interest rate."""
        assert ledger.interest_rate == 500
        assert ledger.administrator == OWNER

    def test_rejects_null_administrator(self):
        """Test ledger cannot be created without an administrator."""
        with pytest.raises(InvalidAccount):
            LendingLedger(administrator=NULL_ADDRESS)

    def test_rejects_negative_rate(self):
        """Test negative initial rate is rejected."""
        with pytest.raises(ValueError):
            LendingLedger(administrator=OWNER, interest_rate=-1)


class TestSetInterestRate:
    """Test interest rate configuration."""

    def test_non_owner_rejected(self, ledger):
        """Test non-administrator cannot set the rate."""
        with pytest.raises(AccessDenied):
            ledger.set_interest_rate(ALICE, 500)

    def test_sets_rate(self, ledger):
        """Test administrator sets the rate."""
        ledger.set_interest_rate(OWNER, 300)

        assert ledger.interest_rate == 300
        event = ledger.event_history[-1]
        assert event.event_type == LedgerEventType.INTEREST_RATE_SET
        assert event.data == {"previous": 500, "rate": 300}

    def test_zero_rate_accepted(self, ledger):
        """Test a zero rate is a valid configuration."""
        ledger.set_interest_rate(OWNER, 0)
        assert ledger.interest_rate == 0


class TestSetLoanRatio:
    """Test loan ratio configuration."""

    def test_non_owner_rejected(self, ledger):
        """Test non-administrator cannot set a ratio."""
        with pytest.raises(AccessDenied):
            ledger.set_loan_ratio(ALICE, TOKEN_ADDRESS, 3000 * 10_000)

    def test_null_reserve_rejected(self, ledger):
        """Test zero address is rejected."""
        with pytest.raises(InvalidReserve):
            ledger.set_loan_ratio(OWNER, NULL_ADDRESS, 3000 * 10_000)

    def test_zero_ratio_rejected(self, ledger):
        """Test zero ratio is rejected."""
        with pytest.raises(InvalidRatio):
            ledger.set_loan_ratio(OWNER, TOKEN_ADDRESS, 0)

    def test_sets_ratio(self, ledger):
        """Test administrator sets the ratio."""
        ledger.set_loan_ratio(OWNER, TOKEN_ADDRESS, 3000 * 10_000)

        assert ledger.loan_ratio(TOKEN_ADDRESS) == 3000 * 10_000

    def test_access_checked_before_arguments(self, ledger):
        """Test access denial wins over invalid arguments."""
        with pytest.raises(AccessDenied):
            ledger.set_loan_ratio(ALICE, NULL_ADDRESS, 0)

    def test_unconfigured_ratio_is_zero(self, ledger):
        """Test unknown reserves report a zero ratio."""
        assert ledger.loan_ratio("0xunknown") == 0


class TestDeposit:
    """Test liquidity deposits."""

    def test_null_reserve_rejected(self, ledger):
        """Test zero address is rejected."""
        with pytest.raises(InvalidReserve):
            ledger.deposit(ALICE, NULL_ADDRESS, units(10_000))

    def test_transfers_tokens_to_custody(self, ledger, token):
        """Test deposit moves exactly the amount into custody."""
        alice_before = token.balance_of(ALICE)
        pool_before = token.balance_of(CUSTODY)

        ledger.deposit(ALICE, TOKEN_ADDRESS, units(10_000))

        assert alice_before - token.balance_of(ALICE) == units(10_000)
        assert token.balance_of(CUSTODY) - pool_before == units(10_000)
        assert ledger.pool_liquidity(TOKEN_ADDRESS) == units(10_000)

    def test_requires_allowance(self, ledger, token):
        """Test deposit beyond the approved amount fails without effect."""
        with pytest.raises(InsufficientAllowance):
            ledger.deposit(ALICE, TOKEN_ADDRESS, units(60_000))

        assert token.balance_of(CUSTODY) == 0
        assert ledger.event_history == []

    def test_unknown_reserve(self, ledger):
        """Test deposit into an unregistered reserve."""
        with pytest.raises(UnknownAsset):
            ledger.deposit(ALICE, "0xunknown", units(1))

    def test_records_event(self, ledger):
        """Test deposit event is recorded."""
        ledger.deposit(ALICE, TOKEN_ADDRESS, units(5))

        event = ledger.event_history[-1]
        assert event.event_type == LedgerEventType.DEPOSIT
        assert event.account == ALICE
        assert event.amount == units(5)


class TestBorrow:
    """Test loan origination."""

    def test_null_reserve_rejected(self, funded_ledger):
        """Test zero address is rejected."""
        with pytest.raises(InvalidReserve):
            funded_ledger.borrow(BOB, NULL_ADDRESS, units(1))

    def test_zero_collateral_rejected(self, funded_ledger):
        """Test borrow without collateral is rejected."""
        with pytest.raises(InsufficientCollateral):
            funded_ledger.borrow(BOB, TOKEN_ADDRESS, 0)

    def test_exceeding_liquidity_rejected(self, funded_ledger, native):
        """Test 11 ETH would need 33,000 CAT but the pool holds 30,000."""
        bob_before = native.balance_of(BOB)

        with pytest.raises(InsufficientLiquidity) as exc_info:
            funded_ledger.borrow(BOB, TOKEN_ADDRESS, units(11))

        assert exc_info.value.requested == units(33_000)
        assert exc_info.value.available == units(30_000)
        assert native.balance_of(BOB) == bob_before
        assert funded_ledger.get_loan(BOB) is None

    def test_creates_loan(self, funded_ledger, native, token, clock):
        """Test borrow locks collateral and issues principal."""
        pool_eth_before = native.balance_of(CUSTODY)
        bob_eth_before = native.balance_of(BOB)
        bob_cat_before = token.balance_of(BOB)

        funded_ledger.borrow(BOB, TOKEN_ADDRESS, units(1))

        loan = funded_ledger.get_loan(BOB)
        assert loan.reserve == TOKEN_ADDRESS
        assert loan.collateral == units(1)
        assert loan.principal == units(3000)
        assert loan.repaid is False
        assert loan.collateral_claimed is False
        assert loan.origination_time == clock.now()

        assert native.balance_of(CUSTODY) - pool_eth_before == units(1)
        assert bob_eth_before - native.balance_of(BOB) == units(1)
        assert token.balance_of(BOB) - bob_cat_before == units(3000)
        assert funded_ledger.pool_liquidity(TOKEN_ADDRESS) == units(27_000)

    def test_other_borrower_unaffected(self, borrowed_ledger):
        """Test a second borrower can open a loan."""
        borrowed_ledger.borrow(CAROL, TOKEN_ADDRESS, units(2))

        assert borrowed_ledger.get_loan(CAROL).principal == units(6000)

    def test_outstanding_loan_blocks_new_loan(self, borrowed_ledger):
        """Test borrower with an unpaid loan cannot borrow again."""
        with pytest.raises(RepaymentRequired):
            borrowed_ledger.borrow(BOB, TOKEN_ADDRESS, units(2))

    def test_outstanding_loan_checked_before_liquidity(self, borrowed_ledger):
        """Test repayment requirement is reported before liquidity."""
        with pytest.raises(RepaymentRequired):
            borrowed_ledger.borrow(BOB, TOKEN_ADDRESS, units(50))

    def test_unconfigured_reserve_rejected(self, ledger):
        """Test borrowing against a reserve without a ratio."""
        ledger.deposit(ALICE, TOKEN_ADDRESS, units(1000))

        with pytest.raises(InvalidRatio):
            ledger.borrow(BOB, TOKEN_ADDRESS, units(1))

    def test_principal_truncated(self, funded_ledger):
        """Test principal rounds toward zero."""
        funded_ledger.set_loan_ratio(OWNER, TOKEN_ADDRESS, 3)

        loan = funded_ledger.borrow(BOB, TOKEN_ADDRESS, 6667)

        assert loan.principal == 2  # 6667 * 3 / 10000 = 2.0001

    def test_dust_collateral_rejected(self, funded_ledger):
        """Test collateral too small to produce any principal."""
        funded_ledger.set_loan_ratio(OWNER, TOKEN_ADDRESS, 3)

        with pytest.raises(InvalidRatio):
            funded_ledger.borrow(BOB, TOKEN_ADDRESS, 3333)

    def test_insufficient_native_balance(self, funded_ledger, token):
        """Test borrower must hold the collateral."""
        with pytest.raises(InsufficientBalance):
            funded_ledger.borrow("dave", TOKEN_ADDRESS, units(1))

        assert funded_ledger.get_loan("dave") is None
        assert token.balance_of("dave") == 0

    def test_returned_loan_is_a_copy(self, funded_ledger):
        """Test mutating a returned record does not touch the ledger."""
        loan = funded_ledger.borrow(BOB, TOKEN_ADDRESS, units(1))
        loan.repaid = True

        assert funded_ledger.get_loan(BOB).repaid is False


class TestRepay:
    """Test loan repayment."""

    def test_repay_after_full_period(self, borrowed_ledger, clock, token, native):
        """Test repaying 3150 CAT after exactly 30 days."""
        clock.advance(30 * DAY)
        pool_cat_before = token.balance_of(CUSTODY)
        bob_cat_before = token.balance_of(BOB)
        pool_eth_before = native.balance_of(CUSTODY)
        bob_eth_before = native.balance_of(BOB)

        borrowed_ledger.repay(BOB, TOKEN_ADDRESS, units(3150))

        assert borrowed_ledger.get_loan(BOB).repaid is True
        assert token.balance_of(CUSTODY) - pool_cat_before == units(3150)
        assert bob_cat_before - token.balance_of(BOB) == units(3150)
        assert pool_eth_before - native.balance_of(CUSTODY) == units(1)
        assert native.balance_of(BOB) - bob_eth_before == units(1)

    def test_repay_after_half_period(self, borrowed_ledger, clock, token):
        """Test repaying 3075 CAT after 15 days."""
        clock.advance(15 * DAY)
        bob_cat_before = token.balance_of(BOB)

        borrowed_ledger.repay(BOB, TOKEN_ADDRESS, units(3075))

        assert borrowed_ledger.get_loan(BOB).repaid is True
        assert bob_cat_before - token.balance_of(BOB) == units(3075)

    def test_repay_immediately_owes_principal(self, borrowed_ledger):
        """Test no interest accrues at zero elapsed time."""
        assert borrowed_ledger.owed_amount(BOB) == units(3000)

        borrowed_ledger.repay(BOB, TOKEN_ADDRESS, units(3000))

        assert borrowed_ledger.get_loan(BOB).repaid is True

    def test_already_repaid(self, borrowed_ledger, clock, token):
        """Test second repayment is rejected."""
        clock.advance(30 * DAY)
        borrowed_ledger.repay(BOB, TOKEN_ADDRESS, units(3150))
        token.approve(BOB, CUSTODY, units(3150))

        with pytest.raises(AlreadyRepaid):
            borrowed_ledger.repay(BOB, TOKEN_ADDRESS, units(3150))

    def test_expired(self, borrowed_ledger, clock):
        """Test repayment after 31 days is rejected."""
        clock.advance(31 * DAY)

        with pytest.raises(LoanExpired):
            borrowed_ledger.repay(BOB, TOKEN_ADDRESS, units(3150))

    def test_expired_one_second_past_period(self, borrowed_ledger, clock):
        """Test the period boundary is inclusive for repayment."""
        clock.advance(30 * DAY + 1)

        with pytest.raises(LoanExpired):
            borrowed_ledger.repay(BOB, TOKEN_ADDRESS, units(3150))

    def test_expired_regardless_of_amount(self, borrowed_ledger, clock, token):
        """Test overpaying does not revive an expired loan."""
        token.approve(BOB, CUSTODY, units(1000))
        clock.advance(31 * DAY)

        with pytest.raises(LoanExpired):
            borrowed_ledger.repay(BOB, TOKEN_ADDRESS, units(1000))

    def test_insufficient_repayment(self, borrowed_ledger, clock, native):
        """Test 3100 CAT does not cover 3150 owed."""
        clock.advance(30 * DAY)
        bob_eth_before = native.balance_of(BOB)

        with pytest.raises(InsufficientRepayment) as exc_info:
            borrowed_ledger.repay(BOB, TOKEN_ADDRESS, units(3100))

        assert exc_info.value.owed == units(3150)
        assert borrowed_ledger.get_loan(BOB).repaid is False
        assert native.balance_of(BOB) == bob_eth_before

    def test_missing_collateral_leaves_payment_untouched(self, borrowed_ledger, clock, token, native):
        """Test repay is rejected before pulling tokens when custody cannot return collateral."""
        native.transfer(CUSTODY, CAROL, units(1))
        clock.advance(15 * DAY)
        allowance_before = token.allowance(BOB, CUSTODY)
        bob_tokens_before = token.balance_of(BOB)
        pool_before = borrowed_ledger.pool_liquidity(TOKEN_ADDRESS)

        with pytest.raises(InsufficientBalance):
            borrowed_ledger.repay(BOB, TOKEN_ADDRESS, units(3075))

        assert token.allowance(BOB, CUSTODY) == allowance_before
        assert token.balance_of(BOB) == bob_tokens_before
        assert borrowed_ledger.pool_liquidity(TOKEN_ADDRESS) == pool_before
        assert borrowed_ledger.get_loan(BOB).repaid is False

    def test_failed_collateral_return_restores_allowance(self, borrowed_ledger, clock, token, native):
        """Test a collateral transfer failure refunds the payment and its allowance."""
        clock.advance(15 * DAY)
        allowance_before = token.allowance(BOB, CUSTODY)
        bob_tokens_before = token.balance_of(BOB)
        failure = InsufficientBalance(native.symbol, CUSTODY, 0, units(1))

        with patch.object(native, "transfer", side_effect=failure):
            with pytest.raises(InsufficientBalance):
                borrowed_ledger.repay(BOB, TOKEN_ADDRESS, units(3075))

        assert token.allowance(BOB, CUSTODY) == allowance_before
        assert token.balance_of(BOB) == bob_tokens_before
        assert borrowed_ledger.get_loan(BOB).repaid is False

    def test_overpayment_kept(self, borrowed_ledger, clock, token):
        """Test the whole amount is transferred, excess included."""
        clock.advance(15 * DAY)
        bob_cat_before = token.balance_of(BOB)

        borrowed_ledger.repay(BOB, TOKEN_ADDRESS, units(3150))

        assert bob_cat_before - token.balance_of(BOB) == units(3150)

    def test_no_loan(self, funded_ledger):
        """Test repayment without a loan."""
        with pytest.raises(NoSuchLoan):
            funded_ledger.repay(CAROL, TOKEN_ADDRESS, units(1))

    def test_wrong_reserve(self, borrowed_ledger):
        """Test repayment in a different reserve."""
        with pytest.raises(InvalidReserve):
            borrowed_ledger.repay(BOB, "0xother", units(3150))

    def test_missing_allowance_leaves_loan_open(self, borrowed_ledger, token, native):
        """Test a failed token pull leaves the loan unchanged."""
        token.approve(BOB, CUSTODY, 0)
        bob_eth_before = native.balance_of(BOB)

        with pytest.raises(InsufficientAllowance):
            borrowed_ledger.repay(BOB, TOKEN_ADDRESS, units(3000))

        assert borrowed_ledger.get_loan(BOB).repaid is False
        assert native.balance_of(BOB) == bob_eth_before

    def test_claimed_loan_cannot_be_repaid(self, borrowed_ledger, clock):
        """Test a seized loan is expired for the borrower."""
        clock.advance(31 * DAY)
        borrowed_ledger.claim_collateral(OWNER, BOB)

        with pytest.raises(LoanExpired):
            borrowed_ledger.repay(BOB, TOKEN_ADDRESS, units(3150))

    def test_new_loan_after_repayment(self, borrowed_ledger, clock, token):
        """Test a repaid record is overwritten by a new borrow."""
        clock.advance(10 * DAY)
        borrowed_ledger.repay(BOB, TOKEN_ADDRESS, units(3150))

        loan = borrowed_ledger.borrow(BOB, TOKEN_ADDRESS, units(2))

        assert loan.principal == units(6000)
        assert loan.repaid is False
        assert loan.origination_time == clock.now()

    def test_rate_read_at_repayment(self, borrowed_ledger, clock):
        """Test the live rate applies to outstanding loans."""
        borrowed_ledger.set_interest_rate(OWNER, 1000)
        clock.advance(30 * DAY)

        assert borrowed_ledger.owed_amount(BOB) == units(3300)


class TestClaimCollateral:
    """Test collateral seizure."""

    def test_non_owner_rejected(self, borrowed_ledger, clock):
        """Test non-administrator cannot claim."""
        clock.advance(31 * DAY)

        with pytest.raises(AccessDenied):
            borrowed_ledger.claim_collateral(ALICE, BOB)

    def test_repaid_loan(self, borrowed_ledger, clock):
        """Test claim on a repaid loan."""
        clock.advance(30 * DAY)
        borrowed_ledger.repay(BOB, TOKEN_ADDRESS, units(3150))

        with pytest.raises(LoanRepaid):
            borrowed_ledger.claim_collateral(OWNER, BOB)

    def test_already_claimed(self, borrowed_ledger, clock):
        """Test second claim is rejected."""
        clock.advance(31 * DAY)
        borrowed_ledger.claim_collateral(OWNER, BOB)

        with pytest.raises(CollateralAlreadyClaimed):
            borrowed_ledger.claim_collateral(OWNER, BOB)

    def test_not_expired_at_boundary(self, borrowed_ledger, clock):
        """Test claim at exactly 30 days is rejected."""
        clock.advance(30 * DAY)

        with pytest.raises(LoanNotExpired):
            borrowed_ledger.claim_collateral(OWNER, BOB)

    def test_no_loan(self, funded_ledger):
        """Test claim for a borrower without a loan."""
        with pytest.raises(NoSuchLoan):
            funded_ledger.claim_collateral(OWNER, CAROL)

    def test_transfers_collateral_to_owner(self, borrowed_ledger, clock, native):
        """Test claim moves 1 ETH from custody to the administrator."""
        clock.advance(31 * DAY)
        owner_before = native.balance_of(OWNER)
        pool_before = native.balance_of(CUSTODY)

        loan = borrowed_ledger.claim_collateral(OWNER, BOB)

        assert loan.collateral_claimed is True
        assert loan.repaid is False
        assert native.balance_of(OWNER) - owner_before == units(1)
        assert pool_before - native.balance_of(CUSTODY) == units(1)

    def test_new_loan_after_claim(self, borrowed_ledger, clock):
        """Test a seized record is overwritten by a new borrow."""
        clock.advance(31 * DAY)
        borrowed_ledger.claim_collateral(OWNER, BOB)

        loan = borrowed_ledger.borrow(BOB, TOKEN_ADDRESS, units(1))

        assert loan.collateral_claimed is False
        assert borrowed_ledger.get_loan(BOB).origination_time == clock.now()


class TestTransferOwnership:
    """Test administrator hand-over."""

    def test_transfers(self, ledger):
        """Test new administrator takes over."""
        ledger.transfer_ownership(OWNER, CAROL)

        assert ledger.administrator == CAROL
        ledger.set_interest_rate(CAROL, 100)
        with pytest.raises(AccessDenied):
            ledger.set_interest_rate(OWNER, 200)

    def test_non_owner_rejected(self, ledger):
        """Test only the administrator can transfer."""
        with pytest.raises(AccessDenied):
            ledger.transfer_ownership(ALICE, ALICE)

    def test_null_rejected(self, ledger):
        """Test transfer to a null identity."""
        with pytest.raises(InvalidAccount):
            ledger.transfer_ownership(OWNER, NULL_ADDRESS)
        assert ledger.administrator == OWNER


class TestReporting:
    """Test views and metrics."""

    def test_loan_view(self, borrowed_ledger, clock):
        """Test derived loan values."""
        start = clock.now()
        clock.advance(15 * DAY)

        view = borrowed_ledger.loan_view(BOB)

        assert view.status == LoanStatus.ACTIVE
        assert view.owed == units(3075)
        assert view.interest == units(75)
        assert view.expires_at == start + 30 * DAY

    def test_expired_loans(self, borrowed_ledger, clock):
        """Test expired loans are listed until claimed."""
        assert borrowed_ledger.expired_loans() == []

        clock.advance(31 * DAY)
        expired = borrowed_ledger.expired_loans()
        assert [view.borrower for view in expired] == [BOB]
        assert expired[0].status == LoanStatus.EXPIRED

        borrowed_ledger.claim_collateral(OWNER, BOB)
        assert borrowed_ledger.expired_loans() == []

    def test_owed_is_flat_after_period(self, borrowed_ledger, clock):
        """Test interest stops at the full period."""
        clock.advance(45 * DAY)

        assert borrowed_ledger.owed_amount(BOB) == units(3150)

    def test_metrics(self, borrowed_ledger):
        """Test ledger metrics."""
        metrics = borrowed_ledger.get_ledger_metrics()

        assert metrics['interest_rate'] == 500
        assert metrics['active_loans'] == 1
        assert metrics['outstanding_principal'] == units(3000)
        assert metrics['outstanding_collateral'] == units(1)
        assert metrics['collateral_held'] == units(1)
        assert metrics['pool_liquidity'][TOKEN_ADDRESS] == units(27_000)
        assert metrics['events_recorded'] == 3

    def test_events_since(self, borrowed_ledger):
        """Test event sequence numbers."""
        events = borrowed_ledger.events_since(0)

        assert [e.event_type for e in events] == [
            LedgerEventType.DEPOSIT,
            LedgerEventType.LOAN_RATIO_SET,
            LedgerEventType.LOAN_OPENED,
        ]
        assert [e.sequence for e in events] == [1, 2, 3]
        assert borrowed_ledger.events_since(2)[0].event_type == LedgerEventType.LOAN_OPENED

    def test_event_history_limit(self, ledger):
        """Test the in-memory history is bounded."""
        ledger.event_history_limit = 3
        for rate in range(5):
            ledger.set_interest_rate(OWNER, rate)

        assert len(ledger.event_history) == 3
        assert ledger.event_history[0].sequence == 3
