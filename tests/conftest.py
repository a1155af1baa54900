"""Shared pytest fixtures and configuration."""

import pytest

from src.lendpool.ledger.assets import AssetRegistry, NativeBank, ReserveToken
from src.lendpool.ledger.clock import ManualClock
from src.lendpool.ledger.manager import LendingLedger

ETHER = 10 ** 18
DAY = 24 * 60 * 60

TOKEN_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
CUSTODY = "lendpool-custody"
OWNER = "owner"
ALICE = "alice"
BOB = "bob"
CAROL = "carol"


def units(amount) -> int:
    """Whole units to the smallest unit (18 decimals)."""
    return int(amount * ETHER)


@pytest.fixture
def clock() -> ManualClock:
    """Clock that only moves when a test advances it."""
    return ManualClock(start=1_700_000_000)


@pytest.fixture
def native() -> NativeBank:
    """Native currency balances for the test accounts."""
    bank = NativeBank("ETH")
    for account in (OWNER, ALICE, BOB, CAROL):
        bank.fund(account, units(100))
    return bank


@pytest.fixture
def token() -> ReserveToken:
    """Reserve token with the balances and approvals used across tests."""
    token = ReserveToken(TOKEN_ADDRESS, "CAT")
    token.mint(OWNER, units(1_000_000))
    token.transfer(OWNER, ALICE, units(100_000))
    token.transfer(OWNER, BOB, units(1_000))
    token.approve(ALICE, CUSTODY, units(50_000))
    token.approve(BOB, CUSTODY, units(3_150))
    return token


@pytest.fixture
def assets(token) -> AssetRegistry:
    registry = AssetRegistry()
    registry.register(token)
    return registry


@pytest.fixture
def ledger(assets, native, clock) -> LendingLedger:
    """Ledger administered by OWNER at a 5% interest rate."""
    return LendingLedger(
        administrator=OWNER,
        interest_rate=500,
        assets=assets,
        native=native,
        clock=clock,
        custody_account=CUSTODY
    )


@pytest.fixture
def funded_ledger(ledger) -> LendingLedger:
    """Ledger with 30,000 CAT of liquidity and a 3000 CAT/ETH ratio."""
    ledger.deposit(ALICE, TOKEN_ADDRESS, units(30_000))
    ledger.set_loan_ratio(OWNER, TOKEN_ADDRESS, 3000 * 10_000)
    return ledger


@pytest.fixture
def borrowed_ledger(funded_ledger) -> LendingLedger:
    """Ledger where BOB borrowed 3,000 CAT against 1 ETH."""
    funded_ledger.borrow(BOB, TOKEN_ADDRESS, units(1))
    return funded_ledger
