#!/usr/bin/env python3
"""
Simulate a complete loan cycle against an in-process ledger.

Walks through deposit, borrow, interest accrual, repayment and a defaulted
loan whose collateral is claimed by the administrator.
"""

import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'src'))

from lendpool.ledger.assets import AssetRegistry, NativeBank, ReserveToken
from lendpool.ledger.clock import ManualClock
from lendpool.ledger.errors import LedgerError
from lendpool.ledger.interest import SECONDS_PER_DAY
from lendpool.ledger.manager import LendingLedger

ETHER = 10 ** 18
RESERVE = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
CUSTODY = "lendpool-custody"


def fmt(amount: int) -> str:
    return f"{amount / ETHER:,.2f}"


def main():
    clock = ManualClock()
    native = NativeBank("ETH")
    token = ReserveToken(RESERVE, "CAT")
    assets = AssetRegistry()
    assets.register(token)

    ledger = LendingLedger(
        administrator="owner",
        interest_rate=500,
        assets=assets,
        native=native,
        clock=clock,
        custody_account=CUSTODY
    )

    for account in ("bob", "carol"):
        native.fund(account, 10 * ETHER)
    token.mint("alice", 100_000 * ETHER)
    token.mint("bob", 1_000 * ETHER)
    token.approve("alice", CUSTODY, 30_000 * ETHER)
    token.approve("bob", CUSTODY, 3_150 * ETHER)

    print("🚀 Starting Loan Cycle Simulation\n")

    ledger.deposit("alice", RESERVE, 30_000 * ETHER)
    ledger.set_loan_ratio("owner", RESERVE, 3000 * 10_000)
    print(f"Pool liquidity: {fmt(ledger.pool_liquidity(RESERVE))} CAT")

    ledger.borrow("bob", RESERVE, 1 * ETHER)
    ledger.borrow("carol", RESERVE, 2 * ETHER)
    print(f"Bob borrowed {fmt(ledger.get_loan('bob').principal)} CAT against 1 ETH")
    print(f"Carol borrowed {fmt(ledger.get_loan('carol').principal)} CAT against 2 ETH\n")

    for day in (0, 15, 30):
        clock.set(ledger.get_loan("bob").origination_time + day * SECONDS_PER_DAY)
        print(f"  Day {day:>2}: Bob owes {fmt(ledger.owed_amount('bob'))} CAT")

    ledger.repay("bob", RESERVE, ledger.owed_amount("bob"))
    print(f"\n✅ Bob repaid, ETH balance back to {fmt(native.balance_of('bob'))}")

    clock.advance(SECONDS_PER_DAY)
    try:
        ledger.repay("carol", RESERVE, 6_300 * ETHER)
    except LedgerError as e:
        print(f"❌ Carol repayment rejected: {e.code}")

    ledger.claim_collateral("owner", "carol")
    print(f"⚠️  Owner claimed Carol's collateral, owner holds {fmt(native.balance_of('owner'))} ETH\n")

    metrics = ledger.get_ledger_metrics()
    print("Final state:")
    print(f"  Pool liquidity: {fmt(metrics['pool_liquidity'][RESERVE])} CAT")
    print(f"  Repaid loans:   {metrics['repaid_loans']}")
    print(f"  Claimed loans:  {metrics['claimed_loans']}")
    print(f"  Events:         {metrics['events_recorded']}")


if __name__ == "__main__":
    main()
