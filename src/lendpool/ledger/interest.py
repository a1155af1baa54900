"""
Interest accrual for fixed-period loans.

All amounts are integers in the asset's smallest unit. Rates and ratios are
scaled by ``BASIS_POINTS`` (500 = 5.00%).
"""

BASIS_POINTS = 10_000
SECONDS_PER_DAY = 24 * 60 * 60
LOAN_PERIOD = 30 * SECONDS_PER_DAY


def calculate_principal(collateral: int, loan_ratio: int) -> int:
    """Reserve units issued for ``collateral`` native units, truncated toward zero."""
    return collateral * loan_ratio // BASIS_POINTS


def elapsed_seconds(origination_time: int, now: int, loan_period: int = LOAN_PERIOD) -> int:
    """Seconds since origination, clamped to ``[0, loan_period]``."""
    return max(0, min(now - origination_time, loan_period))


def calculate_interest(
    principal: int,
    interest_rate: int,
    elapsed: int,
    loan_period: int = LOAN_PERIOD,
) -> int:
    """
    Linear interest for ``elapsed`` seconds of a loan.

    The full period yields exactly ``principal * interest_rate / BASIS_POINTS``;
    elapsed time beyond the period accrues nothing further.
    """
    elapsed = max(0, min(elapsed, loan_period))
    full_period_interest = principal * interest_rate // BASIS_POINTS
    return full_period_interest * elapsed // loan_period


def calculate_owed(
    principal: int,
    interest_rate: int,
    origination_time: int,
    now: int,
    loan_period: int = LOAN_PERIOD,
) -> int:
    """Principal plus interest accrued between origination and ``now``."""
    elapsed = elapsed_seconds(origination_time, now, loan_period)
    return principal + calculate_interest(principal, interest_rate, elapsed, loan_period)


def is_expired(origination_time: int, now: int, loan_period: int = LOAN_PERIOD) -> bool:
    """True once strictly more than ``loan_period`` seconds have passed."""
    return now - origination_time > loan_period
