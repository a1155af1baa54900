"""LendPool: collateralized lending ledger service."""

__version__ = "1.0.0"
