"""
In-memory asset collaborators: fungible reserve tokens and the native currency.

Balances are integers in the asset's smallest unit. Every transfer validates
before it mutates, so a failed call leaves balances untouched.
"""

import threading
from collections import defaultdict
from typing import Dict, Tuple

from ..logging import get_logger
from .errors import InsufficientAllowance, InsufficientBalance, UnknownAsset

logger = get_logger(__name__)


class ReserveToken:
    """Fungible token with transfer/approve/transfer_from semantics."""

    def __init__(self, address: str, symbol: str, decimals: int = 18):
        self.address = address
        self.symbol = symbol
        self.decimals = decimals
        self.total_supply = 0
        self._balances: Dict[str, int] = defaultdict(int)
        self._allowances: Dict[Tuple[str, str], int] = defaultdict(int)
        self._lock = threading.Lock()

    def balance_of(self, account: str) -> int:
        return self._balances.get(account, 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((owner, spender), 0)

    def mint(self, account: str, amount: int) -> None:
        """Create new units in ``account``."""
        if amount < 0:
            raise ValueError("Mint amount must be non-negative")
        with self._lock:
            self._balances[account] += amount
            self.total_supply += amount

    def approve(self, owner: str, spender: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("Allowance must be non-negative")
        with self._lock:
            self._allowances[(owner, spender)] = amount
        logger.debug(f"{owner} approved {spender} for {amount} {self.symbol}")

    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        with self._lock:
            self._move(sender, recipient, amount)

    def transfer_from(self, spender: str, owner: str, recipient: str, amount: int) -> None:
        """Move ``amount`` from ``owner`` to ``recipient`` using ``spender``'s allowance."""
        with self._lock:
            allowed = self._allowances.get((owner, spender), 0)
            if allowed < amount:
                raise InsufficientAllowance(self.symbol, owner, spender, allowed, amount)
            self._move(owner, recipient, amount)
            self._allowances[(owner, spender)] = allowed - amount

    def _move(self, sender: str, recipient: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("Transfer amount must be non-negative")
        balance = self._balances.get(sender, 0)
        if balance < amount:
            raise InsufficientBalance(self.symbol, sender, balance, amount)
        self._balances[sender] = balance - amount
        self._balances[recipient] += amount


class NativeBank:
    """Balances of the native collateral currency."""

    def __init__(self, symbol: str = "ETH"):
        self.symbol = symbol
        self._balances: Dict[str, int] = defaultdict(int)
        self._lock = threading.Lock()

    def balance_of(self, account: str) -> int:
        return self._balances.get(account, 0)

    def fund(self, account: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("Funding amount must be non-negative")
        with self._lock:
            self._balances[account] += amount

    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("Transfer amount must be non-negative")
        with self._lock:
            balance = self._balances.get(sender, 0)
            if balance < amount:
                raise InsufficientBalance(self.symbol, sender, balance, amount)
            self._balances[sender] = balance - amount
            self._balances[recipient] += amount


class AssetRegistry:
    """Lookup of reserve tokens by identifier."""

    def __init__(self):
        self._tokens: Dict[str, ReserveToken] = {}

    def register(self, token: ReserveToken) -> ReserveToken:
        self._tokens[token.address] = token
        logger.info(f"Registered reserve asset {token.symbol} at {token.address}")
        return token

    def get(self, reserve: str) -> ReserveToken:
        token = self._tokens.get(reserve)
        if token is None:
            raise UnknownAsset(f"No reserve asset registered for {reserve}")
        return token

    def __contains__(self, reserve: str) -> bool:
        return reserve in self._tokens

    def reserves(self):
        return list(self._tokens)
