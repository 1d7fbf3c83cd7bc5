"""
ledgers.py - Collateral and debt bookkeeping

Pure bookkeeping: balances only move through deposit/withdraw and
increase/decrease, which validate amounts and refuse to go negative. No
pricing, no transfers, no solvency checks; those belong to the engine, which is
the only mutator of these ledgers.

Both ledgers support snapshot(accounts)/restore() scoped to the accounts an
operation touches, so the engine can roll an operation back without copying
every account.
"""

from __future__ import annotations
from collections import defaultdict
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from .core import (
    Address, Amount, CollateralBalances,
    InsufficientBalance, UnsupportedToken,
    require_positive_amount,
)


# None marks an account that had no entry when the snapshot was taken
CollateralSnapshot = Dict[Address, Optional[Dict[Address, Amount]]]
DebtSnapshot = Dict[Address, Optional[Amount]]


class CollateralLedger:
    """
    Per-account, per-token deposited collateral.

    The set of allowed tokens is fixed at construction. Zero balances are kept
    as entries once an account has deposited; an account is only removed by
    restoring a snapshot taken before its first deposit.
    """

    def __init__(self, tokens: Iterable[Address]):
        self._tokens: Tuple[Address, ...] = tuple(tokens)
        self._allowed: FrozenSet[Address] = frozenset(self._tokens)
        self._deposits: Dict[Address, Dict[Address, Amount]] = {}
        # token -> total deposited, maintained incrementally for total_deposited()
        self._totals: Dict[Address, Amount] = defaultdict(int)

    @property
    def tokens(self) -> Tuple[Address, ...]:
        """Registered collateral tokens, in registration order."""
        return self._tokens

    def is_supported(self, token: Address) -> bool:
        return token in self._allowed

    def require_supported(self, token: Address) -> Address:
        if token not in self._allowed:
            raise UnsupportedToken(token)
        return token

    # ------------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------------

    def balance_of(self, account: Address, token: Address) -> Amount:
        """Deposited amount of `token` for `account` (0 if none)."""
        return self._deposits.get(account, {}).get(token, 0)

    def balances_of(self, account: Address) -> CollateralBalances:
        """All deposited balances for an account, in registration order."""
        deposits = self._deposits.get(account, {})
        return {token: deposits.get(token, 0) for token in self._tokens}

    def accounts(self) -> List[Address]:
        """Accounts that have ever deposited, sorted."""
        return sorted(self._deposits)

    def total_deposited(self, token: Address) -> Amount:
        self.require_supported(token)
        return self._totals[token]

    # ------------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------------

    def deposit(self, account: Address, token: Address, amount: Amount) -> Amount:
        """
        Record a deposit.

        Returns:
            The account's new balance of `token`

        Raises:
            InvalidAmount: If amount is not a positive int
            UnsupportedToken: If the token is not registered
        """
        require_positive_amount(amount)
        self.require_supported(token)
        deposits = self._deposits.setdefault(account, {})
        deposits[token] = deposits.get(token, 0) + amount
        self._totals[token] += amount
        return deposits[token]

    def withdraw(self, account: Address, token: Address, amount: Amount) -> Amount:
        """
        Record a withdrawal.

        Returns:
            The account's new balance of `token`

        Raises:
            InvalidAmount: If amount is not a positive int
            UnsupportedToken: If the token is not registered
            InsufficientBalance: If the account holds less than `amount`
        """
        require_positive_amount(amount)
        self.require_supported(token)
        current = self.balance_of(account, token)
        if amount > current:
            raise InsufficientBalance(account, current, amount, what=f"{token} collateral")
        self._deposits[account][token] = current - amount
        self._totals[token] -= amount
        return current - amount

    # ------------------------------------------------------------------------
    # Rollback support
    # ------------------------------------------------------------------------

    def snapshot(self, accounts: Iterable[Address]) -> CollateralSnapshot:
        """Copy the deposits of the given accounts."""
        return {
            account: dict(self._deposits[account]) if account in self._deposits else None
            for account in accounts
        }

    def restore(self, snapshot: CollateralSnapshot) -> None:
        """Put the snapshotted accounts back; other accounts are untouched."""
        for account, deposits in snapshot.items():
            for token, amount in self._deposits.get(account, {}).items():
                self._totals[token] -= amount
            if deposits is None:
                self._deposits.pop(account, None)
                continue
            self._deposits[account] = dict(deposits)
            for token, amount in deposits.items():
                self._totals[token] += amount

    def __repr__(self):
        return f"CollateralLedger({len(self._tokens)} tokens, {len(self._deposits)} accounts)"


class DebtLedger:
    """Per-account minted DSC."""

    def __init__(self):
        self._minted: Dict[Address, Amount] = {}

    def balance_of(self, account: Address) -> Amount:
        return self._minted.get(account, 0)

    def total_debt(self) -> Amount:
        return sum(self._minted[a] for a in sorted(self._minted))

    def increase(self, account: Address, amount: Amount) -> Amount:
        """
        Add debt to an account.

        Raises:
            InvalidAmount: If amount is not a positive int
        """
        require_positive_amount(amount)
        self._minted[account] = self.balance_of(account) + amount
        return self._minted[account]

    def decrease(self, account: Address, amount: Amount) -> Amount:
        """
        Remove debt from an account.

        Raises:
            InvalidAmount: If amount is not a positive int
            InsufficientBalance: If the account owes less than `amount`
        """
        require_positive_amount(amount)
        current = self.balance_of(account)
        if amount > current:
            raise InsufficientBalance(account, current, amount, what="DSC minted")
        self._minted[account] = current - amount
        return current - amount

    def snapshot(self, accounts: Iterable[Address]) -> DebtSnapshot:
        return {account: self._minted.get(account) for account in accounts}

    def restore(self, snapshot: DebtSnapshot) -> None:
        for account, minted in snapshot.items():
            if minted is None:
                self._minted.pop(account, None)
            else:
                self._minted[account] = minted

    def __repr__(self):
        return f"DebtLedger({len(self._minted)} accounts)"
