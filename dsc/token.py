"""
token.py - In-memory fungible tokens

Reference implementations of the external token interfaces the engine talks
to:

- FungibleToken: balance/allowance ledger with standard transfer semantics.
  Used for collateral assets. Transfers return False instead of raising when
  the sender's balance or the spender's allowance is insufficient.
- StableToken: a FungibleToken whose supply is owner-gated. The owner hands a
  MintBurnCapability to the engine, which becomes the new owner.

Callers are passed explicitly (`caller`), there is no implicit sender.
"""

from __future__ import annotations
from typing import Dict, Optional, Tuple

from .core import (
    Address, Amount,
    InsufficientBalance, NotOwner,
    require_positive_amount,
)


class FungibleToken:
    """
    Standard fungible asset.

    If `owner` is None, anyone may mint (a faucet, as used for mock collateral
    in tests). Otherwise mint and burn are restricted to the owner.

    Example:
        weth = FungibleToken("Wrapped Ether", "WETH", "weth")
        weth.mint("faucet", "alice", 10 * 10**18)
        weth.approve("alice", "dsc_engine", 10 * 10**18)
    """

    def __init__(
        self,
        name: str,
        symbol: str,
        address: Address,
        decimals: int = 18,
        owner: Optional[Address] = None,
    ):
        self.name = name
        self.symbol = symbol
        self.address = address
        self.decimals = decimals
        self.owner = owner
        self.total_supply: Amount = 0
        self._balances: Dict[Address, Amount] = {}
        self._allowances: Dict[Tuple[Address, Address], Amount] = {}

    # ------------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------------

    def balance_of(self, account: Address) -> Amount:
        return self._balances.get(account, 0)

    def allowance(self, owner: Address, spender: Address) -> Amount:
        return self._allowances.get((owner, spender), 0)

    # ------------------------------------------------------------------------
    # Transfers
    # ------------------------------------------------------------------------

    def approve(self, caller: Address, spender: Address, amount: Amount) -> bool:
        if amount < 0:
            raise ValueError(f"Allowance cannot be negative: {amount}")
        self._allowances[(caller, spender)] = amount
        return True

    def transfer(self, caller: Address, to: Address, amount: Amount) -> bool:
        """Move `amount` from the caller to `to`. Returns False on insufficient balance."""
        return self._move(caller, to, amount)

    def transfer_from(self, caller: Address, sender: Address, to: Address, amount: Amount) -> bool:
        """
        Move `amount` from `sender` to `to` on the caller's allowance.

        Returns False if the allowance or the sender's balance is insufficient;
        nothing changes in that case.
        """
        if caller != sender:
            allowed = self.allowance(sender, caller)
            if allowed < amount:
                return False
            if self.balance_of(sender) < amount:
                return False
            self._allowances[(sender, caller)] = allowed - amount
        return self._move(sender, to, amount)

    def _move(self, sender: Address, to: Address, amount: Amount) -> bool:
        if amount < 0:
            raise ValueError(f"Transfer amount cannot be negative: {amount}")
        balance = self.balance_of(sender)
        if balance < amount:
            return False
        self._balances[sender] = balance - amount
        self._balances[to] = self.balance_of(to) + amount
        return True

    # ------------------------------------------------------------------------
    # Supply
    # ------------------------------------------------------------------------

    def _require_owner(self, caller: Address) -> None:
        if self.owner is not None and caller != self.owner:
            raise NotOwner(caller)

    def mint(self, caller: Address, to: Address, amount: Amount) -> bool:
        """Create `amount` new tokens for `to`. Owner-gated when an owner is set."""
        self._require_owner(caller)
        require_positive_amount(amount)
        self._balances[to] = self.balance_of(to) + amount
        self.total_supply += amount
        return True

    def burn(self, caller: Address, amount: Amount) -> None:
        """Destroy `amount` tokens out of the caller's balance. Owner-gated when an owner is set."""
        self._require_owner(caller)
        require_positive_amount(amount)
        balance = self.balance_of(caller)
        if balance < amount:
            raise InsufficientBalance(caller, balance, amount, what=f"{self.symbol} balance")
        self._balances[caller] = balance - amount
        self.total_supply -= amount

    def __repr__(self):
        return f"{type(self).__name__}({self.symbol} @ {self.address}, supply={self.total_supply})"


class StableToken(FungibleToken):
    """
    The stable-value token. Supply changes only through its owner.

    The deployer creates the token, then grants the engine a
    MintBurnCapability, which also transfers ownership to the engine.
    """

    def __init__(
        self,
        owner: Address,
        name: str = "Decentralized Stable Coin",
        symbol: str = "DSC",
        address: Address = "dsc",
    ):
        super().__init__(name, symbol, address, decimals=18, owner=owner)

    def transfer_ownership(self, caller: Address, new_owner: Address) -> None:
        self._require_owner(caller)
        self.owner = new_owner

    def grant_capability(self, caller: Address, holder: Address) -> 'MintBurnCapability':
        """
        Make `holder` the owner and return its mint/burn handle.

        Raises:
            NotOwner: If the caller is not the current owner
        """
        self.transfer_ownership(caller, holder)
        return MintBurnCapability(self, holder)


class MintBurnCapability:
    """
    Handle through which the holder changes the stable token's supply.

    The handle acts as its holder; it stops working once ownership of the
    token moves elsewhere.
    """

    def __init__(self, token: StableToken, holder: Address):
        self._token = token
        self.holder = holder

    @property
    def token(self) -> StableToken:
        return self._token

    def mint(self, to: Address, amount: Amount) -> bool:
        return self._token.mint(self.holder, to, amount)

    def burn(self, amount: Amount) -> None:
        self._token.burn(self.holder, amount)

    def __repr__(self):
        return f"MintBurnCapability({self._token.symbol} -> {self.holder})"
