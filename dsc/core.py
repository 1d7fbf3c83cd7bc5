"""
Core types, constants and exceptions for the stable-value engine.

This module provides the foundational pieces every other module builds on:
1. Constants: fixed-point precision and liquidation parameters
2. Protocols: CollateralAsset, PriceFeed and MintBurnHandle interfaces
3. Immutable data structures: FeedRound, AccountInformation, EngineConfig
4. Exceptions: EngineError and the domain-specific error types
5. Type aliases: Address, Amount, CollateralBalances

All amounts are plain Python ints scaled to 18 decimals. Nothing in this module
mutates state.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Protocol, Tuple, Union, runtime_checkable


# ============================================================================
# CONSTANTS
# ============================================================================

# Fixed-point scale for USD values, prices and health factors (1e18).
PRECISION = 10 ** 18

# Scales an 8-decimal feed answer to 18 decimals.
ADDITIONAL_FEED_PRECISION = 10 ** 10

# Only LIQUIDATION_THRESHOLD / LIQUIDATION_PRECISION of the collateral value
# counts toward solvency (200% over-collateralization).
LIQUIDATION_THRESHOLD = 50
LIQUIDATION_PRECISION = 100

# Extra collateral paid to a liquidator, in LIQUIDATION_PRECISION units (10%).
LIQUIDATION_BONUS = 10

MIN_HEALTH_FACTOR = PRECISION

# Health factor reported for an account without debt.
MAX_HEALTH_FACTOR = 2 ** 256 - 1

# A feed round older than this is treated as unavailable.
ORACLE_TIMEOUT = timedelta(hours=3)

# Decimals every USD amount is expressed in.
USD_DECIMALS = 18


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Identity of an account, token, feed or engine.
Address = str

# Raw integer quantity (token base units or 18-decimal USD).
Amount = int

# Mapping from collateral token address to deposited amount for one account.
CollateralBalances = Dict[Address, Amount]


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class CollateralAsset(Protocol):
    """
    Fungible asset accepted as collateral.

    Transfers report failure by returning False. The caller is passed
    explicitly since there is no implicit message sender.
    """

    address: Address
    decimals: int

    def balance_of(self, account: Address) -> Amount:
        ...

    def transfer(self, caller: Address, to: Address, amount: Amount) -> bool:
        ...

    def transfer_from(self, caller: Address, sender: Address, to: Address, amount: Amount) -> bool:
        ...


@runtime_checkable
class PriceFeed(Protocol):
    """Source of the latest USD price of one collateral asset."""

    address: Address

    def latest_price(self) -> 'FeedRound':
        """Return the most recent round published by the feed."""
        ...


@runtime_checkable
class MintBurnHandle(Protocol):
    """
    Capability to change the supply of the stable token.

    Held by exactly one address (the engine). `burn` destroys tokens out of
    the holder's own balance.
    """

    holder: Address

    @property
    def token(self) -> CollateralAsset:
        ...

    def mint(self, to: Address, amount: Amount) -> bool:
        ...

    def burn(self, amount: Amount) -> None:
        ...


# ============================================================================
# EXCEPTIONS
# ============================================================================

class EngineError(Exception):
    """Base exception for all engine-related errors."""
    pass


class InvalidAmount(EngineError):
    """Raised when a zero, negative or non-integer amount is supplied."""

    def __init__(self, amount):
        self.amount = amount
        super().__init__(f"Amount must be a positive integer, got {amount!r}")


class UnsupportedToken(EngineError):
    """Raised when an operation references a collateral token that is not registered."""

    def __init__(self, token: Address):
        self.token = token
        super().__init__(f"Token not supported: {token}")


class ConfigurationError(EngineError):
    """Raised for invalid construction parameters or a misconfigured price feed."""
    pass


class TokenAddressesAndPriceFeedAddressesMustBeSameLength(ConfigurationError):
    """Raised when the token and price feed lists passed to the engine differ in length."""

    def __init__(self, tokens: int, feeds: int):
        self.tokens = tokens
        self.feeds = feeds
        super().__init__(
            f"Token addresses and price feed addresses must be same length: {tokens} != {feeds}"
        )


class PriceUnavailable(ConfigurationError):
    """Raised when a feed returns a non-positive price."""

    def __init__(self, token: Address, answer: Optional[int] = None, message: Optional[str] = None):
        self.token = token
        self.answer = answer
        super().__init__(message or f"Price unavailable for {token}: answer={answer}")


class StalePrice(PriceUnavailable):
    """Raised when the latest feed round is older than the oracle timeout."""

    def __init__(self, token: Address, updated_at: datetime, age: timedelta):
        self.updated_at = updated_at
        self.age = age
        super().__init__(
            token,
            message=f"Stale price for {token}: last update {updated_at.isoformat()} ({age} ago)",
        )


class BreaksHealthFactor(EngineError):
    """Raised when an operation would leave an account below the minimum health factor."""

    def __init__(self, health_factor: int, account: Optional[Address] = None):
        self.health_factor = health_factor
        self.account = account
        super().__init__(f"Health factor broken for {account}: {health_factor}")


class InsufficientBalance(EngineError):
    """Raised when a withdraw, burn or liquidation exceeds a tracked balance."""

    def __init__(self, account: Address, available: Amount, requested: Amount, what: str = "balance"):
        self.account = account
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient {what} for {account}: requested {requested}, available {available}"
        )


class TransferFailed(EngineError):
    """Raised when an external token transfer reports failure."""

    def __init__(self, token: Address, sender: Address, recipient: Address, amount: Amount):
        self.token = token
        self.sender = sender
        self.recipient = recipient
        self.amount = amount
        super().__init__(f"Transfer of {amount} {token} from {sender} to {recipient} failed")


class MintFailed(EngineError):
    """Raised when the stable token reports a failed mint."""

    def __init__(self, to: Address, amount: Amount):
        self.to = to
        self.amount = amount
        super().__init__(f"Mint of {amount} to {to} failed")


class HealthFactorOk(EngineError):
    """Raised when liquidating an account that is still solvent."""

    def __init__(self, health_factor: int):
        self.health_factor = health_factor
        super().__init__(f"Health factor is ok: {health_factor}")


class HealthFactorNotImproved(EngineError):
    """Raised when a liquidation does not strictly raise the account's health factor."""

    def __init__(self, starting: int, ending: int):
        self.starting = starting
        self.ending = ending
        super().__init__(f"Health factor not improved: {starting} -> {ending}")


class ReentrantCall(EngineError):
    """Raised when the engine is entered, to mutate or to read its ledgers, while an operation is in progress."""

    def __init__(self):
        super().__init__("Reentrant call")


class CompensationFailed(EngineError):
    """
    Raised when undoing the completed token calls of a failed operation fails.

    The original error is chained as __cause__. Collateral that could not be
    returned stays recorded as the account's deposit.
    """

    def __init__(self, operation: str, failures: List[Tuple[str, Exception]]):
        self.operation = operation
        self.failures = failures
        details = "; ".join(f"{description}: {exc}" for description, exc in failures)
        super().__init__(f"Compensation failed in {operation}: {details}")


class NotOwner(EngineError):
    """Raised when an owner-gated token function is called by someone else."""

    def __init__(self, caller: Address):
        self.caller = caller
        super().__init__(f"Caller {caller} is not the owner")


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class FeedRound:
    """
    One published price round.

    Attributes:
        answer: Raw price in feed units (signed; must be positive to be usable).
        updated_at: When the round was published.
        decimals: Number of decimals of `answer`.
    """
    answer: int
    updated_at: datetime
    decimals: int

    def __post_init__(self):
        if isinstance(self.answer, bool) or not isinstance(self.answer, int):
            raise ValueError(f"FeedRound answer must be int, got {type(self.answer)}")
        if self.decimals < 0:
            raise ValueError(f"FeedRound decimals must be non-negative, got {self.decimals}")


@dataclass(frozen=True, slots=True)
class AccountInformation:
    """Debt and collateral value of one account (both 18-decimal)."""
    total_dsc_minted: Amount
    collateral_value_in_usd: Amount

    def __iter__(self):
        # Allows `minted, value = engine.get_account_information(user)`
        yield self.total_dsc_minted
        yield self.collateral_value_in_usd


@dataclass(frozen=True, slots=True)
class EngineConfig:
    """
    Solvency and liquidation parameters, fixed at engine construction.

    Defaults match the module constants. The registry of collateral tokens is
    not part of the config; it is passed to the engine directly.

    Attributes:
        liquidation_threshold: Share of collateral value counted toward solvency.
        liquidation_precision: Denominator of threshold and bonus.
        liquidation_bonus: Extra collateral for liquidators (in precision units).
        min_health_factor: Minimum post-state health factor (18-decimal).
        oracle_timeout: Maximum age of a usable feed round.
    """
    liquidation_threshold: int = LIQUIDATION_THRESHOLD
    liquidation_precision: int = LIQUIDATION_PRECISION
    liquidation_bonus: int = LIQUIDATION_BONUS
    min_health_factor: int = MIN_HEALTH_FACTOR
    oracle_timeout: timedelta = ORACLE_TIMEOUT

    def __post_init__(self):
        if self.liquidation_precision <= 0:
            raise ConfigurationError("liquidation_precision must be positive")
        if not 0 < self.liquidation_threshold <= self.liquidation_precision:
            raise ConfigurationError(
                f"liquidation_threshold must be in (0, {self.liquidation_precision}], "
                f"got {self.liquidation_threshold}"
            )
        if self.liquidation_bonus < 0:
            raise ConfigurationError("liquidation_bonus must be non-negative")
        if self.min_health_factor <= 0:
            raise ConfigurationError("min_health_factor must be positive")
        if self.oracle_timeout <= timedelta(0):
            raise ConfigurationError("oracle_timeout must be positive")


# ============================================================================
# HELPERS
# ============================================================================

def address_of(item: Union[Address, object]) -> Address:
    """Return the address of a token/feed object, or the argument if it already is one."""
    if isinstance(item, str):
        return item
    address = getattr(item, "address", None)
    if not isinstance(address, str):
        raise TypeError(f"Expected an address or an object with .address, got {item!r}")
    return address


def require_positive_amount(amount) -> Amount:
    """
    Validate that an amount is a strictly positive int.

    bool is rejected even though it subclasses int.

    Raises:
        InvalidAmount: If the amount is zero, negative or not an int.
    """
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmount(amount)
    return amount
