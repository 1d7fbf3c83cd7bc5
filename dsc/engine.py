"""
engine.py - Collateral-backed stable coin engine

DSCEngine is the central state manager of the system. It is the only module
that mutates the collateral and debt ledgers, and the only holder of the
stable token's mint/burn capability.

Key responsibilities:
    - Deposit and redeem collateral, mint and burn DSC, liquidate
    - Price collateral through the PriceOracleAdapter on every operation
    - Reject any operation whose post-state leaves an account below the
      minimum health factor
    - Execute operations atomically: a failed operation leaves ledgers, token
      balances and the event log exactly as they were
    - Refuse reentrant calls made from inside an external token call

Every public mutating method runs inside `_operation()`, which takes the
reentrancy guard and opens a `_Journal` that snapshots each account on its
first ledger change. Operations
follow checks-effects-interactions: ledger effects and solvency checks run
first, and every external token call (pulls, mint, burn, sends) is deferred
to the journal and runs only after all checks passed. If one of those calls
fails, the calls that already ran are compensated in reverse order.

Compensation returns balances and supply but not allowances: an allowance
consumed by a pull stays consumed if a later call of the same operation fails.
If a compensation itself fails, CompensationFailed is raised and collateral
the engine could not return stays recorded as the account's deposit.

Queries that read the ledgers refuse to run while an operation is in flight,
so an external call can never observe effects whose transfers are pending.
"""

from __future__ import annotations
from contextlib import contextmanager
import functools
from dataclasses import dataclass
from datetime import datetime
import logging
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple, Union

from .core import (
    # Types
    Address, Amount, AccountInformation, CollateralAsset, EngineConfig,
    MintBurnHandle, PriceFeed,
    # Constants
    PRECISION, ADDITIONAL_FEED_PRECISION, MAX_HEALTH_FACTOR,
    # Exceptions
    ConfigurationError, TokenAddressesAndPriceFeedAddressesMustBeSameLength,
    BreaksHealthFactor, TransferFailed, MintFailed,
    HealthFactorOk, HealthFactorNotImproved, ReentrantCall, CompensationFailed,
    # Helpers
    address_of, require_positive_amount,
)
from .ledgers import CollateralLedger, CollateralSnapshot, DebtLedger, DebtSnapshot
from .oracle import PriceOracleAdapter
from .solvency import (
    calculate_health_factor, calculate_liquidation_collateral, calculate_max_mintable,
    is_liquidatable,
)

logger = logging.getLogger(__name__)

TokenRef = Union[Address, CollateralAsset]


def _view(method):
    """Refuse a ledger read while an operation of the same engine is in flight."""
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        if self._entered:
            raise ReentrantCall()
        return method(self, *args, **kwargs)
    return wrapper


# ============================================================================
# EVENTS
# ============================================================================

@dataclass(frozen=True, slots=True)
class CollateralDeposited:
    user: Address
    token: Address
    amount: Amount


@dataclass(frozen=True, slots=True)
class CollateralRedeemed:
    redeemed_from: Address
    redeemed_to: Address
    token: Address
    amount: Amount


@dataclass(frozen=True, slots=True)
class DscMinted:
    user: Address
    amount: Amount


@dataclass(frozen=True, slots=True)
class DscBurned:
    on_behalf_of: Address
    dsc_from: Address
    amount: Amount


@dataclass(frozen=True, slots=True)
class Liquidated:
    liquidator: Address
    user: Address
    token: Address
    debt_covered: Amount
    collateral_seized: Amount
    bonus_collateral: Amount
    starting_health_factor: int
    ending_health_factor: int


EngineEvent = Union[CollateralDeposited, CollateralRedeemed, DscMinted, DscBurned, Liquidated]


# ============================================================================
# JOURNAL
# ============================================================================

class _Journal:
    """
    Pending interactions and undo log of one in-flight operation.

    interactions: external token calls, run in order by settle() once every
        ledger effect and check of the operation has passed.
    compensations: undo actions of interactions that already ran, run in
        reverse order if a later interaction fails. An undo raises if its
        token call reports failure.
    events: published to the engine only on success.

    Ledger state is captured per account on first touch(), so rolling back
    costs only what the operation changed.
    """

    def __init__(self, collateral: CollateralLedger, debt: DebtLedger):
        self.interactions: List[Tuple[str, Callable[[], None], Optional[Callable[[], None]]]] = []
        self.compensations: List[Tuple[str, Callable[[], None]]] = []
        self.events: List[EngineEvent] = []
        self._collateral = collateral
        self._debt = debt
        self._collateral_before: CollateralSnapshot = {}
        self._debt_before: DebtSnapshot = {}

    def touch(self, account: Address) -> None:
        """Snapshot an account's ledger entries before its first change."""
        if account in self._collateral_before:
            return
        self._collateral_before.update(self._collateral.snapshot([account]))
        self._debt_before.update(self._debt.snapshot([account]))

    def restore_ledgers(self) -> None:
        self._collateral.restore(self._collateral_before)
        self._debt.restore(self._debt_before)

    def defer(
        self,
        description: str,
        action: Callable[[], None],
        undo: Optional[Callable[[], None]] = None,
    ) -> None:
        self.interactions.append((description, action, undo))

    def emit(self, event: EngineEvent) -> None:
        self.events.append(event)

    def settle(self) -> None:
        for description, action, undo in self.interactions:
            action()
            if undo is not None:
                self.compensations.append((description, undo))

    def rollback(self) -> List[Tuple[str, Exception]]:
        """
        Run the compensations in reverse order.

        A failing compensation does not stop the remaining ones.

        Returns:
            (description, error) for every compensation that failed
        """
        failures: List[Tuple[str, Exception]] = []
        for description, undo in reversed(self.compensations):
            logger.debug("Compensating: %s", description)
            try:
                undo()
            except Exception as exc:
                logger.error("Compensation failed: %s: %s: %s", description, type(exc).__name__, exc)
                failures.append((description, exc))
        return failures


# ============================================================================
# ENGINE
# ============================================================================

class DSCEngine:
    """
    Over-collateralized stable coin engine.

    Users deposit registered collateral and mint DSC against it. Only
    LIQUIDATION_THRESHOLD percent of the collateral value counts toward the
    health factor, which must stay at or above MIN_HEALTH_FACTOR after every
    mint and redeem. Accounts that fall below it can be liquidated by anyone
    for a LIQUIDATION_BONUS percent collateral bonus.

    Thread Safety:
        Not thread-safe. One operation runs at a time; nested entry from an
        external call raises ReentrantCall.

    Example:
        dsc = StableToken(owner="deployer")
        engine = DSCEngine([weth], [eth_usd], dsc.grant_capability("deployer", "dsc_engine"))

        weth.approve("alice", engine.address, 10 * 10**18)
        engine.deposit_collateral_and_mint_dsc("alice", weth, 10 * 10**18, 100 * 10**18)
    """

    def __init__(
        self,
        token_addresses: Sequence[CollateralAsset],
        price_feed_addresses: Sequence[PriceFeed],
        dsc: MintBurnHandle,
        config: Optional[EngineConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Create an engine with a fixed collateral registry.

        Args:
            token_addresses: Collateral tokens, in registry order
            price_feed_addresses: Price feed of each token (parallel list)
            dsc: Mint/burn capability of the stable token; its holder becomes
                the engine's address
            config: Solvency parameters (default: EngineConfig())
            clock: Time source for the oracle staleness check

        Raises:
            TokenAddressesAndPriceFeedAddressesMustBeSameLength: If the lists differ in length
            ConfigurationError: If a token is listed twice or is not a token object
        """
        tokens = list(token_addresses)
        feeds = list(price_feed_addresses)
        if len(tokens) != len(feeds):
            raise TokenAddressesAndPriceFeedAddressesMustBeSameLength(len(tokens), len(feeds))

        for item in tokens + feeds:
            if isinstance(item, str):
                raise ConfigurationError(
                    f"Expected a token or feed object, got bare address {item!r}"
                )

        registry: Dict[Address, CollateralAsset] = {}
        price_feeds: Dict[Address, PriceFeed] = {}
        for token, feed in zip(tokens, feeds):
            token_address = address_of(token)
            if token_address in registry:
                raise ConfigurationError(f"Collateral token listed twice: {token_address}")
            registry[token_address] = token
            price_feeds[token_address] = feed

        self.config = config or EngineConfig()
        self.address: Address = dsc.holder
        self._dsc = dsc
        self._tokens: Dict[Address, CollateralAsset] = registry
        self._oracle = PriceOracleAdapter(price_feeds, self.config.oracle_timeout, clock)
        self._collateral = CollateralLedger(registry)
        self._debt = DebtLedger()
        self._entered = False
        self.events: List[EngineEvent] = []

        logger.info(
            "Engine %s created: collateral=%s, dsc=%s",
            self.address, list(registry), dsc.token.address,
        )

    # ========================================================================
    # OPERATION SCOPE
    # ========================================================================

    @contextmanager
    def _operation(self, name: str, **details: Any) -> Iterator[_Journal]:
        """
        Run one public operation atomically under the reentrancy guard.

        On success the deferred interactions run and the journal's events are
        published. On any exception the touched ledger entries are restored,
        the compensations run and the exception propagates unchanged. If a
        compensation fails too, CompensationFailed is raised from the
        original exception.
        """
        if self._entered:
            raise ReentrantCall()
        self._entered = True
        journal = _Journal(self._collateral, self._debt)
        try:
            yield journal
            journal.settle()
        except Exception as exc:
            journal.restore_ledgers()
            failures = journal.rollback()
            logger.warning("REJECTED %s %s: %s: %s", name, details, type(exc).__name__, exc)
            if failures:
                raise CompensationFailed(name, failures) from exc
            raise
        else:
            self.events.extend(journal.events)
            logger.info("APPLIED %s %s", name, details)
        finally:
            self._entered = False

    # ========================================================================
    # PUBLIC OPERATIONS (Mutating)
    # ========================================================================

    def deposit_collateral(self, user: Address, token: TokenRef, amount: Amount) -> None:
        """
        Lock `amount` of `token` from the user's wallet as collateral.

        The user must have approved the engine for `amount`.

        Raises:
            InvalidAmount: If amount is not a positive int
            UnsupportedToken: If the token is not registered
            TransferFailed: If the token transfer reports failure
        """
        with self._operation("deposit_collateral", user=user, token=token, amount=amount) as journal:
            self._deposit_collateral(journal, user, token, amount)

    def mint_dsc(self, user: Address, amount: Amount) -> None:
        """
        Mint `amount` DSC to the user as debt against their collateral.

        Raises:
            InvalidAmount: If amount is not a positive int
            BreaksHealthFactor: If the new debt leaves the account below the minimum
            MintFailed: If the stable token reports failure
        """
        with self._operation("mint_dsc", user=user, amount=amount) as journal:
            self._mint_dsc(journal, user, amount)

    def deposit_collateral_and_mint_dsc(
        self,
        user: Address,
        token: TokenRef,
        collateral_amount: Amount,
        mint_amount: Amount,
    ) -> None:
        """Deposit collateral and mint DSC in one atomic operation."""
        with self._operation(
            "deposit_collateral_and_mint_dsc",
            user=user, token=token, collateral_amount=collateral_amount, mint_amount=mint_amount,
        ) as journal:
            self._deposit_collateral(journal, user, token, collateral_amount)
            self._mint_dsc(journal, user, mint_amount)

    def redeem_collateral(self, user: Address, token: TokenRef, amount: Amount) -> None:
        """
        Withdraw `amount` of `token` collateral back to the user's wallet.

        Raises:
            InvalidAmount: If amount is not a positive int
            UnsupportedToken: If the token is not registered
            InsufficientBalance: If the user has less than `amount` deposited
            BreaksHealthFactor: If the withdrawal leaves the account below the minimum
            TransferFailed: If the outbound transfer reports failure
        """
        with self._operation("redeem_collateral", user=user, token=token, amount=amount) as journal:
            self._redeem_collateral(journal, token, amount, user, user)
            self._revert_if_health_factor_is_broken(user)

    def burn_dsc(self, user: Address, amount: Amount) -> None:
        """
        Repay `amount` of the user's debt with DSC from their wallet.

        The user must have approved the engine for `amount` DSC.

        Raises:
            InvalidAmount: If amount is not a positive int
            InsufficientBalance: If the user owes less than `amount`
            TransferFailed: If the DSC cannot be pulled from the user
        """
        with self._operation("burn_dsc", user=user, amount=amount) as journal:
            # No solvency check: burning only raises the health factor, and an
            # account below the minimum must still be able to repay.
            self._burn_dsc(journal, amount, user, user)

    def redeem_collateral_for_dsc(
        self,
        user: Address,
        token: TokenRef,
        collateral_amount: Amount,
        burn_amount: Amount,
    ) -> None:
        """Burn DSC, then redeem collateral, in one atomic operation."""
        with self._operation(
            "redeem_collateral_for_dsc",
            user=user, token=token, collateral_amount=collateral_amount, burn_amount=burn_amount,
        ) as journal:
            self._burn_dsc(journal, burn_amount, user, user)
            self._redeem_collateral(journal, token, collateral_amount, user, user)
            self._revert_if_health_factor_is_broken(user)

    def liquidate(
        self,
        liquidator: Address,
        token: TokenRef,
        user: Address,
        debt_to_cover: Amount,
    ) -> None:
        """
        Repay part of an insolvent account's debt in exchange for its collateral.

        The liquidator pays `debt_to_cover` DSC and receives collateral of
        `token` worth that much plus the liquidation bonus, taken from the
        user's deposit.

        Args:
            liquidator: Caller paying the debt (must have approved the DSC)
            token: Collateral token to seize
            user: Account being liquidated
            debt_to_cover: DSC of the user's debt to repay (18-decimal)

        Raises:
            InvalidAmount: If debt_to_cover is not a positive int
            HealthFactorOk: If the user is not below the minimum health factor
            InsufficientBalance: If the user's debt or deposit of `token` is too small
            HealthFactorNotImproved: If the user's health factor does not strictly rise
            BreaksHealthFactor: If the liquidator's own position ends up broken
        """
        with self._operation(
            "liquidate", liquidator=liquidator, token=token, user=user, debt_to_cover=debt_to_cover,
        ) as journal:
            require_positive_amount(debt_to_cover)
            token_address = self._require_token(token)

            starting_health_factor = self._health_factor(user)
            if not is_liquidatable(starting_health_factor, self.config.min_health_factor):
                raise HealthFactorOk(starting_health_factor)

            token_amount = self._oracle.amount_from_usd_value(token_address, debt_to_cover)
            seized = calculate_liquidation_collateral(
                token_amount, self.config.liquidation_bonus, self.config.liquidation_precision
            )
            # Burn first so the DSC is pulled from the liquidator before any
            # collateral leaves the engine
            self._burn_dsc(journal, debt_to_cover, user, liquidator)
            if seized.total > 0:
                self._redeem_collateral(journal, token_address, seized.total, user, liquidator)

            ending_health_factor = self._health_factor(user)
            if ending_health_factor <= starting_health_factor:
                raise HealthFactorNotImproved(starting_health_factor, ending_health_factor)
            self._revert_if_health_factor_is_broken(liquidator)

            journal.emit(Liquidated(
                liquidator=liquidator,
                user=user,
                token=token_address,
                debt_covered=debt_to_cover,
                collateral_seized=seized.total,
                bonus_collateral=seized.bonus,
                starting_health_factor=starting_health_factor,
                ending_health_factor=ending_health_factor,
            ))

    # ========================================================================
    # INTERNAL STEPS (run inside an operation)
    # ========================================================================

    def _require_token(self, token: TokenRef) -> Address:
        return self._collateral.require_supported(address_of(token))

    def _deposit_collateral(self, journal: _Journal, user: Address, token: TokenRef, amount: Amount) -> None:
        require_positive_amount(amount)
        token_address = self._require_token(token)
        journal.touch(user)
        self._collateral.deposit(user, token_address, amount)
        journal.emit(CollateralDeposited(user, token_address, amount))

        asset = self._tokens[token_address]

        def pull() -> None:
            if not asset.transfer_from(self.address, user, self.address, amount):
                raise TransferFailed(token_address, user, self.address, amount)

        def refund() -> None:
            if not asset.transfer(self.address, user, amount):
                # Still in custody: keep it on record so the user can redeem it
                self._collateral.deposit(user, token_address, amount)
                raise TransferFailed(token_address, self.address, user, amount)

        journal.defer(f"pull {amount} {token_address} from {user}", pull, undo=refund)

    def _mint_dsc(self, journal: _Journal, user: Address, amount: Amount) -> None:
        require_positive_amount(amount)
        journal.touch(user)
        self._debt.increase(user, amount)
        self._revert_if_health_factor_is_broken(user)
        journal.emit(DscMinted(user, amount))

        def mint() -> None:
            if not self._dsc.mint(user, amount):
                raise MintFailed(user, amount)

        # Never followed by another interaction, so no undo is needed
        journal.defer(f"mint {amount} DSC to {user}", mint)

    def _redeem_collateral(
        self,
        journal: _Journal,
        token: TokenRef,
        amount: Amount,
        redeemed_from: Address,
        redeemed_to: Address,
    ) -> None:
        require_positive_amount(amount)
        token_address = self._require_token(token)
        journal.touch(redeemed_from)
        self._collateral.withdraw(redeemed_from, token_address, amount)
        journal.emit(CollateralRedeemed(redeemed_from, redeemed_to, token_address, amount))

        asset = self._tokens[token_address]

        def send() -> None:
            if not asset.transfer(self.address, redeemed_to, amount):
                raise TransferFailed(token_address, self.address, redeemed_to, amount)

        journal.defer(f"send {amount} {token_address} to {redeemed_to}", send)

    def _burn_dsc(self, journal: _Journal, amount: Amount, on_behalf_of: Address, dsc_from: Address) -> None:
        require_positive_amount(amount)
        journal.touch(on_behalf_of)
        self._debt.decrease(on_behalf_of, amount)
        journal.emit(DscBurned(on_behalf_of, dsc_from, amount))

        dsc_token = self._dsc.token

        def pull() -> None:
            if not dsc_token.transfer_from(self.address, dsc_from, self.address, amount):
                raise TransferFailed(dsc_token.address, dsc_from, self.address, amount)

        def give_back() -> None:
            if not dsc_token.transfer(self.address, dsc_from, amount):
                raise TransferFailed(dsc_token.address, self.address, dsc_from, amount)

        def remint() -> None:
            if not self._dsc.mint(self.address, amount):
                # The DSC is gone for good, so the debt it repaid stays repaid
                self._debt.decrease(on_behalf_of, amount)
                raise MintFailed(self.address, amount)

        journal.defer(f"pull {amount} DSC from {dsc_from}", pull, undo=give_back)
        journal.defer(f"burn {amount} DSC", lambda: self._dsc.burn(amount), undo=remint)

    def _revert_if_health_factor_is_broken(self, user: Address) -> None:
        health_factor = self._health_factor(user)
        if health_factor < self.config.min_health_factor:
            raise BreaksHealthFactor(health_factor, user)

    # ========================================================================
    # VALUATION
    # ========================================================================

    def _account_collateral_value(self, user: Address) -> Amount:
        total = 0
        for token, amount in self._collateral.balances_of(user).items():
            if amount:
                total += self._oracle.usd_value(token, amount)
        return total

    def _health_factor(self, user: Address) -> int:
        total_dsc_minted = self._debt.balance_of(user)
        if total_dsc_minted == 0:
            return MAX_HEALTH_FACTOR
        return self.calculate_health_factor(total_dsc_minted, self._account_collateral_value(user))

    # ========================================================================
    # QUERIES (read-only)
    # ========================================================================

    def calculate_health_factor(self, total_dsc_minted: Amount, collateral_value_in_usd: Amount) -> int:
        """Health factor for arbitrary inputs under this engine's parameters."""
        return calculate_health_factor(
            total_dsc_minted,
            collateral_value_in_usd,
            self.config.liquidation_threshold,
            self.config.liquidation_precision,
        )

    @_view
    def get_account_information(self, user: Address) -> AccountInformation:
        """Return (total_dsc_minted, collateral_value_in_usd) for an account."""
        return AccountInformation(
            total_dsc_minted=self._debt.balance_of(user),
            collateral_value_in_usd=self._account_collateral_value(user),
        )

    @_view
    def get_health_factor(self, user: Address) -> int:
        return self._health_factor(user)

    @_view
    def get_dsc_minted(self, user: Address) -> Amount:
        """Outstanding debt of an account; reads no prices."""
        return self._debt.balance_of(user)

    @_view
    def get_account_collateral_value(self, user: Address) -> Amount:
        return self._account_collateral_value(user)

    @_view
    def get_max_mintable(self, user: Address) -> Amount:
        """DSC the account could still mint at current prices without breaking its health factor."""
        info = self.get_account_information(user)
        return calculate_max_mintable(
            info.total_dsc_minted,
            info.collateral_value_in_usd,
            self.config.liquidation_threshold,
            self.config.liquidation_precision,
            self.config.min_health_factor,
        )

    def get_usd_value(self, token: TokenRef, amount: Amount) -> Amount:
        return self._oracle.usd_value(self._require_token(token), amount)

    def get_token_amount_from_usd(self, token: TokenRef, usd_amount_in_wei: Amount) -> Amount:
        return self._oracle.amount_from_usd_value(self._require_token(token), usd_amount_in_wei)

    @_view
    def get_collateral_balance_of_user(self, user: Address, token: TokenRef) -> Amount:
        return self._collateral.balance_of(user, self._require_token(token))

    def get_collateral_tokens(self) -> List[Address]:
        return list(self._collateral.tokens)

    def get_collateral_token_price_feed(self, token: TokenRef) -> Address:
        return self._oracle.price_feed(self._require_token(token)).address

    @_view
    def get_total_dsc_minted(self) -> Amount:
        return self._debt.total_debt()

    def get_dsc(self) -> Address:
        return self._dsc.token.address

    def get_precision(self) -> int:
        return PRECISION

    def get_additional_feed_precision(self) -> int:
        return ADDITIONAL_FEED_PRECISION

    def get_liquidation_threshold(self) -> int:
        return self.config.liquidation_threshold

    def get_liquidation_precision(self) -> int:
        return self.config.liquidation_precision

    def get_liquidation_bonus(self) -> int:
        return self.config.liquidation_bonus

    def get_min_health_factor(self) -> int:
        return self.config.min_health_factor

    def __repr__(self):
        return (
            f"DSCEngine({self.address}, collateral={list(self._collateral.tokens)}, "
            f"total_dsc_minted={self._debt.total_debt()})"
        )
