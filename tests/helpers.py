"""
helpers.py - Shared constants and builders for engine tests

Fixtures live in conftest.py; this module holds what property-based tests
need outside of fixtures (hypothesis builds a fresh engine per example).
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Optional

from hypothesis import strategies as st

from dsc import (
    DSCEngine,
    EngineConfig,
    FungibleToken,
    StableToken,
    StaticPriceFeed,
)


# =============================================================================
# CONSTANTS
# =============================================================================

ETH_USD_PRICE = 2000 * 10**8
BTC_USD_PRICE = 1000 * 10**8
COLLATERAL_AMOUNT = 10 * 10**18
AMOUNT_TO_MINT = 100 * 10**18
COLLATERAL_TO_COVER = 20 * 10**18
STARTING_USER_BALANCE = 10 * 10**18

USER = "alice"
LIQUIDATOR = "liquidator"
DEPLOYER = "deployer"
ENGINE = "dsc_engine"


# =============================================================================
# HELPER CLASSES
# =============================================================================

class LogicalClock:
    """Manually advanced clock, callable like datetime.now."""

    def __init__(self, start: datetime = datetime(2025, 1, 1)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> datetime:
        self.now = self.now + delta
        return self.now


@dataclass
class Deployment:
    """Everything a test needs to drive one engine."""
    engine: DSCEngine
    dsc: StableToken
    tokens: Dict[str, FungibleToken]
    feeds: Dict[str, StaticPriceFeed]
    clock: LogicalClock


def deploy(
    prices: Optional[Dict[str, int]] = None,
    config: Optional[EngineConfig] = None,
    clock: Optional[LogicalClock] = None,
) -> Deployment:
    """
    Build a fresh engine with one collateral token per entry of `prices`.

    Args:
        prices: Token symbol (lower case) -> 8-decimal USD price
        config: Engine parameters
        clock: Shared clock (default: a new LogicalClock)
    """
    prices = prices or {"weth": ETH_USD_PRICE, "wbtc": BTC_USD_PRICE}
    clock = clock or LogicalClock()
    tokens = {
        symbol: FungibleToken(symbol.upper(), symbol.upper(), symbol)
        for symbol in prices
    }
    feeds = {
        symbol: StaticPriceFeed(f"{symbol}_usd", price, decimals=8, clock=clock)
        for symbol, price in prices.items()
    }
    dsc = StableToken(owner=DEPLOYER)
    engine = DSCEngine(
        list(tokens.values()),
        list(feeds.values()),
        dsc.grant_capability(DEPLOYER, ENGINE),
        config=config,
        clock=clock,
    )
    return Deployment(engine, dsc, tokens, feeds, clock)


def snapshot_state(deployment: Deployment, accounts) -> dict:
    """Every balance a failed operation must leave untouched."""
    engine = deployment.engine
    state = {
        "events": len(engine.events),
        "total_debt": engine.get_total_dsc_minted(),
        "dsc_supply": deployment.dsc.total_supply,
    }
    for account in list(accounts) + [engine.address]:
        state[("dsc", account)] = deployment.dsc.balance_of(account)
        state[("debt", account)] = engine.get_dsc_minted(account)
        for symbol, token in deployment.tokens.items():
            state[(symbol, account)] = token.balance_of(account)
            state[("deposit", symbol, account)] = engine.get_collateral_balance_of_user(account, token)
    return state


# =============================================================================
# OPERATION SEQUENCES
# =============================================================================

def fund(deployment: Deployment, accounts, amount: int = 20 * 10**18) -> None:
    """Faucet-mint `amount` of every collateral token to each account."""
    for account in accounts:
        for token in deployment.tokens.values():
            token.mint("faucet", account, amount)


def apply_operation(deployment: Deployment, op: tuple) -> None:
    """
    Run one operation tuple against a deployment.

    Shapes:
        ("approve", account, asset, amount)     asset is a token symbol or "dsc"
        ("deposit", account, symbol, amount)
        ("mint", account, amount)
        ("deposit_and_mint", account, symbol, collateral_amount, mint_amount)
        ("burn", account, amount)
        ("redeem", account, symbol, amount)
        ("redeem_for_dsc", account, symbol, collateral_amount, burn_amount)
        ("liquidate", liquidator, symbol, user, debt_to_cover)
        ("price", None, symbol, answer)
    """
    engine = deployment.engine
    tokens = deployment.tokens
    kind, account, *args = op

    if kind == "approve":
        asset, amount = args
        token = deployment.dsc if asset == "dsc" else tokens[asset]
        token.approve(account, engine.address, amount)
    elif kind == "deposit":
        engine.deposit_collateral(account, tokens[args[0]], args[1])
    elif kind == "mint":
        engine.mint_dsc(account, args[0])
    elif kind == "deposit_and_mint":
        engine.deposit_collateral_and_mint_dsc(account, tokens[args[0]], args[1], args[2])
    elif kind == "burn":
        engine.burn_dsc(account, args[0])
    elif kind == "redeem":
        engine.redeem_collateral(account, tokens[args[0]], args[1])
    elif kind == "redeem_for_dsc":
        engine.redeem_collateral_for_dsc(account, tokens[args[0]], args[1], args[2])
    elif kind == "liquidate":
        engine.liquidate(account, tokens[args[0]], args[1], args[2])
    elif kind == "price":
        deployment.feeds[args[0]].update_answer(args[1])
    else:
        raise ValueError(f"Unknown operation: {kind}")


# =============================================================================
# STRATEGIES
# =============================================================================

ACCOUNTS = [USER, "bob", LIQUIDATOR]
SYMBOLS = ["weth", "wbtc"]

# Zero, arbitrary wei, and round amounts that land near the solvency boundary
token_amounts = st.one_of(
    st.just(0),
    st.integers(min_value=1, max_value=25 * 10**18),
    st.sampled_from([10**17, 10**18, 5 * 10**18, 10 * 10**18, 20 * 10**18]),
)
dsc_amounts = st.one_of(
    st.just(0),
    st.integers(min_value=1, max_value=25_000 * 10**18),
    st.sampled_from([10**18, 100 * 10**18, 1_000 * 10**18, 5_000 * 10**18, 10_000 * 10**18]),
)
# $1 .. $5000 at 8 decimals
price_answers = st.integers(min_value=10**8, max_value=5_000 * 10**8)


@st.composite
def operations(draw):
    """One operation tuple for apply_operation()."""
    account = draw(st.sampled_from(ACCOUNTS))
    symbol = draw(st.sampled_from(SYMBOLS))
    kind = draw(st.sampled_from([
        "approve", "approve", "deposit", "mint", "deposit_and_mint",
        "burn", "redeem", "redeem_for_dsc", "liquidate", "price",
    ]))
    if kind == "approve":
        asset = draw(st.sampled_from(SYMBOLS + ["dsc"]))
        amounts = dsc_amounts if asset == "dsc" else token_amounts
        return ("approve", account, asset, draw(amounts))
    if kind == "deposit":
        return ("deposit", account, symbol, draw(token_amounts))
    if kind == "mint":
        return ("mint", account, draw(dsc_amounts))
    if kind == "deposit_and_mint":
        return ("deposit_and_mint", account, symbol, draw(token_amounts), draw(dsc_amounts))
    if kind == "burn":
        return ("burn", account, draw(dsc_amounts))
    if kind == "redeem":
        return ("redeem", account, symbol, draw(token_amounts))
    if kind == "redeem_for_dsc":
        return ("redeem_for_dsc", account, symbol, draw(token_amounts), draw(dsc_amounts))
    if kind == "liquidate":
        user = draw(st.sampled_from(ACCOUNTS))
        return ("liquidate", account, symbol, user, draw(dsc_amounts))
    return ("price", None, symbol, draw(price_answers))
