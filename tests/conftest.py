"""
conftest.py - Shared pytest fixtures for engine tests

Provides common fixtures used across unit, conformance and functional tests:
- A logical clock shared by feeds and engine
- Collateral tokens (WETH, WBTC) and their price feeds
- The stable token and an engine holding its mint/burn capability
- Engines with a user that has deposited, minted, or been liquidated
"""

import pytest

from dsc import (
    DSCEngine,
    FungibleToken,
    StableToken,
    StaticPriceFeed,
)

from tests.helpers import (
    LogicalClock,
    ETH_USD_PRICE, BTC_USD_PRICE,
    COLLATERAL_AMOUNT, AMOUNT_TO_MINT, COLLATERAL_TO_COVER, STARTING_USER_BALANCE,
    USER, LIQUIDATOR, DEPLOYER, ENGINE,
)


# =============================================================================
# BASIC FIXTURES
# =============================================================================

@pytest.fixture
def clock():
    return LogicalClock()


@pytest.fixture
def weth():
    token = FungibleToken("Wrapped Ether", "WETH", "weth")
    token.mint("faucet", USER, STARTING_USER_BALANCE)
    return token


@pytest.fixture
def wbtc():
    token = FungibleToken("Wrapped Bitcoin", "WBTC", "wbtc")
    token.mint("faucet", USER, STARTING_USER_BALANCE)
    return token


@pytest.fixture
def eth_usd(clock):
    return StaticPriceFeed("eth_usd", ETH_USD_PRICE, decimals=8, clock=clock)


@pytest.fixture
def btc_usd(clock):
    return StaticPriceFeed("btc_usd", BTC_USD_PRICE, decimals=8, clock=clock)


@pytest.fixture
def dsc():
    return StableToken(owner=DEPLOYER)


@pytest.fixture
def dsce(weth, wbtc, eth_usd, btc_usd, dsc, clock):
    """Engine with WETH and WBTC registered, holding the DSC capability."""
    return DSCEngine(
        [weth, wbtc],
        [eth_usd, btc_usd],
        dsc.grant_capability(DEPLOYER, ENGINE),
        clock=clock,
    )


# =============================================================================
# POSITION FIXTURES
# =============================================================================

@pytest.fixture
def dsce_deposited(dsce, weth):
    """Engine where the user has deposited COLLATERAL_AMOUNT WETH."""
    weth.approve(USER, dsce.address, COLLATERAL_AMOUNT)
    dsce.deposit_collateral(USER, weth, COLLATERAL_AMOUNT)
    return dsce


@pytest.fixture
def dsce_minted(dsce, weth):
    """Engine where the user has deposited COLLATERAL_AMOUNT WETH and minted AMOUNT_TO_MINT."""
    weth.approve(USER, dsce.address, COLLATERAL_AMOUNT)
    dsce.deposit_collateral_and_mint_dsc(USER, weth, COLLATERAL_AMOUNT, AMOUNT_TO_MINT)
    return dsce


@pytest.fixture
def liquidator_funded(weth):
    """Liquidator holding COLLATERAL_TO_COVER WETH."""
    weth.mint("faucet", LIQUIDATOR, COLLATERAL_TO_COVER)
    return LIQUIDATOR


@pytest.fixture
def dsce_liquidated(dsce_minted, weth, dsc, eth_usd, liquidator_funded):
    """
    Engine after the ETH price crashed to $18 and the liquidator repaid
    the user's whole debt.
    """
    eth_usd.update_answer(18 * 10**8)

    weth.approve(LIQUIDATOR, dsce_minted.address, COLLATERAL_TO_COVER)
    dsce_minted.deposit_collateral_and_mint_dsc(
        LIQUIDATOR, weth, COLLATERAL_TO_COVER, AMOUNT_TO_MINT
    )
    dsc.approve(LIQUIDATOR, dsce_minted.address, AMOUNT_TO_MINT)
    dsce_minted.liquidate(LIQUIDATOR, weth, USER, AMOUNT_TO_MINT)
    return dsce_minted
