"""
dsc - Collateral-backed Stable Coin Engine

Users lock approved collateral and mint DSC against it. The engine tracks
deposits and debt per account, prices collateral through price feeds, and
rejects any operation that would leave an account under-collateralized.

Usage:
    from dsc import DSCEngine, FungibleToken, StableToken, StaticPriceFeed

    weth = FungibleToken("Wrapped Ether", "WETH", "weth")
    eth_usd = StaticPriceFeed("eth_usd", 2000 * 10**8, decimals=8)
    dsc = StableToken(owner="deployer")
    engine = DSCEngine([weth], [eth_usd], dsc.grant_capability("deployer", "dsc_engine"))

    weth.mint("faucet", "alice", 10 * 10**18)
    weth.approve("alice", engine.address, 10 * 10**18)
    engine.deposit_collateral_and_mint_dsc("alice", weth, 10 * 10**18, 100 * 10**18)
    engine.get_health_factor("alice")   # 100 * 10**18
"""

# Core types
from .core import (
    Address,
    Amount,
    CollateralBalances,
    CollateralAsset,
    PriceFeed,
    MintBurnHandle,
    FeedRound,
    AccountInformation,
    EngineConfig,
    EngineError,
    InvalidAmount,
    UnsupportedToken,
    ConfigurationError,
    TokenAddressesAndPriceFeedAddressesMustBeSameLength,
    PriceUnavailable,
    StalePrice,
    BreaksHealthFactor,
    InsufficientBalance,
    TransferFailed,
    MintFailed,
    HealthFactorOk,
    HealthFactorNotImproved,
    ReentrantCall,
    CompensationFailed,
    NotOwner,
    PRECISION,
    ADDITIONAL_FEED_PRECISION,
    LIQUIDATION_THRESHOLD,
    LIQUIDATION_PRECISION,
    LIQUIDATION_BONUS,
    MIN_HEALTH_FACTOR,
    MAX_HEALTH_FACTOR,
    ORACLE_TIMEOUT,
)

# Pure solvency arithmetic
from .solvency import (
    LiquidationAmounts,
    calculate_adjusted_collateral,
    calculate_health_factor,
    calculate_liquidation_collateral,
    calculate_max_mintable,
    is_liquidatable,
)

# Pricing
from .oracle import PriceOracleAdapter, normalize_price, stale_check_latest_price
from .feeds import StaticPriceFeed, TimeSeriesPriceFeed

# Bookkeeping
from .ledgers import CollateralLedger, DebtLedger

# Tokens
from .token import FungibleToken, StableToken, MintBurnCapability

# Engine
from .engine import (
    DSCEngine,
    EngineEvent,
    CollateralDeposited,
    CollateralRedeemed,
    DscMinted,
    DscBurned,
    Liquidated,
)

__all__ = [
    # Types
    'Address', 'Amount', 'CollateralBalances',
    'CollateralAsset', 'PriceFeed', 'MintBurnHandle',
    'FeedRound', 'AccountInformation', 'EngineConfig',
    # Exceptions
    'EngineError', 'InvalidAmount', 'UnsupportedToken', 'ConfigurationError',
    'TokenAddressesAndPriceFeedAddressesMustBeSameLength',
    'PriceUnavailable', 'StalePrice', 'BreaksHealthFactor', 'InsufficientBalance',
    'TransferFailed', 'MintFailed', 'HealthFactorOk', 'HealthFactorNotImproved',
    'ReentrantCall', 'CompensationFailed', 'NotOwner',
    # Constants
    'PRECISION', 'ADDITIONAL_FEED_PRECISION', 'LIQUIDATION_THRESHOLD',
    'LIQUIDATION_PRECISION', 'LIQUIDATION_BONUS', 'MIN_HEALTH_FACTOR',
    'MAX_HEALTH_FACTOR', 'ORACLE_TIMEOUT',
    # Solvency
    'LiquidationAmounts', 'calculate_adjusted_collateral', 'calculate_health_factor',
    'calculate_liquidation_collateral', 'calculate_max_mintable', 'is_liquidatable',
    # Pricing
    'PriceOracleAdapter', 'normalize_price', 'stale_check_latest_price',
    'StaticPriceFeed', 'TimeSeriesPriceFeed',
    # Bookkeeping
    'CollateralLedger', 'DebtLedger',
    # Tokens
    'FungibleToken', 'StableToken', 'MintBurnCapability',
    # Engine
    'DSCEngine', 'EngineEvent', 'CollateralDeposited', 'CollateralRedeemed',
    'DscMinted', 'DscBurned', 'Liquidated',
]
