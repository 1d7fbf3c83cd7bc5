"""
solvency.py - Pure health factor and liquidation arithmetic

PURE FUNCTIONS - no ledgers, no oracle, no hidden state. Everything the engine
decides about solvency goes through these functions, so liquidators and
off-chain monitors can recompute the exact same numbers from the same inputs.

Key Formulas:
    adjusted_collateral = collateral_usd * threshold // precision
    health_factor       = adjusted_collateral * PRECISION // debt
    liquidation_bonus   = token_amount * bonus // precision

All inputs and outputs are ints scaled to 18 decimals. Each formula truncates
once per floor division, in the order shown.
"""

from __future__ import annotations
from typing import NamedTuple

from .core import (
    PRECISION, MIN_HEALTH_FACTOR, MAX_HEALTH_FACTOR,
    LIQUIDATION_THRESHOLD, LIQUIDATION_PRECISION, LIQUIDATION_BONUS,
    Amount,
)


class LiquidationAmounts(NamedTuple):
    """Collateral seized by a liquidation, in token base units."""
    base: Amount
    bonus: Amount
    total: Amount


def calculate_adjusted_collateral(
    collateral_value_in_usd: Amount,
    liquidation_threshold: int = LIQUIDATION_THRESHOLD,
    liquidation_precision: int = LIQUIDATION_PRECISION,
) -> Amount:
    """
    Collateral value that counts toward solvency after the threshold haircut.

    Example:
        >>> calculate_adjusted_collateral(10_000 * 10**18)
        5000000000000000000000
    """
    return collateral_value_in_usd * liquidation_threshold // liquidation_precision


def calculate_health_factor(
    total_dsc_minted: Amount,
    collateral_value_in_usd: Amount,
    liquidation_threshold: int = LIQUIDATION_THRESHOLD,
    liquidation_precision: int = LIQUIDATION_PRECISION,
) -> int:
    """
    Compute an account's health factor.

    An account without debt can never be unhealthy and reports
    MAX_HEALTH_FACTOR.

    Args:
        total_dsc_minted: Outstanding debt (18-decimal)
        collateral_value_in_usd: Total collateral value (18-decimal USD)
        liquidation_threshold: Share of collateral counted toward solvency
        liquidation_precision: Denominator of the threshold

    Returns:
        18-decimal health factor; 1e18 is exactly at the minimum.

    Example:
        # 10 000 USD of collateral against 100 DSC
        >>> calculate_health_factor(100 * 10**18, 10_000 * 10**18) == 50 * 10**18
        True
    """
    if total_dsc_minted == 0:
        return MAX_HEALTH_FACTOR
    adjusted = calculate_adjusted_collateral(
        collateral_value_in_usd, liquidation_threshold, liquidation_precision
    )
    return adjusted * PRECISION // total_dsc_minted


def is_liquidatable(health_factor: int, min_health_factor: int = MIN_HEALTH_FACTOR) -> bool:
    """True if the health factor is below the minimum."""
    return health_factor < min_health_factor


def calculate_liquidation_collateral(
    token_amount_from_debt_covered: Amount,
    liquidation_bonus: int = LIQUIDATION_BONUS,
    liquidation_precision: int = LIQUIDATION_PRECISION,
) -> LiquidationAmounts:
    """
    Split the collateral paid to a liquidator into its base and bonus parts.

    Args:
        token_amount_from_debt_covered: Collateral worth exactly the repaid debt
        liquidation_bonus: Bonus in precision units (10 = 10%)
        liquidation_precision: Denominator of the bonus

    Returns:
        LiquidationAmounts(base, bonus, total)
    """
    bonus = token_amount_from_debt_covered * liquidation_bonus // liquidation_precision
    return LiquidationAmounts(
        base=token_amount_from_debt_covered,
        bonus=bonus,
        total=token_amount_from_debt_covered + bonus,
    )


def calculate_max_mintable(
    total_dsc_minted: Amount,
    collateral_value_in_usd: Amount,
    liquidation_threshold: int = LIQUIDATION_THRESHOLD,
    liquidation_precision: int = LIQUIDATION_PRECISION,
    min_health_factor: int = MIN_HEALTH_FACTOR,
) -> Amount:
    """
    Additional DSC an account could mint while staying at or above the minimum.

    Returns 0 if the account is already at or below the limit.
    """
    adjusted = calculate_adjusted_collateral(
        collateral_value_in_usd, liquidation_threshold, liquidation_precision
    )
    capacity = adjusted * PRECISION // min_health_factor
    return max(0, capacity - total_dsc_minted)
