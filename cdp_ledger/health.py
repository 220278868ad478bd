"""
health.py - Position Health and Liquidation Math

Pure integer functions behind get_position_health, is_liquidatable and the
liquidation split.

ARCHITECTURE (Pure Function Pattern):
=====================================

1. FROZEN DATACLASS (explicit inputs):
   - HealthInputs: everything a health computation needs, loaded once

2. PURE CALCULATION FUNCTIONS (calculate_*):
   - Take all inputs explicitly as parameters
   - No vault, no oracle, no hidden state
   - Stress-testable: swap the price and recompute

3. ADAPTER (Vault._load_health_inputs):
   - Reads the position and the oracle, builds HealthInputs

All arithmetic is on Python ints with truncating division. The operation
order below is part of the contract: multiplying before dividing, and
dividing exactly where shown, decides the rounding.

Key Formulas (P = PRECISION, HP = HIGH_PRECISION):
    collateral_value = collateral * price_c / 10**dec_c
    debt_value       = debt * price_l / 10**dec_l
    max_borrowable   = collateral_value * ltv / 100 * 10**dec_l / price_l
    leverage_used    = debt * leverage * HP / max_borrowable
    health           = collateral_value * P / (debt_value * HP / leverage_used)
"""

from __future__ import annotations
from dataclasses import dataclass

from .core import PRECISION, HIGH_PRECISION, MAX_HEALTH, PRICE_DECIMALS, InvalidPrice


@dataclass(frozen=True, slots=True)
class HealthInputs:
    """
    Immutable inputs for a health computation.

    Prices are already normalised to PRICE_DECIMALS.
    """
    collateral_amount: int
    debt_amount: int
    collateral_price: int
    loan_price: int
    collateral_decimals: int
    loan_decimals: int
    effective_ltv: int
    leverage: int = 1

    @property
    def collateral_value(self) -> int:
        return calculate_value(self.collateral_amount, self.collateral_price, self.collateral_decimals)

    @property
    def debt_value(self) -> int:
        return calculate_value(self.debt_amount, self.loan_price, self.loan_decimals)

    @property
    def max_borrowable(self) -> int:
        return calculate_max_borrowable(
            self.collateral_value, self.effective_ltv, self.loan_price, self.loan_decimals
        )


@dataclass(frozen=True, slots=True)
class LiquidationSplit:
    """How seized collateral is distributed. The three parts sum to the seized amount."""
    reward: int
    penalty: int
    remainder: int


def normalize_price(price: int, decimals: int) -> int:
    """
    Scale an oracle price to PRICE_DECIMALS.

    Raises:
        InvalidPrice: if price is not positive.
    """
    if price <= 0:
        raise InvalidPrice(f"Oracle price must be positive, got {price}")
    if decimals <= PRICE_DECIMALS:
        return price * 10 ** (PRICE_DECIMALS - decimals)
    normalized = price // 10 ** (decimals - PRICE_DECIMALS)
    if normalized == 0:
        raise InvalidPrice(f"Oracle price {price} with {decimals} decimals rounds to zero")
    return normalized


def calculate_value(amount: int, price: int, token_decimals: int) -> int:
    """Value of a token amount in PRICE_DECIMALS fixed point."""
    return amount * price // 10 ** token_decimals


def calculate_max_borrowable(
    collateral_value: int,
    effective_ltv: int,
    loan_price: int,
    loan_decimals: int,
) -> int:
    """Largest debt, in loan-asset units, the collateral value supports at effective_ltv."""
    borrowable_value = collateral_value * effective_ltv // 100
    return borrowable_value * 10 ** loan_decimals // loan_price


def calculate_leverage_used(debt: int, leverage: int, max_borrowable: int) -> int:
    """Drawn share of borrowing capacity, scaled by HIGH_PRECISION and the leverage multiplier."""
    return debt * leverage * HIGH_PRECISION // max_borrowable


def calculate_health(
    collateral_value: int,
    debt_value: int,
    debt: int,
    leverage: int,
    max_borrowable: int,
    effective_ltv: int,
) -> int:
    """
    Health of a position as a PRECISION fixed-point ratio.

    PURE FUNCTION - All inputs explicit, no hidden state.

    Three regimes once debt is present:
        baseline      collateral_value * P / (debt_value * HP / leverage_used)
        amplified     leverage > 1 and leverage_used > HP: the position has
                      drawn more than its baseline share of capacity
        under-drawn   leverage_used < HP

    Degenerate divisors: a position whose borrowing capacity truncates to
    zero has health 0; one whose debt value truncates to zero has MAX_HEALTH.

    Returns:
        MAX_HEALTH if debt is zero, otherwise the health ratio.
    """
    if debt == 0:
        return MAX_HEALTH
    if max_borrowable == 0:
        return 0

    leverage_used = calculate_leverage_used(debt, leverage, max_borrowable)
    if leverage_used == 0:
        return MAX_HEALTH

    numerator = collateral_value
    denominator = debt_value * HIGH_PRECISION // leverage_used
    if denominator == 0:
        return MAX_HEALTH
    health = numerator * PRECISION // denominator

    if numerator >= denominator and leverage > 1 and leverage_used > HIGH_PRECISION:
        amplified_numerator = collateral_value * leverage_used * effective_ltv // (100 * HIGH_PRECISION)
        amplified_denominator = debt_value * (1000 - 1000 * HIGH_PRECISION // leverage_used) // 1000
        if amplified_denominator == 0:
            return MAX_HEALTH
        health = amplified_numerator * PRECISION // amplified_denominator
    elif numerator >= denominator and leverage_used < HIGH_PRECISION:
        drawn_denominator = debt_value * leverage_used // HIGH_PRECISION
        if drawn_denominator == 0:
            return MAX_HEALTH
        health = collateral_value * PRECISION // drawn_denominator

    return health


def calculate_position_health(inputs: HealthInputs) -> int:
    """calculate_health over a loaded HealthInputs."""
    if inputs.debt_amount == 0:
        return MAX_HEALTH
    return calculate_health(
        collateral_value=inputs.collateral_value,
        debt_value=inputs.debt_value,
        debt=inputs.debt_amount,
        leverage=inputs.leverage,
        max_borrowable=inputs.max_borrowable,
        effective_ltv=inputs.effective_ltv,
    )


def calculate_liquidation_limit(effective_ltv: int, liquidation_threshold: int) -> int:
    """Health below which a position is liquidatable."""
    return PRECISION * (effective_ltv * liquidation_threshold // 100) // 100


def calculate_is_liquidatable(
    health: int,
    collateral: int,
    debt: int,
    effective_ltv: int,
    liquidation_threshold: int,
) -> bool:
    """
    Whether a position may be liquidated.

    Empty-sided positions (no debt, or no collateral to seize) never are.
    """
    if debt == 0 or collateral == 0:
        return False
    return health < calculate_liquidation_limit(effective_ltv, liquidation_threshold)


def calculate_min_collateral_value(debt_value: int, effective_ltv: int) -> int:
    """Smallest collateral value that keeps debt_value within effective_ltv."""
    return debt_value * 100 // effective_ltv


def calculate_liquidation_split(collateral: int, reward_percent: int, penalty_percent: int) -> LiquidationSplit:
    """
    Split seized collateral into liquidator reward, treasury penalty and owner remainder.

    The remainder absorbs rounding, so the parts always sum to collateral.
    """
    reward = collateral * reward_percent // 100
    penalty = collateral * penalty_percent // 100
    return LiquidationSplit(reward=reward, penalty=penalty, remainder=collateral - reward - penalty)
