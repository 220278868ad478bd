"""
test_health.py - Unit tests for the pure health and liquidation math

Tests:
- Price normalisation and valuation
- Max borrowable and leverage used
- The three health regimes (baseline, amplified, under-drawn)
- Degenerate inputs (no debt, dust, zero capacity)
- Liquidation limit and eligibility
- Liquidation split
"""

import pytest

from cdp_ledger import (
    PRECISION, HIGH_PRECISION, MAX_HEALTH,
    HealthInputs, InvalidPrice,
    normalize_price, calculate_value, calculate_max_borrowable,
    calculate_leverage_used, calculate_health, calculate_position_health,
    calculate_liquidation_limit, calculate_is_liquidatable,
    calculate_min_collateral_value, calculate_liquidation_split,
)


UNIT = 10**18


def inputs(collateral=1000, debt=1000, price=2, leverage=1, ltv=50):
    """WETH-style collateral and a $1 loan asset, both 18 decimals."""
    return HealthInputs(
        collateral_amount=collateral * UNIT,
        debt_amount=debt * UNIT,
        collateral_price=price * PRECISION,
        loan_price=PRECISION,
        collateral_decimals=18,
        loan_decimals=18,
        effective_ltv=ltv,
        leverage=leverage,
    )


class TestNormalizePrice:

    def test_scales_up_to_18_decimals(self):
        assert normalize_price(2000_00000000, 8) == 2000 * PRECISION

    def test_scales_down_from_more_decimals(self):
        assert normalize_price(15 * 10**20, 21) == 15 * 10**17

    def test_rejects_non_positive(self):
        with pytest.raises(InvalidPrice):
            normalize_price(0, 8)
        with pytest.raises(InvalidPrice):
            normalize_price(-5, 8)

    def test_rejects_price_truncated_to_zero(self):
        with pytest.raises(InvalidPrice):
            normalize_price(999, 21)


class TestValuation:

    def test_value_uses_token_decimals(self):
        assert calculate_value(5 * 10**6, 2 * PRECISION, 6) == 10 * PRECISION

    def test_max_borrowable(self):
        collateral_value = 2000 * PRECISION
        assert calculate_max_borrowable(collateral_value, 50, PRECISION, 18) == 1000 * UNIT

    def test_max_borrowable_in_six_decimal_loan(self):
        assert calculate_max_borrowable(2000 * PRECISION, 50, PRECISION, 6) == 1000 * 10**6

    def test_leverage_used_is_high_precision_share(self):
        assert calculate_leverage_used(500, 1, 1000) == HIGH_PRECISION // 2
        assert calculate_leverage_used(500, 3, 1000) == 3 * HIGH_PRECISION // 2

    def test_min_collateral_value(self):
        assert calculate_min_collateral_value(400 * PRECISION, 50) == 800 * PRECISION
        assert calculate_min_collateral_value(100, 66) == 151


class TestHealthRegimes:

    def test_fully_drawn_baseline_is_two(self):
        # 1000 @ $2, debt 1000 at 50% LTV: leverage_used == HP exactly
        assert calculate_position_health(inputs()) == 2 * PRECISION

    def test_baseline_is_price_invariant_once_drawn(self):
        # At $1 the position is over-drawn (leverage_used = 2 HP) but unleveraged
        assert calculate_position_health(inputs(price=1)) == 2 * PRECISION

    def test_under_drawn_branch(self):
        assert calculate_position_health(inputs(debt=250)) == 32 * PRECISION

    def test_under_drawn_at_200_dollars(self):
        """1000 debt against 100000 capacity: 20000, not 2.0 (DESIGN.md, Open question 1)."""
        assert calculate_position_health(inputs(price=200)) == 20000 * PRECISION

    def test_amplified_branch_for_leverage(self):
        assert calculate_position_health(inputs(leverage=2)) == 4 * PRECISION

    def test_amplified_matches_manual_arithmetic(self):
        snapshot = inputs(collateral=1234, debt=987, price=3, leverage=3, ltv=66)
        cv = snapshot.collateral_value
        dv = snapshot.debt_value
        mb = snapshot.max_borrowable
        lu = snapshot.debt_amount * 3 * HIGH_PRECISION // mb
        assert lu > HIGH_PRECISION
        num = cv * lu * 66 // (100 * HIGH_PRECISION)
        den = dv * (1000 - 1000 * HIGH_PRECISION // lu) // 1000
        assert calculate_position_health(snapshot) == num * PRECISION // den

    def test_health_grows_with_price_when_under_drawn(self):
        low = calculate_position_health(inputs(debt=100, price=2))
        high = calculate_position_health(inputs(debt=100, price=4))
        assert high > low


class TestHealthDegenerate:

    def test_no_debt_is_max(self):
        assert calculate_position_health(inputs(debt=0)) == MAX_HEALTH
        assert calculate_health(100, 0, 0, 1, 10, 50) == MAX_HEALTH

    def test_zero_capacity_is_zero(self):
        assert calculate_health(0, 10, 10, 1, 0, 50) == 0

    def test_dust_debt_value_is_max(self):
        # debt of 1 wei against a huge capacity: leverage_used truncates to 0
        assert calculate_health(10**40, 0, 1, 1, 10**40, 50) == MAX_HEALTH

    def test_truncated_denominator_is_max(self):
        # leverage_used slightly above HP; a debt value of 1 truncates the denominator to 0
        health = calculate_health(
            collateral_value=10**30, debt_value=1, debt=1001,
            leverage=2, max_borrowable=2000, effective_ltv=50,
        )
        assert health == MAX_HEALTH


class TestLiquidatable:

    def test_limit_formula(self):
        assert calculate_liquidation_limit(50, 80) == 4 * 10**17
        assert calculate_liquidation_limit(50, 500) == 25 * 10**17
        assert calculate_liquidation_limit(66, 500) == 33 * 10**17

    def test_below_limit_is_liquidatable(self):
        assert calculate_is_liquidatable(2 * PRECISION, 1, 1, 50, 500)

    def test_at_limit_is_not(self):
        assert not calculate_is_liquidatable(25 * 10**17, 1, 1, 50, 500)

    def test_empty_sides_never_liquidatable(self):
        assert not calculate_is_liquidatable(0, 0, 10, 50, 500)
        assert not calculate_is_liquidatable(0, 10, 0, 50, 500)


class TestLiquidationSplit:

    def test_split(self):
        split = calculate_liquidation_split(1000, 5, 5)
        assert (split.reward, split.penalty, split.remainder) == (50, 50, 900)

    def test_remainder_absorbs_rounding(self):
        split = calculate_liquidation_split(1001, 5, 7)
        assert split.reward == 50
        assert split.penalty == 70
        assert split.reward + split.penalty + split.remainder == 1001

    def test_zero_rates(self):
        split = calculate_liquidation_split(999, 0, 0)
        assert split.remainder == 999
