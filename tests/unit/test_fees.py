"""
test_fees.py - Unit tests for the mint fee and LTV boost

Tests:
- Fee percentage with truncation
- Boosted LTV in collateralization-ratio space
- Gate result: receipt only once, boost never compounds or lowers
"""

import pytest
from hypothesis import given, strategies as st

from cdp_ledger import calculate_mint_fee, calculate_boosted_ltv, calculate_fee_gate


class TestMintFee:

    def test_two_percent(self):
        assert calculate_mint_fee(1000, 2) == 20

    def test_truncates(self):
        assert calculate_mint_fee(49, 2) == 0
        assert calculate_mint_fee(99, 3) == 2

    def test_zero_percent(self):
        assert calculate_mint_fee(10**21, 0) == 0


class TestBoostedLTV:

    @pytest.mark.parametrize("base, boosted", [
        (50, 66),
        (80, 88),
        (25, 40),
        (100, 100),
    ])
    def test_known_values(self, base, boosted):
        assert calculate_boosted_ltv(base) == boosted

    @given(st.integers(min_value=1, max_value=100))
    def test_boost_stays_between_base_and_full(self, base):
        boosted = calculate_boosted_ltv(base)
        assert base <= boosted <= 100


class TestFeeGate:

    def test_first_inflow(self):
        result = calculate_fee_gate(1000, 2, base_ltv=50, current_effective_ltv=50, has_receipt=False)
        assert result.fee == 20
        assert result.net_amount == 980
        assert result.effective_ltv == 66
        assert result.mint_receipt

    def test_second_inflow_does_not_compound(self):
        result = calculate_fee_gate(1000, 2, base_ltv=50, current_effective_ltv=66, has_receipt=True)
        assert result.effective_ltv == 66
        assert not result.mint_receipt

    def test_never_lowers_effective_ltv(self):
        # Admin lowered the base LTV after the position was boosted
        result = calculate_fee_gate(100, 2, base_ltv=25, current_effective_ltv=66, has_receipt=True)
        assert result.effective_ltv == 66

    def test_raises_to_new_base_boost(self):
        result = calculate_fee_gate(100, 2, base_ltv=80, current_effective_ltv=66, has_receipt=True)
        assert result.effective_ltv == 88

    @given(
        amount=st.integers(min_value=0, max_value=10**30),
        percent=st.integers(min_value=0, max_value=100),
    )
    def test_fee_and_net_sum_to_amount(self, amount, percent):
        result = calculate_fee_gate(amount, percent, 50, 50, False)
        assert result.fee + result.net_amount == amount
        assert result.fee >= 0 and result.net_amount >= 0
