"""
fees.py - Mint fee and LTV boost for collateral entering through the fee gate

Pure functions; the vault decides when the gate applies (owner has not
opted out) and performs the transfers.

Key Formulas (P = PRECISION):
    fee           = amount * mint_fee_percent / 100
    current_cr    = 100 * P / ltv
    target_cr     = 100 * P / 100
    new_cr        = current_cr - (current_cr - target_cr) / 2
    effective_ltv = 100 * P / new_cr

The collateralization-ratio blend moves half-way from the base ratio toward
100% LTV: a 50% base LTV (200% CR) becomes 66% (150% CR).
"""

from __future__ import annotations
from dataclasses import dataclass

from .core import PRECISION


@dataclass(frozen=True, slots=True)
class FeeGateResult:
    """What the fee gate does to one inflow of collateral."""
    fee: int
    net_amount: int
    effective_ltv: int
    mint_receipt: bool


def calculate_mint_fee(amount: int, mint_fee_percent: int) -> int:
    return amount * mint_fee_percent // 100


def calculate_boosted_ltv(ltv_ratio: int) -> int:
    """
    Blend a base LTV half-way toward 100% in collateralization-ratio space.

    Example:
        >>> calculate_boosted_ltv(50)
        66
    """
    current_cr = 100 * PRECISION // ltv_ratio
    target_cr = 100 * PRECISION // 100
    new_cr = current_cr - (current_cr - target_cr) // 2
    return 100 * PRECISION // new_cr


def calculate_fee_gate(
    amount: int,
    mint_fee_percent: int,
    base_ltv: int,
    current_effective_ltv: int,
    has_receipt: bool,
) -> FeeGateResult:
    """
    Combine fee, receipt and boost for one collateral inflow.

    PURE FUNCTION - All inputs explicit.

    The boost is computed from the base LTV and never lowers the position's
    current effective LTV.
    """
    fee = calculate_mint_fee(amount, mint_fee_percent)
    return FeeGateResult(
        fee=fee,
        net_amount=amount - fee,
        effective_ltv=max(current_effective_ltv, calculate_boosted_ltv(base_ltv)),
        mint_receipt=not has_receipt,
    )
