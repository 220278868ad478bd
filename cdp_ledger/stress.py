"""
stress.py - Price-path simulation and health stress tooling

Pure helpers for exploring how positions behave when the collateral price
moves:

- simulate_price_paths: seeded geometric Brownian motion paths (numpy)
- to_oracle_price: float price -> integer oracle quote
- health_curve: health of a position snapshot across a price grid
- find_liquidation_price: highest grid price at which a snapshot is liquidatable

Health values can exceed int64 (MAX_HEALTH is 2**256 - 1), so curves are
returned as Python ints, with numpy used for path generation and grid work.
"""

from __future__ import annotations
from dataclasses import replace
from typing import List, Optional, Sequence

import numpy as np

from .health import (
    HealthInputs, normalize_price, calculate_position_health, calculate_is_liquidatable,
)


def simulate_price_paths(
    initial_price: float,
    volatility: float,
    steps: int,
    n_paths: int = 1,
    drift: float = 0.0,
    dt: float = 1.0 / 365.0,
    seed: Optional[int] = None,
) -> np.ndarray:
    """
    Generate geometric Brownian motion price paths.

    Args:
        initial_price: Starting price (> 0)
        volatility: Annualised volatility (e.g. 0.8 for 80%)
        steps: Number of time steps after the start
        n_paths: Number of independent paths
        drift: Annualised drift
        dt: Step length in years (default: one day)
        seed: Seed for numpy's default_rng (reproducible paths)

    Returns:
        Array of shape (n_paths, steps + 1); column 0 is initial_price.
    """
    if initial_price <= 0:
        raise ValueError(f"initial_price must be positive, got {initial_price}")
    if volatility < 0:
        raise ValueError(f"volatility cannot be negative, got {volatility}")
    if steps < 0 or n_paths < 1:
        raise ValueError("steps must be >= 0 and n_paths >= 1")

    rng = np.random.default_rng(seed)
    shocks = rng.standard_normal((n_paths, steps))
    log_returns = (drift - 0.5 * volatility ** 2) * dt + volatility * np.sqrt(dt) * shocks
    log_paths = np.cumsum(log_returns, axis=1)
    paths = initial_price * np.exp(log_paths)
    start = np.full((n_paths, 1), float(initial_price))
    return np.hstack([start, paths])


def to_oracle_price(price: float, decimals: int = 8) -> int:
    """Round a float price to an integer quote with `decimals` decimals (minimum 1)."""
    return max(int(round(price * 10 ** decimals)), 1)


def health_curve(inputs: HealthInputs, prices: Sequence[float], price_decimals: int = 8) -> List[int]:
    """
    Health of a position snapshot at each collateral price in `prices`.

    The loan price, amounts and LTV are taken from `inputs`.
    """
    grid = np.asarray(prices, dtype=float)
    curve = []
    for price in grid:
        shocked = replace(
            inputs, collateral_price=normalize_price(to_oracle_price(price, price_decimals), price_decimals)
        )
        curve.append(calculate_position_health(shocked))
    return curve


def find_liquidation_price(
    inputs: HealthInputs,
    prices: Sequence[float],
    liquidation_threshold: int,
    price_decimals: int = 8,
) -> Optional[float]:
    """
    Highest price in `prices` at which the snapshot would be liquidatable.

    Returns None if the position is safe across the whole grid.
    """
    grid = np.sort(np.asarray(prices, dtype=float))
    curve = health_curve(inputs, grid, price_decimals)
    mask = np.fromiter(
        (
            calculate_is_liquidatable(
                health, inputs.collateral_amount, inputs.debt_amount,
                inputs.effective_ltv, liquidation_threshold,
            )
            for health in curve
        ),
        dtype=bool,
        count=len(curve),
    )
    if not mask.any():
        return None
    return float(grid[mask].max())
