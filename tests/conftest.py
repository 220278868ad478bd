"""
conftest.py - Shared pytest fixtures for vault tests

Provides common fixtures used across unit, functional and conformance tests:
- A default world (vault with default config, WETH at $2)
- Worlds with a custodian strategy and an interest collector

The default config liquidates: at 50% LTV its line is health 2.5, above the
2.0 a fully drawn unleveraged position settles at.
"""

import pytest

from tests.fakes import UNIT, FakeInterestCollector, build_world


# =============================================================================
# WORLD FIXTURES
# =============================================================================

@pytest.fixture
def world():
    """Default config, WETH at $2, receipts enabled, no strategy."""
    return build_world()


@pytest.fixture
def vault(world):
    return world.vault


@pytest.fixture
def strategy_world():
    """Default config with a FakeStrategy custodian."""
    return build_world(strategy=True)


@pytest.fixture
def collector():
    return FakeInterestCollector(accrue=10 * UNIT)


@pytest.fixture
def interest_world(collector):
    return build_world(interest_collector=collector)


@pytest.fixture
def opened(world):
    """alice: 1000 WETH collateral, 400 USDX debt, fee gate skipped."""
    pid = world.open("alice", 1000 * UNIT, 400 * UNIT)
    return world, pid
