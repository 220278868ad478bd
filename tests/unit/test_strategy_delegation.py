"""
test_strategy_delegation.py - Unit tests for collateral custody through a strategy

Tests:
- Inbound collateral is handed to the strategy
- Outbound collateral is pulled back before paying out
- Strategy failures and shortfalls revert the triggering operation
- set_strategy is admin-only
- CustodyRouter without a strategy is a no-op
"""

import pytest

from cdp_ledger import CustodyRouter, MissingRole, StrategyCallFailed

from tests.fakes import UNIT, FakeStrategy, build_world


class TestInbound:

    def test_open_delegates_collateral(self, strategy_world):
        world = strategy_world
        pid = world.open("alice", 1000 * UNIT)

        assert world.collateral.balance_of("strategy") == 1000 * UNIT
        assert world.collateral.balance_of("vault") == 0
        assert world.vault.strategy.deposits == {pid: 1000 * UNIT}
        assert world.vault.custody.custodian_account == "strategy"

    def test_add_collateral_delegates(self, strategy_world):
        world = strategy_world
        pid = world.open("alice", 1000 * UNIT)
        world.fund("alice", 200 * UNIT)
        world.vault.add_collateral("alice", pid, 200 * UNIT)
        assert world.vault.strategy.deposits[pid] == 1200 * UNIT

    def test_only_net_amount_delegated(self, strategy_world):
        world = strategy_world
        pid = world.open("alice", 1000 * UNIT, fee_opt_out=False)
        assert world.vault.strategy.deposits[pid] == 980 * UNIT
        assert world.collateral.balance_of("treasury") == 20 * UNIT

    def test_deposit_failure_reverts_open(self, strategy_world):
        world = strategy_world
        world.vault.strategy.fail_deposit = True

        with pytest.raises(StrategyCallFailed):
            world.open("alice", 1000 * UNIT, 100 * UNIT)

        assert world.vault.position_count == 0
        assert world.collateral.balance_of("alice") == 1000 * UNIT
        assert world.collateral.balance_of("strategy") == 0
        assert world.loan.balance_of("alice") == 0


class TestOutbound:

    def test_withdraw_pulls_from_strategy(self, strategy_world):
        world = strategy_world
        pid = world.open("alice", 1000 * UNIT, 400 * UNIT)
        world.vault.withdraw_collateral("alice", pid, 600 * UNIT)

        assert world.collateral.balance_of("alice") == 600 * UNIT
        assert world.collateral.balance_of("strategy") == 400 * UNIT
        assert world.vault.strategy.deposits[pid] == 400 * UNIT

    def test_shortfall_reverts_withdraw(self, strategy_world):
        world = strategy_world
        pid = world.open("alice", 1000 * UNIT, 400 * UNIT)
        world.vault.strategy.shortfall = 1
        before = world.balances()

        with pytest.raises(StrategyCallFailed):
            world.vault.withdraw_collateral("alice", pid, 600 * UNIT)

        assert world.balances() == before
        assert world.vault.get_position(pid).collateral_amount == 1000 * UNIT
        assert world.vault.strategy.deposits[pid] == 1000 * UNIT

    def test_withdraw_failure_reverts(self, strategy_world):
        world = strategy_world
        pid = world.open("alice", 1000 * UNIT)
        world.vault.strategy.fail_withdraw = True
        with pytest.raises(StrategyCallFailed):
            world.vault.withdraw_collateral("alice", pid, 1000 * UNIT)
        assert world.vault.position_count == 1

    def test_liquidation_pulls_from_strategy(self):
        world = build_world(strategy=True)
        pid = world.open("alice", 1000 * UNIT, 1000 * UNIT)
        world.vault.liquidate_position("liquidator", pid)

        assert world.collateral.balance_of("strategy") == 0
        assert world.collateral.balance_of("liquidator") == 50 * UNIT
        assert world.collateral.balance_of("alice") == 900 * UNIT
        assert world.vault.strategy.deposits[pid] == 0

    def test_liquidation_blocked_by_strategy_failure(self):
        world = build_world(strategy=True)
        pid = world.open("alice", 1000 * UNIT, 1000 * UNIT)
        world.vault.strategy.fail_withdraw = True

        with pytest.raises(StrategyCallFailed):
            world.vault.liquidate_position("liquidator", pid)
        assert world.vault.is_liquidatable(pid)


class TestSetStrategy:

    def test_admin_only(self, world):
        with pytest.raises(MissingRole):
            world.vault.set_strategy("alice", FakeStrategy(world.collateral))

    def test_new_positions_use_new_strategy(self, world):
        world.vault.set_strategy("gov", FakeStrategy(world.collateral))
        pid = world.open("alice", 100 * UNIT)
        assert world.vault.strategy.deposits == {pid: 100 * UNIT}
        assert world.collateral.balance_of("strategy") == 100 * UNIT

    def test_clearing_strategy(self, strategy_world):
        world = strategy_world
        world.vault.set_strategy("gov", None)
        world.open("alice", 100 * UNIT)
        assert world.collateral.balance_of("vault") == 100 * UNIT
        assert world.vault.custody.custodian_account == "vault"


class TestCustodyRouter:

    def test_no_strategy_is_noop(self, world):
        router = CustodyRouter(world.collateral, "vault")
        router.deposit(1, 100)
        router.release(1, 100)
        assert world.collateral.balance_of("vault") == 0

    def test_zero_amount_skips_strategy(self, world):
        strategy = FakeStrategy(world.collateral)
        strategy.fail_deposit = True
        strategy.fail_withdraw = True
        router = CustodyRouter(world.collateral, "vault", strategy)
        router.deposit(1, 0)
        router.release(1, 0)

    def test_failed_hand_off_transfer(self, world):
        router = CustodyRouter(world.collateral, "vault", FakeStrategy(world.collateral))
        # vault holds nothing, so the transfer to the strategy account fails
        with pytest.raises(StrategyCallFailed):
            router.deposit(1, 100)
