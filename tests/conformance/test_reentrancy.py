"""
Re-entrancy Conformance Tests

INVARIANTS:

    1. While a mutating call is in progress, any other mutating call on the
       same vault raises ReentrantCall.
    2. A collaborator reading the vault mid-operation sees the committed
       ledger state of that operation, never a half-applied one.
    3. A rejected re-entry inside a token transfer reverts the outer call;
       one inside the interest collector is recorded and swallowed.
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from cdp_ledger import ReentrantCall

from tests.fakes import UNIT, HookedCollateralToken, FakeInterestCollector, build_world


def hooked_world(**kwargs):
    return build_world(token_cls=HookedCollateralToken, **kwargs)


# =============================================================================
# MUTATING RE-ENTRY
# =============================================================================

class TestMutatingReentry:

    def test_reentry_during_open_reverts_open(self):
        world = hooked_world()
        existing = world.open("alice", 1000 * UNIT)
        world.fund("bob", 500 * UNIT)
        world.collateral.hook = lambda: world.vault.add_collateral("alice", existing, UNIT)
        events_before = len(world.vault.event_log)

        with pytest.raises(ReentrantCall):
            world.vault.open_position("bob", "WETH", 500 * UNIT)

        assert world.vault.get_positions_by_owner("bob") == []
        assert world.vault.get_position(existing).collateral_amount == 1000 * UNIT
        assert world.collateral.balance_of("bob") == 500 * UNIT
        assert len(world.vault.event_log) == events_before

    def test_reentry_during_liquidation_payout_reverts_batch(self):
        world = hooked_world()
        first = world.open("alice", 1000 * UNIT, 500 * UNIT)
        second = world.open("bob", 1000 * UNIT, 500 * UNIT)
        world.set_price("WETH", 1.0)
        world.collateral.hook = lambda: world.vault.liquidate_position("keeper", second)

        with pytest.raises(ReentrantCall):
            world.vault.batch_liquidate("keeper", [first])

        assert world.vault.ledger.exists(first)
        assert world.vault.ledger.exists(second)
        assert world.collateral.balance_of("keeper") == 0

    def test_vault_usable_after_rejected_reentry(self):
        world = hooked_world()
        pid = world.open("alice", 1000 * UNIT, 100 * UNIT)
        world.collateral.hook = lambda: world.vault.borrow("alice", pid, UNIT)
        with pytest.raises(ReentrantCall):
            world.vault.withdraw_collateral("alice", pid, 10 * UNIT)

        world.collateral.hook = None
        world.vault.withdraw_collateral("alice", pid, 10 * UNIT)
        assert world.vault.get_position(pid).collateral_amount == 990 * UNIT

    @given(operation=st.sampled_from(["add", "withdraw", "borrow", "repay", "open", "settings"]))
    @settings(max_examples=20, deadline=None)
    def test_every_mutator_is_guarded(self, operation):
        world = hooked_world()
        pid = world.open("alice", 1000 * UNIT, 100 * UNIT)
        world.fund("alice", 100 * UNIT)
        reentry = {
            "add": lambda: world.vault.add_collateral("alice", pid, UNIT),
            "withdraw": lambda: world.vault.withdraw_collateral("alice", pid, UNIT),
            "borrow": lambda: world.vault.borrow("alice", pid, UNIT),
            "repay": lambda: world.vault.repay_debt("alice", pid, UNIT),
            "open": lambda: world.vault.open_position("alice", "WETH", UNIT),
            "settings": lambda: world.vault.set_do_not_mint("alice", False),
        }[operation]
        world.collateral.hook = reentry
        before = world.vault.get_position(pid)

        with pytest.raises(ReentrantCall):
            world.vault.add_collateral("alice", pid, 50 * UNIT)

        assert world.vault.get_position(pid) == before
        assert world.vault.is_do_not_mint("alice")


# =============================================================================
# READ-ONLY RE-ENTRY
# =============================================================================

class TestReadOnlyReentry:

    def test_withdraw_commits_before_transfer(self):
        world = hooked_world()
        pid = world.open("alice", 1000 * UNIT, 100 * UNIT)
        seen = []

        def observe():
            seen.append((
                world.vault.get_position(pid).collateral_amount,
                world.vault.get_collateral_balance("alice"),
                world.vault.verify_aggregates()['valid'],
            ))
        world.collateral.hook = observe

        world.vault.withdraw_collateral("alice", pid, 300 * UNIT)

        assert seen == [(700 * UNIT, 700 * UNIT, True)]

    def test_open_records_position_before_pull(self):
        world = hooked_world()
        world.vault.set_do_not_mint("alice", True)
        world.fund("alice", 1000 * UNIT)
        seen = []
        world.collateral.hook = lambda: seen.append(
            (world.vault.get_positions_by_owner("alice"), world.vault.total_debt)
        )

        pid = world.vault.open_position("alice", "WETH", 1000 * UNIT, 200 * UNIT)

        assert seen == [([pid], 200 * UNIT)]

    def test_liquidated_position_already_gone_during_payout(self):
        world = hooked_world()
        pid = world.open("alice", 1000 * UNIT, 500 * UNIT)
        world.set_price("WETH", 1.0)
        seen = []
        world.collateral.hook = lambda: seen.append(
            (world.vault.ledger.exists(pid), world.vault.is_liquidatable(pid), world.vault.total_debt)
        )

        world.vault.liquidate_position("keeper", pid)

        assert seen == [(False, False, 0)] * 3

    def test_health_readable_mid_operation(self):
        world = hooked_world()
        pid = world.open("alice", 1000 * UNIT, 1000 * UNIT)
        world.fund("alice", 1000 * UNIT)
        seen = []
        world.collateral.hook = lambda: seen.append(world.vault.get_position(pid).collateral_amount)

        world.vault.add_collateral("alice", pid, 1000 * UNIT)

        assert seen == [2000 * UNIT]
        assert world.vault.get_position_health(pid) > 0


# =============================================================================
# INTEREST COLLECTOR RE-ENTRY
# =============================================================================

class TestCollectorReentry:

    def test_reentry_from_collector_is_recorded_not_raised(self):
        collector = FakeInterestCollector(accrue=UNIT)
        world = build_world(interest_collector=collector)
        pid = world.open("alice", 1000 * UNIT, 100 * UNIT)
        collector.hook = lambda: world.vault.repay_debt("alice", pid, 50 * UNIT)

        world.vault.borrow("alice", pid, 10 * UNIT)

        assert world.vault.get_position(pid).debt_amount == 110 * UNIT
        [failure] = world.vault.events("INTEREST_COLLECTION_FAILED")
        assert "ReentrantCall" in failure.data['error']
        assert world.vault.events("INTEREST_COLLECTED") == []

    def test_collector_may_read(self):
        collector = FakeInterestCollector(accrue=UNIT)
        world = build_world(interest_collector=collector)
        pid = world.open("alice", 1000 * UNIT, 100 * UNIT)
        seen = []
        collector.hook = lambda: seen.append(world.vault.get_position(pid).debt_amount)

        world.vault.borrow("alice", pid, 10 * UNIT)

        assert seen == [100 * UNIT]
        assert world.vault.get_position(pid).debt_amount == 111 * UNIT
