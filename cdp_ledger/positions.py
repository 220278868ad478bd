"""
positions.py - Position store with per-owner index and cached aggregates

PositionLedger is the only place that stores Position records. It keeps:
    - positions keyed by a monotonic integer id
    - an owner -> [position ids] index
    - cached per-owner collateral and debt balances
    - the global total debt counter
    - the set of positions holding a receipt

Every mutation updates the position, the owner's aggregates and (for debt)
the global counter together, exactly once. Callers never touch the
aggregates directly.

Deletion from the owner index is swap-with-last: the removed slot is filled
by the owner's last position id. Removal is O(1) and does NOT preserve the
original order of the remaining ids.

All writes go through an UndoJournal, so a savepoint (snapshot / restore /
release) costs as much as the entries an operation touched.
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import replace
from typing import Any, Dict, List, Optional

from .core import (
    Position,
    InvalidPosition, ArithmeticUnderflow,
)
from .journal import UndoJournal


class PositionLedger:
    """
    Arena of positions plus a secondary owner index.

    Not thread-safe; the vault serialises all calls.

    Example:
        book = PositionLedger()
        pid = book.create("alice", collateral=1000, debt=100, effective_ltv=50)
        book.add_debt(pid, 50)
        assert book.debt_balance("alice") == 150 == book.total_debt
    """

    def __init__(self):
        self._positions: Dict[int, Position] = {}
        self._owner_index: Dict[str, List[int]] = {}
        # position id -> slot in its owner's index list, for O(1) removal
        self._slots: Dict[int, int] = {}
        self._collateral_by_owner: Dict[str, int] = {}
        self._debt_by_owner: Dict[str, int] = {}
        # ids of positions holding a receipt
        self._receipts: Dict[int, bool] = {}
        self._next_id: int = 1
        self.total_debt: int = 0
        self._journal = UndoJournal()

    # ========================================================================
    # READS
    # ========================================================================

    def exists(self, position_id: int) -> bool:
        return position_id in self._positions

    def get(self, position_id: int) -> Position:
        """
        Return the position with the given id.

        Raises:
            InvalidPosition: if no live position has that id.
        """
        try:
            return self._positions[position_id]
        except KeyError:
            raise InvalidPosition(f"Position {position_id} does not exist") from None

    def owner_of(self, position_id: int) -> Optional[str]:
        position = self._positions.get(position_id)
        return position.owner if position is not None else None

    def positions_of(self, owner: str) -> List[int]:
        """Position ids of an owner, in index order (see module docstring)."""
        return list(self._owner_index.get(owner, ()))

    def collateral_balance(self, owner: str) -> int:
        return self._collateral_by_owner.get(owner, 0)

    def debt_balance(self, owner: str) -> int:
        return self._debt_by_owner.get(owner, 0)

    def has_receipt(self, position_id: int) -> bool:
        return position_id in self._receipts

    def all_positions(self) -> List[Position]:
        return [self._positions[pid] for pid in sorted(self._positions)]

    def __len__(self) -> int:
        return len(self._positions)

    def __contains__(self, position_id: int) -> bool:
        return position_id in self._positions

    # ========================================================================
    # MUTATIONS
    # ========================================================================

    def create(
        self,
        owner: str,
        collateral: int,
        debt: int,
        effective_ltv: int,
        leverage: int = 1,
        interest_opt_out: bool = False,
    ) -> int:
        """Record a new position and return its id."""
        position_id = self._next_id
        position = Position(
            position_id=position_id,
            owner=owner,
            collateral_amount=collateral,
            debt_amount=debt,
            effective_ltv_ratio=effective_ltv,
            leverage=leverage,
            interest_opt_out=interest_opt_out,
        )
        journal = self._journal
        journal.set(vars(self), '_next_id', position_id + 1)
        journal.set(self._positions, position_id, position)

        journal.record(self._owner_index, owner)
        ids = self._owner_index.setdefault(owner, [])
        journal.set(self._slots, position_id, len(ids))
        ids.append(position_id)

        self._add_to_totals(owner, collateral, debt)
        return position_id

    def add_collateral(self, position_id: int, amount: int) -> Position:
        return self._adjust(position_id, collateral_delta=amount)

    def remove_collateral(self, position_id: int, amount: int) -> Position:
        return self._adjust(position_id, collateral_delta=-amount)

    def add_debt(self, position_id: int, amount: int) -> Position:
        return self._adjust(position_id, debt_delta=amount)

    def remove_debt(self, position_id: int, amount: int) -> Position:
        return self._adjust(position_id, debt_delta=-amount)

    def raise_effective_ltv(self, position_id: int, ltv: int) -> Position:
        """Set the effective LTV to ltv if that is higher; never lowers it."""
        position = self.get(position_id)
        if ltv <= position.effective_ltv_ratio:
            return position
        updated = replace(position, effective_ltv_ratio=ltv)
        self._journal.set(self._positions, position_id, updated)
        return updated

    def set_interest_marker(self, position_id: int, marker: Any) -> Position:
        updated = replace(self.get(position_id), last_interest_collection_block=marker)
        self._journal.set(self._positions, position_id, updated)
        return updated

    def mark_receipt(self, position_id: int) -> None:
        self.get(position_id)
        self._journal.set(self._receipts, position_id, True)

    def seize(self, position_id: int) -> Position:
        """
        Zero a position's collateral and debt and delete it.

        Used by liquidation: the debt is written off, so total_debt drops by
        the full outstanding amount. Returns the position as it was before.
        """
        position = self.get(position_id)
        self._adjust(
            position_id,
            collateral_delta=-position.collateral_amount,
            debt_delta=-position.debt_amount,
        )
        self.delete(position_id)
        return position

    def delete(self, position_id: int) -> bool:
        """
        Remove an empty position from the store and its owner's index.

        Returns whether the position held a receipt, so the caller can burn it.

        Raises:
            InvalidPosition: if the position does not exist.
            ValueError: if the position still has collateral or debt.
        """
        position = self.get(position_id)
        if not position.is_empty:
            raise ValueError(f"Cannot delete non-empty position {position!r}")

        journal = self._journal
        owner = position.owner
        journal.record(self._owner_index, owner)
        ids = self._owner_index[owner]
        slot = self._slots[position_id]
        journal.pop(self._slots, position_id)
        last_id = ids.pop()
        if last_id != position_id:
            ids[slot] = last_id
            journal.set(self._slots, last_id, slot)
        if not ids:
            journal.pop(self._owner_index, owner)
            journal.pop(self._collateral_by_owner, owner)
            journal.pop(self._debt_by_owner, owner)

        journal.pop(self._positions, position_id)
        had_receipt = position_id in self._receipts
        journal.pop(self._receipts, position_id)
        return had_receipt

    def _adjust(self, position_id: int, collateral_delta: int = 0, debt_delta: int = 0) -> Position:
        position = self.get(position_id)
        new_collateral = position.collateral_amount + collateral_delta
        new_debt = position.debt_amount + debt_delta
        if new_collateral < 0:
            raise ArithmeticUnderflow(
                f"Position {position_id}: collateral {position.collateral_amount} - {-collateral_delta} < 0"
            )
        if new_debt < 0:
            raise ArithmeticUnderflow(
                f"Position {position_id}: debt {position.debt_amount} - {-debt_delta} < 0"
            )

        updated = replace(position, collateral_amount=new_collateral, debt_amount=new_debt)
        self._journal.set(self._positions, position_id, updated)
        self._add_to_totals(position.owner, collateral_delta, debt_delta)
        return updated

    def _add_to_totals(self, owner: str, collateral_delta: int, debt_delta: int) -> None:
        journal = self._journal
        journal.set(self._collateral_by_owner, owner, self._collateral_by_owner.get(owner, 0) + collateral_delta)
        journal.set(self._debt_by_owner, owner, self._debt_by_owner.get(owner, 0) + debt_delta)
        if debt_delta:
            journal.set(vars(self), 'total_debt', self.total_debt + debt_delta)

    # ========================================================================
    # SAVEPOINTS / VERIFICATION
    # ========================================================================

    def snapshot(self) -> int:
        """
        Open a savepoint.

        From here on every write records the value it replaces, so restore()
        costs as much as the work done since, however many positions exist.
        """
        return self._journal.savepoint()

    def restore(self, savepoint: int) -> None:
        """Undo every change made since snapshot() returned savepoint."""
        self._journal.rewind(savepoint)

    def release(self, savepoint: int) -> None:
        """Keep the changes made since savepoint and stop tracking them."""
        self._journal.release(savepoint)

    def verify_aggregates(self) -> Dict[str, Any]:
        """
        Recompute per-owner sums and total debt from the positions.

        Returns:
            Dict with keys:
            - 'valid': bool - True if every cached aggregate matches
            - 'total_debt': int - Recomputed global debt
            - 'discrepancies': List[Dict] - owner, field, cached, actual
        """
        collateral: Dict[str, int] = defaultdict(int)
        debt: Dict[str, int] = defaultdict(int)
        for position in self._positions.values():
            collateral[position.owner] += position.collateral_amount
            debt[position.owner] += position.debt_amount

        discrepancies = []
        owners = set(collateral) | set(self._collateral_by_owner) | set(self._debt_by_owner)
        for owner in sorted(owners):
            for field_name, actual, cached in (
                ('collateral', collateral.get(owner, 0), self._collateral_by_owner.get(owner, 0)),
                ('debt', debt.get(owner, 0), self._debt_by_owner.get(owner, 0)),
            ):
                if actual != cached:
                    discrepancies.append({
                        'owner': owner, 'field': field_name,
                        'cached': cached, 'actual': actual,
                    })

        total = sum(debt.values())
        if total != self.total_debt:
            discrepancies.append({
                'owner': None, 'field': 'total_debt',
                'cached': self.total_debt, 'actual': total,
            })

        for owner, ids in self._owner_index.items():
            for slot, pid in enumerate(ids):
                if self._slots.get(pid) != slot or self.owner_of(pid) != owner:
                    discrepancies.append({
                        'owner': owner, 'field': 'index',
                        'cached': self._slots.get(pid), 'actual': slot,
                    })

        return {
            'valid': len(discrepancies) == 0,
            'total_debt': total,
            'discrepancies': discrepancies,
        }

    def __repr__(self) -> str:
        return (f"PositionLedger({len(self._positions)} positions, "
                f"{len(self._owner_index)} owners, total_debt={self.total_debt})")
