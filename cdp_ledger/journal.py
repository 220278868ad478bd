"""
journal.py - Undo journal for in-place rollback

Stateful stores (PositionLedger, AssetBook) write every mapping entry through
an UndoJournal. While a savepoint is open, each write first records the
entry's previous value; rewinding replays those records backwards. The cost
of a savepoint is therefore proportional to what the operation touched, not
to the size of the store.

Scalar attributes are journaled by passing the owner's vars() as the mapping.
"""

from __future__ import annotations
from typing import Any, List, MutableMapping, Tuple


# Marks a key that did not exist before the write.
_MISSING = object()


class UndoJournal:
    """
    Prior values of mapping entries written since the oldest open savepoint.

    Savepoints nest: rewinding one undoes every write made after it,
    releasing one keeps them. Once the last open savepoint closes, the
    recorded entries are dropped and writes stop being recorded.

    Example:
        journal = UndoJournal()
        balances = {"alice": 10}
        sp = journal.savepoint()
        journal.set(balances, "alice", 3)
        journal.set(balances, "bob", 7)
        journal.rewind(sp)
        assert balances == {"alice": 10}
    """

    def __init__(self):
        self._entries: List[Tuple[MutableMapping, Any, Any]] = []
        self._open = 0

    @property
    def recording(self) -> bool:
        return self._open > 0

    def __len__(self) -> int:
        return len(self._entries)

    def record(self, mapping: MutableMapping, key: Any) -> None:
        """Remember the current value of mapping[key] before an in-place change."""
        if not self._open:
            return
        value = mapping.get(key, _MISSING)
        # lists are mutated in place by callers (owner index)
        if isinstance(value, list):
            value = list(value)
        self._entries.append((mapping, key, value))

    def set(self, mapping: MutableMapping, key: Any, value: Any) -> None:
        self.record(mapping, key)
        mapping[key] = value

    def pop(self, mapping: MutableMapping, key: Any) -> None:
        if key not in mapping:
            return
        self.record(mapping, key)
        del mapping[key]

    def savepoint(self) -> int:
        self._open += 1
        return len(self._entries)

    def rewind(self, savepoint: int) -> None:
        """Undo every write recorded after savepoint and close it."""
        while len(self._entries) > savepoint:
            mapping, key, value = self._entries.pop()
            if value is _MISSING:
                mapping.pop(key, None)
            else:
                mapping[key] = value
        self._close()

    def release(self, savepoint: int) -> None:
        """Keep every write made after savepoint and close it."""
        self._close()

    def _close(self) -> None:
        if self._open == 0:
            raise RuntimeError("No open savepoint")
        self._open -= 1
        if self._open == 0:
            self._entries.clear()

    def __repr__(self) -> str:
        return f"UndoJournal({len(self._entries)} entries, {self._open} open)"
