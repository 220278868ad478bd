"""
test_journal.py - Unit tests for UndoJournal

Tests:
- Rewind restores overwritten and removes added keys
- Nothing is recorded without an open savepoint
- Nested savepoints and release
- Lists mutated in place are restored
"""

import pytest

from cdp_ledger import UndoJournal


@pytest.fixture
def journal():
    return UndoJournal()


class TestRewind:

    def test_restores_overwritten_and_added_keys(self, journal):
        data = {"a": 1}
        sp = journal.savepoint()
        journal.set(data, "a", 2)
        journal.set(data, "b", 3)
        journal.pop(data, "a")
        journal.rewind(sp)
        assert data == {"a": 1}

    def test_pop_missing_key_is_noop(self, journal):
        data = {}
        sp = journal.savepoint()
        journal.pop(data, "x")
        assert len(journal) == 0
        journal.rewind(sp)
        assert data == {}

    def test_list_values_copied_before_in_place_change(self, journal):
        index = {"alice": [1, 2]}
        sp = journal.savepoint()
        journal.record(index, "alice")
        index["alice"].append(3)
        journal.rewind(sp)
        assert index == {"alice": [1, 2]}

    def test_object_attributes_via_vars(self, journal):
        class Counter:
            total = 0
        counter = Counter()
        counter.total = 5
        sp = journal.savepoint()
        journal.set(vars(counter), "total", 9)
        journal.rewind(sp)
        assert counter.total == 5


class TestSavepoints:

    def test_no_recording_without_savepoint(self, journal):
        data = {}
        journal.set(data, "a", 1)
        assert not journal.recording
        assert len(journal) == 0
        assert data == {"a": 1}

    def test_inner_release_then_outer_rewind(self, journal):
        data = {"a": 0}
        outer = journal.savepoint()
        journal.set(data, "a", 1)
        inner = journal.savepoint()
        journal.set(data, "a", 2)
        journal.release(inner)
        assert journal.recording
        journal.rewind(outer)
        assert data == {"a": 0}
        assert len(journal) == 0

    def test_inner_rewind_keeps_outer_writes(self, journal):
        data = {"a": 0}
        outer = journal.savepoint()
        journal.set(data, "a", 1)
        inner = journal.savepoint()
        journal.set(data, "a", 2)
        journal.rewind(inner)
        assert data == {"a": 1}
        journal.release(outer)
        assert data == {"a": 1}
        assert not journal.recording

    def test_close_without_savepoint_raises(self, journal):
        with pytest.raises(RuntimeError):
            journal.release(0)
