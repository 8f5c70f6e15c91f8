"""HistoryLog cursor, truncation and eviction."""

from __future__ import annotations

import pytest

from history import HistoryLog


class Recorder:
    """Stands in for the applier: remembers the last state handed to it."""

    def __init__(self) -> None:
        self.state: list = []
        self.calls = 0

    def __call__(self, state: list) -> None:
        self.state = state
        self.calls += 1


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


class TestRecord:
    def test_empty_log(self, recorder: Recorder) -> None:
        log = HistoryLog(recorder)
        assert len(log) == 0
        assert log.index == -1
        assert not log.can_undo
        assert not log.can_redo

    def test_record_moves_cursor_to_tail(self, recorder: Recorder) -> None:
        log = HistoryLog(recorder)
        log.record("add", [], ["a"], "one")
        log.record("add", ["a"], ["a", "b"], "two")
        assert len(log) == 2
        assert log.index == 1

    def test_record_does_not_apply(self, recorder: Recorder) -> None:
        log = HistoryLog(recorder)
        log.record("add", [], ["a"], "one")
        assert recorder.calls == 0

    def test_snapshots_are_copies(self, recorder: Recorder) -> None:
        log = HistoryLog(recorder)
        before: list = []
        after = ["a"]
        log.record("add", before, after, "one")
        after.append("b")
        assert log.entries[0].after == ("a",)

    def test_unknown_kind_rejected(self, recorder: Recorder) -> None:
        log = HistoryLog(recorder)
        with pytest.raises(ValueError):
            log.record("rename", [], [], "x")

    def test_limit_evicts_oldest(self, recorder: Recorder) -> None:
        log = HistoryLog(recorder, limit=50)
        for i in range(51):
            log.record("add", [i], [i + 1], f"step {i}")
        assert len(log) == 50
        assert log.index == 49
        assert log.entries[0].description == "step 1"
        assert log.entries[-1].description == "step 50"

    def test_length_never_exceeds_limit(self, recorder: Recorder) -> None:
        log = HistoryLog(recorder, limit=3)
        for i in range(10):
            log.record("edit", [i], [i + 1], "x")
            assert len(log) <= 3


class TestUndoRedo:
    def test_undo_on_empty_is_noop(self, recorder: Recorder) -> None:
        log = HistoryLog(recorder)
        assert log.undo() is None
        assert recorder.calls == 0
        assert log.index == -1

    def test_undo_applies_before_and_decrements(self, recorder: Recorder) -> None:
        log = HistoryLog(recorder)
        log.record("add", ["a"], ["a", "b"], "add b")
        entry = log.undo()
        assert entry.description == "add b"
        assert recorder.state == ["a"]
        assert log.index == -1

    def test_redo_at_tail_is_noop(self, recorder: Recorder) -> None:
        log = HistoryLog(recorder)
        log.record("add", [], ["a"], "add a")
        assert log.redo() is None
        assert recorder.calls == 0

    def test_redo_applies_after_and_increments(self, recorder: Recorder) -> None:
        log = HistoryLog(recorder)
        log.record("add", [], ["a"], "add a")
        log.undo()
        log.redo()
        assert recorder.state == ["a"]
        assert log.index == 0

    def test_record_after_undo_discards_redo_tail(self, recorder: Recorder) -> None:
        log = HistoryLog(recorder)
        log.record("add", [], ["a"], "1")
        log.record("add", ["a"], ["a", "b"], "2")
        log.record("add", ["a", "b"], ["a", "b", "c"], "3")
        log.undo()
        log.undo()
        log.record("edit", ["a"], ["A"], "4")
        assert len(log) == 2
        assert not log.can_redo
        calls = recorder.calls
        assert log.redo() is None
        assert recorder.calls == calls

    def test_clear_resets(self, recorder: Recorder) -> None:
        log = HistoryLog(recorder)
        log.record("add", [], ["a"], "1")
        log.clear()
        assert len(log) == 0
        assert log.index == -1
