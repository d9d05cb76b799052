"""Tests for the linear snapshot EditHistory."""

from __future__ import annotations

import logging

from subtitle_studio.core.cues import Cue, CueStore
from subtitle_studio.core.history import EditHistory


def _snap(*texts):
    return tuple(
        Cue(id="c{}".format(i), start_time=i, end_time=i + 1, text=t) for i, t in enumerate(texts)
    )


class TestCommit:

    def test_empty_history(self):
        history = EditHistory()
        assert history.cursor == -1
        assert history.current is None
        assert not history.can_undo
        assert not history.can_redo

    def test_commit_moves_cursor_to_new_entry(self):
        history = EditHistory()
        history.commit(_snap("a"))
        history.commit(_snap("b"))
        assert history.cursor == 1
        assert history.current == _snap("b")

    def test_commit_after_undo_discards_redo_branch(self):
        history = EditHistory()
        for text in ("a", "b", "c"):
            history.commit(_snap(text))
        history.undo()
        history.undo()
        history.commit(_snap("d"))
        assert history.snapshots == [_snap("a"), _snap("d")]
        assert not history.can_redo

    def test_autosave_receives_each_commit(self):
        saved = []
        history = EditHistory(autosave=saved.append)
        history.commit(_snap("a"))
        history.commit(_snap("b"))
        assert saved == [_snap("a"), _snap("b")]

    def test_autosave_failure_is_logged_not_raised(self, caplog):
        def broken(_snapshot):
            raise OSError("disk full")

        history = EditHistory(autosave=broken)
        with caplog.at_level(logging.ERROR):
            history.commit(_snap("a"))
        assert history.current == _snap("a")
        assert "Autosave failed" in caplog.text


class TestUndoRedo:

    def test_undo_at_first_entry_is_noop(self):
        history = EditHistory()
        history.commit(_snap("a"))
        assert history.undo() == _snap("a")
        assert history.cursor == 0

    def test_redo_at_last_entry_is_noop(self):
        history = EditHistory()
        history.commit(_snap("a"))
        history.commit(_snap("b"))
        assert history.redo() == _snap("b")
        assert history.cursor == 1

    def test_undo_then_redo(self):
        history = EditHistory()
        history.commit(_snap("a"))
        history.commit(_snap("b"))
        assert history.undo() == _snap("a")
        assert history.can_redo
        assert history.redo() == _snap("b")

    def test_undo_on_empty_history_returns_none(self):
        assert EditHistory().undo() is None


class TestResetAndSeed:

    def test_reset_empties(self):
        history = EditHistory()
        history.commit(_snap("a"))
        history.reset()
        assert len(history) == 0
        assert history.cursor == -1

    def test_seed_does_not_autosave(self):
        saved = []
        history = EditHistory(autosave=saved.append)
        history.seed(_snap("a"))
        assert history.current == _snap("a")
        assert saved == []


class TestStoreScenario:
    """Delete, nudge, undo twice, redo once, then a new edit."""

    def test_edit_undo_redo_sequence(self, store, history):
        store.delete("c2")
        store.shift_all(1.0)
        assert len(history) == 3

        store.restore(history.undo())
        assert [c.id for c in store.cues] == ["c1", "c3"]
        assert store.get("c1").start_time == 0.5

        store.restore(history.undo())
        assert [c.id for c in store.cues] == ["c1", "c2", "c3"]
        assert not history.can_undo

        store.restore(history.redo())
        assert [c.id for c in store.cues] == ["c1", "c3"]

        store.update("c1", text="Edited")
        store.commit()
        assert not history.can_redo
        assert len(history) == 3
        assert history.current[0].text == "Edited"

    def test_restored_snapshot_is_independent_of_later_edits(self):
        history = EditHistory()
        store = CueStore([Cue(id="x", start_time=0, end_time=1, text="one")], history=history)
        store.commit()
        store.update("x", text="two")
        assert history.current[0].text == "one"
