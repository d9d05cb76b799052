"""Linear undo/redo history over full Cue Store snapshots.

WHY: Every discrete edit (transcription, translation, delete, nudge,
split, an edit batch closed by the user) must be undoable. Full snapshots
are simple and, at subtitle scale (hundreds of cues), cheap because Cue
objects are immutable and shared between snapshots.

HOW: A list of snapshots plus a cursor. commit() truncates everything
after the cursor, appends, and moves the cursor to the new entry; undo()
and redo() move the cursor and return the snapshot it now points to. An
optional autosave callable receives each committed snapshot.

RULES:
- cursor is a valid index into snapshots, or -1 when empty
- A commit after an undo discards the forward branch irretrievably
  (linear history, no tree)
- undo() at index 0 and redo() at the last index are no-ops that return
  the current snapshot unchanged
- Autosave failures are logged and never propagate to the editor
- reset() empties the history (cursor -1); seed() starts it from one
  loaded snapshot without triggering autosave
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from subtitle_studio.core.cues import Snapshot

logger = logging.getLogger(__name__)


class EditHistory:
    """Snapshot log with a cursor."""

    def __init__(self, autosave: Callable[[Snapshot], None] | None = None) -> None:
        self._snapshots: list[Snapshot] = []
        self._cursor = -1
        self.autosave = autosave

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def snapshots(self) -> list[Snapshot]:
        return list(self._snapshots)

    def __len__(self) -> int:
        return len(self._snapshots)

    @property
    def current(self) -> Snapshot | None:
        if self._cursor < 0:
            return None
        return self._snapshots[self._cursor]

    @property
    def can_undo(self) -> bool:
        return self._cursor > 0

    @property
    def can_redo(self) -> bool:
        return self._cursor < len(self._snapshots) - 1

    def commit(self, snapshot: Snapshot) -> None:
        """Append snapshot after the cursor, dropping any redo entries."""
        del self._snapshots[self._cursor + 1:]
        self._snapshots.append(tuple(snapshot))
        self._cursor = len(self._snapshots) - 1

        if self.autosave is not None:
            try:
                self.autosave(self._snapshots[self._cursor])
            except Exception:
                logger.exception("Autosave failed; edit kept in memory only")

    def undo(self) -> Snapshot | None:
        if self.can_undo:
            self._cursor -= 1
        return self.current

    def redo(self) -> Snapshot | None:
        if self.can_redo:
            self._cursor += 1
        return self.current

    def reset(self) -> None:
        self._snapshots = []
        self._cursor = -1

    def seed(self, snapshot: Snapshot) -> None:
        """Start a fresh history from a loaded project, without autosave."""
        self._snapshots = [tuple(snapshot)]
        self._cursor = 0
