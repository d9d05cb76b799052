"""Cue dataclass and the ordered Cue Store for one project.

WHY: Every feature of the editor (timeline, overlay, translation, dubbing,
export) reads or mutates the same collection of timed subtitle cues. The
store is the single owner of that collection and the only place that
enforces its invariants, so callers never need to re-check ids or clamp
times themselves.

HOW: Cue is a frozen dataclass; mutations build a replacement with
dataclasses.replace(), which makes history snapshots plain tuples of the
current Cue objects (no deep copy needed). CueStore keeps cues in a list in
insertion order and optionally holds an EditHistory to commit snapshots to.

RULES:
- Cue ids are unique within a store at all times; update() never changes one
- start_time >= 0 and end_time >= start_time for every cue
- Storage order is insertion order; read paths never assume sorting
- insert_many() and update() do not commit; delete(), shift_all() and
  split() commit immediately; commit() lets callers close a batch of edits
- Missing ids are no-ops (update returns None, delete returns False)
- Serialized field names follow the interchange data model
  (startTime, endTime, originalText)
"""

from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Iterable, Iterator, Mapping

if TYPE_CHECKING:
    from subtitle_studio.core.history import EditHistory

logger = logging.getLogger(__name__)

# Python attribute name -> serialized field name
_FIELD_NAMES: dict[str, str] = {
    "id": "id",
    "start_time": "startTime",
    "end_time": "endTime",
    "text": "text",
    "original_text": "originalText",
    "speaker": "speaker",
    "confidence": "confidence",
}

_EDITABLE_FIELDS = frozenset(_FIELD_NAMES) - {"id"}


def new_cue_id() -> str:
    """Generate an opaque, unique cue id."""
    return "cue-{}".format(uuid.uuid4().hex)


@dataclass(frozen=True)
class Cue:
    """One timed subtitle entry.

    RULES:
    - id: opaque string, stable for the cue's lifetime
    - start_time / end_time: float seconds, 0 <= start_time <= end_time
    - text: display text in the current language
    - original_text: pre-translation text, set once on first translation
    - speaker: optional label
    - confidence: optional transcription score in [0, 1]
    """

    id: str
    start_time: float
    end_time: float
    text: str
    original_text: str | None = None
    speaker: str | None = None
    confidence: float | None = None

    def __post_init__(self) -> None:
        if not (math.isfinite(self.start_time) and math.isfinite(self.end_time)):
            raise ValueError("Cue times must be finite numbers")
        if self.start_time < 0:
            raise ValueError("Cue start_time must be non-negative, got {}".format(self.start_time))
        if self.end_time < self.start_time:
            raise ValueError(
                "Cue end_time ({}) is before start_time ({})".format(self.end_time, self.start_time)
            )
        if self.confidence is not None and not 0.0 <= self.confidence <= 1.0:
            raise ValueError("Cue confidence must be in [0, 1], got {}".format(self.confidence))

    @classmethod
    def create(
        cls,
        start_time: float,
        end_time: float,
        text: str,
        **fields: Any,
    ) -> Cue:
        """Build a cue with a freshly generated id."""
        return cls(id=new_cue_id(), start_time=start_time, end_time=end_time, text=text, **fields)

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    def to_dict(self) -> dict[str, Any]:
        """Serialize every field, using interchange field names."""
        return {name: getattr(self, attr) for attr, name in _FIELD_NAMES.items()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Cue:
        """Parse a cue from a serialized dict.

        Accepts interchange names (startTime) or attribute names
        (start_time). A missing or empty id gets a fresh one.
        """
        kwargs: dict[str, Any] = {}
        for attr, name in _FIELD_NAMES.items():
            if name in data:
                kwargs[attr] = data[name]
            elif attr in data:
                kwargs[attr] = data[attr]
        if not kwargs.get("id"):
            kwargs["id"] = new_cue_id()
        kwargs["start_time"] = float(kwargs["start_time"])
        kwargs["end_time"] = float(kwargs["end_time"])
        kwargs.setdefault("text", "")
        return cls(**kwargs)


Snapshot = tuple[Cue, ...]
"""An immutable copy of the full cue sequence at one history point."""


class CueStore:
    """The ordered collection of cues for the current project.

    WHY: Keystroke-level edits, discrete actions (delete, nudge, split) and
    bulk loads (transcription, undo) all land here; the store decides which
    of them become history entries.

    HOW: A plain list in insertion order plus an id set for uniqueness
    checks. When constructed with an EditHistory, committing operations
    append snapshot() to it.
    """

    def __init__(
        self,
        cues: Iterable[Cue] | None = None,
        history: EditHistory | None = None,
    ) -> None:
        self._cues: list[Cue] = []
        self.history = history
        if cues:
            self.insert_many(cues)

    # ------------------------------------------------------------------
    # Read paths
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._cues)

    def __iter__(self) -> Iterator[Cue]:
        return iter(list(self._cues))

    def __contains__(self, cue_id: object) -> bool:
        return any(c.id == cue_id for c in self._cues)

    @property
    def cues(self) -> list[Cue]:
        """A copy of the cues in storage order."""
        return list(self._cues)

    def get(self, cue_id: str) -> Cue | None:
        for cue in self._cues:
            if cue.id == cue_id:
                return cue
        return None

    def sorted_by_start(self) -> list[Cue]:
        """Cues ordered by start_time; ties keep storage order."""
        return sorted(self._cues, key=lambda c: c.start_time)

    def active_at(self, time_s: float) -> list[Cue]:
        """Return every cue with start_time <= time_s <= end_time, in storage order.

        Overlapping cues (e.g. two speakers talking at once) are all
        returned.
        """
        return [c for c in self._cues if c.start_time <= time_s <= c.end_time]

    def snapshot(self) -> Snapshot:
        return tuple(self._cues)

    # ------------------------------------------------------------------
    # Mutations without history
    # ------------------------------------------------------------------

    def insert_many(self, cues: Iterable[Cue]) -> list[Cue]:
        """Append a batch of cues without sorting or committing.

        Cues with an empty id, or an id already present in the store (or
        earlier in the same batch), are given a fresh id.

        Returns:
            The cues as stored (with their final ids).
        """
        taken = {c.id for c in self._cues}
        inserted: list[Cue] = []
        for cue in cues:
            if not cue.id or cue.id in taken:
                if cue.id:
                    logger.warning("Duplicate cue id %s re-assigned on insert", cue.id)
                cue = replace(cue, id=new_cue_id())
            taken.add(cue.id)
            inserted.append(cue)
        self._cues.extend(inserted)
        return inserted

    def update(self, cue_id: str, **fields: Any) -> Cue | None:
        """Merge fields into the matching cue.

        No history commit is made, so a run of keystroke edits can be
        closed with a single commit().

        RULES:
        - Returns the updated cue, or None if cue_id is absent (no-op)
        - An ``id`` key is ignored; ids never change
        - Unknown field names raise ValueError
        - The merged cue must still satisfy the Cue invariants (ValueError)
        """
        fields.pop("id", None)
        unknown = set(fields) - _EDITABLE_FIELDS
        if unknown:
            raise ValueError("Unknown cue field(s): {}".format(", ".join(sorted(unknown))))

        for index, cue in enumerate(self._cues):
            if cue.id == cue_id:
                updated = replace(cue, **fields)
                self._cues[index] = updated
                return updated
        return None

    def restore(self, snapshot: Iterable[Cue]) -> None:
        """Replace the whole collection, e.g. with an undo/redo snapshot."""
        self._cues = []
        self.insert_many(snapshot)

    def clear(self) -> None:
        self._cues = []

    # ------------------------------------------------------------------
    # Committing mutations
    # ------------------------------------------------------------------

    def commit(self) -> Snapshot | None:
        """Append the current state to the attached history, if any."""
        snapshot = self.snapshot()
        if self.history is not None:
            self.history.commit(snapshot)
        return snapshot

    def delete(self, cue_id: str) -> bool:
        """Remove a cue and commit. Returns False (no commit) if absent."""
        for index, cue in enumerate(self._cues):
            if cue.id == cue_id:
                del self._cues[index]
                self.commit()
                return True
        return False

    def shift_all(self, delta_s: float) -> None:
        """Add delta_s to every cue's start and end, then commit.

        Each bound is clamped to 0 independently, so a cue near the start
        of the media can lose duration when only its start clamps.
        """
        self._cues = [
            replace(
                cue,
                start_time=max(0.0, cue.start_time + delta_s),
                end_time=max(0.0, cue.end_time + delta_s),
            )
            for cue in self._cues
        ]
        self.commit()

    def split(self, cue_id: str, at_time: float) -> tuple[Cue, Cue] | None:
        """Split one cue into two at at_time and commit.

        RULES:
        - at_time must lie strictly inside the cue, else ValueError
        - The first part keeps the id and original_text; the second gets a
          fresh id
        - Text is divided at the word boundary nearest the proportional
          character position of at_time
        - Returns None (no commit) if cue_id is absent
        """
        for index, cue in enumerate(self._cues):
            if cue.id != cue_id:
                continue
            if not cue.start_time < at_time < cue.end_time:
                raise ValueError(
                    "Split time {} is outside cue {} ({}-{})".format(
                        at_time, cue_id, cue.start_time, cue.end_time
                    )
                )
            ratio = (at_time - cue.start_time) / cue.duration
            head, tail = _split_text(cue.text, ratio)
            first = replace(cue, end_time=at_time, text=head)
            second = replace(
                cue, id=new_cue_id(), start_time=at_time, text=tail, original_text=None
            )
            self._cues[index:index + 1] = [first, second]
            self.commit()
            return first, second
        return None


def _split_text(text: str, ratio: float) -> tuple[str, str]:
    """Divide text at the whitespace nearest ``ratio`` of its length."""
    target = int(round(len(text) * ratio))
    spaces = [i for i, ch in enumerate(text) if ch.isspace()]
    if not spaces:
        return text, ""
    cut = min(spaces, key=lambda i: abs(i - target))
    return text[:cut].rstrip(), text[cut:].lstrip()


def apply_translations(cues: Iterable[Cue], translations: Mapping[str, str]) -> list[Cue]:
    """Return cues with translated text applied.

    RULES:
    - Every cue keeps the first original_text it ever had; a cue without
      one records its current text before being replaced
    - A cue missing from translations (or mapped to an empty string)
      keeps its text unchanged
    - Order and ids are preserved
    """
    result: list[Cue] = []
    for cue in cues:
        original = cue.original_text if cue.original_text is not None else cue.text
        result.append(replace(cue, original_text=original, text=translations.get(cue.id) or cue.text))
    return result
