"""Core editing model: time codec, cue store, edit history, project session.

WHY: The core package is the part every surface (CLI, HTTP API, player)
shares. Cue invariants, undo/redo and the operation status machine live
here and nowhere else.

HOW: timecode.py converts seconds to and from HH:MM:SS,mmm, cues.py holds
the Cue dataclass and CueStore, history.py the snapshot EditHistory, and
project.py the ProjectSession that ties them to the AI operations.

RULES:
- Nothing in core performs network I/O directly; AI capabilities are
  injected as Protocol implementations
- project.py is imported by path (not re-exported here) so the lower
  modules stay importable on their own
"""

from subtitle_studio.core.cues import Cue, CueStore, Snapshot
from subtitle_studio.core.history import EditHistory
from subtitle_studio.core.timecode import format_timestamp, parse_timestamp

__all__ = [
    "Cue",
    "CueStore",
    "EditHistory",
    "Snapshot",
    "format_timestamp",
    "parse_timestamp",
]
