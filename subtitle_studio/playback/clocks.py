"""Media clock abstraction for the playback synchronizer.

WHY: The synchronizer coordinates two independent playback clocks (the
primary media element and the dubbed audio track). Expressing a clock as a
small protocol keeps the synchronization rules testable without a browser
or a media framework.

HOW: MediaClock is a structural Protocol: a position, a playing flag,
mute/volume attributes, and play/pause/seek commands. ManualClock is an
in-memory implementation whose position only moves when advance() is
called, which makes drift scenarios reproducible.

RULES:
- position is float seconds, never negative
- play() may raise; callers decide whether that is fatal
- A clock never calls back into the synchronizer
"""

from __future__ import annotations

from typing import Protocol


class MediaClock(Protocol):
    """One playback clock (video element, audio element, player handle)."""

    muted: bool
    volume: float

    @property
    def position(self) -> float:
        ...

    @property
    def playing(self) -> bool:
        ...

    def play(self) -> None:
        ...

    def pause(self) -> None:
        ...

    def seek(self, position: float) -> None:
        ...


class ManualClock:
    """A MediaClock driven explicitly by advance().

    Args:
        duration: Optional media length; positions are clamped to it.
        rate: Playback rate applied by advance(); values other than 1.0
            simulate a drifting clock.
    """

    def __init__(self, duration: float | None = None, rate: float = 1.0) -> None:
        self.duration = duration
        self.rate = rate
        self.muted = False
        self.volume = 1.0
        self._position = 0.0
        self._playing = False
        self.seek_count = 0

    @property
    def position(self) -> float:
        return self._position

    @property
    def playing(self) -> bool:
        return self._playing

    def play(self) -> None:
        self._playing = True

    def pause(self) -> None:
        self._playing = False

    def seek(self, position: float) -> None:
        self._position = self._clamp(position)
        self.seek_count += 1

    def advance(self, seconds: float) -> float:
        """Move the clock forward by seconds * rate if playing."""
        if self._playing:
            self._position = self._clamp(self._position + seconds * self.rate)
            if self.duration is not None and self._position >= self.duration:
                self._playing = False
        return self._position

    def _clamp(self, position: float) -> float:
        position = max(0.0, position)
        if self.duration is not None:
            position = min(position, self.duration)
        return position
