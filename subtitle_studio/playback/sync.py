"""Dual-track playback synchronizer (original media + optional AI dub).

WHY: When a dub is playing, the user watches the original video while
hearing a separately generated audio track. Two independent clocks drift,
and naive two-way syncing causes feedback loops (each clock's update
re-seeks the other). One authoritative component must own both clocks and
issue every position correction itself.

HOW: PlaybackSynchronizer is a closed state machine (Idle, Paused,
Playing, Seeking) driven by an explicit transition table. Callers feed it
events: load/unload, play/pause, seek begin/end, primary clock ticks and
external time changes from the editor. The synchronizer reads both
clocks and only ever writes to them through play/pause/seek/mute/volume.

RULES:
- The primary clock is the reference: drift correction snaps the
  secondary to the primary, never the reverse
- Drift correction runs only while Playing with a secondary attached and
  only when |primary - secondary| exceeds the drift threshold (0.3 s)
- An external time change moves the clocks only when it differs from the
  primary position by more than the seek threshold (0.2 s)
- While Seeking, ticks and external time changes are ignored; seek end
  returns to the state held before the seek
- A secondary that fails to start is logged and ignored; the primary
  keeps playing
- Exactly one track is audible: the other is muted regardless of the
  shared volume, and it keeps playing in step so toggling is seamless
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING

from subtitle_studio.config import DRIFT_CORRECTION_THRESHOLD_S, SEEK_THRESHOLD_S
from subtitle_studio.errors import InvalidTransition
from subtitle_studio.playback.clocks import MediaClock

if TYPE_CHECKING:
    from subtitle_studio.core.cues import Cue, CueStore

logger = logging.getLogger(__name__)


class PlaybackState(str, Enum):
    IDLE = "idle"
    PAUSED = "paused"
    PLAYING = "playing"
    SEEKING = "seeking"


class PlaybackEvent(str, Enum):
    LOAD = "load"
    UNLOAD = "unload"
    PLAY = "play"
    PAUSE = "pause"
    SEEK_BEGIN = "seek_begin"
    SEEK_END = "seek_end"


_RESUME = None
"""Table target meaning "the state held before the seek began"."""

_S = PlaybackState
_E = PlaybackEvent

TRANSITIONS: dict[tuple[PlaybackState, PlaybackEvent], PlaybackState | None] = {
    (_S.IDLE, _E.LOAD): _S.PAUSED,
    (_S.PAUSED, _E.LOAD): _S.PAUSED,
    (_S.PLAYING, _E.LOAD): _S.PAUSED,
    (_S.SEEKING, _E.LOAD): _S.PAUSED,
    (_S.IDLE, _E.UNLOAD): _S.IDLE,
    (_S.PAUSED, _E.UNLOAD): _S.IDLE,
    (_S.PLAYING, _E.UNLOAD): _S.IDLE,
    (_S.SEEKING, _E.UNLOAD): _S.IDLE,
    (_S.PAUSED, _E.PLAY): _S.PLAYING,
    (_S.PLAYING, _E.PLAY): _S.PLAYING,
    (_S.PAUSED, _E.PAUSE): _S.PAUSED,
    (_S.PLAYING, _E.PAUSE): _S.PAUSED,
    (_S.PAUSED, _E.SEEK_BEGIN): _S.SEEKING,
    (_S.PLAYING, _E.SEEK_BEGIN): _S.SEEKING,
    (_S.SEEKING, _E.SEEK_BEGIN): _S.SEEKING,
    (_S.SEEKING, _E.SEEK_END): _RESUME,
}
"""Allowed (state, event) pairs. Anything else raises InvalidTransition."""


class PlaybackSynchronizer:
    """Coordinates a primary media clock and an optional secondary dub clock."""

    def __init__(
        self,
        drift_threshold_s: float = DRIFT_CORRECTION_THRESHOLD_S,
        seek_threshold_s: float = SEEK_THRESHOLD_S,
    ) -> None:
        self.drift_threshold_s = drift_threshold_s
        self.seek_threshold_s = seek_threshold_s
        self.state = PlaybackState.IDLE
        self.primary: MediaClock | None = None
        self.secondary: MediaClock | None = None
        self.use_secondary = False
        self.volume = 1.0
        self.muted = False
        self.current_time = 0.0
        self._resume_state = PlaybackState.PAUSED

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _dispatch(self, event: PlaybackEvent) -> PlaybackState:
        key = (self.state, event)
        if key not in TRANSITIONS:
            raise InvalidTransition(self.state.value, event.value)
        target = TRANSITIONS[key]
        if target is _RESUME:
            target = self._resume_state
        if event is PlaybackEvent.SEEK_BEGIN and self.state is not PlaybackState.SEEKING:
            self._resume_state = self.state
        logger.debug("Playback %s --%s--> %s", self.state.value, event.value, target.value)
        self.state = target
        return target

    @property
    def is_playing(self) -> bool:
        if self.state is PlaybackState.SEEKING:
            return self._resume_state is PlaybackState.PLAYING
        return self.state is PlaybackState.PLAYING

    # ------------------------------------------------------------------
    # Media lifecycle
    # ------------------------------------------------------------------

    def load(self, primary: MediaClock) -> None:
        """Load new primary media. Any attached secondary is dropped."""
        self._dispatch(PlaybackEvent.LOAD)
        if self.primary is not None and self.primary is not primary:
            self.primary.pause()
        self.detach_secondary()
        self.primary = primary
        primary.pause()
        self.current_time = primary.position
        self._apply_audio_policy()

    def unload(self) -> None:
        self._dispatch(PlaybackEvent.UNLOAD)
        if self.primary is not None:
            self.primary.pause()
        self.detach_secondary()
        self.primary = None
        self.current_time = 0.0

    def attach_secondary(self, clock: MediaClock, activate: bool = True) -> None:
        """Attach a dub track, aligned to the primary.

        A newly arrived dub becomes the audible track by default.
        """
        if self.primary is None:
            raise InvalidTransition(self.state.value, "attach_secondary")
        if self.secondary is not None and self.secondary is not clock:
            self.secondary.pause()
        self.secondary = clock
        self.use_secondary = activate
        clock.seek(self.primary.position)
        self._apply_audio_policy()
        if self.is_playing:
            self._start_secondary()

    def detach_secondary(self) -> None:
        if self.secondary is not None:
            self.secondary.pause()
        self.secondary = None
        self.use_secondary = False
        self._apply_audio_policy()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def play(self) -> None:
        if self.state is PlaybackState.SEEKING:
            self._resume_state = PlaybackState.PLAYING
            return
        if self.state is PlaybackState.IDLE:
            raise InvalidTransition(self.state.value, PlaybackEvent.PLAY.value)
        self.primary.play()
        self._dispatch(PlaybackEvent.PLAY)
        self._start_secondary()

    def pause(self) -> None:
        if self.state is PlaybackState.SEEKING:
            self._resume_state = PlaybackState.PAUSED
            return
        self._dispatch(PlaybackEvent.PAUSE)
        self.primary.pause()
        if self.secondary is not None:
            self.secondary.pause()

    def begin_seek(self) -> None:
        """User started scrubbing; normal time sync is suspended."""
        self._dispatch(PlaybackEvent.SEEK_BEGIN)
        if self.secondary is not None:
            self.secondary.seek(self.primary.position)

    def end_seek(self, position: float | None = None) -> PlaybackState:
        """User released the scrubber; both clocks land on position."""
        state = self._dispatch(PlaybackEvent.SEEK_END)
        if position is not None:
            self.primary.seek(position)
        target = self.primary.position
        if self.secondary is not None:
            self.secondary.seek(target)
        self.current_time = target
        if state is PlaybackState.PLAYING:
            if not self.primary.playing:
                self.primary.play()
            self._start_secondary()
        else:
            self.primary.pause()
            if self.secondary is not None:
                self.secondary.pause()
        return state

    # ------------------------------------------------------------------
    # Time synchronization
    # ------------------------------------------------------------------

    def on_primary_tick(self) -> float | None:
        """Handle a time update from the primary clock.

        Returns:
            The time to report to the editor, or None while idle or seeking.
        """
        if self.state in (PlaybackState.IDLE, PlaybackState.SEEKING):
            return None
        self.current_time = self.primary.position
        if self.state is PlaybackState.PLAYING:
            self.correct_drift()
        return self.current_time

    def correct_drift(self) -> bool:
        """Snap the secondary to the primary if they diverge past the threshold."""
        if self.state is not PlaybackState.PLAYING or self.secondary is None:
            return False
        reference = self.primary.position
        if abs(self.secondary.position - reference) > self.drift_threshold_s:
            logger.debug(
                "Secondary drifted %.3fs; snapping to %.3f",
                self.secondary.position - reference,
                reference,
            )
            self.secondary.seek(reference)
            return True
        return False

    def sync_external_time(self, time_s: float) -> bool:
        """Apply a time change coming from the editor (timeline click, cue jump).

        Small differences are natural playback drift and are ignored; a
        difference above the seek threshold repositions both clocks.

        Returns:
            True if the clocks were repositioned.
        """
        if self.state in (PlaybackState.IDLE, PlaybackState.SEEKING):
            return False
        if abs(self.primary.position - time_s) <= self.seek_threshold_s:
            return False
        self.primary.seek(time_s)
        if self.secondary is not None:
            self.secondary.seek(time_s)
        self.current_time = self.primary.position
        return True

    # ------------------------------------------------------------------
    # Audio policy
    # ------------------------------------------------------------------

    def set_use_secondary(self, use_secondary: bool) -> None:
        """Choose the audible track; ignored for the dub if none is attached."""
        self.use_secondary = bool(use_secondary) and self.secondary is not None
        self._apply_audio_policy()

    def toggle_audio_source(self) -> bool:
        self.set_use_secondary(not self.use_secondary)
        return self.use_secondary

    def set_volume(self, volume: float) -> None:
        self.volume = min(1.0, max(0.0, volume))
        self._apply_audio_policy()

    def set_muted(self, muted: bool) -> None:
        self.muted = muted
        self._apply_audio_policy()

    def _apply_audio_policy(self) -> None:
        if self.primary is None:
            return
        if self.use_secondary and self.secondary is not None:
            self.primary.muted = True
            self.secondary.volume = self.volume
            self.secondary.muted = self.muted
        else:
            self.primary.volume = self.volume
            self.primary.muted = self.muted
            if self.secondary is not None:
                self.secondary.muted = True

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def active_cues(self, store: CueStore) -> list[Cue]:
        """Cues to overlay at the current playback time."""
        return store.active_at(self.current_time)

    def _start_secondary(self) -> None:
        if self.secondary is None or self.secondary.playing:
            return
        try:
            self.secondary.seek(self.primary.position)
            self.secondary.play()
        except Exception:
            logger.warning("Secondary track failed to start; continuing with primary only",
                           exc_info=True)
