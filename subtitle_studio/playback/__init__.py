"""Playback synchronization between the media element and the dub track."""

from subtitle_studio.playback.clocks import ManualClock, MediaClock
from subtitle_studio.playback.sync import PlaybackEvent, PlaybackState, PlaybackSynchronizer

__all__ = [
    "ManualClock",
    "MediaClock",
    "PlaybackEvent",
    "PlaybackState",
    "PlaybackSynchronizer",
]
