"""Subtitle Studio: timed-subtitle authoring core with AI transcription and dubbing.

WHY: A browser subtitle editor needs more than a transcription call. Cues
must stay time-ordered and uniquely identified while users edit them, every
discrete edit must be undoable, an AI-dubbed audio track must play in step
with the original media, and long dub scripts must be synthesized in bounded
chunks and stitched back into one playable file.

HOW: Five layers, each independently testable:
  core : time codec, cue store, edit history, project session
  playback : dual-track playback synchronizer over abstract media clocks
  speech : sentence chunking, sequential batch synthesis, WAV assembly
  formatters : SRT and structured JSON export
  api/server : generative AI client, persistence backend, HTTP surface

RULES:
- Cue times are float seconds; the textual form is HH:MM:SS,mmm
- The Cue Store is mutated from one logical thread only
- External collaborators (AI, persistence) are injected, never global
"""

__version__ = "0.1.0"
