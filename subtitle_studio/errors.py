"""Exception taxonomy for Subtitle Studio.

WHY: Callers at the operation boundary (project session, CLI, HTTP API)
need typed exceptions to turn failures into a user-visible terminal status
without string matching.

HOW: One base class, with OperationFailed grouping the terminal statuses
of long-running AI operations. Each class carries a default user-facing
message so the status line is consistent across CLI and API.

RULES:
- MalformedTimestamp is also a ValueError (bad input, not a system fault)
- NoAudioGenerated is a DubbingFailed: both end a dub request
- Boundary no-ops (undo at the first snapshot, redo at the last) are NOT
  errors and have no exception class
"""

from __future__ import annotations


class SubtitleStudioError(Exception):
    """Base class for all Subtitle Studio errors."""


class MalformedTimestamp(SubtitleStudioError, ValueError):
    """Raised when a timestamp does not match ``HH:MM:SS,mmm``."""

    def __init__(self, text: str) -> None:
        self.text = text
        super().__init__("Malformed timestamp: {!r} (expected HH:MM:SS,mmm)".format(text))


class OperationFailed(SubtitleStudioError):
    """A long-running operation ended in a terminal error status."""

    default_message = "Operation failed."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class TranscriptionFailed(OperationFailed):
    default_message = "Failed to generate subtitles. Please check if the file is valid."


class TranslationFailed(OperationFailed):
    default_message = "Translation failed. Please try again."


class DubbingFailed(OperationFailed):
    default_message = "Failed to generate audio dub."


class NoAudioGenerated(DubbingFailed):
    default_message = "No audio generated from batches."


class OperationInProgress(SubtitleStudioError):
    """Raised when a second long-running operation is started on a project."""


class InvalidTransition(SubtitleStudioError):
    """Raised when a state machine receives an event its table does not allow."""

    def __init__(self, state: str, event: str) -> None:
        self.state = state
        self.event = event
        super().__init__("Event '{}' is not allowed in state '{}'".format(event, state))


class CueNotFound(SubtitleStudioError, KeyError):
    """Raised by the HTTP layer when a cue id does not exist."""


class AuthenticationError(SubtitleStudioError):
    """Invalid login credentials."""


class AccountExistsError(SubtitleStudioError):
    """Signup with an email that already has an account."""


class MediaPreparationError(SubtitleStudioError):
    """Audio extraction from an imported media file failed."""
