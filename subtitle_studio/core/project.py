"""Project session: one user's working set and its long-running operations.

WHY: The editor surfaces (CLI, HTTP API) need one object that owns the cue
store, its edit history, the loaded media, the current dub and the
processing status, and that applies the operation-boundary error policy
consistently: a failed AI call becomes a typed terminal status and never
leaves the cues half-modified.

HOW: ProjectSession wires a CueStore to an EditHistory whose autosave
hook writes through the injected PersistenceBackend. Long-running
operations are coroutines; each captures the current operation generation
when it starts and only applies its result if the generation is unchanged
when the external call returns. reset(), open() and import_media() bump
the generation, so a result or progress update for a superseded operation
is dropped.

RULES:
- Processing status changes only through PROCESSING_TRANSITIONS
- At most one long-running operation at a time (OperationInProgress)
- reserve() holds the project for a queued operation; claim() starts it,
  and returns False if reset() ran in between
- undo()/redo() at a history boundary leave the cues, including any
  uncommitted edits, untouched
- External failures leave the cues untouched and raise TranscriptionFailed,
  TranslationFailed or DubbingFailed (NoAudioGenerated passes through)
- Persistence calls are fire-and-forget: errors are logged, never raised
- A stale operation returns None without touching cues, dub or status
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Mapping, Protocol, Sequence

from subtitle_studio.config import DEFAULT_PROJECT_NAME, DEFAULT_VOICE
from subtitle_studio.core.cues import Cue, CueStore, Snapshot, apply_translations
from subtitle_studio.core.history import EditHistory
from subtitle_studio.errors import (
    DubbingFailed,
    InvalidTransition,
    OperationFailed,
    OperationInProgress,
    TranscriptionFailed,
    TranslationFailed,
)
from subtitle_studio.formatters import FORMATTERS
from subtitle_studio.formatters.base import FormatterOutput, export_filename
from subtitle_studio.speech.batch import DubResource, SpeechBatchPipeline, SpeechSynthesizer
from subtitle_studio.storage.backend import ActivityType, PersistenceBackend

if TYPE_CHECKING:
    from subtitle_studio.api.models import TranscriptionResult

logger = logging.getLogger(__name__)


class Transcriber(Protocol):
    async def transcribe(self, media: bytes, mime_type: str) -> TranscriptionResult:
        ...


class Translator(Protocol):
    async def translate(
        self, items: Sequence[dict[str, str]], target_language: str
    ) -> Mapping[str, str]:
        ...


class ProcessingStatus(str, enum.Enum):
    IDLE = "idle"
    UPLOADING = "uploading"
    ANALYZING = "analyzing"
    TRANSLATING = "translating"
    DUBBING = "dubbing"
    READY = "ready"
    ERROR = "error"


_P = ProcessingStatus

BUSY_STATUSES: frozenset[ProcessingStatus] = frozenset(
    {_P.UPLOADING, _P.ANALYZING, _P.TRANSLATING, _P.DUBBING}
)

_STARTABLE = frozenset({_P.IDLE, _P.READY, _P.ERROR})

PROCESSING_TRANSITIONS: dict[ProcessingStatus, frozenset[ProcessingStatus]] = {
    _P.IDLE: frozenset(ProcessingStatus),
    _P.UPLOADING: frozenset({_P.ANALYZING, _P.ERROR, _P.IDLE}),
    _P.ANALYZING: frozenset({_P.READY, _P.ERROR, _P.IDLE}),
    _P.TRANSLATING: frozenset({_P.READY, _P.ERROR, _P.IDLE}),
    _P.DUBBING: frozenset({_P.READY, _P.ERROR, _P.IDLE}),
    _P.READY: frozenset(ProcessingStatus),
    _P.ERROR: frozenset(ProcessingStatus),
}
"""Allowed next statuses for each processing status."""


@dataclass(frozen=True)
class MediaReference:
    """The media file a project was created from."""

    name: str
    location: str | None = None
    mime_type: str | None = None
    size: int | None = None


class ProjectSession:
    """Cue store, history, media, dub and processing status for one user.

    Args:
        user_id: Owner of the project; persistence is skipped without one.
        backend: Persistence collaborator for autosave and activity logs.
    """

    def __init__(
        self,
        user_id: str | None = None,
        backend: PersistenceBackend | None = None,
    ) -> None:
        self.user_id = user_id
        self.backend = backend
        self.history = EditHistory(autosave=self._autosave)
        self.store = CueStore(history=self.history)
        self.project_name = DEFAULT_PROJECT_NAME
        self.media: MediaReference | None = None
        self.dub: DubResource | None = None
        self.detected_language: str | None = None
        self.status = ProcessingStatus.IDLE
        self.status_message = ""
        self.progress: float | None = None
        self._generation = 0
        self._reservation: int | None = None
        self._tickets = 0

    # ------------------------------------------------------------------
    # Status and generation bookkeeping
    # ------------------------------------------------------------------

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def busy(self) -> bool:
        return self.status in BUSY_STATUSES or self._reservation is not None

    def _set_status(self, status: ProcessingStatus, message: str = "") -> None:
        if status not in PROCESSING_TRANSITIONS[self.status]:
            raise InvalidTransition(self.status.value, status.value)
        logger.debug("Project status %s -> %s %s", self.status.value, status.value, message)
        self.status = status
        self.status_message = message

    def _ensure_startable(self) -> None:
        if self.status not in _STARTABLE:
            raise OperationInProgress(
                "Another operation is already running ({})".format(self.status.value)
            )
        if self._reservation is not None:
            raise OperationInProgress("Another operation is already queued")

    def reserve(self) -> int:
        """Hold the project for an operation that will start later.

        Until the ticket is claimed or released, busy is True and any other
        operation raises OperationInProgress. reset() drops the reservation.

        Returns:
            The ticket to pass to claim() and release().
        """
        self._ensure_startable()
        self._tickets += 1
        self._reservation = self._tickets
        return self._reservation

    def claim(self, ticket: int) -> bool:
        """Turn a reservation into the running operation.

        Call immediately before starting the operation. Returns False if the
        project was reset since reserve(), in which case the operation must
        not start.
        """
        if self._reservation != ticket:
            logger.info("Reservation %d was superseded before it started", ticket)
            return False
        self._reservation = None
        return True

    def release(self, ticket: int) -> None:
        if self._reservation == ticket:
            self._reservation = None

    def _begin(self, status: ProcessingStatus, message: str) -> int:
        self._ensure_startable()
        self._set_status(status, message)
        self.progress = None
        return self._generation

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    def _is_stale(self, generation: int, what: str) -> bool:
        if generation == self._generation:
            return False
        logger.info("Discarding %s for a superseded project", what)
        return True

    def _supersede(self) -> None:
        self._generation += 1
        self._reservation = None
        self.progress = None
        self._set_status(ProcessingStatus.IDLE)

    def _fail(self, error: OperationFailed) -> OperationFailed:
        self._set_status(ProcessingStatus.ERROR, str(error))
        return error

    # ------------------------------------------------------------------
    # Persistence (fire-and-forget)
    # ------------------------------------------------------------------

    def _autosave(self, snapshot: Snapshot) -> None:
        if self.backend is None or self.user_id is None:
            return
        self.backend.save_project_state(self.user_id, snapshot, self.project_name)

    def _log_activity(self, activity_type: ActivityType, details: dict[str, Any]) -> None:
        if self.backend is None or self.user_id is None:
            return
        try:
            self.backend.log_activity(self.user_id, activity_type, details)
        except Exception:
            logger.exception("Failed to log %s activity", activity_type.value)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Drop cues, history, media and dub; supersede any running operation."""
        self._supersede()
        self.store.clear()
        self.history.reset()
        self.media = None
        self.dub = None
        self.detected_language = None
        self.project_name = DEFAULT_PROJECT_NAME

    def open(self) -> bool:
        """Load the user's saved project, if any.

        Returns:
            True if a saved project was restored.
        """
        self.reset()
        if self.backend is None or self.user_id is None:
            return False
        try:
            state = self.backend.load_project_state(self.user_id)
        except Exception:
            logger.exception("Failed to load saved project for %s", self.user_id)
            return False
        if state is None:
            return False
        self.project_name = state.project_name
        self.store.restore(state.cues)
        self.history.seed(self.store.snapshot())
        if len(self.store):
            self._set_status(ProcessingStatus.READY)
        logger.info("Restored %d cues for project %r", len(self.store), self.project_name)
        return True

    def import_media(
        self,
        name: str,
        location: str | None = None,
        mime_type: str | None = None,
        size: int | None = None,
    ) -> MediaReference:
        """Start a new project from a media file."""
        self.reset()
        self.media = MediaReference(name=name, location=location, mime_type=mime_type, size=size)
        self.project_name = name
        self._log_activity(ActivityType.UPLOAD, {"fileName": name, "fileSize": size})
        return self.media

    # ------------------------------------------------------------------
    # Long-running operations
    # ------------------------------------------------------------------

    async def generate_subtitles(
        self,
        transcriber: Transcriber,
        media: bytes,
        mime_type: str,
    ) -> list[Cue] | None:
        """Transcribe media and replace the cue set with the result.

        Returns:
            The new cues, or None if the operation was superseded.

        Raises:
            TranscriptionFailed: If the transcription call or parsing fails.
        """
        generation = self._begin(ProcessingStatus.UPLOADING, "Uploading media...")
        self._set_status(ProcessingStatus.ANALYZING, "Analyzing speech & language...")
        try:
            result = await transcriber.transcribe(media, mime_type)
        except Exception as exc:
            if self._is_stale(generation, "failed transcription"):
                return None
            logger.exception("Transcription failed")
            raise self._fail(TranscriptionFailed()) from exc

        if self._is_stale(generation, "transcription result"):
            return None

        self.store.clear()
        cues = self.store.insert_many(result.cues)
        self.store.commit()
        self.dub = None
        self.detected_language = result.detected_language
        self._set_status(
            ProcessingStatus.READY,
            "Generated {} subtitles ({})".format(len(cues), result.detected_language),
        )
        self._log_activity(ActivityType.GENERATE, {
            "fileName": self.project_name,
            "language": result.detected_language,
            "itemCount": len(cues),
        })
        return cues

    async def translate(self, translator: Translator, target_language: str) -> list[Cue] | None:
        """Translate every cue's text into target_language.

        Cues the translator leaves out keep their text.

        Raises:
            TranslationFailed: If the translation call fails.
        """
        generation = self._begin(
            ProcessingStatus.TRANSLATING, "Translating to {}...".format(target_language)
        )
        items = [{"id": cue.id, "text": cue.text} for cue in self.store]
        try:
            translations = await translator.translate(items, target_language)
        except Exception as exc:
            if self._is_stale(generation, "failed translation"):
                return None
            logger.exception("Translation failed")
            raise self._fail(TranslationFailed()) from exc

        if self._is_stale(generation, "translation result"):
            return None

        self.store.restore(apply_translations(self.store.cues, translations))
        self.store.commit()
        self._set_status(ProcessingStatus.READY, "Translated to {}".format(target_language))
        self._log_activity(ActivityType.TRANSLATE, {
            "language": target_language,
            "itemCount": len(self.store),
        })
        return self.store.cues

    def dub_script(self) -> str:
        """All cue texts ordered by start time, joined by single spaces."""
        return " ".join(cue.text.strip() for cue in self.store.sorted_by_start() if cue.text.strip())

    async def generate_dub(
        self,
        synthesizer: SpeechSynthesizer,
        voice: str = DEFAULT_VOICE,
        on_progress: Callable[[float], None] | None = None,
        **pipeline_options: Any,
    ) -> DubResource | None:
        """Synthesize the dub script and replace the project's dub.

        Args:
            synthesizer: Speech synthesis capability.
            voice: Voice identifier passed to every chunk request.
            on_progress: Called with 0-100 while the operation is current.
            pipeline_options: Extra SpeechBatchPipeline arguments.

        Raises:
            DubbingFailed: If there is no text, or synthesis fails.
            NoAudioGenerated: If no chunk produced audio.
        """
        self._ensure_startable()
        script = self.dub_script()
        if not script:
            raise self._fail(DubbingFailed("No text to dub."))

        generation = self._begin(ProcessingStatus.DUBBING, "Generating AI dub...")

        def _progress(pct: float) -> None:
            if not self._is_current(generation):
                return
            self.progress = pct
            if on_progress is not None:
                on_progress(pct)

        pipeline = SpeechBatchPipeline(synthesizer, voice=voice, **pipeline_options)
        try:
            dub = await pipeline.run(script, on_progress=_progress)
        except Exception as exc:
            if self._is_stale(generation, "failed dub"):
                return None
            if isinstance(exc, DubbingFailed):
                logger.warning("Dubbing failed: %s", exc)
                raise self._fail(exc)
            logger.exception("Dubbing failed")
            raise self._fail(DubbingFailed()) from exc

        if self._is_stale(generation, "dub"):
            return None

        self.dub = dub
        self._set_status(ProcessingStatus.READY, "AI dub ready")
        self._log_activity(ActivityType.DUB, {
            "voice": voice,
            "charCount": len(script),
            "chunkCount": dub.chunk_count,
        })
        return dub

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    @property
    def cues(self) -> list[Cue]:
        return self.store.cues

    def update_cue(self, cue_id: str, **fields: Any) -> Cue | None:
        return self.store.update(cue_id, **fields)

    def commit_changes(self) -> Snapshot:
        """Close a batch of update_cue() edits as one history entry."""
        return self.store.commit()

    def delete_cue(self, cue_id: str) -> bool:
        return self.store.delete(cue_id)

    def shift_all_ms(self, delta_ms: float) -> None:
        """Nudge every cue by delta_ms milliseconds."""
        self.store.shift_all(delta_ms / 1000.0)

    def split_cue(self, cue_id: str, at_time: float) -> tuple[Cue, Cue] | None:
        return self.store.split(cue_id, at_time)

    def undo(self) -> list[Cue]:
        """Step back one commit; at the oldest entry the cues are left as they are."""
        if self.history.can_undo:
            self.store.restore(self.history.undo())
        return self.store.cues

    def redo(self) -> list[Cue]:
        if self.history.can_redo:
            self.store.restore(self.history.redo())
        return self.store.cues

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export(self, format_key: str) -> tuple[str, FormatterOutput]:
        """Serialize the cues with a registered formatter.

        Returns:
            (download filename, formatter output)

        Raises:
            ValueError: If format_key is not registered.
        """
        formatter_cls = FORMATTERS.get(format_key)
        if formatter_cls is None:
            raise ValueError(
                "Unknown export format '{}'. Available: {}".format(
                    format_key, ", ".join(sorted(FORMATTERS))
                )
            )
        output = formatter_cls().format(self.store.cues)
        filename = export_filename(self.project_name, output)
        self._log_activity(ActivityType.EXPORT, {"format": format_key, "fileName": filename})
        return filename, output
