"""Batch speech synthesis: chunk, synthesize sequentially, stitch into one WAV.

WHY: A dub covers the whole subtitle script, far more text than one speech
request accepts. The script is chunked, each chunk synthesized in order,
and the raw PCM responses concatenated into a single playable track the
playback synchronizer can treat as one secondary clock.

HOW: SpeechBatchPipeline.run() chunks the text, awaits the synthesizer
once per chunk with a short pause between requests, reports progress after
every chunk, and wraps the concatenated PCM in one WAV header. The result
is an immutable DubResource.

RULES:
- Chunks are synthesized sequentially, never in parallel, so the output
  order always matches the text order and rate limits are respected
- A chunk that yields no audio, or whose request raises, is skipped
  (logged, not retried); the batch fails with NoAudioGenerated only when
  no chunk produced audio
- Progress is completed_chunks / total_chunks scaled to 0-100 and reaches
  exactly 100 only after the last chunk has been processed
- Audio is assumed to be raw mono 16-bit PCM at the configured sample rate
- A DubResource is never modified after creation; a new dub replaces it
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from subtitle_studio.config import (
    DEFAULT_VOICE,
    TTS_MAX_CHUNK_CHARS,
    TTS_REQUEST_DELAY_S,
    TTS_SAMPLE_RATE,
)
from subtitle_studio.errors import NoAudioGenerated
from subtitle_studio.speech.chunking import split_text_into_chunks
from subtitle_studio.speech.wav import WAV_HEADER_SIZE, pcm_to_wav

logger = logging.getLogger(__name__)


class SpeechSynthesizer(Protocol):
    """Anything that turns one text chunk into raw PCM bytes (or b"")."""

    async def synthesize(self, text: str, voice: str) -> bytes:
        ...


@dataclass(frozen=True)
class DubResource:
    """One generated audio track, owned by a project until replaced.

    Attributes:
        resource_id: Opaque handle for the track (used in download URLs).
        data: The complete WAV file (header + PCM).
        sample_rate: PCM sample rate in Hz.
        chunk_count: Number of chunks the script was split into.
        skipped_chunks: Zero-based indices of chunks that produced no audio.
    """

    resource_id: str
    data: bytes
    sample_rate: int
    chunk_count: int
    skipped_chunks: tuple[int, ...] = ()
    media_type: str = "audio/wav"
    created_at: float = field(default_factory=time.time)

    @property
    def pcm_size(self) -> int:
        return len(self.data) - WAV_HEADER_SIZE

    @property
    def duration_s(self) -> float:
        return self.pcm_size / (self.sample_rate * 2)

    def write(self, path: Path) -> Path:
        path = Path(path)
        path.write_bytes(self.data)
        return path


class SpeechBatchPipeline:
    """Sequential chunked speech synthesis with progress reporting."""

    def __init__(
        self,
        synthesizer: SpeechSynthesizer,
        voice: str = DEFAULT_VOICE,
        max_chunk_chars: int = TTS_MAX_CHUNK_CHARS,
        request_delay_s: float = TTS_REQUEST_DELAY_S,
        sample_rate: int = TTS_SAMPLE_RATE,
    ) -> None:
        self.synthesizer = synthesizer
        self.voice = voice
        self.max_chunk_chars = max_chunk_chars
        self.request_delay_s = request_delay_s
        self.sample_rate = sample_rate

    async def run(
        self,
        text: str,
        on_progress: Callable[[float], None] | None = None,
    ) -> DubResource:
        """Synthesize text into one WAV DubResource.

        Args:
            text: The full dub script.
            on_progress: Called with a 0-100 percentage after each chunk.

        Raises:
            NoAudioGenerated: If no chunk produced any audio.
        """
        chunks = split_text_into_chunks(text, self.max_chunk_chars)
        total = len(chunks)
        logger.info("Starting batch TTS for %d chars in %d chunks", len(text), total)

        buffers: list[bytes] = []
        skipped: list[int] = []

        for index, chunk in enumerate(chunks):
            audio = await self._synthesize_chunk(index, chunk)
            if audio:
                buffers.append(audio)
            else:
                skipped.append(index)

            if on_progress is not None:
                on_progress((index + 1) / total * 100.0)

            if index < total - 1 and self.request_delay_s > 0:
                await asyncio.sleep(self.request_delay_s)

        if not buffers:
            raise NoAudioGenerated()

        pcm = b"".join(buffers)
        if skipped:
            logger.warning("Dub assembled with %d of %d chunks missing", len(skipped), total)

        return DubResource(
            resource_id=uuid.uuid4().hex,
            data=pcm_to_wav(pcm, self.sample_rate),
            sample_rate=self.sample_rate,
            chunk_count=total,
            skipped_chunks=tuple(skipped),
        )

    async def _synthesize_chunk(self, index: int, chunk: str) -> bytes:
        try:
            audio = await self.synthesizer.synthesize(chunk, self.voice)
        except Exception:
            logger.warning("Speech synthesis failed for chunk %d; skipping", index, exc_info=True)
            return b""
        if not audio:
            logger.warning("Speech synthesis returned no audio for chunk %d; skipping", index)
            return b""
        return audio
