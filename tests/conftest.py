"""Shared test fixtures for the subtitle_studio test suite.

WHY: Most test modules need the same small cue set and the same fake AI
collaborators. Centralizing them keeps scenarios consistent and makes the
expected values easy to cross-check between modules.

HOW: Pytest fixtures provide a three-cue sample (deterministic ids), a
CueStore wired to an EditHistory, and fake transcriber / translator /
synthesizer classes that record their calls and can be told to fail.

RULES:
- Fakes never touch the network
- Cue ids are deterministic (hardcoded) for test reproducibility
- Async collaborators are driven with asyncio.run() from sync tests
"""

from __future__ import annotations

import asyncio
from typing import Mapping, Sequence

import pytest

from subtitle_studio.api.models import TranscriptionResult
from subtitle_studio.core.cues import Cue, CueStore
from subtitle_studio.core.history import EditHistory


# ---------------------------------------------------------------------------
# Sample cues
# ---------------------------------------------------------------------------

SAMPLE_CUES: list[Cue] = [
    Cue(id="c1", start_time=0.5, end_time=2.0, text="Hello there.", speaker="A", confidence=0.95),
    Cue(id="c2", start_time=2.5, end_time=4.0, text="How are you?", speaker="B", confidence=0.95),
    Cue(id="c3", start_time=4.5, end_time=6.25, text="Fine, thanks.", speaker="A", confidence=0.95),
]


@pytest.fixture
def sample_cues() -> list[Cue]:
    return list(SAMPLE_CUES)


@pytest.fixture
def history() -> EditHistory:
    return EditHistory()


@pytest.fixture
def store(history) -> CueStore:
    """A CueStore holding the sample cues with one committed snapshot."""
    cue_store = CueStore(history=history)
    cue_store.insert_many(SAMPLE_CUES)
    cue_store.commit()
    return cue_store


# ---------------------------------------------------------------------------
# Fake AI collaborators
# ---------------------------------------------------------------------------


class FakeTranscriber:
    """Returns a fixed TranscriptionResult, or raises ``error``."""

    def __init__(
        self,
        cues: Sequence[Cue] | None = None,
        language: str = "English",
        error: Exception | None = None,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.cues = list(cues if cues is not None else SAMPLE_CUES)
        self.language = language
        self.error = error
        self.gate = gate
        self.calls: list[tuple] = []

    async def transcribe(self, media: bytes, mime_type: str) -> TranscriptionResult:
        self.calls.append((media, mime_type))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return TranscriptionResult(detected_language=self.language, cues=list(self.cues))


class FakeTranslator:
    """Uppercases every text (or uses a fixed mapping), or raises ``error``."""

    def __init__(
        self,
        mapping: Mapping[str, str] | None = None,
        error: Exception | None = None,
    ) -> None:
        self.mapping = mapping
        self.error = error
        self.calls: list[tuple] = []

    async def translate(self, items: Sequence[dict[str, str]], target_language: str) -> dict[str, str]:
        self.calls.append((list(items), target_language))
        if self.error is not None:
            raise self.error
        if self.mapping is not None:
            return dict(self.mapping)
        return {item["id"]: item["text"].upper() for item in items}


class FakeSynthesizer:
    """Returns ``bytes_per_chunk`` bytes per chunk; indices in ``empty`` get b"".

    Indices in ``failing`` raise instead. With ``gate``, the call for chunk
    ``gate_at`` waits on the event before answering.
    """

    def __init__(
        self,
        bytes_per_chunk: int = 4,
        empty=(),
        failing=(),
        gate: asyncio.Event | None = None,
        gate_at: int = 0,
    ) -> None:
        self.bytes_per_chunk = bytes_per_chunk
        self.empty = set(empty)
        self.failing = set(failing)
        self.gate = gate
        self.gate_at = gate_at
        self.calls: list[tuple] = []

    async def synthesize(self, text: str, voice: str) -> bytes:
        index = len(self.calls)
        self.calls.append((text, voice))
        if self.gate is not None and index == self.gate_at:
            await self.gate.wait()
        if index in self.failing:
            raise RuntimeError("synthesis failed for chunk {}".format(index))
        if index in self.empty:
            return b""
        return bytes([index % 256]) * self.bytes_per_chunk


@pytest.fixture
def transcriber() -> FakeTranscriber:
    return FakeTranscriber()


@pytest.fixture
def translator() -> FakeTranslator:
    return FakeTranslator()


@pytest.fixture
def synthesizer() -> FakeSynthesizer:
    return FakeSynthesizer()
