"""Generative AI response dataclasses and validation schemas.

WHY: The language model returns JSON text for transcription and
translation. It is occasionally wrapped in markdown fences and its
structure is only as reliable as the prompt, so responses are cleaned,
validated against a schema, and turned into typed objects before they
reach the cue store.

HOW: clean_json() strips ``` fences. The *_SCHEMA dicts are jsonschema
documents for the two response shapes; the *_RESPONSE_SCHEMA dicts are the
equivalent structured-output schemas sent to the service in the request.
RawCueEntry and TranslationEntry map 1:1 to response items; from_dict()
factories handle the camelCase keys.

RULES:
- Timestamps in transcription entries are HH:MM:SS,mmm strings; they are
  parsed into float seconds only in RawCueEntry.to_cue()
- A missing speaker becomes "Unknown"; confidence is fixed at 0.95
  because the service does not report one
- An entry whose end precedes its start is clamped to a zero-length cue
- Translation entries without an id or text are ignored
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from typing import Any

from subtitle_studio.core.cues import Cue
from subtitle_studio.core.timecode import parse_timestamp

DEFAULT_SPEAKER = "Unknown"
DEFAULT_CONFIDENCE = 0.95
UNKNOWN_LANGUAGE = "Unknown"

_FENCE_RE = re.compile(r"```(?:json)?")


def clean_json(text: str) -> str:
    """Remove markdown code fences around a JSON payload."""
    return _FENCE_RE.sub("", text).strip()


# ---------------------------------------------------------------------------
# Validation schemas (jsonschema) for parsed responses
# ---------------------------------------------------------------------------

TRANSCRIPTION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "detectedLanguage": {"type": "string"},
        "subtitles": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["startTime", "endTime", "text"],
                "properties": {
                    "startTime": {"type": "string"},
                    "endTime": {"type": "string"},
                    "speaker": {"type": ["string", "null"]},
                    "text": {"type": "string"},
                },
            },
        },
    },
}

TRANSLATION_SCHEMA: dict[str, Any] = {
    "type": "array",
    "items": {
        "type": "object",
        "properties": {
            "id": {"type": "string"},
            "translatedText": {"type": "string"},
        },
    },
}

# ---------------------------------------------------------------------------
# Structured-output schemas sent with generateContent requests
# ---------------------------------------------------------------------------

TRANSCRIPTION_RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "detectedLanguage": {"type": "STRING"},
        "subtitles": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "startTime": {"type": "STRING"},
                    "endTime": {"type": "STRING"},
                    "speaker": {"type": "STRING"},
                    "text": {"type": "STRING"},
                },
                "required": ["startTime", "endTime", "text"],
            },
        },
    },
}

TRANSLATION_RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "ARRAY",
    "items": {
        "type": "OBJECT",
        "properties": {
            "id": {"type": "STRING"},
            "translatedText": {"type": "STRING"},
        },
    },
}


@dataclass
class RawCueEntry:
    """One subtitle item from a transcription response."""

    start_time: str
    end_time: str
    text: str
    speaker: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> RawCueEntry:
        return cls(
            start_time=data["startTime"],
            end_time=data["endTime"],
            text=data["text"],
            speaker=data.get("speaker"),
        )

    def to_cue(self, index: int, stamp: int) -> Cue:
        """Convert to a Cue with an ``auto-<index>-<stamp>`` id.

        Raises:
            MalformedTimestamp: If either timestamp cannot be parsed.
        """
        start = parse_timestamp(self.start_time)
        end = max(start, parse_timestamp(self.end_time))
        return Cue(
            id="auto-{}-{}".format(index, stamp),
            start_time=start,
            end_time=end,
            text=self.text,
            speaker=self.speaker or DEFAULT_SPEAKER,
            confidence=DEFAULT_CONFIDENCE,
        )


@dataclass
class TranscriptionResult:
    """Cues and detected language returned by a transcription request."""

    detected_language: str
    cues: list[Cue] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict, stamp: int | None = None) -> TranscriptionResult:
        """Build from a validated response object.

        Args:
            data: Parsed JSON matching TRANSCRIPTION_SCHEMA.
            stamp: Millisecond timestamp used in generated cue ids;
                defaults to now.
        """
        if stamp is None:
            stamp = int(time.time() * 1000)
        entries = [RawCueEntry.from_dict(item) for item in data.get("subtitles") or []]
        return cls(
            detected_language=data.get("detectedLanguage") or UNKNOWN_LANGUAGE,
            cues=[entry.to_cue(index, stamp) for index, entry in enumerate(entries)],
        )


@dataclass
class TranslationEntry:
    """One translated cue text, keyed by cue id."""

    id: str
    translated_text: str

    @classmethod
    def from_dict(cls, data: dict) -> TranslationEntry:
        return cls(id=data.get("id", ""), translated_text=data.get("translatedText", ""))


def translation_map(entries: list[TranslationEntry]) -> dict[str, str]:
    """id -> translated text, skipping incomplete entries."""
    return {e.id: e.translated_text for e in entries if e.id and e.translated_text}
