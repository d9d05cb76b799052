"""Structured JSON cue formatter.

WHY: Besides SRT, users want the complete cue data (speaker, confidence,
original text before translation) in a form other tools can re-import.

HOW: Each cue is serialized with Cue.to_dict(), in store order, and the
array is validated against CUE_LIST_SCHEMA with jsonschema before being
pretty-printed with a 2-space indent.

RULES:
- Store order is preserved; no sorting
- Every cue field is present, absent optional values are null
- Validate output against the schema before returning; raise on failure
"""

from __future__ import annotations

import json
from typing import Any, Sequence

import jsonschema

from subtitle_studio.core.cues import Cue
from subtitle_studio.formatters.base import BaseFormatter, FormatterOutput

CUE_LIST_SCHEMA: dict[str, Any] = {
    "type": "array",
    "items": {
        "type": "object",
        "required": ["id", "startTime", "endTime", "text"],
        "properties": {
            "id": {"type": "string", "minLength": 1},
            "startTime": {"type": "number", "minimum": 0},
            "endTime": {"type": "number", "minimum": 0},
            "text": {"type": "string"},
            "originalText": {"type": ["string", "null"]},
            "speaker": {"type": ["string", "null"]},
            "confidence": {"type": ["number", "null"], "minimum": 0, "maximum": 1},
        },
    },
}


class JSONCueFormatter(BaseFormatter):
    """Formatter that produces a pretty-printed JSON array of cues."""

    @property
    def name(self) -> str:
        return "Structured JSON"

    def format(self, cues: Sequence[Cue]) -> FormatterOutput:
        payload = [cue.to_dict() for cue in cues]
        jsonschema.validate(instance=payload, schema=CUE_LIST_SCHEMA)
        return FormatterOutput(
            suffix="_subs.json",
            content=json.dumps(payload, indent=2, ensure_ascii=False),
            media_type="application/json",
        )
