"""Gemini API client package: async HTTP interface to the AI services.

WHY: Subtitle generation, translation and text-to-speech all go to the
Gemini generateContent endpoint. This package keeps every request shape,
prompt and response parser behind one async client class.

HOW: Uses httpx.AsyncClient for non-blocking HTTP. GeminiClient provides
transcribe(), translate() and synthesize(); structured responses are
validated with jsonschema and parsed into the dataclasses in models.py.

RULES:
- All HTTP calls go through GeminiClient (no direct httpx usage elsewhere)
- Authentication is via the x-goog-api-key header from config
"""

from subtitle_studio.api.client import GeminiAPIError, GeminiClient
from subtitle_studio.api.models import TranscriptionResult

__all__ = ["GeminiAPIError", "GeminiClient", "TranscriptionResult"]
