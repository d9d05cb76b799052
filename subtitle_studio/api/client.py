"""Async HTTP client for the Gemini generative language REST API.

WHY: Transcription, translation and speech synthesis are all delegated to
one hosted generative AI service. This module hides the HTTP details
behind three capability methods so the project session, CLI and HTTP
server only deal with cues, translations and PCM bytes.

HOW: Uses httpx.AsyncClient for non-blocking HTTP. GeminiClient is an
async context manager: enter it to get an authenticated client, exit to
close the connection pool. Every capability is one
``POST /models/{model}:generateContent`` call:
transcribe (inline audio + prompt -> JSON cues),
translate (JSON cue texts -> JSON translations),
synthesize (text -> base64 PCM audio).

RULES:
- Always use the async context manager (async with GeminiClient(...) as client:)
- The API key is sent in the x-goog-api-key header, never in the URL
- JSON responses are fence-cleaned and validated with jsonschema before use
- Non-2xx responses raise GeminiAPIError; malformed payloads raise
  ValueError (or jsonschema.ValidationError)
- synthesize() returns b"" when the response carries no audio, so the
  batch pipeline can skip the chunk
"""

from __future__ import annotations

import base64
import json
import logging
from collections.abc import Callable
from typing import Any, Sequence

import httpx
import jsonschema

from subtitle_studio.api.models import (
    TRANSCRIPTION_RESPONSE_SCHEMA,
    TRANSCRIPTION_SCHEMA,
    TRANSLATION_RESPONSE_SCHEMA,
    TRANSLATION_SCHEMA,
    TranscriptionResult,
    TranslationEntry,
    clean_json,
    translation_map,
)
from subtitle_studio.config import (
    DEFAULT_VOICE,
    GEMINI_BASE_URL,
    GEMINI_MODEL,
    GEMINI_TTS_MODEL,
    load_api_key,
)

logger = logging.getLogger(__name__)

TRANSCRIPTION_PROMPT = """
Analyze the audio and generate professional subtitles (SRT style).

STRICT GUIDELINES:
1. LANGUAGE: Detect the spoken language automatically. Return the language name in the JSON.
2. LENGTH: Maximum 2 lines per subtitle. Max 42 chars per line.
3. TIMING: Use standard SRT format timestamps (00:00:00,000).

Return a JSON OBJECT with this structure:
{
  "detectedLanguage": "English",
  "subtitles": [
    {
      "startTime": "00:00:00,000",
      "endTime": "00:00:00,000",
      "speaker": "Speaker Name",
      "text": "Subtitle text here"
    }
  ]
}
"""

TRANSLATION_PROMPT = """
Translate the following subtitle text to {language}.
Rules:
1. Keep the same meaning and tone.
2. Keep the translation concise (max 2 lines, max 42 chars/line if possible).
3. Return a JSON array of objects with 'id' and 'translatedText'.

Input:
{payload}
"""


class GeminiAPIError(Exception):
    """Raised when the Gemini API returns an error response.

    RULES:
    - Always include status_code and message
    - message is the response body text or a summary
    """

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"Gemini API error {status_code}: {message}")


class GeminiClient:
    """Async client for transcription, translation and speech synthesis.

    RULES:
    - Use as: async with GeminiClient() as client: ...
    - api_key defaults to load_api_key() from .env
    - base_url, model and tts_model default to the config values
    - transport is for tests (httpx.MockTransport)
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        tts_model: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key or load_api_key()
        self._base_url = (base_url or GEMINI_BASE_URL).rstrip("/")
        self._model = model or GEMINI_MODEL
        self._tts_model = tts_model or GEMINI_TTS_MODEL
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> GeminiClient:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"x-goog-api-key": self._api_key},
            timeout=httpx.Timeout(300.0, connect=30.0),
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._client:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        """Return the active httpx client, raising if not in context manager."""
        if self._client is None:
            raise RuntimeError(
                "GeminiClient must be used as an async context manager: "
                "async with GeminiClient() as client: ..."
            )
        return self._client

    async def _generate(self, model: str, body: dict[str, Any]) -> dict[str, Any]:
        client = self._ensure_client()
        resp = await client.post(f"/models/{model}:generateContent", json=body)
        if resp.status_code != 200:
            raise GeminiAPIError(resp.status_code, resp.text)
        return resp.json()

    # ------------------------------------------------------------------
    # Transcription
    # ------------------------------------------------------------------

    async def transcribe(
        self,
        media: bytes,
        mime_type: str,
        on_status: Callable[[str], None] | None = None,
    ) -> TranscriptionResult:
        """Transcribe audio into timed cues and detect its language.

        Args:
            media: Audio bytes (ideally mono 16 kHz WAV, see media.py).
            mime_type: MIME type of media, e.g. "audio/wav".
            on_status: Optional callback for status updates.

        Returns:
            TranscriptionResult with cues in the order the model returned.
        """
        if on_status:
            on_status("Gemini is analyzing speech & language...")

        body = {
            "contents": [{
                "parts": [
                    {"inlineData": {
                        "mimeType": mime_type,
                        "data": base64.b64encode(media).decode("ascii"),
                    }},
                    {"text": TRANSCRIPTION_PROMPT},
                ],
            }],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": TRANSCRIPTION_RESPONSE_SCHEMA,
            },
        }
        data = await self._generate(self._model, body)
        payload = _parse_json_text(_response_text(data) or "{}")
        jsonschema.validate(instance=payload, schema=TRANSCRIPTION_SCHEMA)
        result = TranscriptionResult.from_dict(payload)
        logger.info(
            "Transcription returned %d cues (language: %s)",
            len(result.cues), result.detected_language,
        )
        return result

    # ------------------------------------------------------------------
    # Translation
    # ------------------------------------------------------------------

    async def translate(
        self,
        items: Sequence[dict[str, str]],
        target_language: str,
    ) -> dict[str, str]:
        """Translate cue texts.

        Args:
            items: Ordered ``{"id", "text"}`` dicts.
            target_language: Language name, e.g. "Spanish".

        Returns:
            Mapping of cue id to translated text. Ids the model omitted are
            simply absent.
        """
        prompt = TRANSLATION_PROMPT.format(
            language=target_language,
            payload=json.dumps(list(items), ensure_ascii=False),
        )
        body = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": TRANSLATION_RESPONSE_SCHEMA,
            },
        }
        data = await self._generate(self._model, body)
        payload = _parse_json_text(_response_text(data) or "[]")
        jsonschema.validate(instance=payload, schema=TRANSLATION_SCHEMA)
        entries: list[TranslationEntry] = [TranslationEntry.from_dict(item) for item in payload]
        translations = translation_map(entries)
        if len(translations) < len(items):
            logger.warning(
                "Translation covered %d of %d cues", len(translations), len(items)
            )
        return translations

    # ------------------------------------------------------------------
    # Speech synthesis
    # ------------------------------------------------------------------

    async def synthesize(self, text: str, voice: str = DEFAULT_VOICE) -> bytes:
        """Synthesize one text chunk into raw PCM (mono, 16-bit).

        Returns:
            The decoded audio bytes, or b"" if the response has none.
        """
        body = {
            "contents": [{"parts": [{"text": text}]}],
            "generationConfig": {
                "responseModalities": ["AUDIO"],
                "speechConfig": {
                    "voiceConfig": {"prebuiltVoiceConfig": {"voiceName": voice}},
                },
            },
        }
        data = await self._generate(self._tts_model, body)
        encoded = _response_audio(data)
        if not encoded:
            return b""
        return base64.b64decode(encoded)


# ---------------------------------------------------------------------------
# Response helpers (module-private)
# ---------------------------------------------------------------------------


def _first_parts(data: dict[str, Any]) -> list[dict[str, Any]]:
    candidates = data.get("candidates") or []
    if not candidates:
        return []
    content = candidates[0].get("content") or {}
    return content.get("parts") or []


def _response_text(data: dict[str, Any]) -> str:
    """Concatenate the text parts of the first candidate."""
    return "".join(part.get("text", "") for part in _first_parts(data))


def _response_audio(data: dict[str, Any]) -> str | None:
    """Base64 audio data of the first inline-data part, if any."""
    for part in _first_parts(data):
        inline = part.get("inlineData") or {}
        if inline.get("data"):
            return inline["data"]
    return None


def _parse_json_text(text: str) -> Any:
    try:
        return json.loads(clean_json(text))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Model returned invalid JSON: {exc}") from exc
