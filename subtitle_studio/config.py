"""Configuration constants, AI service defaults, and .env loading.

WHY: Centralizes all configurable values so they are easy to find, update,
and override. Thresholds that define playback behaviour, speech batching
limits, and AI model names are plain data, not buried in logic, so both
the core and the HTTP surface read the same numbers.

HOW: python-dotenv loads the .env file on import. Constants are defined as
module-level values read from the environment with defaults. The
load_api_key() and load_bootstrap_admin() functions provide explicit
loading with clear errors or None.

RULES:
- The API key is loaded from .env via python-dotenv, never hardcoded
- No account credential is hardcoded; the bootstrap admin is env-only
- All defaults can be overridden via environment variables
- SUPPORTED_MEDIA_FORMATS lists accepted audio/video file extensions
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the project root (where the app is started from)
load_dotenv()

# ---------------------------------------------------------------------------
# Generative AI service
# ---------------------------------------------------------------------------

GEMINI_BASE_URL = os.getenv(
    "GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"
)
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
GEMINI_TTS_MODEL = os.getenv("GEMINI_TTS_MODEL", "gemini-2.5-flash-preview-tts")
DEFAULT_VOICE = os.getenv("DEFAULT_VOICE", "Kore")

# ---------------------------------------------------------------------------
# Speech batching and media preparation
# ---------------------------------------------------------------------------

TTS_SAMPLE_RATE = int(os.getenv("TTS_SAMPLE_RATE", "24000"))
"""Sample rate of the raw PCM returned by the speech model (mono, 16-bit)."""

TTS_MAX_CHUNK_CHARS = int(os.getenv("TTS_MAX_CHUNK_CHARS", "300"))
TTS_REQUEST_DELAY_S = float(os.getenv("TTS_REQUEST_DELAY_S", "0.1"))

TRANSCRIPTION_SAMPLE_RATE = int(os.getenv("TRANSCRIPTION_SAMPLE_RATE", "16000"))

# ---------------------------------------------------------------------------
# Playback synchronization
# ---------------------------------------------------------------------------

DRIFT_CORRECTION_THRESHOLD_S = 0.3
"""Secondary track is snapped to the primary when they diverge by more."""

SEEK_THRESHOLD_S = 0.2
"""External time changes larger than this are treated as user scrubs."""

# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

DATA_DIR = Path(os.getenv("STUDIO_DATA_DIR", "studio_data"))
ACTIVITY_LOG_LIMIT = int(os.getenv("ACTIVITY_LOG_LIMIT", "1000"))
DEFAULT_PROJECT_NAME = "Untitled Project"

# ---------------------------------------------------------------------------
# Supported media and languages
# ---------------------------------------------------------------------------

SUPPORTED_MEDIA_FORMATS: set[str] = {
    ".aac", ".flac", ".m4a", ".mkv", ".mov", ".mp3",
    ".mp4", ".ogg", ".wav", ".webm",
}
"""Audio/video file extensions accepted for import (lowercase, with dot)."""

TARGET_LANGUAGES: list[str] = [
    "English", "Spanish", "French", "German", "Italian", "Portuguese",
    "Arabic", "Chinese", "Japanese", "Korean", "Hindi", "Russian", "Turkish",
]


def load_api_key() -> str:
    """Load the generative AI API key from the environment.

    RULES:
    - Raises ValueError if the key is missing or empty
    - Never returns a default/placeholder value
    """
    key = os.getenv("GEMINI_API_KEY", "").strip()
    if not key:
        raise ValueError(
            "Gemini API key not configured. "
            "Add GEMINI_API_KEY to the .env file in the app folder."
        )
    return key


@dataclass(frozen=True)
class BootstrapAdmin:
    """Credentials for the configuration-driven administrator account."""

    email: str
    password: str
    name: str


def load_bootstrap_admin() -> BootstrapAdmin | None:
    """Return the bootstrap admin account configured in the environment.

    WHY: Operators need one administrator account on a fresh deployment
    without creating it through signup. The credential lives in deployment
    configuration, never in source.

    RULES:
    - Returns None unless both ADMIN_BOOTSTRAP_EMAIL and
      ADMIN_BOOTSTRAP_PASSWORD are set and non-blank
    - ADMIN_BOOTSTRAP_NAME defaults to "Administrator"
    """
    email = os.getenv("ADMIN_BOOTSTRAP_EMAIL", "").strip()
    password = os.getenv("ADMIN_BOOTSTRAP_PASSWORD", "")
    if not email or not password.strip():
        return None
    name = os.getenv("ADMIN_BOOTSTRAP_NAME", "").strip() or "Administrator"
    return BootstrapAdmin(email=email, password=password, name=name)
