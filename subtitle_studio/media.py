"""Audio extraction for transcription requests.

WHY: Video files are large and the transcription model only needs speech.
Sending a mono, low-rate WAV keeps requests small and within inline-data
limits.

HOW: Runs ffmpeg as a subprocess, decoding any supported container and
writing 16-bit mono PCM WAV at TRANSCRIPTION_SAMPLE_RATE to stdout.

RULES:
- Only extensions in SUPPORTED_MEDIA_FORMATS are accepted
- A missing ffmpeg binary or a non-zero exit raises MediaPreparationError
- Returns (wav bytes, "audio/wav")
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path

from subtitle_studio.config import SUPPORTED_MEDIA_FORMATS, TRANSCRIPTION_SAMPLE_RATE
from subtitle_studio.errors import MediaPreparationError

logger = logging.getLogger(__name__)

WAV_MIME_TYPE = "audio/wav"


def is_supported_media(path: Path) -> bool:
    return Path(path).suffix.lower() in SUPPORTED_MEDIA_FORMATS


def build_extract_cmd(path: Path, sample_rate: int = TRANSCRIPTION_SAMPLE_RATE) -> list[str]:
    return [
        "ffmpeg",
        "-hide_banner",
        "-loglevel", "error",
        "-i", str(path),
        "-vn",
        "-ac", "1",
        "-ar", str(sample_rate),
        "-acodec", "pcm_s16le",
        "-f", "wav",
        "pipe:1",
    ]


def extract_audio_for_transcription(
    path: Path,
    sample_rate: int = TRANSCRIPTION_SAMPLE_RATE,
) -> tuple[bytes, str]:
    """Decode a media file into mono 16-bit WAV bytes.

    Raises:
        MediaPreparationError: Unsupported file, missing ffmpeg, or decode failure.
    """
    path = Path(path)
    if not path.is_file():
        raise MediaPreparationError("Media file not found: {}".format(path))
    if not is_supported_media(path):
        raise MediaPreparationError(
            "Unsupported media format '{}'. Supported: {}".format(
                path.suffix, ", ".join(sorted(SUPPORTED_MEDIA_FORMATS))
            )
        )
    if shutil.which("ffmpeg") is None:
        raise MediaPreparationError("ffmpeg is required but was not found on PATH")

    cmd = build_extract_cmd(path, sample_rate)
    logger.debug("Running %s", " ".join(cmd))
    proc = subprocess.run(cmd, capture_output=True, check=False)
    if proc.returncode != 0:
        stderr = proc.stderr.decode("utf-8", errors="replace").strip()
        raise MediaPreparationError(
            "ffmpeg failed to extract audio from {}: {}".format(path.name, stderr or proc.returncode)
        )
    if not proc.stdout:
        raise MediaPreparationError("ffmpeg produced no audio for {}".format(path.name))
    logger.info("Extracted %d bytes of %d Hz audio from %s", len(proc.stdout), sample_rate, path.name)
    return proc.stdout, WAV_MIME_TYPE
