"""RIFF/WAV container header for raw PCM audio."""

from __future__ import annotations

import struct

WAV_HEADER_SIZE = 44


def wav_header(
    data_size: int,
    sample_rate: int,
    bits: int = 16,
    channels: int = 1,
) -> bytes:
    """Build a 44-byte PCM WAV header sized for data_size payload bytes."""
    byte_rate = sample_rate * channels * bits // 8
    block_align = channels * bits // 8
    return struct.pack(
        "<4sI4s4sIHHIIHH4sI",
        b"RIFF",
        36 + data_size,
        b"WAVE",
        b"fmt ",
        16,
        1,  # PCM
        channels,
        sample_rate,
        byte_rate,
        block_align,
        bits,
        b"data",
        data_size,
    )


def pcm_to_wav(pcm: bytes, sample_rate: int, bits: int = 16, channels: int = 1) -> bytes:
    """Prepend a WAV header to raw PCM data."""
    return wav_header(len(pcm), sample_rate, bits, channels) + pcm
