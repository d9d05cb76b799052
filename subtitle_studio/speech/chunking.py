"""Sentence-aware text chunking for speech synthesis.

WHY: The speech model has an undocumented input-size ceiling and degrades
on long inputs. Dub scripts are the whole subtitle text, so they must be
cut into bounded chunks at sentence boundaries so prosody stays natural.

HOW: split_sentences() cuts after every run of terminal punctuation
(. ! ?), keeping any trailing text without punctuation as a final
sentence. split_text_into_chunks() greedily packs sentences, joined by
single spaces, into chunks of at most max_chunk_chars.

RULES:
- Sentence order is preserved; no text is dropped or truncated
- A single sentence longer than the limit becomes its own chunk
- Joining the chunks with single spaces equals joining the stripped
  sentences with single spaces
- Whitespace-only input yields no chunks
"""

from __future__ import annotations

import re

from subtitle_studio.config import TTS_MAX_CHUNK_CHARS

_SENTENCE_RE = re.compile(r"[^.!?]*[.!?]+|[^.!?]+$")


def split_sentences(text: str) -> list[str]:
    """Split text into stripped, non-empty sentences."""
    return [s.strip() for s in _SENTENCE_RE.findall(text) if s.strip()]


def split_text_into_chunks(text: str, max_chunk_chars: int = TTS_MAX_CHUNK_CHARS) -> list[str]:
    """Pack sentences greedily into chunks no longer than max_chunk_chars.

    Args:
        text: Arbitrary-length input text.
        max_chunk_chars: Upper bound on chunk length, unless a single
            sentence alone is longer.

    Returns:
        Chunks in original order.
    """
    if max_chunk_chars <= 0:
        raise ValueError("max_chunk_chars must be positive")

    chunks: list[str] = []
    current = ""
    for sentence in split_sentences(text):
        candidate = "{} {}".format(current, sentence) if current else sentence
        if current and len(candidate) > max_chunk_chars:
            chunks.append(current)
            current = sentence
        else:
            current = candidate
    if current:
        chunks.append(current)
    return chunks
