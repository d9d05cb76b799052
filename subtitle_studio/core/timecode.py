"""Time codec: textual HH:MM:SS,mmm timestamps to float seconds and back.

WHY: The transcription service returns SRT-style timestamp strings and the
SRT export writes them, while the cue store, history and playback all work
in float seconds. One codec keeps both directions consistent.

HOW: parse_timestamp() matches a strict regex and builds an integer
millisecond count before dividing, so a value that came out of
format_timestamp() parses back to the identical float. format_timestamp()
rounds to the nearest millisecond and zero-pads every field.

RULES:
- Pattern: hours, minutes, seconds, milliseconds; comma before the
  fractional part ("." is accepted on input because SRT-like output from
  language models sometimes uses it)
- Minutes and seconds must be below 60
- parse() raises MalformedTimestamp on anything else
- format() zero-pads H/M/S to 2 digits and ms to 3; hours grow past 99
- format() clamps negative input to 0
- parse(format(x)) == x for every non-negative x with millisecond precision
"""

from __future__ import annotations

import math
import re

from subtitle_studio.errors import MalformedTimestamp

_TIMESTAMP_RE = re.compile(r"^(\d+):(\d{1,2}):(\d{1,2})[,.](\d{1,3})$")


def parse_timestamp(text: str) -> float:
    """Parse ``HH:MM:SS,mmm`` into seconds.

    A fractional part shorter than three digits is a decimal fraction, so
    ``00:00:01,5`` is 1.5 seconds.

    Raises:
        MalformedTimestamp: If the text does not match the pattern.
    """
    match = _TIMESTAMP_RE.match(text.strip()) if isinstance(text, str) else None
    if match is None:
        raise MalformedTimestamp(text)

    hours, minutes, seconds = (int(g) for g in match.group(1, 2, 3))
    if minutes >= 60 or seconds >= 60:
        raise MalformedTimestamp(text)
    millis = int(match.group(4).ljust(3, "0"))

    total_ms = ((hours * 60 + minutes) * 60 + seconds) * 1000 + millis
    return total_ms / 1000


def format_timestamp(seconds: float) -> str:
    """Format seconds as ``HH:MM:SS,mmm``, clamping negatives to zero."""
    if not math.isfinite(seconds) or seconds < 0:
        seconds = 0.0
    total_ms = int(round(seconds * 1000))

    hours, rem = divmod(total_ms, 3_600_000)
    minutes, rem = divmod(rem, 60_000)
    secs, millis = divmod(rem, 1000)
    return "{:02d}:{:02d}:{:02d},{:03d}".format(hours, minutes, secs, millis)
