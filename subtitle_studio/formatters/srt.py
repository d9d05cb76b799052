"""SubRip (SRT) subtitle formatter.

WHY: SRT is the subtitle interchange format every video editor and player
accepts, so it is the primary export.

HOW: Cues are sorted by start time (the store itself is unsorted) and each
one is written as a block: 1-based index, the ``start --> end`` line from
the time codec, then the text. Blocks are separated by a blank line.

RULES:
- Ordering is by start_time ascending; ties keep store order
- Timestamps always use the comma form HH:MM:SS,mmm
- Multi-line cue text is written as-is
- An empty cue sequence produces an empty file
"""

from __future__ import annotations

from typing import Sequence

from subtitle_studio.core.cues import Cue
from subtitle_studio.core.timecode import format_timestamp
from subtitle_studio.formatters.base import BaseFormatter, FormatterOutput


def format_srt_block(index: int, cue: Cue) -> str:
    return "{}\n{} --> {}\n{}\n".format(
        index,
        format_timestamp(cue.start_time),
        format_timestamp(cue.end_time),
        cue.text,
    )


class SRTFormatter(BaseFormatter):
    """Formatter that produces one SRT file from the cue sequence."""

    @property
    def name(self) -> str:
        return "SubRip (SRT)"

    def format(self, cues: Sequence[Cue]) -> FormatterOutput:
        ordered = sorted(cues, key=lambda cue: cue.start_time)
        blocks: list[str] = [
            format_srt_block(index, cue) for index, cue in enumerate(ordered, start=1)
        ]
        return FormatterOutput(
            suffix="_subs.srt",
            content="\n".join(blocks),
            media_type="application/x-subrip",
        )
