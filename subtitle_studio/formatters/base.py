"""Abstract base formatter and output container.

WHY: Every export format consumes the same cue sequence but produces
different file content. A shared interface lets the CLI, the project
session and the HTTP layer export any registered format generically.

HOW: BaseFormatter is an ABC with a ``name`` property and a ``format()``
method. FormatterOutput bundles a filename suffix with the content and its
MIME type. export_filename() builds the download name from the project
name.

RULES:
- ``format()`` is a pure function of the cues: no I/O, no mutation
- ``suffix`` starts with an underscore, e.g. ``"_subs.srt"``
- The caller is responsible for prepending the project stem
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import PurePath
from typing import Sequence

from subtitle_studio.core.cues import Cue


@dataclass
class FormatterOutput:
    """One export file produced by a formatter.

    Attributes:
        suffix: Appended to the project stem,
                e.g. ``"_subs.srt"`` -> ``"interview_subs.srt"``.
        content: The file content.
        media_type: MIME type for the content.
    """

    suffix: str
    content: str
    media_type: str


class BaseFormatter(ABC):
    """Abstract base for all export formatters.

    To add a new export format:
    1. Create a new file in formatters/
    2. Subclass BaseFormatter
    3. Implement format() and name
    4. Register in FORMATTERS dict in formatters/__init__.py
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable format name, e.g. 'SubRip (SRT)'."""

    @abstractmethod
    def format(self, cues: Sequence[Cue]) -> FormatterOutput:
        """Serialize the cue sequence into one export file."""


def project_stem(project_name: str) -> str:
    """Project name with any media file extension removed."""
    name = PurePath(project_name).name if project_name else ""
    if "." in name.lstrip("."):
        name = name.rsplit(".", 1)[0]
    return name or "subtitles"


def export_filename(project_name: str, output: FormatterOutput) -> str:
    """Download filename for an export: ``<stem>_subs.<ext>``."""
    return project_stem(project_name) + output.suffix
