"""Export formatter registry.

WHY: The CLI, the project session and the HTTP layer need a single lookup
to find the right formatter by name.

HOW: FORMATTERS maps string keys to formatter *classes* (not instances).
Callers instantiate as needed: ``formatter = FORMATTERS["srt"]()``.

RULES:
- Keys are the export file extensions (used in CLI flags and API paths)
- Values are BaseFormatter subclasses (not instances)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from subtitle_studio.formatters.json_cues import JSONCueFormatter
from subtitle_studio.formatters.srt import SRTFormatter

if TYPE_CHECKING:
    from subtitle_studio.formatters.base import BaseFormatter

FORMATTERS: dict[str, type[BaseFormatter]] = {
    "srt": SRTFormatter,
    "json": JSONCueFormatter,
}
