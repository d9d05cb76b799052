"""Command-line interface for Subtitle Studio.

WHY: Batch users want subtitles (and optionally a translation and an AI
dub) for a media file without opening the editor. The CLI drives the same
ProjectSession the HTTP API uses, so results are identical.

HOW: Uses argparse to accept an input file, an optional target language,
a global timing nudge, dub options, export formats and an output
directory. Audio is extracted with ffmpeg, then the async pipeline runs
via asyncio.run(): transcribe -> translate -> nudge -> export -> dub.
Status messages go to stderr; files are saved next to the source (or to
--output-dir).

RULES:
- Positional argument: input audio/video file path
- Validates the file extension against SUPPORTED_MEDIA_FORMATS before any
  API call
- --formats: comma-separated formatter keys (default: all registered)
- Output naming: {stem}_subs.{ext} and {stem}_dub.wav, numeric suffix for
  conflicts (interview_subs-2.srt)
- Status output goes to stderr (not stdout)
- Exit code 1 on any failure, 130 on Ctrl-C
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from subtitle_studio.api.client import GeminiClient
from subtitle_studio.config import DEFAULT_VOICE, SUPPORTED_MEDIA_FORMATS
from subtitle_studio.core.project import ProjectSession
from subtitle_studio.errors import MediaPreparationError, OperationFailed
from subtitle_studio.formatters import FORMATTERS
from subtitle_studio.formatters.base import project_stem
from subtitle_studio.media import extract_audio_for_transcription


def _status(msg: str) -> None:
    """Print a status message to stderr, flushed immediately."""
    print(msg, file=sys.stderr, flush=True)


def _fail(msg: str, code: int = 1) -> None:
    print("Error: {}".format(msg), file=sys.stderr)
    sys.exit(code)


def _resolve_output_path(filename: str, output_dir: Path) -> Path:
    """Return a path in output_dir that does not exist yet.

    ``interview_subs.srt`` becomes ``interview_subs-2.srt``,
    ``interview_subs-3.srt`` and so on when taken.
    """
    base_path = output_dir / filename
    if not base_path.exists():
        return base_path

    dot_idx = filename.rfind(".")
    if dot_idx > 0:
        name, ext = filename[:dot_idx], filename[dot_idx:]
    else:
        name, ext = filename, ""

    counter = 2
    while True:
        candidate = output_dir / "{}-{}{}".format(name, counter, ext)
        if not candidate.exists():
            return candidate
        counter += 1


def _parse_formats(raw: str | None) -> list[str]:
    if not raw:
        return list(FORMATTERS.keys())
    keys = [f.strip() for f in raw.split(",") if f.strip()]
    for key in keys:
        if key not in FORMATTERS:
            _fail("Unknown format '{}'. Available formats: {}".format(
                key, ", ".join(sorted(FORMATTERS))
            ))
    return keys


async def _run_pipeline(args: argparse.Namespace) -> None:
    """Transcribe, optionally translate/nudge/dub, and save the results."""
    input_path = Path(args.input_file).resolve()

    if not input_path.is_file():
        _fail("File not found: {}".format(input_path))

    ext = input_path.suffix.lower()
    if ext not in SUPPORTED_MEDIA_FORMATS:
        _fail("Unsupported file type '{}'. Supported formats: {}".format(
            ext, ", ".join(sorted(SUPPORTED_MEDIA_FORMATS))
        ))

    output_dir = Path(args.output_dir).resolve() if args.output_dir else input_path.parent
    if not output_dir.is_dir():
        _fail("Output directory does not exist: {}".format(output_dir))

    format_keys = _parse_formats(args.formats)

    _status("Extracting & compressing audio...")
    try:
        audio, mime_type = extract_audio_for_transcription(input_path)
    except MediaPreparationError as e:
        _fail(str(e))

    session = ProjectSession()
    session.import_media(input_path.name, location=str(input_path), size=input_path.stat().st_size)
    saved_files: list[Path] = []

    try:
        async with GeminiClient() as client:
            _status("Gemini is analyzing speech & language...")
            cues = await session.generate_subtitles(client, audio, mime_type)
            _status("  {} subtitles, detected language: {}".format(
                len(cues or []), session.detected_language
            ))

            if args.translate:
                _status("Translating to {}...".format(args.translate))
                await session.translate(client, args.translate)

            if args.shift_ms:
                _status("Shifting all subtitles by {} ms...".format(args.shift_ms))
                session.shift_all_ms(args.shift_ms)

            _status("Exporting...")
            for key in format_keys:
                filename, output = session.export(key)
                path = _resolve_output_path(filename, output_dir)
                path.write_text(output.content, encoding="utf-8")
                saved_files.append(path)
                _status("  Saved: {}".format(path.name))

            if args.dub:
                _status("Generating AI dub (voice: {})...".format(args.voice))
                dub = await session.generate_dub(
                    client,
                    voice=args.voice,
                    on_progress=lambda pct: _status("  Dubbing... {:.0f}%".format(pct)),
                )
                dub_name = "{}_dub.wav".format(project_stem(session.project_name))
                path = dub.write(_resolve_output_path(dub_name, output_dir))
                saved_files.append(path)
                _status("  Saved: {} ({:.1f}s)".format(path.name, dub.duration_s))

    except KeyboardInterrupt:
        _status("\nCancelled by user.")
        sys.exit(130)
    except (OperationFailed, ValueError) as e:
        # Terminal operation status, or config errors (missing API key)
        _fail(str(e))
    except Exception as e:
        logging.getLogger(__name__).debug("Pipeline failed", exc_info=True)
        _fail(str(e))

    _status("")
    _status("Done! Saved {} file(s) to {}".format(len(saved_files), output_dir))
    for f in saved_files:
        _status("  {}".format(f.name))


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="subtitle-studio",
        description="Generate subtitles for an audio/video file with Gemini, "
                    "optionally translate them and produce an AI dub.",
    )

    parser.add_argument(
        "input_file",
        help="Path to the audio or video file to transcribe.",
    )

    parser.add_argument(
        "--translate",
        metavar="LANGUAGE",
        default=None,
        help="Translate the subtitles into this language (e.g. Spanish).",
    )

    parser.add_argument(
        "--shift-ms",
        type=int,
        default=0,
        help="Shift every subtitle by this many milliseconds (negative = earlier).",
    )

    parser.add_argument(
        "--dub",
        action="store_true",
        help="Also generate an AI-dubbed audio track from the subtitle text.",
    )

    parser.add_argument(
        "--voice",
        default=DEFAULT_VOICE,
        help="Voice for the dub (default: %(default)s).",
    )

    parser.add_argument(
        "--formats",
        default=None,
        help="Comma-separated list of export formats. "
             "Available: {}. Default: all.".format(", ".join(sorted(FORMATTERS.keys()))),
    )

    parser.add_argument(
        "--output-dir",
        default=None,
        help="Directory to save output files (default: same as input file).",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )

    return parser


def main(argv: list[str] | None = None) -> None:
    """Entry point for the CLI.

    RULES:
    - argv=None means use sys.argv (normal CLI invocation)
    - Explicit argv is for testing
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    asyncio.run(_run_pipeline(args))


if __name__ == "__main__":
    main()
