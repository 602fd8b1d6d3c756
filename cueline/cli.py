"""Command-line interface for Cue Line.

WHY: The prompter itself runs behind the Control API, but a few jobs are
handy from a terminal: starting the server, checking which cue directives
a script contains before a shoot, running the AI assistant over a script
file, pulling a script from Google Docs, converting an exported command
log to SRT for the editor, and finding the right microphone.

HOW: argparse with one subcommand per job. Async work (assistant, import)
runs via asyncio.run(). Status messages go to stderr; results that are
meant to be piped (cue listings, device lists) go to stdout. Output files
are saved next to the input (or to --output-dir) with a numeric suffix on
conflict.

RULES:
- Subcommands: serve, cues, assist, import, log-to-srt, devices
- --log-level configures logging.basicConfig for every subcommand
- CueLineError and bad input files exit with status 1 and a message on stderr
- Output naming: {stem}{suffix}, numeric suffix for conflicts (-fix-2.txt)
- Python 3.9+ compatible (no match/case, no X | Y unions)
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from cueline import __version__
from cueline.config import API_HOST, API_PORT
from cueline.core.script import Script
from cueline.errors import CueLineError
from cueline.formatters.csv_log import parse_csv_log
from cueline.formatters.srt_log import SRTLogFormatter

logger = logging.getLogger(__name__)


def _status(msg: str) -> None:
    """Print a status message to stderr.

    WHY: Status output must not pollute stdout so the CLI can be piped.

    RULES:
    - All status messages go to stderr
    - Always flush after writing
    """
    print(msg, file=sys.stderr, flush=True)


def _fail(msg: str) -> None:
    print("Error: {}".format(msg), file=sys.stderr)
    sys.exit(1)


def _resolve_output_path(stem: str, suffix: str, output_dir: Path) -> Path:
    """Resolve the output file path, adding a numeric suffix on conflict.

    RULES:
    - First attempt: {stem}{suffix} (e.g. keynote-fix.txt)
    - Conflict: insert a counter before the extension (keynote-fix-2.txt)
    - Counter starts at 2 and increments
    """
    base_path = output_dir / "{}{}".format(stem, suffix)
    if not base_path.exists():
        return base_path

    dot_idx = suffix.rfind(".")
    if dot_idx > 0:
        suffix_name = suffix[:dot_idx]
        suffix_ext = suffix[dot_idx:]
    else:
        suffix_name = suffix
        suffix_ext = ""

    counter = 2
    while True:
        candidate = output_dir / "{}{}-{}{}".format(stem, suffix_name, counter, suffix_ext)
        if not candidate.exists():
            return candidate
        counter += 1


def _read_text(path_arg: str) -> Path:
    path = Path(path_arg).resolve()
    if not path.is_file():
        _fail("File not found: {}".format(path))
    return path


def _output_dir(arg: Optional[str], default: Path) -> Path:
    output_dir = Path(arg).resolve() if arg else default
    if not output_dir.is_dir():
        _fail("Output directory does not exist: {}".format(output_dir))
    return output_dir


def _parse_durations(value: Optional[str]) -> Optional[List[float]]:
    if not value:
        return None
    try:
        return [float(part) for part in value.split(",") if part.strip()]
    except ValueError:
        _fail("--video-durations must be comma-separated seconds, got '{}'".format(value))
    return None


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------


def _cmd_serve(args: argparse.Namespace) -> None:
    from cueline.server.app import run_api

    _status("Cue Line {} listening on http://{}:{}".format(__version__, args.host, args.port))
    run_api(host=args.host, port=args.port)


def _cmd_cues(args: argparse.Namespace) -> None:
    path = _read_text(args.script)
    script = Script(path.read_text(encoding="utf-8"))
    cues = script.extract_cues(_parse_durations(args.video_durations))

    _status("{}: {} words, {} cue(s)".format(path.name, script.word_count, len(cues)))
    for cue in cues:
        word = script.words[cue.word_index] if script.has_word(cue.word_index) else "<end>"
        if cue.video_index is not None:
            label = "VIDEO {} ({:.1f}s)".format(cue.video_index + 1, cue.duration_s)
        else:
            label = "PAUSE {:.0f}s".format(cue.duration_s)
        print("{}\t{}\t{}".format(cue.word_index, label, word))


async def _run_assist(args: argparse.Namespace) -> None:
    from cueline.api.client import GeminiClient
    from cueline.assistant import ScriptAssistant

    path = _read_text(args.script)
    output_dir = _output_dir(args.output_dir, path.parent)
    text = path.read_text(encoding="utf-8")

    _status("Running '{}' on {} ({} chars)...".format(args.command, path.name, len(text)))
    async with GeminiClient() as client:
        assistant = ScriptAssistant(client)
        if args.command == "cleanup":
            new_text = await assistant.cleanup(text)
        else:
            result = await assistant.apply(args.command, text, 0, len(text))
            new_text = result.text

    out_path = _resolve_output_path(path.stem, "-{}.txt".format(args.command), output_dir)
    out_path.write_text(new_text, encoding="utf-8")
    _status("Saved: {}".format(out_path))


async def _run_import(args: argparse.Namespace) -> None:
    from cueline.imports.google import GoogleImporter

    token = args.token or os.getenv("GOOGLE_ACCESS_TOKEN", "")
    async with GoogleImporter(token) as importer:
        if not args.id:
            if args.kind == "docs":
                files = await importer.list_documents()
            else:
                files = await importer.list_presentations()
            for f in files:
                print("{}\t{}".format(f.id, f.name))
            _status("{} file(s)".format(len(files)))
            return

        output_dir = _output_dir(args.output_dir, Path.cwd())
        if args.kind == "docs":
            text = await importer.fetch_document_text(args.id)
            out_path = _resolve_output_path(args.id, "-script.txt", output_dir)
            out_path.write_text(text, encoding="utf-8")
        else:
            slides = await importer.fetch_slides(args.id)
            out_path = _resolve_output_path(args.id, "-slides.json", output_dir)
            out_path.write_text(
                json.dumps([s.to_dict() for s in slides], indent=2),
                encoding="utf-8",
            )
        _status("Saved: {}".format(out_path))


def _cmd_log_to_srt(args: argparse.Namespace) -> None:
    path = _read_text(args.log_file)
    output_dir = _output_dir(args.output_dir, path.parent)
    try:
        entries = parse_csv_log(path.read_text(encoding="utf-8"))
    except ValueError as e:
        _fail("{}: {}".format(path.name, e))
        return

    output = SRTLogFormatter().format(entries)
    out_path = _resolve_output_path(path.stem, ".srt", output_dir)
    out_path.write_text(output.content, encoding="utf-8")
    _status("Converted {} entries: {}".format(len(entries), out_path))


def _cmd_devices(args: argparse.Namespace) -> None:
    from cueline.capture.recorder import list_input_devices

    for device in list_input_devices():
        marker = "*" if device.is_default else " "
        print("{} {}\t{}\t{} ch\t{:.0f} Hz".format(
            marker, device.index, device.name, device.input_channels, device.sample_rate
        ))


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the CLI.

    WHY: Separating parser construction from main() makes the CLI
    testable; tests can inspect the parser without running anything.
    """
    parser = argparse.ArgumentParser(
        prog="cueline",
        description="Voice-aware teleprompter engine: Control API server and script tools.",
    )
    parser.add_argument("--version", action="version", version="%(prog)s " + __version__)
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: %(default)s).",
    )
    sub = parser.add_subparsers(dest="subcommand", required=True)

    serve = sub.add_parser("serve", help="Run the Control API server.")
    serve.add_argument("--host", default=API_HOST, help="Bind address (default: %(default)s).")
    serve.add_argument("--port", type=int, default=API_PORT, help="Port (default: %(default)s).")
    serve.set_defaults(func=_cmd_serve)

    cues = sub.add_parser("cues", help="List the cue directives in a script file.")
    cues.add_argument("script", help="Path to a UTF-8 script file.")
    cues.add_argument(
        "--video-durations",
        default=None,
        help="Comma-separated video lengths in seconds for [PLAY VIDEO n] cues.",
    )
    cues.set_defaults(func=_cmd_cues)

    assist = sub.add_parser("assist", help="Run the AI script assistant on a file.")
    assist.add_argument("command", choices=["fix", "rewrite", "format", "cleanup"])
    assist.add_argument("script", help="Path to a UTF-8 script file.")
    assist.add_argument("--output-dir", default=None, help="Default: next to the script.")
    assist.set_defaults(func=lambda a: asyncio.run(_run_assist(a)))

    imp = sub.add_parser("import", help="List or download Google Docs / Slides.")
    imp.add_argument("kind", choices=["docs", "slides"])
    imp.add_argument("--id", default=None, help="File id to download; omit to list files.")
    imp.add_argument(
        "--token",
        default=None,
        help="OAuth access token (default: $GOOGLE_ACCESS_TOKEN).",
    )
    imp.add_argument("--output-dir", default=None, help="Default: current directory.")
    imp.set_defaults(func=lambda a: asyncio.run(_run_import(a)))

    log_to_srt = sub.add_parser("log-to-srt", help="Convert an exported CSV command log to SRT.")
    log_to_srt.add_argument("log_file", help="Path to a q_log_*.csv export.")
    log_to_srt.add_argument("--output-dir", default=None, help="Default: next to the log.")
    log_to_srt.set_defaults(func=_cmd_log_to_srt)

    devices = sub.add_parser("devices", help="List audio input devices.")
    devices.set_defaults(func=_cmd_devices)

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the ``cueline`` console script.

    RULES:
    - argv=None means use sys.argv (normal CLI invocation)
    - Explicit argv is for testing
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    try:
        args.func(args)
    except KeyboardInterrupt:
        _status("\nCancelled by user.")
        sys.exit(130)
    except CueLineError as e:
        _fail("{}: {}".format(e.title, e.message))


if __name__ == "__main__":
    main()
