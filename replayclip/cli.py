"""Thin CLI entry point: builds a TrimRequest and calls the engine."""

import argparse
import logging
import sys
import time
from pathlib import Path

from replayclip import ffutil
from replayclip.analyzers.discovery import find_latest, select_source
from replayclip.config import build_request, load_config, load_config_file, load_request
from replayclip.engine import run_pipeline

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="replayclip",
        description="Trim clips out of a saved OBS replay buffer.",
    )
    parser.add_argument("--config", "-c", type=Path, help="JSON file with config overrides")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command")

    ext = sub.add_parser("extract", help="Extract one clip from a replay buffer")
    ext.add_argument("source", nargs="?", type=Path, help="Replay buffer file")
    ext.add_argument("--request", "-r", type=Path, help="Path to a JSON request file")
    ext.add_argument("--start", type=float, help="Clip start (seconds since session start)")
    ext.add_argument("--end", type=float, help="Clip end (seconds since session start)")
    ext.add_argument("--session-started-at", type=int, help="Session start, epoch ms")
    ext.add_argument("--saved-at", type=int, help="Buffer save time, epoch ms (default: now)")
    ext.add_argument("--artifact-id", type=str, help="Output name (default: random)")
    ext.add_argument("--session-id", type=str, help="Session id for the output directory")
    ext.add_argument("--session-dir", type=Path, help="Per-session output directory")
    ext.add_argument("--format", choices=["mp4", "webm", "mov"], help="Output container")
    ext.add_argument("--profile", type=str, help="Named output profile")
    ext.add_argument("--buffer-seconds", type=float, help="Configured replay buffer length")

    sub.add_parser("check", help="Check that ffmpeg and ffprobe are usable")

    disc = sub.add_parser("discover", help="Print the newest replay buffer file")
    disc.add_argument("directory", nargs="?", type=Path, help="Replay output directory")
    disc.add_argument("--max-age-ms", type=int, help="Ignore files older than this")

    serve = sub.add_parser("serve", help="Run the HTTP extraction service")
    serve.add_argument("--port", type=int, default=8321, help="Port to listen on")
    serve.add_argument("--host", type=str, default="127.0.0.1", help="Host to bind to")

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    config = load_config()
    if args.config:
        config = load_config_file(args.config, base=config)

    if args.command == "check":
        status = ffutil.check_tools(config)
        for tool in ("ffmpeg", "ffprobe"):
            print(f"{tool}: {'ok' if status[tool] else 'MISSING'}")
        sys.exit(0 if status["ready"] else 1)

    if args.command == "discover":
        directory = args.directory or config.replay_output_dir
        max_age = args.max_age_ms if args.max_age_ms is not None else config.discovery_max_age_ms
        latest = find_latest(directory, max_age)
        if latest is None:
            print("No recent replay buffer file found.", file=sys.stderr)
            sys.exit(1)
        print(latest)
        return

    if args.command == "serve":
        from replayclip.web import create_app
        app = create_app(config)
        print(f"replayclip service: http://{args.host}:{args.port}")
        app.run(host=args.host, port=args.port, debug=False)
        return

    if args.request:
        req = load_request(args.request, config)
    else:
        if args.start is None or args.end is None or args.session_started_at is None:
            print("Error: provide --request, or --start, --end and --session-started-at.",
                  file=sys.stderr)
            sys.exit(1)
        source, origin = select_source(
            args.source, config.replay_output_dir, config.discovery_max_age_ms
        )
        if source is None:
            print("Error: no replay buffer file given or discovered.", file=sys.stderr)
            sys.exit(1)
        if origin == "discovery":
            print(f"Using discovered replay buffer: {source}")
        data = {
            "requested_start": args.start,
            "requested_end": args.end,
            "session_started_at_ms": args.session_started_at,
            "buffer_saved_at_ms": args.saved_at or int(time.time() * 1000),
            "artifact_id": args.artifact_id,
            "session_id": args.session_id,
            "session_dir": args.session_dir,
            "output_format": args.format or config.default_output_format,
            "profile": args.profile or config.default_profile,
        }
        if args.buffer_seconds is not None:
            data["buffer_window_seconds"] = args.buffer_seconds
        req = build_request(data, config, source_path=source)

    def on_progress(stage: str, frac: float) -> None:
        print(f"  [{frac:3.0%}] {stage}")

    outcome = run_pipeline(req, config, on_progress=on_progress)

    print()
    if not outcome.ok:
        print(f"Extraction failed at {outcome.stage.value}: {outcome.error}", file=sys.stderr)
        if outcome.error.stderr:
            print(outcome.error.stderr.strip()[-1000:], file=sys.stderr)
        sys.exit(1)

    result = outcome.result
    print(f"Done! Clip: {result.clip_path}")
    print(f"  Duration: {result.duration_seconds:.1f}s "
          f"(session time {result.trimmed_start_time:.1f}s)")
    if result.thumbnail_path:
        print(f"  Thumbnail: {result.thumbnail_path}")
    else:
        print("  Thumbnail: (failed)")
