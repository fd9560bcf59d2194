"""Thin CLI entry point — drives an UploadPipeline headlessly or serves the UI."""

import argparse
import logging
import sys
from pathlib import Path

import httpx

from clipshare.client import ClipShareClient
from clipshare.config import ClipShareConfig, load_config
from clipshare.intake import IntakeError
from clipshare.pipeline import Stage, UploadPipeline
from clipshare.timecode import format_timecode
from clipshare.transcode import EngineLoadError, TranscodeEngine


def _build_config(args: argparse.Namespace) -> ClipShareConfig:
    config = load_config(args.config) if args.config else ClipShareConfig()
    if args.server:
        config.server_url = args.server
    return config


def _upload(args: argparse.Namespace, config: ClipShareConfig) -> int:
    last_stage = None

    def on_change(snapshot: dict) -> None:
        nonlocal last_stage
        if snapshot["stage"] != last_stage:
            last_stage = snapshot["stage"]
            print(f"  [{last_stage}]")

    with ClipShareClient(config) as client:
        pipeline = UploadPipeline(
            engine=TranscodeEngine.from_config(config),
            client=client,
            config=config,
            on_change=on_change,
        )
        try:
            pipeline.mount()
            try:
                pipeline.select(args.video.name, args.video, media_type=args.media_type)
            except IntakeError as e:
                print(f"Error: {e}", file=sys.stderr)
                return 1

            controls = pipeline.trim_controls()
            if args.start is not None and not controls.set_start_text(args.start):
                print(f"Error: invalid start time {args.start!r}", file=sys.stderr)
                return 1
            if args.end is not None and not controls.set_end_text(args.end):
                print(f"Error: invalid end time {args.end!r}", file=sys.stderr)
                return 1

            try:
                pipeline.confirm_metadata(args.title, args.private, args.category or ())
            except ValueError as e:
                print(f"Error: {e}", file=sys.stderr)
                return 1

            try:
                pipeline.confirm_trim()
            except EngineLoadError as e:
                print(f"Error: {e}", file=sys.stderr)
                return 1
            pipeline.wait()

            attempts = 0
            while (
                pipeline.stage is Stage.FAILED
                and pipeline.failed_from is Stage.UPLOADING
                and attempts < args.retries
            ):
                attempts += 1
                print(f"Upload failed ({pipeline.error}); retrying {attempts}/{args.retries}")
                pipeline.resubmit()
                pipeline.wait()

            if pipeline.stage is not Stage.SUCCEEDED:
                print(f"Error: {pipeline.error}", file=sys.stderr)
                return 1

            time_range = pipeline.time_range
            print()
            print(f"Done! Clip: {pipeline.clip_url}")
            print(
                f"  Range: {format_timecode(time_range.start)} -> {format_timecode(time_range.end)}"
                f" ({time_range.span:.2f}s)"
            )
            return 0
        finally:
            pipeline.close()


def _categories(config: ClipShareConfig) -> int:
    with ClipShareClient(config) as client:
        try:
            categories = client.list_categories()
        except (httpx.HTTPError, KeyError, ValueError) as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
    for c in categories:
        print(f"{c.id}\t{c.name}")
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="clipshare",
        description="ClipShare — trim a video locally and upload it as a clip.",
    )
    parser.add_argument("--config", "-c", type=Path, help="Path to a JSON config file")
    parser.add_argument("--server", type=str, help="Clip server base URL")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command")

    up = sub.add_parser("upload", help="Trim a video and upload it")
    up.add_argument("video", type=Path, help="Input video file")
    up.add_argument("--title", "-t", required=True, help="Clip title")
    up.add_argument("--start", "-s", type=str, help="Start time (m:ss or seconds)")
    up.add_argument("--end", "-e", type=str, help="End time (m:ss or seconds)")
    up.add_argument("--private", action="store_true", help="Upload as a private clip")
    up.add_argument("--category", action="append", help="Category id (repeatable)")
    up.add_argument("--media-type", type=str, help="Override the detected media type")
    up.add_argument("--retries", type=int, default=2, help="Upload retries after a network failure")

    serve = sub.add_parser("serve", help="Launch the web UI")
    serve.add_argument("--port", type=int, default=8321, help="Port to listen on")
    serve.add_argument("--host", type=str, default="127.0.0.1", help="Host to bind to")

    sub.add_parser("categories", help="List the server's categories")

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = _build_config(args)

    if args.command == "serve":
        from clipshare.web import create_app
        app = create_app(config)
        print(f"ClipShare web UI: http://{args.host}:{args.port}")
        app.run(host=args.host, port=args.port, debug=False, threaded=True)
        return

    if args.command == "categories":
        sys.exit(_categories(config))

    if not args.video.is_file():
        print(f"Error: {args.video} does not exist.", file=sys.stderr)
        sys.exit(1)
    sys.exit(_upload(args, config))
