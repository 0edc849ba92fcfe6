"""Sora CLI entrypoint."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import TextIO

from .config import ALLOWED_SECONDS, DEFAULT_SIZE, PORTRAIT_SIZE, PRO_MODEL, Settings
from .errors import HistoryError, SoraError, ValidationError
from .history import HistoryStore, format_listing
from .lifecycle import STREAM_SINK, JobLifecycle, JobRequest, validate_request
from .media.transcode import FFmpegTranscoder
from .providers.openai import OpenAIVideoClient
from .utils import format_duration, load_dotenv


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sora", description="Generate videos with Sora.")
    parser.add_argument("-p", "--prompt", default="", help="Text prompt for the video. If empty, reads interactively.")
    parser.add_argument(
        "-o",
        "--output",
        help="Write output to <file>. Use '-' for stdout-only (no save). Default saves to {video_id}.mp4",
    )
    parser.add_argument(
        "--file",
        dest="input_file",
        help="Path to input image or video file (for image-to-video or video-to-video generation)",
    )
    parser.add_argument("--remix", dest="remix_from", help="Remix from previous video (@last, @0, @1, filename, or video_id)")
    parser.add_argument("--list", dest="list_history", action="store_true", help="List generation history and exit")
    parser.add_argument(
        "--pro",
        action="store_true",
        default=None,
        help="Use sora-2-pro model (better quality at same 720p resolution, 3x cost)",
    )
    parser.add_argument("--seconds", choices=ALLOWED_SECONDS, help="Video duration in seconds: 4, 8, or 12 (default 8)")
    parser.add_argument("--portrait", action="store_true", default=None, help="Generate portrait video (720x1280)")
    parser.add_argument(
        "--landscape",
        action="store_true",
        default=None,
        help="Generate landscape video (1280x720, default)",
    )
    parser.add_argument("--base-url", dest="base_url", help="OpenAI API base URL")
    parser.add_argument("--timeout", type=float, help="Overall job timeout in seconds (default 900)")
    parser.add_argument(
        "--record-failures",
        dest="record_failures",
        action="store_true",
        default=None,
        help="Also record jobs that fail in the history",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        stream=sys.stderr,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _prompt_interactive(stdin: TextIO, stderr: TextIO) -> str:
    stderr.write("Enter your video prompt: ")
    stderr.flush()
    return stdin.readline().strip()


def _build_request(args: argparse.Namespace, prompt: str) -> JobRequest:
    if args.portrait and args.landscape:
        raise ValidationError("Cannot use both --portrait and --landscape")
    size: str | None = None
    if args.portrait:
        size = PORTRAIT_SIZE
    elif args.landscape:
        size = DEFAULT_SIZE
    return JobRequest(
        prompt=prompt,
        model=PRO_MODEL if args.pro else None,
        size=size,
        seconds=args.seconds,
        input_file=Path(args.input_file).expanduser() if args.input_file else None,
        remix_from=args.remix_from or None,
        output=args.output or None,
    )


def _handle_list(history: HistoryStore) -> int:
    try:
        entries = history.load()
    except HistoryError as exc:
        print(f"failed to load history: {exc}", file=sys.stderr)
        return 1
    sys.stderr.write(format_listing(entries))
    return 0


def _handle_run(args: argparse.Namespace, settings: Settings, history: HistoryStore) -> int:
    prompt = args.prompt.strip()
    try:
        request = _build_request(args, prompt)
        validate_request(request)
    except ValidationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return exc.exit_code

    if not settings.api_key:
        print("ERROR: OPENAI_API_KEY is not set", file=sys.stderr)
        return 1

    if not prompt:
        prompt = _prompt_interactive(sys.stdin, sys.stderr)
        if not prompt:
            print("Prompt cannot be empty", file=sys.stderr)
            return 1
        request = _build_request(args, prompt)

    client = OpenAIVideoClient(
        settings.api_key,
        api_base=settings.api_base,
        timeout_s=settings.request_timeout_s,
        organization=settings.organization,
        project=settings.project,
    )
    lifecycle = JobLifecycle(
        client,
        history,
        settings=settings,
        transcoder=FFmpegTranscoder(),
        progress_stream=sys.stderr,
    )
    try:
        result = lifecycle.run(request)
    except SoraError as exc:
        stage = lifecycle.failed_at or lifecycle.state
        print(f"{stage.value} error: {exc}", file=sys.stderr)
        return exc.exit_code

    if request.output != STREAM_SINK:
        print(f"Saved: {result.output}", file=sys.stderr)
        print(f"Total generation time: {format_duration(result.elapsed_s)}", file=sys.stderr)
    return 0


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)
    load_dotenv()
    settings = Settings.from_env().with_overrides(
        api_base=args.base_url,
        timeout_s=args.timeout,
        record_failures=args.record_failures,
    )
    history = HistoryStore(settings.history_path)
    if args.list_history:
        raise SystemExit(_handle_list(history))
    try:
        code = _handle_run(args, settings, history)
    except KeyboardInterrupt:
        print("\nCancelled", file=sys.stderr)
        code = 130
    raise SystemExit(code)


if __name__ == "__main__":
    main()
