"""
Local runner: fetch one video's transcript from the command line.

Loads .env before anything reads the environment.
"""
import argparse
import asyncio
import json
import os
import sys

from dotenv import load_dotenv

load_dotenv()

from logging_setup import configure_logging  # noqa: E402
from transcript_errors import CaptionsUnavailableError, TranscriptFetchError  # noqa: E402
from transcript_service import fetch_transcript  # noqa: E402
from video_id_utils import extract_video_id  # noqa: E402

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_NO_CAPTIONS = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Fetch the caption transcript of a YouTube video",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_local.py dQw4w9WgXcQ
  python run_local.py "https://youtu.be/dQw4w9WgXcQ" --limit 20
  python run_local.py dQw4w9WgXcQ --json > transcript.json
        """
    )
    parser.add_argument("video", help="Video id or YouTube URL")
    parser.add_argument("--json", action="store_true", help="Print the full transcript as JSON")
    parser.add_argument("--limit", type=int, default=10, help="Segments to print in text mode (default: 10)")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    configure_logging(
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        use_json=os.getenv("LOG_FORMAT", "json").lower() == "json",
    )

    try:
        video_id = extract_video_id(args.video)
    except ValueError as e:
        print(f"❌ {e}", file=sys.stderr)
        return EXIT_FAILED

    try:
        lines = asyncio.run(fetch_transcript(video_id))
    except CaptionsUnavailableError as e:
        print(f"❌ {e}", file=sys.stderr)
        return EXIT_NO_CAPTIONS
    except TranscriptFetchError as e:
        print(f"❌ Transcript fetch failed: {e}", file=sys.stderr)
        return EXIT_FAILED

    if args.json:
        print(json.dumps([line.to_dict() for line in lines], ensure_ascii=False, indent=2))
        return EXIT_OK

    print(f"✅ {len(lines)} segments for {video_id}")
    print("=" * 60)
    limit = max(args.limit, 0)
    for line in lines[:limit]:
        print(f"[{line.offset:8.2f}s +{line.duration:5.2f}s] {line.text}")
    if len(lines) > limit:
        print(f"... {len(lines) - limit} more")
    return EXIT_OK


if __name__ == '__main__':
    sys.exit(main())
