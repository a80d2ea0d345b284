#!/usr/bin/env python3
"""Rotate the loop session log once and report the outcome.

Usage:
  python -m loopdash.scripts.rotate_log
  python -m loopdash.scripts.rotate_log --max-entries 50
  python -m loopdash.scripts.rotate_log --log-file /tmp/tree/logs/sessions.jsonl
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from loopdash.config import get_settings
from loopdash.services.compactor import rotate_session_log


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Rotate the loop session log")
    parser.add_argument("--log-file", default="", help="Session log to rotate (default: configured log)")
    parser.add_argument(
        "--transcripts-dir",
        default="",
        help="Transcripts of purged loops to remove (default: <log dir>/../transcripts with --log-file)",
    )
    parser.add_argument("--max-entries", type=int, default=None, help="Line ceiling that triggers rotation")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.WARNING)

    overrides = {}
    if args.log_file:
        log_file = Path(args.log_file).expanduser()
        overrides["log_file"] = log_file
        # A log from another tree never cleans the configured transcripts.
        overrides["transcripts_dir"] = log_file.parent.parent / "transcripts"
    if args.transcripts_dir:
        overrides["transcripts_dir"] = Path(args.transcripts_dir).expanduser()
    if args.max_entries is not None:
        overrides["max_entries"] = args.max_entries
    settings = get_settings().with_overrides(**overrides)

    result = rotate_session_log(settings)
    if not result.success:
        print(f"Rotation failed: {result.error}", file=sys.stderr)
        return 1

    if result.sessionsPurged > 0:
        print(
            f"Rotated: {result.entriesBefore} -> {result.entriesAfter} entries "
            f"({result.sessionsPurged} sessions purged)"
        )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
