"""
ADR Signal Run — command-line entry point
==========================================
Scores one user's history and prints the report as JSON (or the
3-bullet digest).

Usage:
    python run_signals.py --user <id>                 # read from PostgreSQL
    python run_signals.py --input events.json         # raw collections file
    python run_signals.py --input events.json --now 2026-03-01T12:00:00Z --digest

The input file holds ``doses``, ``outcomes``, ``discoveries`` and an
optional ``profile`` / ``userId``.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from datetime import datetime, timezone

from dotenv import load_dotenv

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s  %(levelname)-8s  %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
log = logging.getLogger("run_signals")

from signal_engine import SignalEngine, compute_signals
from pipeline.summary_builder import build_signal_digest


def _parse_now(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="ADR signal and predictive risk report"
    )
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--user", help="User id to read from the event store")
    source.add_argument("--input", help="JSON file with raw event collections")
    parser.add_argument("--now", help="Reference time, ISO-8601 (default: current UTC time)")
    parser.add_argument("--timezone", default="UTC",
                        help="IANA timezone for time-of-day patterns (default: UTC)")
    parser.add_argument("--digest", action="store_true",
                        help="Print the 3-bullet digest instead of JSON")
    args = parser.parse_args(argv)

    try:
        now = _parse_now(args.now) if args.now else datetime.now(timezone.utc)
    except ValueError:
        parser.error(f"--now is not an ISO-8601 timestamp: {args.now}")

    try:
        if args.user:
            report = SignalEngine(timezone=args.timezone).run_for_user(args.user, now=now)
        else:
            with open(args.input, encoding="utf-8") as fh:
                payload = json.load(fh)
            report = compute_signals(
                payload.get("userId") or payload.get("user_id") or "anonymous",
                payload.get("doses"),
                payload.get("outcomes"),
                payload.get("discoveries"),
                payload.get("profile"),
                now=now,
                timezone=args.timezone,
            )
    except Exception as e:
        log.error("Signal run failed: %s", e)
        return 1

    if args.digest:
        print(build_signal_digest(report))
    else:
        print(json.dumps(report.to_dict(), indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
