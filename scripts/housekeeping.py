#!/usr/bin/env python3
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from dotenv import load_dotenv

load_dotenv()

import database
from config import RETENTION_DAYS
from core.clock import parse_cutoff
from core.errors import MeridianError

logger = logging.getLogger("housekeeping")


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Maintenance for the Meridian readings store (cleanup, retention, indexes)."
    )
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument(
        "--before",
        help="Delete records with a bucket before this date (YYYY-MM-DD or ISO 8601).",
    )
    target.add_argument(
        "--all",
        action="store_true",
        help="Delete every record.",
    )
    target.add_argument(
        "--purge-expired",
        action="store_true",
        help="Apply the retention horizon now.",
    )
    target.add_argument(
        "--rebuild-indexes",
        action="store_true",
        help="Drop and recreate the readings table indexes.",
    )
    parser.add_argument(
        "--retention-days",
        type=int,
        default=RETENTION_DAYS,
        help=f"Retention horizon for --purge-expired (default: {RETENTION_DAYS}).",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )

    try:
        if args.rebuild_indexes:
            for index in database.rebuild_indexes():
                print(f"{index['name']}  unique={index['unique']}  origin={index['origin']}")
            return 0

        if args.purge_expired:
            purged = database.purge_expired(retention_days=args.retention_days)
            print(f"Purged {purged} record(s) older than {args.retention_days} days")
            return 0

        cutoff = None
        if args.before:
            try:
                cutoff = parse_cutoff(args.before)
            except ValueError as e:
                print(f"Invalid date {args.before!r}: {e}", file=sys.stderr)
                return 2
        deleted = database.delete_range(cutoff)
        print(f"Deleted {deleted} record(s)" + (f" before {cutoff.isoformat()}" if cutoff else ""))
        return 0
    except MeridianError as e:
        logger.error("Housekeeping failed: %s", e)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
