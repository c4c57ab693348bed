# src/board_sentinel/scripts/moderation_jobs.py
"""
Periodic moderation jobs.

Run from cron (or by hand) to:
1. Classify posts that were stored while scan-on-submit was disabled
2. Seed the keyword store from the bundled snapshot on a fresh install
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from sqlalchemy.orm import Session

from board_sentinel.core.settings import settings
from board_sentinel.db.session import SessionLocal
from board_sentinel.services.keyword_config import (
    DEFAULT_SNAPSHOT_PATH,
    KeywordStore,
    get_keyword_resolver,
)
from board_sentinel.services.moderation import ModerationService


def run_scan(db: Session, limit: int) -> int:
    """Scan one batch of unscanned posts; returns the number of failures."""
    result = ModerationService(db, get_keyword_resolver()).scan_unscanned(limit)
    print(
        f"Scanned {result.scanned} posts: {result.flagged} flagged, "
        f"{result.clean} clean, {result.errors} errors"
    )
    return result.errors


def seed_keywords(db: Session, snapshot: Path) -> int:
    """Import the snapshot into the keyword store; returns the error count."""
    raw = json.loads(snapshot.read_text(encoding="utf-8"))
    result = KeywordStore(db, get_keyword_resolver()).import_config(raw, created_by="seed")
    print(f"Imported {result.imported} keywords ({result.errors} errors) from {snapshot}")
    return result.errors


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    sub = parser.add_subparsers(dest="command", required=True)

    scan = sub.add_parser("scan", help="classify unscanned posts")
    scan.add_argument("--limit", type=int, default=settings.scan_batch_limit)

    seed = sub.add_parser("seed-keywords", help="import the keyword snapshot")
    seed.add_argument("--snapshot", type=Path, default=DEFAULT_SNAPSHOT_PATH)

    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO)

    db = SessionLocal()
    try:
        if args.command == "scan":
            errors = run_scan(db, args.limit)
        else:
            errors = seed_keywords(db, args.snapshot)
    finally:
        db.close()
    return 1 if errors else 0


if __name__ == "__main__":
    sys.exit(main())
