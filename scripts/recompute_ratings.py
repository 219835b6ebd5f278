#!/usr/bin/env python3
"""
Rebuild every league rating by replaying confirmed matches.

Normal usage (reset everyone and replay the whole ledger):
    python scripts/recompute_ratings.py

Replay only recent matches (everyone is still reset to baseline):
    python scripts/recompute_ratings.py --from-date 2026-01-01

Dry run (compute the rebuild, print the summary, roll back):
    python scripts/recompute_ratings.py --dry-run
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from time import perf_counter

# Add src to path so this script can be run directly
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from pongleague.config import settings
from pongleague.db import get_session
from pongleague.rating.recompute import recompute_league


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_from_date(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Recompute league ratings from match history.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--from-date",
        default=None,
        help="Only replay matches played on or after this ISO date/time.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Run the recompute but roll back instead of committing.",
    )
    parser.add_argument(
        "--metrics-json",
        default=None,
        help="Write a JSON summary to this path on completion.",
    )
    return parser


def main() -> int:
    args = _build_parser().parse_args()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    from_date = None
    if args.from_date:
        try:
            from_date = _parse_from_date(args.from_date)
        except ValueError as exc:
            print(f"ERROR: --from-date must be an ISO date or datetime: {exc}")
            return 1

    started_at = _utc_now_iso()
    print(f"RATING RECOMPUTE  from={from_date or 'beginning'}  dry_run={args.dry_run}  started={started_at}")
    print("-" * 60)

    t_start = perf_counter()

    with get_session() as session:
        result = recompute_league(session, from_date=from_date)

        if args.dry_run:
            session.rollback()
            print("(dry run: changes rolled back)")

    elapsed = perf_counter() - t_start

    print("-" * 60)
    print(f"Players reset:          {result.players_reset}")
    print(f"History rows replaced:  {result.history_deleted}")
    print(f"Matches replayed:       {result.matches_replayed}")
    print(f"Elapsed:                {elapsed:.2f}s")

    if args.metrics_json:
        payload = {
            "status": "success",
            "dry_run": args.dry_run,
            "from_date": from_date.isoformat() if from_date else None,
            "started_at": started_at,
            "elapsed_s": round(elapsed, 3),
            "players_reset": result.players_reset,
            "history_deleted": result.history_deleted,
            "matches_replayed": result.matches_replayed,
        }
        metrics_path = Path(args.metrics_json)
        metrics_path.parent.mkdir(parents=True, exist_ok=True)
        metrics_path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
