#!/usr/bin/env python3
"""
Recalculate player ratings by replaying completed tournaments.

Full recalculation (after deleting a tournament, or to rebuild everything):
    python scripts/recalculate_ratings.py

From one tournament onward (after completing it or correcting a score):
    python scripts/recalculate_ratings.py --from-tournament 42

Dry run (replay and report, then roll everything back):
    python scripts/recalculate_ratings.py --dry-run
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

from pingrank.config import settings
from pingrank.rating.errors import RatingEngineError
from pingrank.rating.service import recalculate_all, recalculate_from

logging.basicConfig(
    level=settings.log_level,
    format=settings.log_format,
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Recalculate ratings from completed tournament history.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--from-tournament",
        type=int,
        default=None,
        help="Recalculate from this tournament onward instead of a full pass.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Replay everything but roll back instead of committing.",
    )
    parser.add_argument(
        "--metrics-json",
        default=None,
        help="Write a JSON summary to this path on completion.",
    )
    return parser


def _write_metrics(path: str, payload: dict) -> None:
    metrics_path = Path(path)
    metrics_path.parent.mkdir(parents=True, exist_ok=True)
    metrics_path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")


def main() -> int:
    args = _build_parser().parse_args()

    mode = "from" if args.from_tournament is not None else "full"
    started_at = _utc_now_iso()
    print(f"RATING RECALCULATION  mode={mode}  dry_run={args.dry_run}  started={started_at}")
    if args.from_tournament is not None:
        print(f"From tournament: {args.from_tournament}")
    print("-" * 60)

    t_start = perf_counter()
    try:
        if args.from_tournament is not None:
            result = recalculate_from(args.from_tournament, dry_run=args.dry_run)
        else:
            result = recalculate_all(dry_run=args.dry_run)
    except RatingEngineError as exc:
        logger.error("Recalculation failed: %s", exc)
        if args.metrics_json:
            _write_metrics(
                args.metrics_json,
                {
                    "status": "failed",
                    "mode": mode,
                    "dry_run": args.dry_run,
                    "started_at": started_at,
                    "error": f"{type(exc).__name__}: {exc}",
                },
            )
        return 1
    elapsed = perf_counter() - t_start

    if args.dry_run:
        print("(dry run, changes rolled back)")

    print("-" * 60)
    print(f"Tournaments replayed:   {result.tournaments_replayed}")
    print(f"Tournaments rewritten:  {result.tournaments_committed}")
    print(f"Matches applied:        {result.matches_applied}")
    print(f"Players updated:        {result.players_updated}")
    print(f"Snapshots updated:      {result.snapshots_updated}")
    print(f"History rows written:   {result.history_written}")
    if result.widened:
        print("Widened to full pass:   YES")
    for warning in result.warnings:
        print(f"WARNING: {warning}")
    print(f"Elapsed:                {elapsed:.2f}s")

    if args.metrics_json:
        payload = {
            "status": "success",
            "dry_run": args.dry_run,
            "started_at": started_at,
            "elapsed_s": round(elapsed, 3),
            **result.to_dict(),
        }
        _write_metrics(args.metrics_json, payload)

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
