#!/usr/bin/env python3
"""
Print the rating audit trail.

One player's history in replay order:
    python scripts/dump_rating_history.py --player-id 7

Snapshots and post-tournament ratings of one tournament:
    python scripts/dump_rating_history.py --tournament-id 42
"""

import argparse
import logging
import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from pingrank.config import settings
from pingrank.db.session import get_session
from pingrank.rating.queries import (
    player_rating_history,
    post_tournament_rating,
    tournament_snapshots,
)

logging.basicConfig(
    level=settings.log_level,
    format=settings.log_format,
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


def _fmt(rating) -> str:
    return "unrated" if rating is None else str(rating)


def dump_player(player_id: int) -> int:
    with get_session() as session:
        rows = player_rating_history(session, player_id)
    if not rows:
        logger.info("No rating history for player %s", player_id)
        return 0

    print(f"{'tournament':<30} {'match':>7} {'change':>7} {'rating':>7}")
    for row in rows:
        print(
            f"{row.tournament_name[:30]:<30} {row.match_id or '-':>7} "
            f"{row.rating_change:>+7d} {row.rating:>7d}"
        )
    return 0


def dump_tournament(tournament_id: int) -> int:
    with get_session() as session:
        snapshots = tournament_snapshots(session, tournament_id)
        if not snapshots:
            logger.info("Tournament %s has no participants", tournament_id)
            return 0
        after = {
            player_id: post_tournament_rating(session, tournament_id, player_id)
            for player_id in snapshots
        }

    print(f"{'player':>8} {'before':>8} {'after':>8}")
    for player_id, before in snapshots.items():
        print(f"{player_id:>8} {_fmt(before):>8} {_fmt(after[player_id]):>8}")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Print rating history.")
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--player-id", type=int, help="Player whose history to print")
    group.add_argument("--tournament-id", type=int, help="Tournament whose snapshots to print")
    args = parser.parse_args()

    if args.player_id is not None:
        return dump_player(args.player_id)
    return dump_tournament(args.tournament_id)


if __name__ == "__main__":
    raise SystemExit(main())
