"""Read helpers over the rating audit trail.

These answer the questions a standings or profile page asks of the engine's
output without re-running a pass.
"""

from __future__ import annotations

from typing import NamedTuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from pingrank.db.models import RatingHistory, Tournament, TournamentParticipant


class HistoryRow(NamedTuple):
    tournament_id: int
    tournament_name: str
    match_id: int | None
    rating_change: int
    rating: int


def post_tournament_rating(session: Session, tournament_id: int, player_id: int) -> int | None:
    """
    Rating a player held after a tournament finished.

    Uses the player's last history row in that tournament; a participant
    with no rated match keeps the rating they entered with. Returns None for
    players who did not take part.
    """
    last_change = session.execute(
        select(RatingHistory.rating)
        .where(
            RatingHistory.tournament_id == tournament_id,
            RatingHistory.player_id == player_id,
        )
        .order_by(RatingHistory.match_id.desc(), RatingHistory.id.desc())
        .limit(1)
    ).scalar()
    if last_change is not None:
        return last_change

    return session.execute(
        select(TournamentParticipant.rating_at_time).where(
            TournamentParticipant.tournament_id == tournament_id,
            TournamentParticipant.player_id == player_id,
        )
    ).scalar()


def player_rating_history(session: Session, player_id: int) -> list[HistoryRow]:
    """Return a player's rating history in replay order."""
    rows = session.execute(
        select(
            RatingHistory.tournament_id,
            Tournament.name,
            RatingHistory.match_id,
            RatingHistory.rating_change,
            RatingHistory.rating,
        )
        .join(Tournament, RatingHistory.tournament_id == Tournament.id)
        .where(RatingHistory.player_id == player_id)
        .order_by(Tournament.created_at.asc(), Tournament.id.asc(), RatingHistory.match_id.asc())
    ).all()
    return [HistoryRow(*row) for row in rows]


def tournament_snapshots(session: Session, tournament_id: int) -> dict[int, int | None]:
    """Return rating_at_time per player for one tournament."""
    rows = session.execute(
        select(TournamentParticipant.player_id, TournamentParticipant.rating_at_time)
        .where(TournamentParticipant.tournament_id == tournament_id)
        .order_by(TournamentParticipant.id.asc())
    ).all()
    return {player_id: rating for player_id, rating in rows}
