"""
Tournament events that invalidate rating history.

Each function applies one mutation inside the caller's session and tells the
caller where a recalculation has to start:

- complete_tournament: a tournament joins the replay sequence
- update_match_result: a historical score is corrected
- delete_tournament: a tournament leaves the replay sequence

None of them commit. Pair them with a recalculation in one transaction (see
pingrank.rating.service) so that no reader ever sees a corrected score with
stale ratings.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session

from pingrank.db.models import (
    TOURNAMENT_STATUS_COMPLETED,
    Match,
    RatingHistory,
    Tournament,
)
from pingrank.rating.constants import SETS_TO_WIN
from pingrank.rating.errors import TournamentNotFoundError

logger = logging.getLogger(__name__)


class MatchNotFoundError(LookupError):
    """No match exists with the requested id."""


@dataclass(frozen=True)
class EventOutcome:
    """What an event changed and how ratings must be brought up to date."""
    tournament_id: int
    # True when the change touches completed (rated) history
    affects_ratings: bool
    # True when recalculate_from cannot anchor on the tournament any more
    requires_full_pass: bool = False


def _get_tournament(session: Session, tournament_id: int) -> Tournament:
    tournament = session.get(Tournament, tournament_id)
    if tournament is None:
        raise TournamentNotFoundError(tournament_id)
    return tournament


def complete_tournament(
    session: Session,
    tournament_id: int,
    completed_at: datetime | None = None,
) -> EventOutcome:
    """Mark a tournament COMPLETED so its matches count toward ratings."""
    tournament = _get_tournament(session, tournament_id)
    if tournament.is_completed:
        logger.info("Tournament %s is already completed", tournament_id)
        return EventOutcome(tournament_id=tournament_id, affects_ratings=False)

    tournament.status = TOURNAMENT_STATUS_COMPLETED
    tournament.completed_at = completed_at or datetime.utcnow()
    session.flush()

    logger.info("Tournament %s completed", tournament_id)
    return EventOutcome(tournament_id=tournament_id, affects_ratings=True)


def validate_set_score(player1_sets: int, player2_sets: int) -> None:
    """
    Check a best-of-five set score.

    Raises:
        ValueError: for negative counts, more than SETS_TO_WIN sets on a side,
            or a finished-looking score without exactly one side on SETS_TO_WIN.
    """
    if player1_sets < 0 or player2_sets < 0:
        raise ValueError("Set counts cannot be negative")
    if player1_sets > SETS_TO_WIN or player2_sets > SETS_TO_WIN:
        raise ValueError(f"A side cannot win more than {SETS_TO_WIN} sets")
    if player1_sets == 0 and player2_sets == 0:
        return
    if (player1_sets == SETS_TO_WIN) == (player2_sets == SETS_TO_WIN):
        raise ValueError(
            f"Exactly one side must reach {SETS_TO_WIN} sets "
            f"(got {player1_sets}-{player2_sets})"
        )


def update_match_result(
    session: Session,
    match_id: int,
    player1_sets: int,
    player2_sets: int,
    *,
    player1_forfeit: bool = False,
    player2_forfeit: bool = False,
) -> EventOutcome:
    """
    Record or correct a match score.

    Raises:
        MatchNotFoundError: if the match does not exist.
        ValueError: if the score is not a valid best-of-five result or both
            sides are flagged as forfeiting.
    """
    match = session.get(Match, match_id)
    if match is None:
        raise MatchNotFoundError(f"Match {match_id} not found")
    if player1_forfeit and player2_forfeit:
        raise ValueError("Only one side can forfeit a match")
    if not (player1_forfeit or player2_forfeit):
        validate_set_score(player1_sets, player2_sets)

    match.player1_sets = player1_sets
    match.player2_sets = player2_sets
    match.player1_forfeit = player1_forfeit
    match.player2_forfeit = player2_forfeit
    session.flush()

    tournament = _get_tournament(session, match.tournament_id)
    logger.info(
        "Match %s result set to %d-%d in tournament %s",
        match_id,
        player1_sets,
        player2_sets,
        tournament.id,
    )
    return EventOutcome(tournament_id=tournament.id, affects_ratings=tournament.is_completed)


def delete_tournament(session: Session, tournament_id: int) -> EventOutcome:
    """
    Delete a tournament with its participants, matches and rating history.

    A deleted tournament cannot anchor recalculate_from, so a completed one
    requires a full pass.
    """
    tournament = _get_tournament(session, tournament_id)
    was_completed = tournament.is_completed

    # rating_history rows go with the matches (ON DELETE CASCADE) on
    # PostgreSQL; delete them explicitly so SQLite behaves the same
    session.query(RatingHistory).filter(RatingHistory.tournament_id == tournament_id).delete(
        synchronize_session=False
    )
    session.delete(tournament)
    session.flush()

    logger.info("Tournament %s deleted (completed=%s)", tournament_id, was_completed)
    return EventOutcome(
        tournament_id=tournament_id,
        affects_ratings=was_completed,
        requires_full_pass=was_completed,
    )
