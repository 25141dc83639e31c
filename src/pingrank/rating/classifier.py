"""Match outcome classification.

Decides whether a stored match contributes to ratings. Only PLAYABLE matches
reach the calculator; every other outcome passes through a replay with no
effect and leaves no rating history.

Precedence is BYE, FORFEIT, UNPLAYED, PLAYABLE: a bye that also carries a
forfeit flag is still a bye.
"""

from __future__ import annotations

from enum import Enum
from typing import Protocol

from pingrank.rating.constants import BYE_PLAYER_ID
from pingrank.rating.errors import InputIntegrityError


class MatchOutcome(str, Enum):
    PLAYABLE = "playable"
    BYE = "bye"
    FORFEIT = "forfeit"
    UNPLAYED = "unplayed"


class MatchLike(Protocol):
    """Anything shaped like a match row (ORM object or snapshot)."""

    id: int
    player1_id: int | None
    player2_id: int | None
    player1_sets: int
    player2_sets: int
    player1_forfeit: bool
    player2_forfeit: bool


# Outcomes that never change a rating
NEUTRAL_OUTCOMES: tuple[MatchOutcome, ...] = (
    MatchOutcome.BYE,
    MatchOutcome.FORFEIT,
    MatchOutcome.UNPLAYED,
)


def is_bye_slot(player_id: int | None) -> bool:
    """Return True for an empty bracket slot."""
    return player_id is None or player_id == BYE_PLAYER_ID


def classify(match: MatchLike) -> MatchOutcome:
    """Classify a match by whether it may affect ratings."""
    if is_bye_slot(match.player1_id) or is_bye_slot(match.player2_id):
        return MatchOutcome.BYE
    if match.player1_forfeit or match.player2_forfeit:
        return MatchOutcome.FORFEIT
    if match.player1_sets == 0 and match.player2_sets == 0:
        return MatchOutcome.UNPLAYED
    return MatchOutcome.PLAYABLE


def winner_side(match: MatchLike) -> int:
    """
    Return 1 if player 1 won a playable match, 2 if player 2 won.

    Raises:
        InputIntegrityError: if the set counts are level. A played match in
            the five-set format always has a strict winner.
    """
    if match.player1_sets > match.player2_sets:
        return 1
    if match.player2_sets > match.player1_sets:
        return 2
    raise InputIntegrityError(
        f"Match {match.id} has no winner ({match.player1_sets}-{match.player2_sets})",
        match_id=match.id,
    )
