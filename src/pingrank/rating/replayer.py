"""
Tournament replay: applies one tournament's matches to a rolling rating map.

Replay is a pure in-memory step: it receives an immutable snapshot of the
tournament and the ratings its participants carried in, and returns the
ratings they carry out together with the audit rows to write. Nothing is
read from or written to the database here.

Within a tournament, ratings are path-dependent: a player's second match
uses the rating produced by their first. Matches are therefore always
applied in insertion (id) order, never re-sorted by round or score.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Mapping, NamedTuple

from pingrank.rating.calculator import calculate_delta, seed_rating
from pingrank.rating.classifier import MatchOutcome, classify, winner_side
from pingrank.rating.constants import (
    DEFAULT_RATING,
    K_FACTOR,
    MAX_ROUNDING_DRIFT,
    RATING_SCALE,
)
from pingrank.rating.errors import CalculationAnomaly, InputIntegrityError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Read view: lightweight frozen rows, detached from the ORM
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MatchSnapshot:
    id: int
    player1_id: int | None
    player2_id: int | None
    player1_sets: int = 0
    player2_sets: int = 0
    player1_forfeit: bool = False
    player2_forfeit: bool = False


@dataclass(frozen=True)
class ParticipantSnapshot:
    player_id: int
    # Snapshot currently stored for this participant (used for verification)
    stored_rating_at_time: int | None = None
    # tournament_participants.id, needed to write the snapshot back
    participant_id: int | None = None


@dataclass(frozen=True)
class TournamentSnapshot:
    """Immutable view of one completed tournament taken at the start of a pass."""
    id: int
    participants: tuple[ParticipantSnapshot, ...]
    matches: tuple[MatchSnapshot, ...]
    type: str = "ROUND_ROBIN"
    created_at: object = None

    @property
    def participant_ids(self) -> tuple[int, ...]:
        return tuple(p.player_id for p in self.participants)


class HistoryEntry(NamedTuple):
    """One player's rating change in one match, ready to be written."""
    player_id: int
    tournament_id: int
    match_id: int
    rating_change: int
    rating: int


@dataclass
class ReplayResult:
    """Outcome of replaying one tournament."""
    tournament_id: int
    # rating_at_time per participant (seeded, never None)
    snapshots: dict[int, int] = field(default_factory=dict)
    # Rolling rating per participant after the last match (None = still unrated)
    ending_ratings: dict[int, int | None] = field(default_factory=dict)
    history: list[HistoryEntry] = field(default_factory=list)
    anomalies: list[CalculationAnomaly] = field(default_factory=list)
    matches_applied: int = 0
    matches_skipped: int = 0


# ---------------------------------------------------------------------------
# Replay
# ---------------------------------------------------------------------------

def _check_participant(
    player_id: int,
    participants: set[int],
    tournament: TournamentSnapshot,
    match: MatchSnapshot,
) -> None:
    if player_id not in participants:
        raise InputIntegrityError(
            f"Match {match.id} references player {player_id} who is not a "
            f"participant of tournament {tournament.id}",
            tournament_id=tournament.id,
            match_id=match.id,
        )


def replay_tournament(
    tournament: TournamentSnapshot,
    incoming: Mapping[int, int | None],
    *,
    k_factor: int = K_FACTOR,
    default_rating: int = DEFAULT_RATING,
    scale: float = RATING_SCALE,
) -> ReplayResult:
    """
    Apply every playable match of a tournament in insertion order.

    Args:
        tournament: Immutable tournament snapshot.
        incoming: Rating of each player entering this tournament. Missing
            players and None values are unrated.

    Returns:
        ReplayResult with the entry snapshots, ending ratings and history.

    Raises:
        InputIntegrityError: if a non-bye match references a player outside
            the participant list, pits a player against themself, or a
            played match has no strict winner.
    """
    participants = set(tournament.participant_ids)
    result = ReplayResult(tournament_id=tournament.id)

    rolling: dict[int, int | None] = {}
    for pid in tournament.participant_ids:
        entering = incoming.get(pid)
        rolling[pid] = entering
        result.snapshots[pid] = seed_rating(entering, default_rating)

    for match in sorted(tournament.matches, key=lambda m: m.id):
        outcome = classify(match)
        if outcome is MatchOutcome.BYE:
            result.matches_skipped += 1
            continue

        _check_participant(match.player1_id, participants, tournament, match)
        _check_participant(match.player2_id, participants, tournament, match)
        if match.player1_id == match.player2_id:
            raise InputIntegrityError(
                f"Match {match.id} pits player {match.player1_id} against themself",
                tournament_id=tournament.id,
                match_id=match.id,
            )

        if outcome is not MatchOutcome.PLAYABLE:
            result.matches_skipped += 1
            continue

        try:
            side = winner_side(match)
        except InputIntegrityError as exc:
            exc.tournament_id = tournament.id
            raise

        delta = calculate_delta(
            rolling[match.player1_id],
            rolling[match.player2_id],
            a_won=side == 1,
            k_factor=k_factor,
            default_rating=default_rating,
            scale=scale,
        )

        if abs(delta.drift) > MAX_ROUNDING_DRIFT:
            anomaly = CalculationAnomaly(
                f"Match {match.id} in tournament {tournament.id}: deltas "
                f"{delta.delta_a:+d}/{delta.delta_b:+d} drift by {delta.drift}"
            )
            logger.warning("%s", anomaly)
            result.anomalies.append(anomaly)

        rolling[match.player1_id] = delta.new_rating_a
        rolling[match.player2_id] = delta.new_rating_b
        result.matches_applied += 1

        result.history.append(
            HistoryEntry(
                player_id=match.player1_id,
                tournament_id=tournament.id,
                match_id=match.id,
                rating_change=delta.delta_a,
                rating=delta.new_rating_a,
            )
        )
        result.history.append(
            HistoryEntry(
                player_id=match.player2_id,
                tournament_id=tournament.id,
                match_id=match.id,
                rating_change=delta.delta_b,
                rating=delta.new_rating_b,
            )
        )

    result.ending_ratings = rolling
    return result
