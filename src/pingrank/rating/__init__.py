"""
Rating engine for table tennis tournaments.

Ratings are derived, never edited: every completed tournament is replayed in
chronological order and each match moves both players' Elo ratings.

Pure calculation pieces are exported here. Database-backed parts live in
their own modules so importing this package never opens an engine:
- rating.recalculator: RatingRecalculator (chronological replay + bulk writes)
- rating.service: exclusive, transactional entry points
- rating.queries: read helpers over rating history
"""

from pingrank.rating.calculator import RatingDelta, calculate_delta, expected_score, round_half_up
from pingrank.rating.classifier import MatchOutcome, classify, winner_side
from pingrank.rating.constants import DEFAULT_RATING, K_FACTOR, RATING_SCALE
from pingrank.rating.errors import (
    CalculationAnomaly,
    InputIntegrityError,
    PersistenceError,
    RatingEngineError,
    RatingWarning,
    RecalculationInProgressError,
    TournamentNotFoundError,
    UnresolvableOrderingError,
)
from pingrank.rating.replayer import (
    MatchSnapshot,
    ParticipantSnapshot,
    ReplayResult,
    TournamentSnapshot,
    replay_tournament,
)

__all__ = [
    # Calculator
    "RatingDelta",
    "calculate_delta",
    "expected_score",
    "round_half_up",
    # Classifier
    "MatchOutcome",
    "classify",
    "winner_side",
    # Constants
    "DEFAULT_RATING",
    "K_FACTOR",
    "RATING_SCALE",
    # Errors
    "CalculationAnomaly",
    "InputIntegrityError",
    "PersistenceError",
    "RatingEngineError",
    "RatingWarning",
    "RecalculationInProgressError",
    "TournamentNotFoundError",
    "UnresolvableOrderingError",
    # Replay
    "MatchSnapshot",
    "ParticipantSnapshot",
    "ReplayResult",
    "TournamentSnapshot",
    "replay_tournament",
]
