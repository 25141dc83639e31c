"""
Errors and warnings raised by the rating engine.

Fatal conditions are exceptions: the pass is aborted and nothing is
committed. Non-fatal conditions are warnings: they are logged, attached to
the run result, and the pass continues.
"""

from __future__ import annotations


class RatingEngineError(Exception):
    """Base class for fatal rating engine errors."""


class InputIntegrityError(RatingEngineError):
    """Historical data cannot be replayed as stored.

    Raised when a match references a player who is not a participant of its
    tournament, a completed tournament has no creation time, or a played
    match has no strict winner.
    """

    def __init__(self, message: str, *, tournament_id: int | None = None, match_id: int | None = None):
        super().__init__(message)
        self.tournament_id = tournament_id
        self.match_id = match_id


class PersistenceError(RatingEngineError):
    """Writing the results of a pass failed; prior state is unchanged."""


class RecalculationInProgressError(RatingEngineError):
    """Another recalculation pass holds the exclusive lock."""


class TournamentNotFoundError(RatingEngineError):
    """A recalculation was requested from a tournament that does not exist."""

    def __init__(self, tournament_id: int):
        super().__init__(f"Tournament {tournament_id} not found")
        self.tournament_id = tournament_id


class RatingWarning(UserWarning):
    """Base class for non-fatal conditions noticed during a pass."""


class UnresolvableOrderingError(RatingWarning):
    """Two completed tournaments share a creation time; ordered by id instead."""


class CalculationAnomaly(RatingWarning):
    """Rounding drift across a match exceeded the accepted bound."""
