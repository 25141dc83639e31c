"""
Pingrank services: tournament events that change rated history.

Usage:
    from pingrank.services import complete_tournament, update_match_result
"""

from pingrank.services.tournament_events import (
    EventOutcome,
    MatchNotFoundError,
    complete_tournament,
    delete_tournament,
    update_match_result,
    validate_set_score,
)

__all__ = [
    "EventOutcome",
    "MatchNotFoundError",
    "complete_tournament",
    "delete_tournament",
    "update_match_result",
    "validate_set_score",
]
