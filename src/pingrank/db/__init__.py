"""
Database module for Pingrank.

Provides SQLAlchemy ORM models and session management.

Usage:
    from pingrank.db import get_session, Player, Tournament

    with get_session() as session:
        players = session.query(Player).all()
"""

from pingrank.db.models import (
    Base,
    Match,
    Player,
    RatingHistory,
    Tournament,
    TournamentParticipant,
    UpdateLog,
)
from pingrank.db.session import SessionLocal, get_engine, get_session

__all__ = [
    # Base
    "Base",
    # Models
    "Player",
    "Tournament",
    "TournamentParticipant",
    "Match",
    "RatingHistory",
    "UpdateLog",
    # Session
    "get_session",
    "get_engine",
    "SessionLocal",
]
