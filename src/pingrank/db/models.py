"""
SQLAlchemy ORM models for Pingrank.

This module defines the tables the rating engine reads and writes.
Tournament structure (brackets, round robins, scheduling) is owned by the
tournament manager; the engine only reads completed results from it and
writes ratings, snapshots and the rating audit trail.

Key design decisions:
- A player's rating is NULL until their first rated match ("unrated")
- Tournament replay order is created_at, tie-broken by id
- rating_at_time on each participant is written only by the engine
- Byes are stored as matches with a missing (or 0) player id
- rating_history is replaced, never edited, by each recalculation pass

Tables:
- players: Player records with current rating
- tournaments: Tournament headers (type, status, creation time)
- tournament_participants: Player entries with rating snapshots
- matches: Match results inside a tournament
- rating_history: Per-match rating changes (audit trail)
- update_log: One row per recalculation run
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# =============================================================================
# Constants
# =============================================================================

TOURNAMENT_TYPES: tuple[str, ...] = (
    "ROUND_ROBIN",
    "BRACKET",
    "PLAYOFF",
    "SWISS",
    "SINGLE_MATCH",
)

TOURNAMENT_STATUS_ACTIVE = "ACTIVE"
TOURNAMENT_STATUS_COMPLETED = "COMPLETED"
TOURNAMENT_STATUSES: tuple[str, ...] = (TOURNAMENT_STATUS_ACTIVE, TOURNAMENT_STATUS_COMPLETED)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


# =============================================================================
# Player Models
# =============================================================================

class Player(Base):
    """
    Player record.

    `rating` is NULL for players who have never played a rated match. The
    recalculation engine is the only writer of this column; it is set once
    per pass during the commit step.
    """
    __tablename__ = "players"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Current rating (None = unrated)
    rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    participations: Mapped[list["TournamentParticipant"]] = relationship(
        back_populates="player"
    )

    def __repr__(self) -> str:
        return f"<Player(id={self.id}, name='{self.name}', rating={self.rating})>"


# =============================================================================
# Tournament Models
# =============================================================================

class Tournament(Base):
    """
    Tournament header.

    Only COMPLETED tournaments take part in rating recalculation. They are
    replayed in created_at order; created_at is nullable at the storage
    level so that a missing ordering key is detected by the engine rather
    than silently defaulted.
    """
    __tablename__ = "tournaments"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # 'ROUND_ROBIN', 'BRACKET', 'PLAYOFF', 'SWISS', 'SINGLE_MATCH'
    type: Mapped[str] = mapped_column(String(30), nullable=False, default="ROUND_ROBIN")

    # 'ACTIVE' or 'COMPLETED'
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TOURNAMENT_STATUS_ACTIVE
    )

    created_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True, default=datetime.utcnow
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    participants: Mapped[list["TournamentParticipant"]] = relationship(
        back_populates="tournament",
        cascade="all, delete-orphan",
        order_by="TournamentParticipant.id",
    )
    matches: Mapped[list["Match"]] = relationship(
        back_populates="tournament",
        cascade="all, delete-orphan",
        order_by="Match.id",
    )

    __table_args__ = (
        Index("idx_tournaments_status_created", "status", "created_at", "id"),
    )

    @property
    def is_completed(self) -> bool:
        return self.status == TOURNAMENT_STATUS_COMPLETED

    def __repr__(self) -> str:
        return f"<Tournament(id={self.id}, name='{self.name}', status='{self.status}')>"


class TournamentParticipant(Base):
    """
    A player's entry in a tournament.

    rating_at_time is the rating the player held immediately before this
    tournament's matches were applied. It must always equal the rolling
    rating derived from strictly earlier completed tournaments.
    """
    __tablename__ = "tournament_participants"

    id: Mapped[int] = mapped_column(primary_key=True)
    tournament_id: Mapped[int] = mapped_column(
        ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False
    )
    player_id: Mapped[int] = mapped_column(ForeignKey("players.id"), nullable=False)

    rating_at_time: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    tournament: Mapped["Tournament"] = relationship(back_populates="participants")
    player: Mapped["Player"] = relationship(back_populates="participations")

    __table_args__ = (
        UniqueConstraint("tournament_id", "player_id", name="uq_participant_tournament_player"),
    )

    def __repr__(self) -> str:
        return (
            f"<TournamentParticipant(tournament_id={self.tournament_id}, "
            f"player_id={self.player_id}, rating_at_time={self.rating_at_time})>"
        )


# =============================================================================
# Match Models
# =============================================================================

class Match(Base):
    """
    A single match inside a tournament.

    Matches are replayed in primary key order, which is the order they were
    inserted by the tournament manager. A missing player (NULL or the
    reserved id 0) marks a bye. A forfeit flag marks a match that was not
    contested. A match with 0-0 sets has not been played yet.

    Player ids are intentionally not foreign keys: bracket generators store
    0 for empty slots.
    """
    __tablename__ = "matches"

    id: Mapped[int] = mapped_column(primary_key=True)
    tournament_id: Mapped[int] = mapped_column(
        ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False
    )

    player1_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    player2_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    player1_sets: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    player2_sets: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    player1_forfeit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    player2_forfeit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Round label from the tournament manager ('RR', 'QF', 'SF', 'F', ...)
    round: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    tournament: Mapped["Tournament"] = relationship(back_populates="matches")

    __table_args__ = (
        Index("idx_matches_tournament", "tournament_id", "id"),
        CheckConstraint(
            "player1_sets >= 0 AND player2_sets >= 0", name="ck_match_sets_non_negative"
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<Match(id={self.id}, {self.player1_id} vs {self.player2_id}, "
            f"{self.player1_sets}-{self.player2_sets})>"
        )


# =============================================================================
# Rating Audit Models
# =============================================================================

class RatingHistory(Base):
    """
    Audit record of one player's rating change in one match.

    Rows are written only by the recalculation engine. A pass deletes the
    rows of every tournament it replays and inserts fresh ones, so no row
    is ever edited in place.
    """
    __tablename__ = "rating_history"

    id: Mapped[int] = mapped_column(primary_key=True)
    player_id: Mapped[int] = mapped_column(ForeignKey("players.id"), nullable=False)
    tournament_id: Mapped[int] = mapped_column(
        ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False
    )
    match_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("matches.id", ondelete="CASCADE"), nullable=True
    )

    # Rating after this match and the change that produced it
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    rating_change: Mapped[int] = mapped_column(Integer, nullable=False)

    reason: Mapped[str] = mapped_column(String(30), nullable=False, default="MATCH_COMPLETED")
    recorded_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_rating_history_player", "player_id", "id"),
        Index("idx_rating_history_tournament", "tournament_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<RatingHistory(player_id={self.player_id}, tournament_id={self.tournament_id}, "
            f"change={self.rating_change:+d}, rating={self.rating})>"
        )


class UpdateLog(Base):
    """
    Audit log for recalculation runs.

    Records each pass (full or from a tournament) with its outcome so that
    failed runs can be found and retried.
    """
    __tablename__ = "update_log"

    id: Mapped[int] = mapped_column(primary_key=True)

    # 'recalculate_all' or 'recalculate_from'
    update_type: Mapped[str] = mapped_column(String(50), nullable=False)

    details: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    duration_seconds: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_update_log_type_date", "update_type", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<UpdateLog(type='{self.update_type}', success={self.success})>"
