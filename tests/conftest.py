"""
Pytest configuration and fixtures.

This file is automatically loaded by pytest and provides
shared fixtures for all tests.
"""

import os

# Keep the module-level engine off any real database
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine, update
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from pingrank.db.models import (
    TOURNAMENT_STATUS_ACTIVE,
    TOURNAMENT_STATUS_COMPLETED,
    Base,
    Match,
    Player,
    Tournament,
    TournamentParticipant,
)


class HistoryBuilder:
    """
    Writes players, tournaments and matches for a test.

    Tournaments get created_at one day apart in the order they are built,
    unless a time is given. Matches are inserted in the order listed, which
    is the order they are replayed in.
    """

    def __init__(self, session: Session):
        self.session = session
        self._clock = datetime(2026, 1, 1, 12, 0, 0)

    def player(self, name: str = "Player", rating: int | None = None) -> Player:
        player = Player(name=name, rating=rating)
        self.session.add(player)
        self.session.flush()
        return player

    def players(self, *names: str) -> list[Player]:
        return [self.player(name) for name in names]

    def tournament(
        self,
        players,
        matches=(),
        *,
        name: str = "Club Night",
        completed: bool = True,
        created_at: datetime | None = None,
        missing_created_at: bool = False,
    ) -> Tournament:
        """
        Build a tournament.

        Args:
            players: Participants (Player objects).
            matches: Tuples (player1, player2, player1_sets, player2_sets) or
                (player1, player2, player1_sets, player2_sets, forfeit_side).
                A player may be None for a bye slot.
        """
        if created_at is None:
            created_at = self._clock
            self._clock += timedelta(days=1)

        tournament = Tournament(
            name=name,
            status=TOURNAMENT_STATUS_COMPLETED if completed else TOURNAMENT_STATUS_ACTIVE,
            created_at=created_at,
        )
        self.session.add(tournament)
        self.session.flush()

        for player in players:
            self.session.add(TournamentParticipant(tournament_id=tournament.id, player_id=player.id))
        self.session.flush()

        for spec in matches:
            self.match(tournament, *spec)

        if missing_created_at:
            self.session.execute(
                update(Tournament).where(Tournament.id == tournament.id).values(created_at=None)
            )
            self.session.expire(tournament)

        return tournament

    def match(
        self,
        tournament: Tournament,
        player1,
        player2,
        player1_sets: int = 0,
        player2_sets: int = 0,
        forfeit_side: int | None = None,
    ) -> Match:
        match = Match(
            tournament_id=tournament.id,
            player1_id=player1.id if player1 is not None else None,
            player2_id=player2.id if player2 is not None else None,
            player1_sets=player1_sets,
            player2_sets=player2_sets,
            player1_forfeit=forfeit_side == 1,
            player2_forfeit=forfeit_side == 2,
        )
        self.session.add(match)
        self.session.flush()
        return match


@pytest.fixture(scope="session")
def test_engine():
    """
    Create a test database engine.

    Uses SQLite in-memory for fast tests that don't need
    PostgreSQL-specific features.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
    )
    return engine


@pytest.fixture(scope="session")
def tables(test_engine):
    """
    Create all tables for testing.

    This fixture runs once per test session.
    """
    Base.metadata.create_all(test_engine)
    yield
    Base.metadata.drop_all(test_engine)


@pytest.fixture
def db_session(test_engine, tables):
    """
    Create a database session for a test.

    Each test gets its own session with automatic rollback,
    ensuring tests don't affect each other.
    """
    connection = test_engine.connect()
    transaction = connection.begin()

    Session = sessionmaker(bind=connection)
    session = Session()

    yield session

    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture
def builder(db_session):
    return HistoryBuilder(db_session)


@pytest.fixture
def history_builder():
    """The HistoryBuilder class, for tests that manage their own sessions."""
    return HistoryBuilder


@pytest.fixture
def shared_engine():
    """
    In-memory SQLite engine whose single connection is shared by every
    session, for code that opens and commits its own sessions.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(shared_engine):
    return sessionmaker(bind=shared_engine, autoflush=False)
