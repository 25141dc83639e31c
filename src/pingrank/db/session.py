"""
Database session management for Pingrank.

Provides SQLAlchemy engine and session factory with connection pooling
configuration. Uses the settings from config.py.

Usage:
    # As a context manager (recommended for scripts)
    from pingrank.db import get_session

    with get_session() as session:
        players = session.query(Player).all()
        # Commits automatically on exit, rolls back on exception
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from pingrank.config import settings


def get_engine(database_url: str | None = None) -> Engine:
    """
    Create SQLAlchemy engine with connection pooling.

    The engine is configured with:
    - Connection pool for efficient reuse (server databases only)
    - Echo mode only when LOG_LEVEL=DEBUG
    - Pre-ping to verify connections before use (handles stale connections)
    """
    url = database_url or settings.database_url

    if url.startswith("sqlite"):
        # SQLite uses a single-file or in-memory pool; pool sizing does not apply
        return create_engine(url, echo=settings.log_level == "DEBUG")

    return create_engine(
        url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,
        echo=settings.log_level == "DEBUG",
    )


# Create the engine lazily (singleton pattern via module-level variable)
_engine: Engine | None = None


def _get_engine() -> Engine:
    """Get or create the singleton engine instance."""
    global _engine
    if _engine is None:
        _engine = get_engine()
    return _engine


# Session factory - creates new sessions bound to our engine
SessionLocal = sessionmaker(
    autocommit=False,  # We'll handle commits explicitly
    autoflush=False,  # Don't auto-flush before queries (more control)
    bind=_get_engine(),
)


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """
    Context manager for database sessions.

    Automatically commits on successful exit, rolls back on exception.
    This is the recommended way to use sessions in scripts.

    Raises:
        Any exception from the database operation (after rollback)
    """
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
