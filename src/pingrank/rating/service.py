"""
Exclusive, all-or-nothing entry points for rating recalculation.

Every public operation here:
- holds the recalculation lock for the whole pass, so two passes never
  interleave their writes
- runs in one transaction, so readers see either the prior state or the
  complete new one
- leaves an update_log row behind, in the same transaction on success and
  in a separate one on failure

Usage:
    from pingrank.rating.service import recalculate_all, recalculate_from

    result = recalculate_from(tournament_id)
    print(result.to_dict())
"""

from __future__ import annotations

import logging
import time
from decimal import Decimal
from typing import Any, Callable, TypeVar

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from pingrank.config import get_settings
from pingrank.db.models import UpdateLog
from pingrank.db.session import SessionLocal, _get_engine
from pingrank.rating.errors import PersistenceError
from pingrank.rating.recalculator import (
    MODE_FROM,
    MODE_FULL,
    RatingRecalculator,
    RecalculationResult,
)
from pingrank.services import tournament_events
from pingrank.services.tournament_events import EventOutcome
from pingrank.tasks.locks import exclusive_recalculation

logger = logging.getLogger(__name__)

T = TypeVar("T")


def build_recalculator() -> RatingRecalculator:
    """Create a recalculator configured from settings."""
    settings = get_settings()
    return RatingRecalculator(
        k_factor=settings.rating_k_factor,
        default_rating=settings.rating_default,
        scale=settings.rating_scale,
    )


def _resolve(
    session_factory: sessionmaker | None,
    engine: Engine | None,
) -> tuple[sessionmaker, Engine]:
    factory = session_factory or SessionLocal
    if engine is None:
        engine = factory.kw.get("bind") or _get_engine()
    return factory, engine


def _duration(started: float) -> Decimal:
    return Decimal(str(round(time.monotonic() - started, 2)))


def _record_failure(
    session_factory: sessionmaker,
    update_type: str,
    exc: BaseException,
    started: float,
    details: dict[str, Any] | None,
) -> None:
    """Write a failed update_log row in its own transaction."""
    session = session_factory()
    try:
        session.add(
            UpdateLog(
                update_type=update_type,
                details=details,
                success=False,
                error_message=f"{type(exc).__name__}: {exc}",
                duration_seconds=_duration(started),
            )
        )
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Could not record failed %s in update_log", update_type)
    finally:
        session.close()


def _record_success(
    session: Session,
    result: RecalculationResult,
    started: float,
    details: dict[str, Any] | None = None,
) -> None:
    payload = result.to_dict()
    if details:
        payload.update(details)
    session.add(
        UpdateLog(
            update_type=result.mode,
            details=payload,
            success=True,
            duration_seconds=_duration(started),
        )
    )


def with_exclusive_recalculation(
    fn: Callable[[Session], T],
    *,
    update_type: str = MODE_FULL,
    details: dict[str, Any] | None = None,
    session_factory: sessionmaker | None = None,
    engine: Engine | None = None,
    dry_run: bool = False,
) -> T:
    """
    Run fn(session) under the recalculation lock in a single transaction.

    On success the transaction is committed (or rolled back when dry_run is
    set). On any error it is rolled back, so the prior ratings remain
    authoritative, a failed update_log row is written and the error is
    re-raised. The lock is released on every exit path.

    Raises:
        RecalculationInProgressError: if another pass holds the lock.
        PersistenceError: if the commit fails.
    """
    settings = get_settings()
    session_factory, engine = _resolve(session_factory, engine)
    started = time.monotonic()

    with exclusive_recalculation(
        engine,
        name=settings.recalc_lock_name,
        timeout_seconds=settings.recalc_lock_timeout_seconds,
        poll_interval_seconds=settings.recalc_lock_poll_seconds,
    ):
        session = session_factory()
        try:
            value = fn(session)
            if dry_run:
                logger.info("Dry run: rolling back %s", update_type)
                session.rollback()
                return value
            try:
                session.commit()
            except SQLAlchemyError as exc:
                raise PersistenceError(f"Failed to commit {update_type}: {exc}") from exc
            return value
        except Exception as exc:
            session.rollback()
            logger.error("%s failed, prior ratings kept: %s", update_type, exc)
            _record_failure(session_factory, update_type, exc, started, details)
            raise
        finally:
            session.close()


# ---------------------------------------------------------------------------
# Recalculation
# ---------------------------------------------------------------------------

def recalculate_all(
    *,
    session_factory: sessionmaker | None = None,
    engine: Engine | None = None,
    dry_run: bool = False,
) -> RecalculationResult:
    """Recompute every rating from the first completed tournament."""
    recalculator = build_recalculator()

    def run(session: Session) -> RecalculationResult:
        started = time.monotonic()
        result = recalculator.recalculate_all(session)
        _record_success(session, result, started)
        return result

    return with_exclusive_recalculation(
        run,
        update_type=MODE_FULL,
        session_factory=session_factory,
        engine=engine,
        dry_run=dry_run,
    )


def recalculate_from(
    tournament_id: int,
    *,
    session_factory: sessionmaker | None = None,
    engine: Engine | None = None,
    dry_run: bool = False,
) -> RecalculationResult:
    """Recompute ratings from tournament_id onward."""
    recalculator = build_recalculator()

    def run(session: Session) -> RecalculationResult:
        started = time.monotonic()
        result = recalculator.recalculate_from(session, tournament_id)
        _record_success(session, result, started)
        return result

    return with_exclusive_recalculation(
        run,
        update_type=MODE_FROM,
        details={"requested_tournament_id": tournament_id},
        session_factory=session_factory,
        engine=engine,
        dry_run=dry_run,
    )


# ---------------------------------------------------------------------------
# Events followed by recalculation
# ---------------------------------------------------------------------------

def _recalculate_after(
    session: Session,
    recalculator: RatingRecalculator,
    outcome: EventOutcome,
    event: str,
) -> RecalculationResult | None:
    if not outcome.affects_ratings:
        logger.info("%s on tournament %s does not affect ratings", event, outcome.tournament_id)
        return None

    started = time.monotonic()
    if outcome.requires_full_pass:
        result = recalculator.recalculate_all(session)
    else:
        result = recalculator.recalculate_from(session, outcome.tournament_id)
    _record_success(session, result, started, {"event": event})
    return result


def _run_event(
    event: str,
    details: dict[str, Any],
    mutate: Callable[[Session], EventOutcome],
    session_factory: sessionmaker | None,
    engine: Engine | None,
) -> RecalculationResult | None:
    recalculator = build_recalculator()

    def run(session: Session) -> RecalculationResult | None:
        outcome = mutate(session)
        return _recalculate_after(session, recalculator, outcome, event)

    return with_exclusive_recalculation(
        run,
        update_type=event,
        details=details,
        session_factory=session_factory,
        engine=engine,
    )


def complete_tournament_and_recalculate(
    tournament_id: int,
    *,
    session_factory: sessionmaker | None = None,
    engine: Engine | None = None,
) -> RecalculationResult | None:
    """Mark a tournament completed and recalculate from it.

    Returns None when the tournament was already completed.
    """
    return _run_event(
        "complete_tournament",
        {"tournament_id": tournament_id},
        lambda session: tournament_events.complete_tournament(session, tournament_id),
        session_factory,
        engine,
    )


def correct_match_and_recalculate(
    match_id: int,
    player1_sets: int,
    player2_sets: int,
    *,
    player1_forfeit: bool = False,
    player2_forfeit: bool = False,
    session_factory: sessionmaker | None = None,
    engine: Engine | None = None,
) -> RecalculationResult | None:
    """Correct a match score and recalculate from its tournament.

    Returns None when the match belongs to a tournament that is not completed.
    """
    return _run_event(
        "correct_match",
        {"match_id": match_id},
        lambda session: tournament_events.update_match_result(
            session,
            match_id,
            player1_sets,
            player2_sets,
            player1_forfeit=player1_forfeit,
            player2_forfeit=player2_forfeit,
        ),
        session_factory,
        engine,
    )


def delete_tournament_and_recalculate(
    tournament_id: int,
    *,
    session_factory: sessionmaker | None = None,
    engine: Engine | None = None,
) -> RecalculationResult | None:
    """Delete a tournament; a completed one triggers a full pass."""
    return _run_event(
        "delete_tournament",
        {"tournament_id": tournament_id},
        lambda session: tournament_events.delete_tournament(session, tournament_id),
        session_factory,
        engine,
    )
