"""
Chronological rating recalculation, the single source of truth for ratings.

Every completed tournament's starting ratings depend on the outcome of every
earlier completed tournament, so a change anywhere in history can invalidate
everything after it. The recalculator never patches live state
incrementally. Each pass:

1. Loads every completed tournament, with participants and matches, into
   immutable snapshots ordered by (created_at, id), one query per table
2. Replays them in order in memory, threading each tournament's ending
   ratings into the next, with no DB calls
3. Writes player ratings, participant snapshots and rating history in bulk

Partial recalculation (recalculate_from):
- There is no sound way to recompute one tournament alone. The full prefix
  is replayed in memory to derive the starting state, then replay continues
  through every later tournament.
- The stored snapshots and rating history of the prefix are compared with
  the replayed ones. If they disagree, earlier history was corrupted and
  the pass widens to a full recalculation.

The caller owns the transaction (see rating.service for the exclusive,
all-or-nothing wrapper). Nothing is committed here.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from pingrank.db.models import (
    TOURNAMENT_STATUS_COMPLETED,
    Player,
    RatingHistory,
    Tournament,
    TournamentParticipant,
)
from pingrank.rating.constants import (
    DEFAULT_RATING,
    HISTORY_REASON_MATCH,
    K_FACTOR,
    RATING_SCALE,
)
from pingrank.rating.errors import (
    InputIntegrityError,
    PersistenceError,
    RatingWarning,
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

logger = logging.getLogger(__name__)

MODE_FULL = "recalculate_all"
MODE_FROM = "recalculate_from"


@dataclass
class RecalculationResult:
    """Summary returned by RatingRecalculator.recalculate_all() / recalculate_from()."""
    mode: str = MODE_FULL
    requested_tournament_id: int | None = None
    # First tournament whose snapshots and history were rewritten
    start_tournament_id: int | None = None
    tournaments_replayed: int = 0
    tournaments_committed: int = 0
    matches_applied: int = 0
    history_written: int = 0
    snapshots_updated: int = 0
    players_updated: int = 0
    widened: bool = False
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode,
            "requested_tournament_id": self.requested_tournament_id,
            "start_tournament_id": self.start_tournament_id,
            "tournaments_replayed": self.tournaments_replayed,
            "tournaments_committed": self.tournaments_committed,
            "matches_applied": self.matches_applied,
            "history_written": self.history_written,
            "snapshots_updated": self.snapshots_updated,
            "players_updated": self.players_updated,
            "widened": self.widened,
            "warnings": list(self.warnings),
        }


class RatingRecalculator:
    """
    Replays completed tournaments chronologically and writes the results.

    Usage, after completing a tournament, correcting a score or inserting a
    tournament earlier in time:

        recalculator = RatingRecalculator()
        result = recalculator.recalculate_from(session, tournament_id)
        session.commit()

    Usage, after deleting a tournament, or to rebuild everything:

        result = recalculator.recalculate_all(session)
        session.commit()
    """

    def __init__(
        self,
        k_factor: int = K_FACTOR,
        default_rating: int = DEFAULT_RATING,
        scale: float = RATING_SCALE,
    ) -> None:
        self.k_factor = k_factor
        self.default_rating = default_rating
        self.scale = scale

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def recalculate_all(self, session: Session) -> RecalculationResult:
        """
        Full pass: replay every completed tournament from unrated players.

        Args:
            session: Active SQLAlchemy session. Caller is responsible for commit.
        """
        result = RecalculationResult(mode=MODE_FULL)
        session.flush()

        tournaments = self._load_completed_tournaments(session, result)
        logger.info("Full recalculation over %d completed tournament(s)", len(tournaments))

        rolling = self._initial_ratings(session)
        replays = self._replay(tournaments, rolling, result)

        result.start_tournament_id = tournaments[0].id if tournaments else None
        self._commit(session, tournaments, replays, rolling, 0, result, full=True)
        return result

    def recalculate_from(self, session: Session, tournament_id: int) -> RecalculationResult:
        """
        Recalculate from a tournament onward.

        Replays the whole chronological prefix to derive the starting state,
        verifies it against the stored snapshots and history, then rewrites the
        tournament at or after tournament_id and everything later.

        Args:
            session: Active SQLAlchemy session. Caller is responsible for commit.
            tournament_id: Tournament whose data changed.

        Raises:
            TournamentNotFoundError: if the tournament does not exist.
        """
        result = RecalculationResult(mode=MODE_FROM, requested_tournament_id=tournament_id)
        session.flush()

        target = session.get(Tournament, tournament_id)
        if target is None:
            raise TournamentNotFoundError(tournament_id)

        tournaments = self._load_completed_tournaments(session, result)
        start_index = self._find_start_index(tournaments, target)

        rolling = self._initial_ratings(session)
        replays = self._replay(tournaments, rolling, result)

        mismatch = self._verify_prefix(session, tournaments[:start_index], replays[:start_index])
        if mismatch is not None:
            message = f"{mismatch}; widening to a full recalculation"
            logger.warning("%s", message)
            result.warnings.append(message)
            result.widened = True
            start_index = 0

        if start_index < len(tournaments):
            result.start_tournament_id = tournaments[start_index].id
        logger.info(
            "Recalculation from tournament %s: rewriting %d of %d completed tournament(s)",
            tournament_id,
            len(tournaments) - start_index,
            len(tournaments),
        )

        self._commit(
            session, tournaments, replays, rolling, start_index, result, full=result.widened
        )
        return result

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _load_completed_tournaments(
        self,
        session: Session,
        result: RecalculationResult,
    ) -> list[TournamentSnapshot]:
        """
        Load all completed tournaments as immutable snapshots in replay order.

        Raises:
            InputIntegrityError: if any completed tournament has no created_at.
        """
        stmt = (
            select(Tournament)
            .where(Tournament.status == TOURNAMENT_STATUS_COMPLETED)
            .options(selectinload(Tournament.participants), selectinload(Tournament.matches))
            .order_by(Tournament.id.asc())
        )
        rows = session.execute(stmt).scalars().all()

        for row in rows:
            if row.created_at is None:
                raise InputIntegrityError(
                    f"Completed tournament {row.id} has no created_at",
                    tournament_id=row.id,
                )

        # Ordering ties fall back to id; sorted() is stable so this is explicit
        rows = sorted(rows, key=lambda t: (t.created_at, t.id))
        for previous, current in zip(rows, rows[1:]):
            if previous.created_at == current.created_at:
                self._warn(
                    result,
                    UnresolvableOrderingError(
                        f"Tournaments {previous.id} and {current.id} share created_at "
                        f"{current.created_at.isoformat()}; ordered by id"
                    ),
                )

        return [self._snapshot(row) for row in rows]

    @staticmethod
    def _snapshot(row: Tournament) -> TournamentSnapshot:
        return TournamentSnapshot(
            id=row.id,
            type=row.type,
            created_at=row.created_at,
            participants=tuple(
                ParticipantSnapshot(
                    player_id=p.player_id,
                    stored_rating_at_time=p.rating_at_time,
                    participant_id=p.id,
                )
                for p in sorted(row.participants, key=lambda p: p.id)
            ),
            matches=tuple(
                MatchSnapshot(
                    id=m.id,
                    player1_id=m.player1_id,
                    player2_id=m.player2_id,
                    player1_sets=m.player1_sets or 0,
                    player2_sets=m.player2_sets or 0,
                    player1_forfeit=bool(m.player1_forfeit),
                    player2_forfeit=bool(m.player2_forfeit),
                )
                for m in sorted(row.matches, key=lambda m: m.id)
            ),
        )

    @staticmethod
    def _initial_ratings(session: Session) -> dict[int, int | None]:
        """Every known player starts unrated; ratings come only from replay."""
        player_ids = session.execute(select(Player.id)).scalars().all()
        return {pid: None for pid in player_ids}

    @staticmethod
    def _find_start_index(tournaments: list[TournamentSnapshot], target: Tournament) -> int:
        """
        Index of the earliest completed tournament at or after target.

        Returns len(tournaments) when nothing completed sits at or after it.
        """
        for index, snapshot in enumerate(tournaments):
            if snapshot.id == target.id:
                return index

        if target.created_at is None:
            # Cannot place it in time; everything is potentially affected
            return 0

        target_key = (target.created_at, target.id)
        for index, snapshot in enumerate(tournaments):
            if (snapshot.created_at, snapshot.id) >= target_key:
                return index
        return len(tournaments)

    # ------------------------------------------------------------------
    # Core computation (pure in-memory, no DB calls)
    # ------------------------------------------------------------------

    def _replay(
        self,
        tournaments: list[TournamentSnapshot],
        rolling: dict[int, int | None],
        result: RecalculationResult,
    ) -> list[ReplayResult]:
        """
        Replay tournaments in order, threading ratings forward.

        Mutates rolling in-place so that afterwards it holds every player's
        final rating.
        """
        replays: list[ReplayResult] = []
        for tournament in tournaments:
            replay = replay_tournament(
                tournament,
                rolling,
                k_factor=self.k_factor,
                default_rating=self.default_rating,
                scale=self.scale,
            )
            rolling.update(replay.ending_ratings)
            for anomaly in replay.anomalies:
                result.warnings.append(str(anomaly))

            logger.debug(
                "Replayed tournament %s: %d match(es) applied, %d skipped",
                tournament.id,
                replay.matches_applied,
                replay.matches_skipped,
            )
            replays.append(replay)
            result.tournaments_replayed += 1
            result.matches_applied += replay.matches_applied
        return replays

    @staticmethod
    def _verify_prefix(
        session: Session,
        tournaments: list[TournamentSnapshot],
        replays: list[ReplayResult],
    ) -> str | None:
        """
        Compare the stored state of tournaments that will not be rewritten
        with their replay.

        Both the participant snapshots and the rating history rows must
        match: a stale result in the last prefix tournament leaves every
        snapshot intact but its history wrong.

        Returns a description of the first mismatch, or None.
        """
        for tournament, replay in zip(tournaments, replays):
            for participant in tournament.participants:
                if participant.stored_rating_at_time != replay.snapshots[participant.player_id]:
                    return (
                        f"Stored snapshot for player {participant.player_id} in "
                        f"tournament {tournament.id} does not match replay"
                    )

        if not tournaments:
            return None

        stored: dict[int, Counter] = {t.id: Counter() for t in tournaments}
        rows = session.execute(
            select(
                RatingHistory.tournament_id,
                RatingHistory.match_id,
                RatingHistory.player_id,
                RatingHistory.rating_change,
                RatingHistory.rating,
            ).where(RatingHistory.tournament_id.in_(list(stored)))
        ).all()
        for tournament_id, *row in rows:
            stored[tournament_id][tuple(row)] += 1

        for tournament, replay in zip(tournaments, replays):
            expected = Counter(
                (entry.match_id, entry.player_id, entry.rating_change, entry.rating)
                for entry in replay.history
            )
            if stored[tournament.id] != expected:
                return f"Stored rating history of tournament {tournament.id} does not match replay"
        return None

    # ------------------------------------------------------------------
    # Bulk DB writes
    # ------------------------------------------------------------------

    def _commit(
        self,
        session: Session,
        tournaments: list[TournamentSnapshot],
        replays: list[ReplayResult],
        rolling: dict[int, int | None],
        start_index: int,
        result: RecalculationResult,
        *,
        full: bool,
    ) -> None:
        """
        Write the pass results in bulk operations.

        1. Player ratings that differ from the replayed value
        2. Participant snapshots of every rewritten tournament
        3. Rating history: delete rows of the rewritten range (all rows on a
           full pass, plus any left on tournaments no longer completed),
           then insert the replayed rows

        Raises:
            PersistenceError: if any write fails. The session is left for the
                caller to roll back.
        """
        rewritten = list(zip(tournaments[start_index:], replays[start_index:]))
        result.tournaments_committed = len(rewritten)

        try:
            # -- Player ratings --
            stored = dict(session.execute(select(Player.id, Player.rating)).all())
            player_rows = [
                {"id": pid, "rating": rating}
                for pid, rating in sorted(rolling.items())
                if pid in stored and stored[pid] != rating
            ]
            if player_rows:
                session.execute(update(Player), player_rows)
            result.players_updated = len(player_rows)

            # -- Participant snapshots --
            snapshot_rows = [
                {"id": participant.participant_id, "rating_at_time": replay.snapshots[participant.player_id]}
                for tournament, replay in rewritten
                for participant in tournament.participants
                if participant.participant_id is not None
                and participant.stored_rating_at_time != replay.snapshots[participant.player_id]
            ]
            if snapshot_rows:
                session.execute(update(TournamentParticipant), snapshot_rows)
            result.snapshots_updated = len(snapshot_rows)

            # -- Rating history (replace, never edit) --
            completed_ids = [t.id for t in tournaments]
            if full:
                session.execute(delete(RatingHistory))
            else:
                rewritten_ids = [t.id for t, _ in rewritten]
                if rewritten_ids:
                    session.execute(
                        delete(RatingHistory).where(RatingHistory.tournament_id.in_(rewritten_ids))
                    )
                session.execute(
                    delete(RatingHistory).where(RatingHistory.tournament_id.not_in(completed_ids))
                )

            history_rows = [
                {
                    "player_id": entry.player_id,
                    "tournament_id": entry.tournament_id,
                    "match_id": entry.match_id,
                    "rating": entry.rating,
                    "rating_change": entry.rating_change,
                    "reason": HISTORY_REASON_MATCH,
                }
                for _, replay in rewritten
                for entry in replay.history
            ]
            if history_rows:
                session.execute(insert(RatingHistory), history_rows)
            result.history_written = len(history_rows)

            session.flush()
        except SQLAlchemyError as exc:
            logger.error("Writing recalculation results failed: %s", exc)
            raise PersistenceError(f"Failed to write recalculation results: {exc}") from exc

        # ORM objects already loaded in this session must see the new values
        session.expire_all()

        logger.info(
            "Recalculation wrote %d player rating(s), %d snapshot(s), %d history row(s)",
            result.players_updated,
            result.snapshots_updated,
            result.history_written,
        )

    @staticmethod
    def _warn(result: RecalculationResult, warning: RatingWarning) -> None:
        logger.warning("%s", warning)
        result.warnings.append(str(warning))
