"""
Tests for chronological recalculation against a SQLite database.

Expected ratings are worked out by hand with K=32 and scale 400:
- 1200 v 1200, winner: +16 / -16
- 1216 v 1200, favourite wins: +15 / -15
- 1184 v 1185, lower rated wins: +16 / -16
- 1216 v 1184, favourite wins: +15 / -15
- 1184 v 1216, underdog wins: +17 / -17
"""

from datetime import datetime

import pytest
from sqlalchemy import func, select, update

from pingrank.db.models import RatingHistory, Tournament, TournamentParticipant
from pingrank.rating.errors import InputIntegrityError, TournamentNotFoundError
from pingrank.rating.queries import (
    player_rating_history,
    post_tournament_rating,
    tournament_snapshots,
)
from pingrank.rating.recalculator import MODE_FROM, MODE_FULL, RatingRecalculator
from pingrank.services.tournament_events import (
    complete_tournament,
    delete_tournament,
    update_match_result,
)


@pytest.fixture
def recalculator():
    return RatingRecalculator()


def _history_count(session) -> int:
    return session.execute(select(func.count(RatingHistory.id))).scalar()


def _set_snapshot(session, tournament, player, rating):
    session.execute(
        update(TournamentParticipant)
        .where(
            TournamentParticipant.tournament_id == tournament.id,
            TournamentParticipant.player_id == player.id,
        )
        .values(rating_at_time=rating)
    )


class TestRecalculateAll:
    """Full passes from an unrated population."""

    def test_single_round_robin(self, db_session, builder, recalculator):
        a, b, c = builder.players("Ana", "Ben", "Cai")
        tournament = builder.tournament(
            [a, b, c],
            [(a, b, 3, 1), (a, c, 3, 0), (b, c, 3, 2)],
        )

        result = recalculator.recalculate_all(db_session)

        assert result.mode == MODE_FULL
        assert result.tournaments_replayed == 1
        assert result.matches_applied == 3
        assert result.history_written == 6
        assert (a.rating, b.rating, c.rating) == (1231, 1200, 1169)
        assert tournament_snapshots(db_session, tournament.id) == {a.id: 1200, b.id: 1200, c.id: 1200}
        assert post_tournament_rating(db_session, tournament.id, c.id) == 1169

    def test_ratings_carry_into_next_tournament(self, db_session, builder, recalculator):
        a, b = builder.players("Ana", "Ben")
        first = builder.tournament([a, b], [(a, b, 3, 0)])
        second = builder.tournament([a, b], [(a, b, 3, 2)])

        recalculator.recalculate_all(db_session)

        assert tournament_snapshots(db_session, first.id) == {a.id: 1200, b.id: 1200}
        assert tournament_snapshots(db_session, second.id) == {a.id: 1216, b.id: 1184}
        assert (a.rating, b.rating) == (1231, 1169)

    def test_deterministic_and_idempotent(self, db_session, builder, recalculator):
        a, b, c = builder.players("Ana", "Ben", "Cai")
        builder.tournament([a, b, c], [(a, b, 3, 1), (c, a, 3, 2)])
        builder.tournament([a, b, c], [(b, c, 3, 0)])

        recalculator.recalculate_all(db_session)
        first_ratings = (a.rating, b.rating, c.rating)
        first_history = [tuple(row) for row in player_rating_history(db_session, a.id)]

        again = recalculator.recalculate_all(db_session)

        assert (a.rating, b.rating, c.rating) == first_ratings
        assert [tuple(row) for row in player_rating_history(db_session, a.id)] == first_history
        assert again.players_updated == 0
        assert again.snapshots_updated == 0

    def test_stored_ratings_are_ignored(self, db_session, builder, recalculator):
        """A full pass starts everyone unrated, whatever the table holds."""
        a = builder.player("Ana", rating=1750)
        b = builder.player("Ben", rating=900)
        builder.tournament([a, b], [(a, b, 3, 0)])

        recalculator.recalculate_all(db_session)

        assert (a.rating, b.rating) == (1216, 1184)

    def test_player_without_completed_matches_becomes_unrated(self, db_session, builder, recalculator):
        stale = builder.player("Stale", rating=1400)

        result = recalculator.recalculate_all(db_session)

        assert stale.rating is None
        assert result.players_updated == 1

    def test_bye_only_tournament_is_neutral(self, db_session, builder, recalculator):
        a = builder.player("Ana")
        tournament = builder.tournament([a], [(a, None, 0, 0)])

        result = recalculator.recalculate_all(db_session)

        assert a.rating is None
        assert result.history_written == 0
        assert tournament_snapshots(db_session, tournament.id) == {a.id: 1200}

    def test_forfeit_and_unplayed_are_neutral(self, db_session, builder, recalculator):
        a, b, c = builder.players("Ana", "Ben", "Cai")
        builder.tournament(
            [a, b, c],
            [(a, b, 3, 0), (b, c, 0, 0, 2), (a, c, 0, 0)],
        )

        recalculator.recalculate_all(db_session)

        assert (a.rating, b.rating, c.rating) == (1216, 1184, None)
        assert _history_count(db_session) == 2

    def test_active_tournaments_are_skipped(self, db_session, builder, recalculator):
        a, b = builder.players("Ana", "Ben")
        builder.tournament([a, b], [(a, b, 3, 0)], completed=False)

        result = recalculator.recalculate_all(db_session)

        assert result.tournaments_replayed == 0
        assert (a.rating, b.rating) == (None, None)

    def test_replay_follows_created_at_not_id(self, db_session, builder, recalculator):
        a, b = builder.players("Ana", "Ben")
        later = builder.tournament([a, b], [(a, b, 3, 0)], created_at=datetime(2026, 3, 1))
        earlier = builder.tournament([a, b], [(b, a, 3, 0)], created_at=datetime(2026, 2, 1))

        recalculator.recalculate_all(db_session)

        assert tournament_snapshots(db_session, earlier.id) == {a.id: 1200, b.id: 1200}
        assert tournament_snapshots(db_session, later.id) == {a.id: 1184, b.id: 1216}

    def test_created_at_tie_warns_and_orders_by_id(self, db_session, builder, recalculator):
        a, b = builder.players("Ana", "Ben")
        same_time = datetime(2026, 5, 5, 18, 0)
        first = builder.tournament([a, b], [(a, b, 3, 0)], created_at=same_time)
        second = builder.tournament([a, b], [(b, a, 3, 0)], created_at=same_time)

        result = recalculator.recalculate_all(db_session)

        assert any("share created_at" in warning for warning in result.warnings)
        assert tournament_snapshots(db_session, first.id) == {a.id: 1200, b.id: 1200}
        assert tournament_snapshots(db_session, second.id) == {a.id: 1216, b.id: 1184}

    def test_missing_created_at_raises(self, db_session, builder, recalculator):
        a, b = builder.players("Ana", "Ben")
        tournament = builder.tournament([a, b], [(a, b, 3, 0)], missing_created_at=True)

        with pytest.raises(InputIntegrityError) as exc_info:
            recalculator.recalculate_all(db_session)
        assert exc_info.value.tournament_id == tournament.id

    def test_match_with_outsider_raises(self, db_session, builder, recalculator):
        a, b, outsider = builder.players("Ana", "Ben", "Out")
        builder.tournament([a, b], [(a, outsider, 3, 0)])

        with pytest.raises(InputIntegrityError):
            recalculator.recalculate_all(db_session)


class TestRecalculateFrom:
    """Partial passes anchored on one tournament."""

    def test_unknown_tournament(self, db_session, recalculator):
        with pytest.raises(TournamentNotFoundError):
            recalculator.recalculate_from(db_session, 999_999)

    def test_correction_cascades_to_later_tournaments(self, db_session, builder, recalculator):
        a, b = builder.players("Ana", "Ben")
        first = builder.tournament([a, b], [(a, b, 3, 1)])
        second = builder.tournament([a, b], [(a, b, 3, 0)])
        recalculator.recalculate_all(db_session)
        assert (a.rating, b.rating) == (1231, 1169)

        outcome = update_match_result(db_session, first.matches[0].id, 1, 3)
        result = recalculator.recalculate_from(db_session, outcome.tournament_id)

        assert result.mode == MODE_FROM
        assert result.start_tournament_id == first.id
        assert result.tournaments_committed == 2
        assert not result.widened
        assert tournament_snapshots(db_session, second.id) == {a.id: 1184, b.id: 1216}
        assert (a.rating, b.rating) == (1201, 1199)

    def test_three_tournament_cascade(self, db_session, builder, recalculator):
        """An edit in the first tournament flows through every later snapshot."""
        a, b = builder.players("Ana", "Ben")
        first = builder.tournament([a, b], [(a, b, 3, 1)])
        second = builder.tournament([a, b], [(a, b, 3, 0)])
        third = builder.tournament([a, b], [(b, a, 3, 2)])
        recalculator.recalculate_all(db_session)
        assert tournament_snapshots(db_session, second.id) == {a.id: 1216, b.id: 1184}
        assert tournament_snapshots(db_session, third.id) == {a.id: 1231, b.id: 1169}

        update_match_result(db_session, first.matches[0].id, 1, 3)
        result = recalculator.recalculate_from(db_session, first.id)

        assert result.tournaments_committed == 3
        assert not result.widened
        # Second tournament now starts from the corrected first result
        assert tournament_snapshots(db_session, second.id) == {a.id: 1184, b.id: 1216}
        assert post_tournament_rating(db_session, second.id, a.id) == 1201
        assert post_tournament_rating(db_session, second.id, b.id) == 1199
        # Third starts from the second's new ending ratings
        assert tournament_snapshots(db_session, third.id) == {a.id: 1201, b.id: 1199}
        assert (a.rating, b.rating) == (1185, 1215)

    def test_earlier_tournaments_untouched(self, db_session, builder, recalculator):
        a, b, c = builder.players("Ana", "Ben", "Cai")
        first = builder.tournament([a, b], [(a, b, 3, 0)])
        second = builder.tournament([a, c], [(c, a, 3, 0)])
        recalculator.recalculate_all(db_session)
        first_history_ids = set(
            db_session.execute(
                select(RatingHistory.id).where(RatingHistory.tournament_id == first.id)
            ).scalars()
        )

        result = recalculator.recalculate_from(db_session, second.id)

        assert result.tournaments_replayed == 2
        assert result.tournaments_committed == 1
        kept_ids = set(
            db_session.execute(
                select(RatingHistory.id).where(RatingHistory.tournament_id == first.id)
            ).scalars()
        )
        assert kept_ids == first_history_ids

    def test_matches_full_pass(self, db_session, builder, recalculator):
        """recalculate_from leaves the same state a full pass would."""
        a, b, c = builder.players("Ana", "Ben", "Cai")
        builder.tournament([a, b, c], [(a, b, 3, 1), (b, c, 3, 2)])
        middle = builder.tournament([a, c], [(c, a, 3, 0)])
        builder.tournament([a, b, c], [(a, c, 3, 2), (b, a, 3, 1)])
        recalculator.recalculate_all(db_session)

        update_match_result(db_session, middle.matches[0].id, 1, 3)
        recalculator.recalculate_from(db_session, middle.id)
        partial = (a.rating, b.rating, c.rating)

        recalculator.recalculate_all(db_session)
        assert (a.rating, b.rating, c.rating) == partial

    def test_newly_completed_tournament(self, db_session, builder, recalculator):
        a, b = builder.players("Ana", "Ben")
        tournament = builder.tournament([a, b], [(b, a, 3, 2)], completed=False)
        recalculator.recalculate_all(db_session)
        assert b.rating is None

        complete_tournament(db_session, tournament.id)
        recalculator.recalculate_from(db_session, tournament.id)

        assert (a.rating, b.rating) == (1184, 1216)
        assert _history_count(db_session) == 2

    def test_tournament_inserted_earlier_in_time(self, db_session, builder, recalculator):
        a, b = builder.players("Ana", "Ben")
        existing = builder.tournament([a, b], [(a, b, 3, 0)], created_at=datetime(2026, 6, 1))
        recalculator.recalculate_all(db_session)

        backdated = builder.tournament([a, b], [(b, a, 3, 0)], created_at=datetime(2026, 5, 1))
        recalculator.recalculate_from(db_session, backdated.id)

        assert tournament_snapshots(db_session, existing.id) == {a.id: 1184, b.id: 1216}
        assert (a.rating, b.rating) == (1201, 1199)

    def test_reopened_tournament_history_removed(self, db_session, builder, recalculator):
        a, b = builder.players("Ana", "Ben")
        tournament = builder.tournament([a, b], [(a, b, 3, 0)])
        recalculator.recalculate_all(db_session)
        assert _history_count(db_session) == 2

        tournament.status = "ACTIVE"
        result = recalculator.recalculate_from(db_session, tournament.id)

        assert result.tournaments_committed == 0
        assert _history_count(db_session) == 0
        assert (a.rating, b.rating) == (None, None)

    def test_corrupted_prefix_widens_to_full_pass(self, db_session, builder, recalculator):
        a, b = builder.players("Ana", "Ben")
        first = builder.tournament([a, b], [(a, b, 3, 0)])
        second = builder.tournament([a, b], [(a, b, 3, 0)])
        recalculator.recalculate_all(db_session)

        _set_snapshot(db_session, first, a, 1500)
        result = recalculator.recalculate_from(db_session, second.id)

        assert result.widened
        assert result.start_tournament_id == first.id
        assert result.warnings
        assert tournament_snapshots(db_session, first.id) == {a.id: 1200, b.id: 1200}

    def test_stale_history_before_start_widens_to_full_pass(self, db_session, builder, recalculator):
        """
        A result changed in the tournament just before the start leaves every
        stored snapshot valid; its stale history must still be detected.
        """
        a, b = builder.players("Ana", "Ben")
        builder.tournament([a, b], [(a, b, 3, 0)])
        second = builder.tournament([a, b], [(a, b, 3, 0)])
        third = builder.tournament([a, b], [(a, b, 3, 0)])
        recalculator.recalculate_all(db_session)

        update_match_result(db_session, second.matches[0].id, 0, 3)
        result = recalculator.recalculate_from(db_session, third.id)

        assert result.widened
        assert any("rating history" in warning for warning in result.warnings)
        second_rows = [
            (row.rating, row.rating_change)
            for row in player_rating_history(db_session, a.id)
            if row.tournament_id == second.id
        ]
        assert second_rows == [(1199, -17)]

        partial = [tuple(row) for row in player_rating_history(db_session, a.id)]
        recalculator.recalculate_all(db_session)
        assert [tuple(row) for row in player_rating_history(db_session, a.id)] == partial

    def test_clean_prefix_does_not_widen(self, db_session, builder, recalculator):
        a, b = builder.players("Ana", "Ben")
        builder.tournament([a, b], [(a, b, 3, 0)])
        builder.tournament([a, b], [(b, a, 3, 1)])
        third = builder.tournament([a, b], [(a, b, 3, 2)])
        recalculator.recalculate_all(db_session)

        result = recalculator.recalculate_from(db_session, third.id)

        assert not result.widened
        assert result.tournaments_committed == 1

    def test_after_deletion_full_pass_restores_snapshots(self, db_session, builder, recalculator):
        a, b = builder.players("Ana", "Ben")
        removed = builder.tournament([a, b], [(a, b, 3, 0)])
        kept = builder.tournament([a, b], [(b, a, 3, 0)])
        recalculator.recalculate_all(db_session)
        assert tournament_snapshots(db_session, kept.id) == {a.id: 1216, b.id: 1184}

        outcome = delete_tournament(db_session, removed.id)
        assert outcome.requires_full_pass
        recalculator.recalculate_all(db_session)

        assert db_session.get(Tournament, removed.id) is None
        assert tournament_snapshots(db_session, kept.id) == {a.id: 1200, b.id: 1200}
        assert (a.rating, b.rating) == (1184, 1216)
