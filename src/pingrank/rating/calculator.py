"""
Pairwise Elo rating calculator.

The Elo formula:
  Expected score: E_A = 1 / (1 + 10^((R_B - R_A) / 400))
  Rating change:  D_A = round(K * (actual_A - E_A))

Where:
  R_A, R_B = Ratings of players A and B entering the match
  K = Maximum change per match (32)
  actual = 1 for the winner, 0 for the loser

Each side's change is rounded on its own, so D_A + D_B can be off zero by
one point. That drift is persisted in the rating history and is part of the
historical record; it is reported, never corrected.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from pingrank.rating.constants import DEFAULT_RATING, K_FACTOR, RATING_SCALE


@dataclass(frozen=True)
class RatingDelta:
    """
    Result of one pairwise calculation.

    Contains the inputs actually used (after seeding unrated players) so a
    history row can be reproduced from it.
    """
    rating_a: int
    rating_b: int
    expected_a: float
    expected_b: float
    a_won: bool
    delta_a: int
    delta_b: int

    @property
    def new_rating_a(self) -> int:
        return self.rating_a + self.delta_a

    @property
    def new_rating_b(self) -> int:
        return self.rating_b + self.delta_b

    @property
    def drift(self) -> int:
        """Points created or destroyed by independent rounding."""
        return self.delta_a + self.delta_b

    @property
    def was_upset(self) -> bool:
        """Whether the lower-rated player won."""
        if self.a_won:
            return self.rating_a < self.rating_b
        return self.rating_b < self.rating_a

    def __repr__(self) -> str:
        return (
            f"<RatingDelta(A: {self.rating_a} {self.delta_a:+d}, "
            f"B: {self.rating_b} {self.delta_b:+d}, a_won={self.a_won})>"
        )


def seed_rating(rating: int | None, default_rating: int = DEFAULT_RATING) -> int:
    """Return the rating to calculate with, seeding unrated players."""
    return default_rating if rating is None else rating


def expected_score(rating_a: float, rating_b: float, scale: float = RATING_SCALE) -> float:
    """
    Expected score (win probability) of player A against player B.

    expected_score(a, b) + expected_score(b, a) == 1 for any pair.
    """
    try:
        return 1.0 / (1.0 + 10.0 ** ((rating_b - rating_a) / scale))
    except OverflowError:
        # 10**x overflows only for absurd gaps; A is then a certain loser
        return 0.0


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves toward positive infinity."""
    return int(math.floor(value + 0.5))


def calculate_delta(
    rating_a: int | None,
    rating_b: int | None,
    a_won: bool,
    k_factor: int = K_FACTOR,
    default_rating: int = DEFAULT_RATING,
    scale: float = RATING_SCALE,
) -> RatingDelta:
    """
    Calculate the rating change of both players after one match.

    Unrated players (None) are treated as default_rating for this
    calculation only; the caller decides what to store.

    Args:
        rating_a: Player A's rating entering the match
        rating_b: Player B's rating entering the match
        a_won: True if player A won
        k_factor: Maximum change per match

    Returns:
        RatingDelta with expected scores and per-side integer changes

    Example:
        # Two 1500 players, A wins: expected 0.5 each
        calculate_delta(1500, 1500, a_won=True)  # delta_a=16, delta_b=-16
    """
    seeded_a = seed_rating(rating_a, default_rating)
    seeded_b = seed_rating(rating_b, default_rating)

    expected_a = expected_score(seeded_a, seeded_b, scale)
    expected_b = 1.0 - expected_a

    actual_a = 1.0 if a_won else 0.0
    actual_b = 1.0 - actual_a

    return RatingDelta(
        rating_a=seeded_a,
        rating_b=seeded_b,
        expected_a=expected_a,
        expected_b=expected_b,
        a_won=a_won,
        delta_a=round_half_up(k_factor * (actual_a - expected_a)),
        delta_b=round_half_up(k_factor * (actual_b - expected_b)),
    )
