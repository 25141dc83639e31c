"""
Rating system constants.

The engine uses a plain Elo exchange with a fixed K factor. These values are
part of the persisted history: changing any of them changes every rating
derived from the first completed tournament onward, so a change must be
followed by a full recalculation.

K factor: Maximum number of points a single match can move a rating.
Scale: Rating difference at which the favourite is expected to win 10:1.
"""

# Points exchanged per match at most
K_FACTOR = 32

# Seed rating for a player without any rated match
DEFAULT_RATING = 1200

# Elo logistic scale (400 = standard chess-style curve)
RATING_SCALE = 400

# Reserved player id used by bracket generators for an empty slot
BYE_PLAYER_ID = 0

# Best-of-five: the first side to win this many sets takes the match
SETS_TO_WIN = 3

# Reason recorded on every rating history row the engine writes
HISTORY_REASON_MATCH = "MATCH_COMPLETED"

# Largest |delta_a + delta_b| that independent rounding can produce
MAX_ROUNDING_DRIFT = 1
