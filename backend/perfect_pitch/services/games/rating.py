import enum
import math
from dataclasses import dataclass
from typing import Optional


K_FACTOR = 32
RATING_FLOOR = 100
# Rating gap beyond which upset bonuses / expected-win dampening kick in
GAP_THRESHOLD = 100
GAP_SCALE = 400

RANKS = [
    (2200, 'Virtuoso'),
    (2000, 'Legend'),
    (1800, 'Grandmaster'),
    (1600, 'Master'),
    (1400, 'Expert'),
    (1200, 'Adept'),
    (1000, 'Apprentice'),
    (0, 'Novice'),
]


class Outcome(enum.Enum):
    A_WINS = 'a_wins'
    B_WINS = 'b_wins'
    TIE = 'tie'

    @classmethod
    def from_winner(cls, a_id, b_id, winner_id: Optional[object]) -> 'Outcome':
        if winner_id is None:
            return cls.TIE
        if winner_id == a_id:
            return cls.A_WINS
        if winner_id == b_id:
            return cls.B_WINS
        raise ValueError(f'winner {winner_id!r} is not one of {a_id!r}, {b_id!r}')


@dataclass(frozen=True)
class RatingAdjustment:
    delta_a: int
    delta_b: int
    new_a: int
    new_b: int


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def expected_score(rating: float, opponent_rating: float) -> float:
    return 1.0 / (1.0 + 10 ** ((opponent_rating - rating) / 400.0))


def adjust(rating_a: int, rating_b: int, outcome: Outcome) -> RatingAdjustment:
    """Compute rating changes for a finished match between A and B.

    Standard Elo with K=32, then scaled by the rating gap when it exceeds
    100 points: results that favor the lower-rated side (an upset win or a
    draw) are amplified by ``m = 1 + (gap - 100) / 400`` and expected wins
    are divided by ``m``. Resulting ratings never go below 100.
    """
    expected_a = expected_score(rating_a, rating_b)
    expected_b = 1.0 - expected_a

    if outcome is Outcome.A_WINS:
        actual_a, actual_b = 1.0, 0.0
    elif outcome is Outcome.B_WINS:
        actual_a, actual_b = 0.0, 1.0
    else:
        actual_a, actual_b = 0.5, 0.5

    delta_a = _round_half_up(K_FACTOR * (actual_a - expected_a))
    delta_b = _round_half_up(K_FACTOR * (actual_b - expected_b))

    gap = abs(rating_a - rating_b)
    if gap > GAP_THRESHOLD:
        multiplier = 1 + (gap - GAP_THRESHOLD) / GAP_SCALE
        a_is_lower = rating_a < rating_b
        favors_lower = (
            outcome is Outcome.TIE
            or (outcome is Outcome.A_WINS and a_is_lower)
            or (outcome is Outcome.B_WINS and not a_is_lower)
        )
        if favors_lower:
            delta_a = _round_half_up(delta_a * multiplier)
            delta_b = _round_half_up(delta_b * multiplier)
        else:
            delta_a = _round_half_up(delta_a / multiplier)
            delta_b = _round_half_up(delta_b / multiplier)

    return RatingAdjustment(
        delta_a=delta_a,
        delta_b=delta_b,
        new_a=max(RATING_FLOOR, rating_a + delta_a),
        new_b=max(RATING_FLOOR, rating_b + delta_b),
    )


def rank_for_rating(rating: int) -> str:
    for minimum, name in RANKS:
        if rating >= minimum:
            return name
    return RANKS[-1][1]
