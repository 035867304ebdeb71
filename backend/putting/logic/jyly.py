"""
JYLY: the distance-based primary game.

Twenty rounds of five putts. A make is worth its distance in points
(5 m = 5 ... 10 m = 10) and the next distance is set by this round's makes
alone: 0 makes -> 5 m, each further make one metre more, up to 10 m.
"""

from putting.logic.outcome import clamp_makes
from putting.logic.state import JYLY_START_DISTANCE, DistanceRound, JylyState

JYLY_MAX_ROUNDS = 20
JYLY_MIN_DISTANCE = 5
JYLY_MAX_DISTANCE = 10


def points_per_make(distance_m: float) -> int:
    return max(JYLY_MIN_DISTANCE, min(JYLY_MAX_DISTANCE, round(distance_m)))


def next_distance(makes: int) -> int:
    return max(JYLY_MIN_DISTANCE, min(JYLY_MAX_DISTANCE, JYLY_MIN_DISTANCE + makes))


def create() -> JylyState:
    return JylyState(distance_m=JYLY_START_DISTANCE)


def is_finished(state: JylyState) -> bool:
    return len(state.history) >= JYLY_MAX_ROUNDS


def apply(state: JylyState, makes: int) -> tuple[JylyState, int]:
    """Play one round. A finished state is returned unchanged with zero points."""
    if is_finished(state):
        return state, 0
    makes = clamp_makes(makes)
    points = makes * points_per_make(state.distance_m)
    played = DistanceRound(distance_m=state.distance_m, makes=makes, points=points)
    return state.model_copy(update={"distance_m": next_distance(makes), "history": (*state.history, played)}), points
