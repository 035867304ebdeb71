"""Ladder: step back a metre after a good round, forward after a bad one."""

from putting.logic.outcome import clamp_makes
from putting.logic.state import DistanceRound, LadderState

LADDER_MIN_DISTANCE = 4
LADDER_MAX_DISTANCE = 12


def create() -> LadderState:
    return LadderState()


def apply(state: LadderState, makes: int) -> tuple[LadderState, int]:
    makes = clamp_makes(makes)
    points = makes
    step = 1 if makes >= 3 else -1 if makes <= 1 else 0
    distance = max(LADDER_MIN_DISTANCE, min(LADDER_MAX_DISTANCE, state.distance_m + step))
    played = DistanceRound(distance_m=state.distance_m, makes=makes, points=points)
    return state.model_copy(update={"distance_m": distance, "history": (*state.history, played)}), points
