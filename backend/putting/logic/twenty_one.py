"""Count to 21: overshooting drops the total back to 15, not to zero."""

from putting.logic.outcome import clamp_makes
from putting.logic.state import T21State, TotalRound

T21_TARGET = 21
T21_BUST_TOTAL = 15


def create() -> T21State:
    return T21State()


def apply(state: T21State, makes: int) -> tuple[T21State, int]:
    makes = clamp_makes(makes)
    total = state.total + makes
    if total > T21_TARGET:
        total = T21_BUST_TOTAL
    played = TotalRound(makes=makes, points=makes, total=total)
    return state.model_copy(update={"total": total, "history": (*state.history, played)}), makes
