"""Race to the target. The total is capped; points per round are not."""

from putting.logic.outcome import clamp_makes
from putting.logic.state import RaceState, TotalRound


def create() -> RaceState:
    return RaceState()


def apply(state: RaceState, makes: int) -> tuple[RaceState, int]:
    makes = clamp_makes(makes)
    total = min(state.target, state.total + makes)
    played = TotalRound(makes=makes, points=makes, total=total)
    return state.model_copy(update={"total": total, "history": (*state.history, played)}), makes
