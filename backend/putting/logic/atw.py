"""Around the world: one round per station, cycling through the stations."""

from putting.logic.outcome import clamp_makes
from putting.logic.state import AtwState, StationRound


def create() -> AtwState:
    return AtwState()


def apply(state: AtwState, makes: int) -> tuple[AtwState, int]:
    makes = clamp_makes(makes)
    points = makes
    played = StationRound(station_distance=state.stations[state.station], makes=makes, points=points)
    next_station = (state.station + 1) % len(state.stations)
    return state.model_copy(update={"station": next_station, "history": (*state.history, played)}), points
