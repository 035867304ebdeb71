"""
Frozen per-variant game state.

Every variant keeps its mutable parameters, an ordered round history and the
points accumulated over that history. A round records the parameters that
were in effect when it was played, so history can be rendered and replayed.

``GameState`` is a tagged union discriminated by ``game``; a player carries
exactly one variant, matching the session's game.
"""

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from putting.logic.enums import GameType

JYLY_START_DISTANCE = 10
ATW_STATIONS = (5, 6, 7, 8, 9, 10)
LADDER_START_DISTANCE = 5
RACE_TARGET = 50


class Round(BaseModel):
    model_config = ConfigDict(frozen=True)

    makes: int
    points: int


class DistanceRound(Round):
    """Round played from a single distance (JYLY, LADDER)."""

    distance_m: int


class StationRound(Round):
    station_distance: int


class TotalRound(Round):
    """Round of a running-total game; ``total`` is the total after the round."""

    total: int


class _VariantState(BaseModel):
    model_config = ConfigDict(frozen=True)

    @property
    def rounds_played(self) -> int:
        return len(self.history)  # type: ignore[attr-defined]

    @property
    def accumulated_points(self) -> int:
        return sum(r.points for r in self.history)  # type: ignore[attr-defined]


class JylyState(_VariantState):
    game: Literal[GameType.JYLY] = GameType.JYLY
    distance_m: int = JYLY_START_DISTANCE
    history: tuple[DistanceRound, ...] = ()


class AtwState(_VariantState):
    game: Literal[GameType.ATW] = GameType.ATW
    station: int = 0
    stations: tuple[int, ...] = ATW_STATIONS
    history: tuple[StationRound, ...] = ()


class LadderState(_VariantState):
    game: Literal[GameType.LADDER] = GameType.LADDER
    distance_m: int = LADDER_START_DISTANCE
    history: tuple[DistanceRound, ...] = ()


class T21State(_VariantState):
    game: Literal[GameType.T21] = GameType.T21
    total: int = 0
    history: tuple[TotalRound, ...] = ()


class RaceState(_VariantState):
    game: Literal[GameType.RACE] = GameType.RACE
    total: int = 0
    target: int = RACE_TARGET
    history: tuple[TotalRound, ...] = ()


GameState = Annotated[
    JylyState | AtwState | LadderState | T21State | RaceState,
    Field(discriminator="game"),
]
