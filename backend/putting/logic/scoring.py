"""
Engine dispatch keyed by game type.

Every engine is a pure function ``apply(state, makes) -> (next_state, points)``
over frozen state, so the same call can run optimistically on a client and
authoritatively inside a store transaction and produce the same result.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import NamedTuple

from putting.logic import atw, jyly, ladder, race, twenty_one
from putting.logic.enums import GameType
from putting.logic.outcome import InvalidOutcomeError, clamp_makes
from putting.logic.state import AtwState, GameState, JylyState, LadderState, RaceState, T21State

__all__ = [
    "InvalidOutcomeError",
    "ScoringResult",
    "apply_outcome",
    "clamp_makes",
    "is_finished",
    "replay",
    "round_cap",
    "zero_state",
]


class ScoringResult(NamedTuple):
    state: GameState
    points: int


_CREATE: dict[GameType, Callable[[], GameState]] = {
    GameType.JYLY: jyly.create,
    GameType.ATW: atw.create,
    GameType.LADDER: ladder.create,
    GameType.T21: twenty_one.create,
    GameType.RACE: race.create,
}

_ROUND_CAPS: dict[GameType, int] = {
    GameType.JYLY: jyly.JYLY_MAX_ROUNDS,
}


def zero_state(game: GameType) -> GameState:
    return _CREATE[GameType(game)]()


def round_cap(game: GameType) -> int | None:
    """Number of rounds after which further scores are ignored, if the game has one."""
    return _ROUND_CAPS.get(GameType(game))


def apply_outcome(state: GameState, makes: object) -> ScoringResult:
    makes = clamp_makes(makes)
    match state:
        case JylyState():
            next_state, points = jyly.apply(state, makes)
        case AtwState():
            next_state, points = atw.apply(state, makes)
        case LadderState():
            next_state, points = ladder.apply(state, makes)
        case T21State():
            next_state, points = twenty_one.apply(state, makes)
        case RaceState():
            next_state, points = race.apply(state, makes)
        case _:
            raise TypeError(f"unknown game state: {type(state).__name__}")
    return ScoringResult(next_state, points)


def is_finished(state: GameState) -> bool:
    """Advisory completion; only JYLY has a completion condition."""
    if isinstance(state, JylyState):
        return jyly.is_finished(state)
    return False


def replay(game: GameType, outcomes: Iterable[object]) -> ScoringResult:
    """Fold outcomes from the zero state. Points are the sum over all rounds."""
    state = zero_state(game)
    total = 0
    for makes in outcomes:
        state, points = apply_outcome(state, makes)
        total += points
    return ScoringResult(state, total)
