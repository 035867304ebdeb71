"""
Pydantic models for the session layer.

A Session is the aggregate root: one document per game room, holding every
player and their per-variant state. Leaderboard entries are separate,
append-only documents written when a session closes.
"""

from datetime import datetime
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, model_validator

from putting.logic.enums import GameType, PlayerStatus, SessionStatus
from putting.logic.state import GameState

DEFAULT_PLAYER_NAME = "Player"


class Player(BaseModel):
    model_config = ConfigDict(frozen=True)

    uid: str
    name: str
    photo_url: str | None = None
    total_points: int = 0
    status: PlayerStatus = PlayerStatus.LIVE
    state: GameState
    joined_at: datetime | None = None

    @property
    def rounds_played(self) -> int:
        return self.state.rounds_played


class Session(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    code: str
    owner_uid: str
    game: GameType
    name: str | None = None
    status: SessionStatus = SessionStatus.LOBBY
    players: tuple[Player, ...] = ()
    created_at: datetime | None = None
    version: int = 0

    @model_validator(mode="after")
    def _validate_players(self) -> Self:
        uids = [p.uid for p in self.players]
        if len(set(uids)) != len(uids):
            raise ValueError("Duplicate player uid in session")
        for player in self.players:
            if player.state.game != self.game:
                raise ValueError(f"Player {player.uid} has {player.state.game} state in a {self.game} session")
        return self

    @property
    def is_closed(self) -> bool:
        return self.status is SessionStatus.CLOSED

    def player_index(self, uid: str) -> int | None:
        for index, player in enumerate(self.players):
            if player.uid == uid:
                return index
        return None

    def find_player(self, uid: str) -> Player | None:
        index = self.player_index(uid)
        return None if index is None else self.players[index]

    def ranked_players(self) -> list[Player]:
        """Players by total points, highest first (stable for ties)."""
        return sorted(self.players, key=lambda p: p.total_points, reverse=True)


def players_patch(players: tuple[Player, ...] | list[Player]) -> list[dict[str, Any]]:
    """Serialize a player list for a store patch."""
    return [p.model_dump(mode="json") for p in players]


class CreatedSession(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    code: str


class SubmitResult(BaseModel):
    """Outcome of a score submission.

    ``applied`` is False when the submission was a no-op (round cap already
    reached, or the session is closed); ``points`` is then 0.
    The round itself is committed whenever ``applied`` is True, even if
    ``results_published`` is False.
    """

    model_config = ConfigDict(frozen=True)

    points: int = 0
    applied: bool = False
    player: Player | None = None
    closed: bool = False
    # False when this submission closed the session but some leaderboard rows
    # could not be written; the owner recovers with end_session.
    results_published: bool = True


class LeaderboardEntry(BaseModel):
    """One row per (session, player) per close; denormalized so it survives session deletion."""

    model_config = ConfigDict(frozen=True)

    id: str = ""
    session_id: str
    uid: str
    name: str
    photo_url: str | None = None
    game: GameType
    points: int
    rounds: int = 0
    created_at: datetime | None = None


class LeaderboardRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    rank: int
    uid: str
    name: str
    photo_url: str | None = None
    points: int
    sessions: int


class UserStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    uid: str
    sessions_played: int = 0
    total_points: int = 0
    best_points: int = 0
    updated_at: datetime | None = None
