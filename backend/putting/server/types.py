"""Request bodies accepted by the HTTP surface."""

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt

from putting.logic.enums import GameType


class CreateSessionRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    game: GameType = GameType.JYLY
    name: str | None = Field(default=None, max_length=80)


class JoinByCodeRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    code: str = Field(min_length=1, max_length=16)


class SubmitScoreRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    # Range is clamped by the engines; only the type is checked here.
    makes: StrictInt | StrictFloat
