"""Identity supplied by the external identity provider."""

from pydantic import BaseModel, Field, field_validator


class Identity(BaseModel, frozen=True):
    """A signed-in participant. All fields are opaque provider strings.

    A blank display name is kept as None; consumers pick their own fallback.
    """

    uid: str = Field(min_length=1, max_length=128)
    display_name: str | None = Field(default=None, max_length=100)
    photo_url: str | None = Field(default=None, max_length=2000)

    @field_validator("display_name", mode="before")
    @classmethod
    def _blank_name_is_none(cls, v: str | None) -> str | None:
        if v is None or not str(v).strip():
            return None
        return str(v).strip()
