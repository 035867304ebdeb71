"""Server configuration via environment variables."""

import json
from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode


def parse_origins(value: str | list[str]) -> list[str]:
    """Accept a list, a JSON array string, or a comma-separated string."""
    if isinstance(value, list):
        return value
    stripped = value.strip()
    if stripped.startswith("["):
        try:
            parsed = json.loads(stripped)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON array: {e}") from e
        if not isinstance(parsed, list) or not all(isinstance(item, str) for item in parsed):
            raise ValueError("JSON value must be an array of strings")
        return parsed
    result = [origin.strip() for origin in stripped.split(",") if origin.strip()]
    if not result:
        raise ValueError("cors_origins must not be empty")
    return result


class ServerSettings(BaseSettings):
    model_config = {"env_prefix": "PUTTING_"}

    database_path: str = Field(default="backend/storage.db", min_length=1)
    log_dir: str | None = None
    cors_origins: Annotated[list[str], NoDecode] = ["http://localhost:5173"]
    max_transaction_attempts: int = Field(default=5, ge=1, le=50)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        return parse_origins(v)
