"""Session protocol limits via environment variables."""

from pydantic import Field
from pydantic_settings import BaseSettings


class SessionSettings(BaseSettings):
    model_config = {"env_prefix": "PUTTING_"}

    open_sessions_limit: int = Field(default=50, ge=25, le=50)
    leaderboard_top_n: int = Field(default=20, ge=1)
    leaderboard_window_days: int = Field(default=30, ge=1)
    # Upper bound on rows read per leaderboard request (recompute-on-read).
    leaderboard_scan_limit: int = Field(default=500, ge=1)
