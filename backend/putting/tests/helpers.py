"""Builders shared by the putting test suites."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from shared.auth import Identity

if TYPE_CHECKING:
    from putting.logic.enums import GameType
    from putting.session.models import Session
    from putting.session.service import SessionService

OWNER_UID = "owner"


class ManualClock:
    """Deterministic clock: every read moves time forward by one millisecond."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2025, 6, 1, 12, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        self.current += timedelta(milliseconds=1)
        return self.current

    def advance(self, **kwargs: float) -> None:
        self.current += timedelta(**kwargs)


def identity(uid: str, name: str | None = None, photo_url: str | None = None) -> Identity:
    return Identity(uid=uid, display_name=name or uid.title(), photo_url=photo_url)


async def create_live_session(service: SessionService, game: GameType, uids: list[str]) -> Session:
    """Create a session owned by OWNER_UID and join every uid in order."""
    created = await service.create_session(OWNER_UID, game, name="Tuesday putting")
    session = await service.get_session(created.id)
    for uid in uids:
        session = await service.join_by_id(created.id, identity(uid))
    return session


async def submit_all(service: SessionService, session_id: str, uid: str, outcomes: list[int]) -> int:
    """Submit outcomes in order; return the summed points."""
    total = 0
    for makes in outcomes:
        result = await service.submit_score(session_id, uid, makes)
        total += result.points
    return total
