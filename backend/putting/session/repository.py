"""Typed repositories over the document store.

These are the only modules that know collection names and document layout;
the protocol works with Session and LeaderboardEntry models throughout.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from putting.logic.enums import SessionStatus
from putting.session.models import LeaderboardEntry, Session, UserStats
from shared.dal import ABORT, Abort, FieldFilter, Query

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping
    from datetime import datetime

    from putting.logic.enums import GameType
    from shared.dal import Document, DocumentStore, Subscription

logger = structlog.get_logger()

SESSIONS = "sessions"
LEADERBOARD = "leaderboard"
USER_STATS = "user_stats"

_OPEN_STATUSES = (SessionStatus.LOBBY, SessionStatus.LIVE)


def _open_sessions_query(limit: int) -> Query:
    return Query(filters=(FieldFilter(field="status", op="in", value=list(_OPEN_STATUSES)),), limit=limit)


class SessionRepository:
    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def create(self, document: Mapping[str, Any]) -> str:
        return await self._store.create(SESSIONS, document)

    async def get(self, session_id: str) -> Session | None:
        document = await self._store.get(SESSIONS, session_id)
        return None if document is None else Session.model_validate(document)

    async def update(self, session_id: str, fn: Callable[[Session], Mapping[str, Any] | Abort]) -> Session:
        """Run ``fn`` against the current session inside a store transaction.

        Raises DocumentNotFoundError if the session does not exist.
        """

        def apply(document: Document | None) -> Mapping[str, Any] | Abort:
            if document is None:  # pragma: no cover - store raises before calling us
                return ABORT
            return fn(Session.model_validate(document))

        committed = await self._store.transactional_update(SESSIONS, session_id, apply)
        return Session.model_validate(committed)

    async def find_open_by_code(self, code: str) -> Session | None:
        query = Query(
            filters=(
                FieldFilter(field="code", value=code),
                FieldFilter(field="status", op="in", value=list(_OPEN_STATUSES)),
            ),
            limit=1,
        )
        documents = await self._store.query(SESSIONS, query)
        return Session.model_validate(documents[0]) if documents else None

    async def list_open(self, limit: int) -> list[Session]:
        documents = await self._store.query(SESSIONS, _open_sessions_query(limit))
        return [Session.model_validate(d) for d in documents]

    def subscribe(
        self,
        session_id: str,
        callback: Callable[[Session | None], None],
        on_error: Callable[[Exception], None] | None = None,
    ) -> Subscription:
        def deliver(document: Document | None) -> None:
            callback(None if document is None else Session.model_validate(document))

        return self._store.subscribe(SESSIONS, session_id, deliver, on_error)

    def subscribe_open(
        self,
        limit: int,
        callback: Callable[[list[Session]], None],
        on_error: Callable[[Exception], None] | None = None,
    ) -> Subscription:
        def deliver(documents: list[Document]) -> None:
            callback([Session.model_validate(d) for d in documents])

        return self._store.subscribe_query(SESSIONS, _open_sessions_query(limit), deliver, on_error)

    async def delete(self, session_id: str) -> bool:
        return await self._store.delete(SESSIONS, session_id)


class LeaderboardRepository:
    """Append-only leaderboard rows plus best-effort per-user counters."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def append(self, entry: LeaderboardEntry) -> str:
        document = entry.model_dump(mode="json", exclude={"id", "created_at"})
        return await self._store.create(LEADERBOARD, document)

    async def recent(self, *, since: datetime, game: GameType | None, limit: int) -> list[LeaderboardEntry]:
        """Rows created at or after ``since``, newest first."""
        filters = [FieldFilter(field="created_at", op=">=", value=since)]
        if game is not None:
            filters.append(FieldFilter(field="game", value=game))
        documents = await self._store.query(LEADERBOARD, Query(filters=tuple(filters), limit=limit))
        return [LeaderboardEntry.model_validate(d) for d in documents]

    async def get_user_stats(self, uid: str) -> UserStats | None:
        document = await self._store.get(USER_STATS, uid)
        return None if document is None else UserStats.model_validate({**document, "uid": uid})

    async def add_user_result(self, uid: str, points: int, played_at: datetime) -> None:
        def bump(document: Document | None) -> dict[str, Any]:
            current = document or {}
            return {
                "sessions_played": current.get("sessions_played", 0) + 1,
                "total_points": current.get("total_points", 0) + points,
                "best_points": max(current.get("best_points", 0), points),
                "updated_at": played_at.isoformat(),
            }

        await self._store.transactional_update(USER_STATS, uid, bump, upsert=True)
