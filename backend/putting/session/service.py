"""
Session protocol: create, join, score, end and observe putting sessions.

Every mutation of a session is a read-modify-write run inside the store's
transactional update, never a blind write computed from a local copy. The
transaction functions below are pure with respect to the store: they may be
re-run when another writer commits first, so anything they learn is recorded
in a per-call holder that is reset at the top of each run.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

import structlog

from putting.logic.enums import GameType, PlayerStatus, SessionStatus
from putting.logic.scoring import apply_outcome, clamp_makes, is_finished, round_cap, zero_state
from putting.session.codes import generate_code, normalize_code
from putting.session.exceptions import (
    LeaderboardWriteError,
    NotOwnerError,
    PlayerNotFoundError,
    SessionClosedError,
    SessionNotFoundError,
    SessionWriteError,
)
from putting.session.models import (
    DEFAULT_PLAYER_NAME,
    CreatedSession,
    LeaderboardEntry,
    LeaderboardRow,
    Player,
    Session,
    SubmitResult,
    players_patch,
)
from putting.session.settings import SessionSettings
from shared.dal import ABORT, Abort, DocumentNotFoundError, StoreError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from putting.session.repository import LeaderboardRepository, SessionRepository
    from shared.auth import Identity
    from shared.dal import Subscription

logger = structlog.get_logger()


def aggregate_leaderboard(entries: Iterable[LeaderboardEntry], top_n: int) -> list[LeaderboardRow]:
    """Sum points per player across sessions and rank them.

    ``entries`` must be newest first. Repeated rows for the same
    (session, player), left behind by a retried end_session, count once; the
    newest row wins. Ties are broken by name, then uid.
    """
    seen: set[tuple[str, str]] = set()
    totals: dict[str, dict[str, Any]] = {}
    for entry in entries:
        key = (entry.session_id, entry.uid)
        if key in seen:
            continue
        seen.add(key)
        row = totals.get(entry.uid)
        if row is None:
            # Newest row carries the freshest display fields.
            totals[entry.uid] = {
                "uid": entry.uid,
                "name": entry.name,
                "photo_url": entry.photo_url,
                "points": entry.points,
                "sessions": 1,
            }
        else:
            row["points"] += entry.points
            row["sessions"] += 1

    ranked = sorted(totals.values(), key=lambda r: (-r["points"], r["name"], r["uid"]))
    return [LeaderboardRow(rank=i, **row) for i, row in enumerate(ranked[:top_n], start=1)]


class SessionService:
    """The only component that mutates sessions.

    Authorization of end/delete is checked against ``actor`` when the caller
    passes one; the check happens before the transaction, not inside it.
    """

    def __init__(
        self,
        sessions: SessionRepository,
        leaderboard: LeaderboardRepository,
        settings: SessionSettings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._sessions = sessions
        self._leaderboard = leaderboard
        self._settings = settings or SessionSettings()
        self._clock = clock or (lambda: datetime.now(UTC))

    @property
    def settings(self) -> SessionSettings:
        return self._settings

    # ------------------------------------------------------------------
    # Store access helpers
    # ------------------------------------------------------------------

    async def _update(self, session_id: str, fn: Callable[[Session], Mapping[str, Any] | Abort]) -> Session:
        try:
            return await self._sessions.update(session_id, fn)
        except DocumentNotFoundError:
            raise SessionNotFoundError(session_id) from None
        except StoreError as exc:
            logger.warning("session write failed", session_id=session_id, error=str(exc))
            raise SessionWriteError("Could not save, please try again") from exc

    async def get_session(self, session_id: str) -> Session:
        session = await self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    # ------------------------------------------------------------------
    # Create / join
    # ------------------------------------------------------------------

    async def create_session(self, owner_uid: str, game: GameType, name: str | None = None) -> CreatedSession:
        """Create an empty session in the lobby. The owner is not added as a player."""
        code = generate_code()
        document = {
            "code": code,
            "owner_uid": owner_uid,
            "game": GameType(game).value,
            "name": (name or "").strip() or None,
            "status": SessionStatus.LOBBY.value,
            "players": [],
        }
        try:
            session_id = await self._sessions.create(document)
        except StoreError as exc:
            raise SessionWriteError("Could not create the session, please try again") from exc
        logger.info("session created", session_id=session_id, code=code, game=game, owner_uid=owner_uid)
        return CreatedSession(id=session_id, code=code)

    async def join_by_code(self, code: str, player: Identity) -> Session:
        normalized = normalize_code(code)
        if not normalized:
            raise SessionNotFoundError(code)
        target = await self._sessions.find_open_by_code(normalized)
        if target is None:
            raise SessionNotFoundError(normalized)
        return await self.join_by_id(target.id, player)

    async def join_by_id(self, session_id: str, player: Identity) -> Session:
        """Add the player, or refresh their display fields if already present."""
        now = self._clock()

        def join(session: Session) -> dict[str, Any]:
            if session.is_closed:
                raise SessionClosedError(session.id)
            players = list(session.players)
            index = session.player_index(player.uid)
            if index is not None:
                existing = players[index]
                players[index] = existing.model_copy(
                    update={
                        "name": player.display_name or existing.name,
                        "photo_url": player.photo_url or existing.photo_url,
                    },
                )
                return {"players": players_patch(players)}

            players.append(
                Player(
                    uid=player.uid,
                    name=player.display_name or DEFAULT_PLAYER_NAME,
                    photo_url=player.photo_url,
                    status=PlayerStatus.LIVE,
                    state=zero_state(session.game),
                    joined_at=now,
                ),
            )
            patch: dict[str, Any] = {"players": players_patch(players)}
            if session.status is SessionStatus.LOBBY:
                patch["status"] = SessionStatus.LIVE.value
            return patch

        session = await self._update(session_id, join)
        logger.info("player joined", session_id=session_id, uid=player.uid, players=len(session.players))
        return session

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    async def submit_score(self, session_id: str, uid: str, makes: object) -> SubmitResult:
        """Record one round for a player.

        A submission after the round cap, or on a closed session, is a no-op.
        When the last JYLY player completes their final round, the same
        transaction closes the session and the leaderboard is published. A
        failed publish does not fail the submission; it is reported through
        ``results_published``.
        """
        makes = clamp_makes(makes)
        outcome: dict[str, Any] = {}

        def score(session: Session) -> dict[str, Any] | Abort:
            outcome.clear()
            index = session.player_index(uid)
            if index is None:
                raise PlayerNotFoundError(session.id, uid)
            if session.is_closed:
                return ABORT
            player = session.players[index]
            cap = round_cap(session.game)
            if cap is not None and player.rounds_played >= cap:
                return ABORT

            state, points = apply_outcome(player.state, makes)
            updated = player.model_copy(
                update={
                    "state": state,
                    "total_points": player.total_points + points,
                    "status": PlayerStatus.DONE if is_finished(state) else PlayerStatus.LIVE,
                },
            )
            players = list(session.players)
            players[index] = updated
            patch: dict[str, Any] = {"players": players_patch(players)}

            all_done = session.game is GameType.JYLY and all(is_finished(p.state) for p in players)
            if all_done:
                patch["status"] = SessionStatus.CLOSED.value
            outcome.update(points=points, player=updated, closed=all_done)
            return patch

        session = await self._update(session_id, score)
        if not outcome:
            logger.info("score ignored", session_id=session_id, uid=uid, makes=makes, status=session.status)
            return SubmitResult(player=session.find_player(uid), closed=session.is_closed)

        logger.info("score recorded", session_id=session_id, uid=uid, makes=makes, points=outcome["points"])
        published = True
        if outcome["closed"]:
            logger.info("all players finished, closing session", session_id=session_id)
            try:
                await self._publish_results(session, first_close=True)
            except LeaderboardWriteError as exc:
                # The round and the close are committed; only the results fan-out is short.
                logger.warning(
                    "auto-close left leaderboard incomplete",
                    session_id=session_id,
                    written=exc.written,
                    failed=exc.failed,
                )
                published = False
        return SubmitResult(
            points=outcome["points"],
            applied=True,
            player=outcome["player"],
            closed=outcome["closed"],
            results_published=published,
        )

    # ------------------------------------------------------------------
    # End / delete
    # ------------------------------------------------------------------

    def _check_owner(self, session: Session, actor: Identity | None) -> None:
        if actor is not None and actor.uid != session.owner_uid:
            raise NotOwnerError(session.id, actor.uid)

    async def end_session(self, session_id: str, actor: Identity | None = None) -> Session:
        """Close the session and append one leaderboard row per player.

        Safe to repeat: a closed session stays closed and every call appends a
        fresh set of rows, which the leaderboard aggregation de-duplicates.
        """
        if actor is not None:
            self._check_owner(await self.get_session(session_id), actor)

        transition: dict[str, bool] = {}

        def close(session: Session) -> dict[str, Any] | Abort:
            transition.clear()
            if session.is_closed:
                return ABORT
            transition["closed"] = True
            return {"status": SessionStatus.CLOSED.value}

        session = await self._update(session_id, close)
        logger.info("session ended", session_id=session_id, first_close=bool(transition), players=len(session.players))
        await self._publish_results(session, first_close=bool(transition))
        return session

    async def _publish_results(self, session: Session, *, first_close: bool) -> None:
        """Append leaderboard rows; bump user stats only on the first close."""
        written: list[Player] = []
        failed = 0
        for player in session.players:
            entry = LeaderboardEntry(
                session_id=session.id,
                uid=player.uid,
                name=player.name,
                photo_url=player.photo_url,
                game=session.game,
                points=player.total_points,
                rounds=player.rounds_played,
            )
            try:
                await self._leaderboard.append(entry)
            except StoreError as exc:
                failed += 1
                logger.warning("leaderboard append failed", session_id=session.id, uid=player.uid, error=str(exc))
            else:
                written.append(player)

        if first_close:
            played_at = self._clock()
            for player in written:
                try:
                    await self._leaderboard.add_user_result(player.uid, player.total_points, played_at)
                except StoreError as exc:
                    logger.warning("user stats update skipped", uid=player.uid, error=str(exc))

        if failed:
            raise LeaderboardWriteError(session.id, written=len(written), failed=failed)

    async def delete_session(self, session_id: str, actor: Identity | None = None) -> None:
        """Delete the session document. Leaderboard rows are kept."""
        if actor is not None:
            self._check_owner(await self.get_session(session_id), actor)
        try:
            deleted = await self._sessions.delete(session_id)
        except StoreError as exc:
            raise SessionWriteError("Could not delete the session, please try again") from exc
        logger.info("session deleted", session_id=session_id, existed=deleted)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def fetch_global_leaderboard(
        self,
        window_days: int | None = None,
        game: GameType | None = None,
    ) -> list[LeaderboardRow]:
        days = self._settings.leaderboard_window_days if window_days is None else window_days
        if days <= 0:
            raise ValueError("window_days must be positive")
        since = self._clock() - timedelta(days=days)
        entries = await self._leaderboard.recent(
            since=since,
            game=None if game is None else GameType(game),
            limit=self._settings.leaderboard_scan_limit,
        )
        return aggregate_leaderboard(entries, self._settings.leaderboard_top_n)

    async def list_open_sessions(self) -> list[Session]:
        return await self._sessions.list_open(self._settings.open_sessions_limit)

    def observe_open_sessions(
        self,
        callback: Callable[[list[Session]], None],
        on_error: Callable[[Exception], None] | None = None,
    ) -> Subscription:
        return self._sessions.subscribe_open(self._settings.open_sessions_limit, callback, on_error)

    def observe_session(
        self,
        session_id: str,
        callback: Callable[[Session | None], None],
        on_error: Callable[[Exception], None] | None = None,
    ) -> Subscription:
        """Live, read-only view of one session; usable without joining."""
        return self._sessions.subscribe(session_id, callback, on_error)
