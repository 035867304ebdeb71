"""
Client-side view of one session with optimistic score entry.

The authoritative session only ever comes from the subscription. A local
score entry is shown immediately as an overlay on top of it; the overlay is
dropped when any of these changes:

- the signed-in uid,
- the session id,
- the number of rounds the server has confirmed for that player.

It is also dropped when the submission fails or turns out to be a no-op.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

import structlog

from putting.logic.enums import PlayerStatus
from putting.logic.scoring import apply_outcome, is_finished
from putting.session.exceptions import PlayerNotFoundError, SessionError

if TYPE_CHECKING:
    from collections.abc import Callable

    from putting.logic.state import GameState
    from putting.session.models import Player, Session, SubmitResult
    from putting.session.service import SessionService
    from shared.auth import AuthContext, Identity
    from shared.dal import Subscription

logger = structlog.get_logger()


class ConnectionState(StrEnum):
    IDLE = "idle"
    LIVE = "live"
    FAILED = "failed"  # subscription stopped delivering; data may be stale
    DELETED = "deleted"


@dataclass(frozen=True)
class OptimisticOverlay:
    session_id: str
    uid: str
    confirmed_rounds: int  # server-confirmed history length the overlay was built on
    state: GameState
    total_points: int
    points: int


class SessionClient:
    """One client's live, optimistically updated view of a session."""

    def __init__(self, service: SessionService, auth: AuthContext) -> None:
        self._service = service
        self._auth = auth
        self._session: Session | None = None
        self._session_id: str | None = None
        self._overlay: OptimisticOverlay | None = None
        self._subscription: Subscription | None = None
        self._connection = ConnectionState.IDLE
        self._listeners: list[Callable[[SessionClient], None]] = []
        self.last_error: Exception | None = None
        self._remove_auth_listener = auth.add_listener(self._on_identity_changed)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @property
    def session(self) -> Session | None:
        """Last authoritative snapshot."""
        return self._session

    @property
    def overlay(self) -> OptimisticOverlay | None:
        return self._overlay

    @property
    def connection(self) -> ConnectionState:
        return self._connection

    @property
    def me(self) -> Player | None:
        identity = self._auth.identity
        if identity is None:
            return None
        return self._local_player(identity.uid)

    @property
    def players(self) -> list[Player]:
        """Players with the overlay applied, highest score first."""
        if self._session is None:
            return []
        local = [self._with_overlay(p) for p in self._session.players]
        return sorted(local, key=lambda p: p.total_points, reverse=True)

    @property
    def is_owner(self) -> bool:
        identity = self._auth.identity
        return identity is not None and self._session is not None and self._session.owner_uid == identity.uid

    @property
    def is_finished(self) -> bool:
        me = self.me
        return me is not None and is_finished(me.state)

    def add_listener(self, listener: Callable[[SessionClient], None]) -> Callable[[], None]:
        """Register a view-change listener. Returns a function that removes it."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self, session_id: str) -> None:
        """Start following a session. The current snapshot is delivered immediately."""
        if self._session_id == session_id and self._subscription is not None and self._subscription.active:
            return
        self.close()
        self._session_id = session_id
        self._subscription = self._service.observe_session(session_id, self._on_snapshot, self._on_subscription_error)

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
        self._subscription = None
        self._session_id = None
        self._session = None
        self._overlay = None
        self._connection = ConnectionState.IDLE

    def dispose(self) -> None:
        self.close()
        self._remove_auth_listener()
        self._listeners.clear()

    async def join(self, session_id: str) -> Session:
        identity = self._auth.require()
        session = await self._service.join_by_id(session_id, identity)
        self.open(session.id)
        return session

    async def join_by_code(self, code: str) -> Session:
        identity = self._auth.require()
        session = await self._service.join_by_code(code, identity)
        self.open(session.id)
        return session

    # ------------------------------------------------------------------
    # Score entry
    # ------------------------------------------------------------------

    async def record(self, makes: object) -> SubmitResult:
        """Show the round locally right away, then submit it."""
        identity = self._auth.require()
        session = self._session
        if session is None:
            raise RuntimeError("No session is open")
        confirmed = session.find_player(identity.uid)
        if confirmed is None:
            raise PlayerNotFoundError(session.id, identity.uid)

        base = self._with_overlay(confirmed)
        state, points = apply_outcome(base.state, makes)
        self._overlay = OptimisticOverlay(
            session_id=session.id,
            uid=identity.uid,
            confirmed_rounds=confirmed.rounds_played,
            state=state,
            total_points=base.total_points + points,
            points=points,
        )
        self.last_error = None
        self._notify()

        try:
            result = await self._service.submit_score(session.id, identity.uid, makes)
        except SessionError as exc:
            logger.warning("score submission failed", session_id=session.id, uid=identity.uid, error=exc.message)
            self._overlay = None
            self.last_error = exc
            self._notify()
            raise

        if not result.applied and self._overlay is not None:
            self._overlay = None
            self._notify()
        return result

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def _local_player(self, uid: str) -> Player | None:
        if self._session is None:
            return None
        player = self._session.find_player(uid)
        return None if player is None else self._with_overlay(player)

    def _with_overlay(self, player: Player) -> Player:
        overlay = self._overlay
        if overlay is None or overlay.uid != player.uid:
            return player
        status = PlayerStatus.DONE if is_finished(overlay.state) else player.status
        return player.model_copy(
            update={"state": overlay.state, "total_points": overlay.total_points, "status": status},
        )

    def _on_snapshot(self, session: Session | None) -> None:
        if session is None:
            logger.info("session no longer exists", session_id=self._session_id)
            self._session = None
            self._overlay = None
            self._connection = ConnectionState.DELETED
            self._notify()
            return
        self._session = session
        self._connection = ConnectionState.LIVE
        self._reconcile()
        self._notify()

    def _on_subscription_error(self, error: Exception) -> None:
        self._connection = ConnectionState.FAILED
        self.last_error = error
        self._notify()

    def _on_identity_changed(self, _identity: Identity | None) -> None:
        self._reconcile()
        self._notify()

    def _reconcile(self) -> None:
        overlay = self._overlay
        if overlay is None:
            return
        identity = self._auth.identity
        session = self._session
        confirmed = None if session is None else session.find_player(overlay.uid)
        if (
            identity is None
            or identity.uid != overlay.uid
            or session is None
            or session.id != overlay.session_id
            or confirmed is None
            or confirmed.rounds_played != overlay.confirmed_rounds
        ):
            self._overlay = None

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)
