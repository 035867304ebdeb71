from __future__ import annotations

import contextlib
import json
from http import HTTPStatus
from typing import TYPE_CHECKING, Any, cast

import structlog
from pydantic import BaseModel, ValidationError
from starlette.applications import Starlette
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse, Response
from starlette.routing import Route, WebSocketRoute

from putting.logic.enums import GameType
from putting.logic.outcome import InvalidOutcomeError
from putting.server.settings import ServerSettings
from putting.server.types import CreateSessionRequest, JoinByCodeRequest, SubmitScoreRequest
from putting.server.websocket import spectator_endpoint
from putting.session.exceptions import SessionError, SessionErrorCode
from putting.session.repository import LeaderboardRepository, SessionRepository
from putting.session.service import SessionService
from putting.session.settings import SessionSettings
from shared.auth import Identity
from shared.db import Database, SqliteDocumentStore
from shared.logging import setup_logging

logger = structlog.get_logger()

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from starlette.requests import Request

_MAX_REQUEST_BODY_SIZE = 4096

_ERROR_STATUS = {
    SessionErrorCode.SESSION_NOT_FOUND: HTTPStatus.NOT_FOUND,
    SessionErrorCode.PLAYER_NOT_FOUND: HTTPStatus.NOT_FOUND,
    SessionErrorCode.SESSION_CLOSED: HTTPStatus.CONFLICT,
    SessionErrorCode.NOT_OWNER: HTTPStatus.FORBIDDEN,
    SessionErrorCode.WRITE_FAILED: HTTPStatus.SERVICE_UNAVAILABLE,
    SessionErrorCode.LEADERBOARD_INCOMPLETE: HTTPStatus.SERVICE_UNAVAILABLE,
}


class BadRequestError(Exception):
    pass


class UnauthenticatedError(Exception):
    pass


async def _session_error_handler(_request: Request, exc: Exception) -> Response:
    session_exc = cast("SessionError", exc)
    return JSONResponse(
        {"error": session_exc.message, "code": session_exc.code},
        status_code=_ERROR_STATUS[session_exc.code],
    )


async def _bad_request_handler(_request: Request, exc: Exception) -> Response:
    return JSONResponse({"error": str(exc) or "Invalid request body"}, status_code=HTTPStatus.BAD_REQUEST)


async def _unauthenticated_handler(_request: Request, _exc: Exception) -> Response:
    return JSONResponse({"error": "Authentication required"}, status_code=HTTPStatus.UNAUTHORIZED)


def _identity(request: Request) -> Identity:
    """Identity asserted by the upstream identity provider in request headers."""
    uid = request.headers.get("x-user-id", "").strip()
    if not uid:
        raise UnauthenticatedError
    try:
        return Identity(
            uid=uid,
            display_name=request.headers.get("x-user-name"),
            photo_url=request.headers.get("x-user-photo") or None,
        )
    except ValidationError:
        raise UnauthenticatedError from None


async def _read_body(request: Request, model: type[BaseModel]) -> Any:
    raw_body = await request.body()
    if len(raw_body) > _MAX_REQUEST_BODY_SIZE:
        raise BadRequestError("Request body too large")
    try:
        body = json.loads(raw_body or b"{}")
        return model.model_validate(body)
    except (ValueError, TypeError, UnicodeDecodeError, ValidationError):  # fmt: skip
        raise BadRequestError("Invalid request body") from None


def _service(request: Request) -> SessionService:
    return request.app.state.service


async def health(_request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok"})


async def list_sessions(request: Request) -> JSONResponse:
    sessions = await _service(request).list_open_sessions()
    return JSONResponse({"sessions": [s.model_dump(mode="json") for s in sessions]})


async def create_session(request: Request) -> JSONResponse:
    identity = _identity(request)
    body = await _read_body(request, CreateSessionRequest)
    created = await _service(request).create_session(identity.uid, body.game, body.name)
    return JSONResponse(created.model_dump(), status_code=HTTPStatus.CREATED)


async def get_session(request: Request) -> JSONResponse:
    session = await _service(request).get_session(request.path_params["session_id"])
    return JSONResponse(session.model_dump(mode="json"))


async def delete_session(request: Request) -> Response:
    await _service(request).delete_session(request.path_params["session_id"], actor=_identity(request))
    return Response(status_code=HTTPStatus.NO_CONTENT)


async def join_by_code(request: Request) -> JSONResponse:
    identity = _identity(request)
    body = await _read_body(request, JoinByCodeRequest)
    session = await _service(request).join_by_code(body.code, identity)
    return JSONResponse(session.model_dump(mode="json"))


async def join_session(request: Request) -> JSONResponse:
    identity = _identity(request)
    session = await _service(request).join_by_id(request.path_params["session_id"], identity)
    return JSONResponse(session.model_dump(mode="json"))


async def submit_score(request: Request) -> JSONResponse:
    identity = _identity(request)
    body = await _read_body(request, SubmitScoreRequest)
    try:
        result = await _service(request).submit_score(request.path_params["session_id"], identity.uid, body.makes)
    except InvalidOutcomeError as exc:
        raise BadRequestError(str(exc)) from None
    return JSONResponse(result.model_dump(mode="json"))


async def end_session(request: Request) -> JSONResponse:
    identity = _identity(request)
    session = await _service(request).end_session(request.path_params["session_id"], actor=identity)
    return JSONResponse(session.model_dump(mode="json"))


async def leaderboard(request: Request) -> JSONResponse:
    params = request.query_params
    try:
        days = int(params["days"]) if "days" in params else None
        game = GameType(params["game"]) if "game" in params else None
        rows = await _service(request).fetch_global_leaderboard(window_days=days, game=game)
    except ValueError as exc:
        raise BadRequestError(str(exc)) from None
    return JSONResponse({"rows": [r.model_dump(mode="json") for r in rows]})


def build_service(
    db: Database,
    settings: ServerSettings,
    session_settings: SessionSettings | None = None,
) -> SessionService:
    store = SqliteDocumentStore(db, max_attempts=settings.max_transaction_attempts)
    return SessionService(SessionRepository(store), LeaderboardRepository(store), session_settings)


def create_app(
    settings: ServerSettings | None = None,
    service: SessionService | None = None,
) -> Starlette:
    if settings is None:  # pragma: no cover
        settings = ServerSettings()

    # When the app builds its own service, it owns the DB lifecycle.
    owned_db: Database | None = None
    if service is None:
        owned_db = Database(settings.database_path)
        owned_db.connect()
        service = build_service(owned_db, settings)

    routes = [
        Route("/health", health, methods=["GET"]),
        Route("/sessions", list_sessions, methods=["GET"]),
        Route("/sessions", create_session, methods=["POST"]),
        Route("/sessions/join", join_by_code, methods=["POST"]),
        Route("/sessions/{session_id}", get_session, methods=["GET"]),
        Route("/sessions/{session_id}", delete_session, methods=["DELETE"]),
        Route("/sessions/{session_id}/join", join_session, methods=["POST"]),
        Route("/sessions/{session_id}/scores", submit_score, methods=["POST"]),
        Route("/sessions/{session_id}/end", end_session, methods=["POST"]),
        Route("/leaderboard", leaderboard, methods=["GET"]),
        WebSocketRoute("/ws/sessions/{session_id}", spectator_endpoint),
    ]

    @contextlib.asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncGenerator[None]:
        yield
        if owned_db is not None:
            owned_db.close()

    app = Starlette(
        routes=routes,
        lifespan=lifespan,
        exception_handlers={
            SessionError: _session_error_handler,
            BadRequestError: _bad_request_handler,
            UnauthenticatedError: _unauthenticated_handler,
        },
    )
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["Content-Type", "X-User-Id", "X-User-Name", "X-User-Photo"],
    )
    app.state.settings = settings
    app.state.service = service

    logger.info("putting server ready")
    return app


def get_app() -> Starlette:  # pragma: no cover
    """ASGI application factory for production use (e.g., uvicorn --factory)."""
    settings = ServerSettings()
    setup_logging(log_dir=settings.log_dir)
    return create_app(settings=settings)
