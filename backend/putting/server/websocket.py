"""Spectator stream: push every session snapshot to a read-only WebSocket."""

from __future__ import annotations

import asyncio
import contextlib
import re
from typing import TYPE_CHECKING, Any

import structlog
from starlette.websockets import WebSocket, WebSocketDisconnect

if TYPE_CHECKING:
    from putting.session.models import Session
    from putting.session.service import SessionService

logger = structlog.get_logger()

_SESSION_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")
_MAX_SESSION_ID_LENGTH = 64

# Nothing follows these; the server closes the socket after sending one.
_FINAL_MESSAGE_TYPES = frozenset({"deleted", "error"})

# Snapshots are whole sessions, so a slow spectator only needs the newest few.
_BACKLOG = 4


def snapshot_message(session: Session | None) -> dict[str, Any]:
    if session is None:
        return {"type": "deleted"}
    return {"type": "session", "session": session.model_dump(mode="json")}


def offer(queue: asyncio.Queue[dict[str, Any]], message: dict[str, Any]) -> None:
    """Enqueue without blocking, discarding the oldest message when the queue is full."""
    if queue.full():
        stale = queue.get_nowait()
        logger.debug("dropped stale spectator snapshot", type=stale["type"])
    queue.put_nowait(message)


async def _send_snapshots(websocket: WebSocket, queue: asyncio.Queue[dict[str, Any]]) -> None:
    while True:
        message = await queue.get()
        try:
            await websocket.send_json(message)
        except (WebSocketDisconnect, RuntimeError):
            return
        if message["type"] in _FINAL_MESSAGE_TYPES:
            with contextlib.suppress(WebSocketDisconnect, RuntimeError):
                await websocket.close(code=1000)
            return


async def _drain(websocket: WebSocket) -> None:
    """Read until the client goes away. Spectators never send anything meaningful."""
    with contextlib.suppress(WebSocketDisconnect, RuntimeError):
        while True:
            await websocket.receive_text()


async def spectator_endpoint(websocket: WebSocket) -> None:
    session_id = websocket.path_params["session_id"]
    if not _SESSION_ID_PATTERN.match(session_id) or len(session_id) > _MAX_SESSION_ID_LENGTH:
        await websocket.close(code=4000, reason="invalid_session_id")
        return

    service: SessionService = websocket.app.state.service
    await websocket.accept()

    # Snapshots arrive synchronously from whichever task committed the write;
    # the queue hands them to this connection's own sender.
    queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=_BACKLOG)

    def on_error(error: Exception) -> None:
        offer(queue, {"type": "error", "error": "Live updates stopped", "detail": str(error)})

    with structlog.contextvars.bound_contextvars(session_id=session_id):
        subscription = service.observe_session(session_id, lambda s: offer(queue, snapshot_message(s)), on_error)
        logger.info("spectator connected")

        sender = asyncio.create_task(_send_snapshots(websocket, queue))
        reader = asyncio.create_task(_drain(websocket))
        try:
            await asyncio.wait({sender, reader}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            subscription.close()
            for task in (sender, reader):
                task.cancel()
            await asyncio.gather(sender, reader, return_exceptions=True)
            logger.info("spectator disconnected")
