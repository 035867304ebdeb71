"""Errors raised by the session protocol.

Every error carries a machine-readable code and a human-readable message, so
transports can map it to a status and clients can show it as-is.
"""

from enum import StrEnum


class SessionErrorCode(StrEnum):
    SESSION_NOT_FOUND = "session_not_found"
    PLAYER_NOT_FOUND = "player_not_found"
    SESSION_CLOSED = "session_closed"
    NOT_OWNER = "not_owner"
    WRITE_FAILED = "write_failed"
    LEADERBOARD_INCOMPLETE = "leaderboard_incomplete"


class SessionError(Exception):
    code: SessionErrorCode = SessionErrorCode.WRITE_FAILED

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class SessionNotFoundError(SessionError):
    code = SessionErrorCode.SESSION_NOT_FOUND

    def __init__(self, session_ref: str) -> None:
        super().__init__(f"Session not found: {session_ref}")
        self.session_ref = session_ref


class PlayerNotFoundError(SessionError):
    code = SessionErrorCode.PLAYER_NOT_FOUND

    def __init__(self, session_id: str, uid: str) -> None:
        super().__init__("Player is not in this session")
        self.session_id = session_id
        self.uid = uid


class SessionClosedError(SessionError):
    code = SessionErrorCode.SESSION_CLOSED

    def __init__(self, session_id: str) -> None:
        super().__init__("Session has ended")
        self.session_id = session_id


class NotOwnerError(SessionError):
    code = SessionErrorCode.NOT_OWNER

    def __init__(self, session_id: str, uid: str) -> None:
        super().__init__("Only the session owner can do that")
        self.session_id = session_id
        self.uid = uid


class SessionWriteError(SessionError):
    """The store rejected or could not complete a write; nothing was applied."""

    code = SessionErrorCode.WRITE_FAILED


class LeaderboardWriteError(SessionError):
    """Some leaderboard rows were written and some were not.

    Recovery is to run end_session again; the duplicate rows this creates are
    collapsed when the leaderboard is aggregated.
    """

    code = SessionErrorCode.LEADERBOARD_INCOMPLETE

    def __init__(self, session_id: str, written: int, failed: int) -> None:
        super().__init__(f"Saved {written} of {written + failed} leaderboard results, please end the session again")
        self.session_id = session_id
        self.written = written
        self.failed = failed
