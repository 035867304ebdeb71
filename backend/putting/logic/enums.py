"""Enumerations shared by the scoring engines and the session protocol."""

from enum import StrEnum


class GameType(StrEnum):
    """Putting game variants. Fixed for the lifetime of a session."""

    JYLY = "JYLY"  # distance-based, 20 rounds
    ATW = "ATW"  # around the world: one round per station
    LADDER = "LADDER"
    T21 = "T21"  # count to 21
    RACE = "RACE"  # race to 50


class SessionStatus(StrEnum):
    LOBBY = "lobby"
    LIVE = "live"
    CLOSED = "closed"


class PlayerStatus(StrEnum):
    LOBBY = "lobby"
    LIVE = "live"
    DONE = "done"
