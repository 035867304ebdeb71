import pytest

from putting.session.repository import LeaderboardRepository, SessionRepository
from putting.session.service import SessionService
from putting.session.settings import SessionSettings
from putting.tests.helpers import ManualClock
from shared.db import Database, SqliteDocumentStore


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def db(tmp_path):
    database = Database(tmp_path / "test.db")
    database.connect()
    yield database
    database.close()


@pytest.fixture
def store(db, clock):
    return SqliteDocumentStore(db, clock=clock)


@pytest.fixture
def session_settings():
    return SessionSettings(open_sessions_limit=50, leaderboard_top_n=20, leaderboard_window_days=30)


@pytest.fixture
def service(store, session_settings, clock):
    return SessionService(SessionRepository(store), LeaderboardRepository(store), session_settings, clock=clock)
