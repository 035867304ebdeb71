from putting.logic.enums import GameType, SessionStatus
from putting.session.repository import LeaderboardRepository, SessionRepository
from putting.session.service import SessionService
from putting.session.settings import SessionSettings
from putting.tests.helpers import OWNER_UID, create_live_session, identity


class TestObserveOpenSessions:
    async def test_follows_creates_and_closes(self, service):
        first = await service.create_session(OWNER_UID, GameType.JYLY)
        snapshots: list[list[str]] = []

        subscription = service.observe_open_sessions(lambda sessions: snapshots.append([s.id for s in sessions]))
        second = await service.create_session(OWNER_UID, GameType.RACE)
        await service.end_session(first.id)

        assert snapshots[0] == [first.id]
        assert snapshots[1] == [second.id, first.id]
        assert snapshots[-1] == [second.id]
        subscription.close()

    async def test_newest_first_and_limited(self, store, clock):
        settings = SessionSettings(open_sessions_limit=25)
        service = SessionService(SessionRepository(store), LeaderboardRepository(store), settings, clock=clock)
        ids = [(await service.create_session(OWNER_UID, GameType.T21)).id for _ in range(27)]

        sessions = await service.list_open_sessions()

        assert [s.id for s in sessions] == ids[:1:-1]

    async def test_closed_sessions_are_not_listed(self, service):
        session = await create_live_session(service, GameType.RACE, ["alice"])
        await service.end_session(session.id)

        assert await service.list_open_sessions() == []


class TestObserveSession:
    async def test_spectator_sees_every_change(self, service):
        created = await service.create_session(OWNER_UID, GameType.RACE)
        seen = []

        service.observe_session(created.id, seen.append)
        await service.join_by_id(created.id, identity("alice"))
        await service.submit_score(created.id, "alice", 4)
        await service.end_session(created.id)

        assert [s.status for s in seen] == [
            SessionStatus.LOBBY,
            SessionStatus.LIVE,
            SessionStatus.LIVE,
            SessionStatus.CLOSED,
        ]
        assert seen[2].players[0].total_points == 4

    async def test_ignored_submission_sends_nothing(self, service):
        session = await create_live_session(service, GameType.RACE, ["alice"])
        await service.end_session(session.id)
        seen = []

        service.observe_session(session.id, seen.append)
        await service.submit_score(session.id, "alice", 4)

        assert len(seen) == 1

    async def test_deletion_delivers_none(self, service):
        created = await service.create_session(OWNER_UID, GameType.RACE)
        seen = []

        service.observe_session(created.id, seen.append)
        await service.delete_session(created.id)

        assert seen[-1] is None

    async def test_failing_observer_gets_error_callback(self, service):
        created = await service.create_session(OWNER_UID, GameType.RACE)
        errors: list[Exception] = []

        def render(session):
            if session is not None and session.players:
                raise ValueError("bad render")

        subscription = service.observe_session(created.id, render, errors.append)
        await service.join_by_id(created.id, identity("alice"))

        assert not subscription.active
        assert len(errors) == 1
