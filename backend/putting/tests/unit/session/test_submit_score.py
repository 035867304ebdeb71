import asyncio

import pytest

from putting.logic.enums import GameType, PlayerStatus, SessionStatus
from putting.logic.jyly import JYLY_MAX_ROUNDS
from putting.logic.scoring import InvalidOutcomeError
from putting.session.exceptions import PlayerNotFoundError, SessionNotFoundError
from putting.session.models import LeaderboardEntry
from putting.session.repository import LeaderboardRepository, SessionRepository
from putting.session.service import SessionService
from putting.tests.helpers import create_live_session, submit_all
from shared.dal import StoreError


class TestSubmitScore:
    async def test_jyly_rounds_accumulate(self, service):
        session = await create_live_session(service, GameType.JYLY, ["alice"])

        first = await service.submit_score(session.id, "alice", 3)
        second = await service.submit_score(session.id, "alice", 5)

        assert (first.points, second.points) == (30, 40)
        assert first.applied and second.applied
        player = (await service.get_session(session.id)).find_player("alice")
        assert player is not None
        assert player.total_points == 70
        assert player.state.accumulated_points == 70
        assert [r.distance_m for r in player.state.history] == [10, 8]

    async def test_result_carries_updated_player(self, service):
        session = await create_live_session(service, GameType.T21, ["alice"])

        result = await service.submit_score(session.id, "alice", 4)

        assert result.player is not None
        assert result.player.state.total == 4
        assert result.player.total_points == 4
        assert not result.closed

    async def test_out_of_range_makes_are_clamped(self, service):
        session = await create_live_session(service, GameType.RACE, ["alice"])

        high = await service.submit_score(session.id, "alice", 12)
        low = await service.submit_score(session.id, "alice", -2)

        assert (high.points, low.points) == (5, 0)

    async def test_non_numeric_makes_change_nothing(self, service):
        session = await create_live_session(service, GameType.RACE, ["alice"])

        with pytest.raises(InvalidOutcomeError):
            await service.submit_score(session.id, "alice", "three")

        after = await service.get_session(session.id)
        assert after.version == session.version

    async def test_unknown_player(self, service):
        session = await create_live_session(service, GameType.RACE, ["alice"])

        with pytest.raises(PlayerNotFoundError):
            await service.submit_score(session.id, "mallory", 3)

    async def test_unknown_session(self, service):
        with pytest.raises(SessionNotFoundError):
            await service.submit_score("missing", "alice", 3)

    async def test_other_players_are_untouched(self, service):
        session = await create_live_session(service, GameType.ATW, ["alice", "bob"])

        await service.submit_score(session.id, "alice", 2)

        bob = (await service.get_session(session.id)).find_player("bob")
        assert bob is not None
        assert bob.rounds_played == 0
        assert bob.total_points == 0

    async def test_concurrent_submissions_are_all_recorded(self, service):
        uids = ["alice", "bob", "carol"]
        session = await create_live_session(service, GameType.RACE, uids)

        await asyncio.gather(*(service.submit_score(session.id, uid, 3) for uid in uids for _ in range(4)))

        after = await service.get_session(session.id)
        assert after.version == session.version + 12
        for player in after.players:
            assert player.rounds_played == 4
            assert player.total_points == 12


class TestRoundCap:
    async def test_submission_after_last_round_is_ignored(self, service):
        session = await create_live_session(service, GameType.JYLY, ["alice", "bob"])
        await submit_all(service, session.id, "alice", [2] * JYLY_MAX_ROUNDS)
        before = await service.get_session(session.id)

        result = await service.submit_score(session.id, "alice", 5)

        assert not result.applied
        assert result.points == 0
        assert result.player == before.find_player("alice")
        after = await service.get_session(session.id)
        assert after.version == before.version

    async def test_finished_player_is_done_but_session_stays_open(self, service):
        session = await create_live_session(service, GameType.JYLY, ["alice", "bob"])

        await submit_all(service, session.id, "alice", [1] * JYLY_MAX_ROUNDS)

        after = await service.get_session(session.id)
        alice = after.find_player("alice")
        assert alice is not None
        assert alice.status is PlayerStatus.DONE
        assert after.status is SessionStatus.LIVE

    async def test_racing_final_submissions_record_one_round(self, service):
        session = await create_live_session(service, GameType.JYLY, ["alice", "bob"])
        await submit_all(service, session.id, "alice", [1] * (JYLY_MAX_ROUNDS - 1))

        results = await asyncio.gather(
            service.submit_score(session.id, "alice", 5),
            service.submit_score(session.id, "alice", 5),
        )

        assert sorted(r.applied for r in results) == [False, True]
        alice = (await service.get_session(session.id)).find_player("alice")
        assert alice is not None
        assert alice.rounds_played == JYLY_MAX_ROUNDS

    async def test_other_games_have_no_cap(self, service):
        session = await create_live_session(service, GameType.LADDER, ["alice"])

        await submit_all(service, session.id, "alice", [3] * 25)

        alice = (await service.get_session(session.id)).find_player("alice")
        assert alice is not None
        assert alice.rounds_played == 25


class TestAutoClose:
    async def test_last_jyly_player_finishing_closes_session(self, service):
        session = await create_live_session(service, GameType.JYLY, ["alice"])
        await submit_all(service, session.id, "alice", [2] * (JYLY_MAX_ROUNDS - 1))

        result = await service.submit_score(session.id, "alice", 2)

        assert result.applied
        assert result.closed
        after = await service.get_session(session.id)
        assert after.status is SessionStatus.CLOSED
        rows = await service.fetch_global_leaderboard()
        assert [(r.uid, r.points) for r in rows] == [("alice", after.players[0].total_points)]

    async def test_waits_for_every_player(self, service):
        session = await create_live_session(service, GameType.JYLY, ["alice", "bob"])
        await submit_all(service, session.id, "alice", [2] * JYLY_MAX_ROUNDS)
        assert (await service.get_session(session.id)).status is SessionStatus.LIVE

        await submit_all(service, session.id, "bob", [3] * JYLY_MAX_ROUNDS)

        assert (await service.get_session(session.id)).status is SessionStatus.CLOSED
        assert {r.uid for r in await service.fetch_global_leaderboard()} == {"alice", "bob"}

    async def test_non_jyly_games_never_auto_close(self, service):
        session = await create_live_session(service, GameType.RACE, ["alice"])

        await submit_all(service, session.id, "alice", [5] * 12)

        assert (await service.get_session(session.id)).status is SessionStatus.LIVE

    async def test_submissions_on_closed_session_are_ignored(self, service):
        session = await create_live_session(service, GameType.T21, ["alice"])
        await service.end_session(session.id)

        result = await service.submit_score(session.id, "alice", 3)

        assert not result.applied
        assert result.closed

    async def test_failed_publish_does_not_fail_the_final_round(self, store, session_settings, clock):
        leaderboard = _UnavailableLeaderboard(store)
        service = SessionService(SessionRepository(store), leaderboard, session_settings, clock=clock)
        session = await create_live_session(service, GameType.JYLY, ["alice"])
        await submit_all(service, session.id, "alice", [2] * (JYLY_MAX_ROUNDS - 1))

        result = await service.submit_score(session.id, "alice", 2)

        assert result.applied
        assert result.closed
        assert not result.results_published
        assert result.player.rounds_played == JYLY_MAX_ROUNDS
        assert await service.fetch_global_leaderboard() == []

        leaderboard.available = True
        await service.end_session(session.id)

        rows = await service.fetch_global_leaderboard()
        assert [(r.uid, r.points) for r in rows] == [("alice", result.player.total_points)]


class _UnavailableLeaderboard(LeaderboardRepository):
    def __init__(self, store) -> None:
        super().__init__(store)
        self.available = False

    async def append(self, entry: LeaderboardEntry) -> str:
        if not self.available:
            raise StoreError("leaderboard unavailable")
        return await super().append(entry)
