from datetime import UTC, datetime

import pytest

from putting.logic.enums import GameType
from putting.session.models import LeaderboardEntry
from putting.session.repository import LeaderboardRepository, SessionRepository
from putting.session.service import SessionService, aggregate_leaderboard
from putting.session.settings import SessionSettings
from putting.tests.helpers import create_live_session, submit_all


def _entry(session_id: str, uid: str, points: int, name: str | None = None) -> LeaderboardEntry:
    return LeaderboardEntry(
        session_id=session_id,
        uid=uid,
        name=name or uid.title(),
        game=GameType.JYLY,
        points=points,
        created_at=datetime(2025, 6, 1, tzinfo=UTC),
    )


async def _finished_session(service, game: GameType, scores: dict[str, list[int]]) -> str:
    session = await create_live_session(service, game, list(scores))
    for uid, outcomes in scores.items():
        await submit_all(service, session.id, uid, outcomes)
    await service.end_session(session.id)
    return session.id


class TestAggregateLeaderboard:
    def test_sums_across_sessions_and_ranks(self):
        rows = aggregate_leaderboard([_entry("s2", "a", 10), _entry("s2", "b", 40), _entry("s1", "a", 35)], top_n=10)

        assert [(r.rank, r.uid, r.points, r.sessions) for r in rows] == [(1, "a", 45, 2), (2, "b", 40, 1)]

    def test_duplicate_rows_for_same_session_count_once(self):
        entries = [_entry("s1", "a", 30), _entry("s1", "a", 30), _entry("s1", "b", 10)]

        rows = aggregate_leaderboard(entries, top_n=10)

        assert [(r.uid, r.points, r.sessions) for r in rows] == [("a", 30, 1), ("b", 10, 1)]

    def test_newest_row_supplies_display_fields(self):
        entries = [_entry("s2", "a", 1, name="New Name"), _entry("s1", "a", 1, name="Old Name")]

        assert aggregate_leaderboard(entries, top_n=10)[0].name == "New Name"

    def test_ties_broken_by_name(self):
        rows = aggregate_leaderboard([_entry("s1", "z", 5, "Zed"), _entry("s1", "y", 5, "Amy")], top_n=10)

        assert [r.name for r in rows] == ["Amy", "Zed"]
        assert [r.rank for r in rows] == [1, 2]

    def test_truncates_to_top_n(self):
        entries = [_entry("s1", f"p{n}", n) for n in range(10)]

        rows = aggregate_leaderboard(entries, top_n=3)

        assert [r.uid for r in rows] == ["p9", "p8", "p7"]

    def test_empty(self):
        assert aggregate_leaderboard([], top_n=5) == []


class TestFetchGlobalLeaderboard:
    async def test_aggregates_closed_sessions(self, service):
        await _finished_session(service, GameType.RACE, {"alice": [5, 5], "bob": [1]})
        await _finished_session(service, GameType.RACE, {"bob": [5, 5, 5]})

        rows = await service.fetch_global_leaderboard()

        assert [(r.uid, r.points, r.sessions) for r in rows] == [("bob", 16, 2), ("alice", 10, 1)]

    async def test_rows_outside_window_are_ignored(self, service, clock):
        await _finished_session(service, GameType.RACE, {"alice": [5, 5]})
        clock.advance(days=31)
        await _finished_session(service, GameType.RACE, {"bob": [1]})

        assert [r.uid for r in await service.fetch_global_leaderboard()] == ["bob"]
        assert {r.uid for r in await service.fetch_global_leaderboard(window_days=60)} == {"alice", "bob"}

    async def test_filter_by_game(self, service):
        await _finished_session(service, GameType.RACE, {"alice": [5]})
        await _finished_session(service, GameType.T21, {"bob": [3]})

        rows = await service.fetch_global_leaderboard(game=GameType.T21)

        assert [r.uid for r in rows] == ["bob"]

    async def test_open_sessions_do_not_count(self, service):
        session = await create_live_session(service, GameType.RACE, ["alice"])
        await submit_all(service, session.id, "alice", [5])

        assert await service.fetch_global_leaderboard() == []

    async def test_respects_top_n_setting(self, store, clock):
        settings = SessionSettings(leaderboard_top_n=2)
        service = SessionService(SessionRepository(store), LeaderboardRepository(store), settings, clock=clock)
        await _finished_session(service, GameType.RACE, {"a": [1], "b": [2], "c": [3]})

        assert [r.uid for r in await service.fetch_global_leaderboard()] == ["c", "b"]

    @pytest.mark.parametrize("days", [0, -5])
    async def test_window_must_be_positive(self, service, days):
        with pytest.raises(ValueError, match="window_days"):
            await service.fetch_global_leaderboard(window_days=days)
