import pytest
from pydantic import ValidationError

from putting.server.settings import ServerSettings, parse_origins
from putting.session.settings import SessionSettings


class TestParseOrigins:
    def test_comma_separated(self):
        assert parse_origins(" http://a , http://b ,") == ["http://a", "http://b"]

    def test_json_array(self):
        assert parse_origins('["http://a", "http://b"]') == ["http://a", "http://b"]

    def test_list_passes_through(self):
        assert parse_origins(["http://a"]) == ["http://a"]

    @pytest.mark.parametrize("value", ["", " , ", "[1, 2]", "[not json"])
    def test_rejects_invalid(self, value):
        with pytest.raises(ValueError):
            parse_origins(value)


class TestServerSettings:
    def test_reads_prefixed_environment(self, monkeypatch):
        monkeypatch.setenv("PUTTING_DATABASE_PATH", "/tmp/putting.db")
        monkeypatch.setenv("PUTTING_CORS_ORIGINS", "http://a,http://b")
        monkeypatch.setenv("PUTTING_MAX_TRANSACTION_ATTEMPTS", "9")

        settings = ServerSettings()

        assert settings.database_path == "/tmp/putting.db"
        assert settings.cors_origins == ["http://a", "http://b"]
        assert settings.max_transaction_attempts == 9

    def test_transaction_attempts_must_be_positive(self):
        with pytest.raises(ValidationError):
            ServerSettings(max_transaction_attempts=0)


class TestSessionSettings:
    def test_defaults(self, monkeypatch):
        for name in ("OPEN_SESSIONS_LIMIT", "LEADERBOARD_TOP_N", "LEADERBOARD_WINDOW_DAYS", "LEADERBOARD_SCAN_LIMIT"):
            monkeypatch.delenv(f"PUTTING_{name}", raising=False)

        settings = SessionSettings()

        assert settings.open_sessions_limit == 50
        assert settings.leaderboard_top_n == 20
        assert settings.leaderboard_window_days == 30
        assert settings.leaderboard_scan_limit == 500

    @pytest.mark.parametrize("limit", [24, 51])
    def test_open_sessions_limit_stays_in_page_range(self, limit):
        with pytest.raises(ValidationError):
            SessionSettings(open_sessions_limit=limit)

    def test_reads_prefixed_environment(self, monkeypatch):
        monkeypatch.setenv("PUTTING_LEADERBOARD_WINDOW_DAYS", "7")

        assert SessionSettings().leaderboard_window_days == 7
