"""
TRUEEQUITY — Unit Tests for Configuration
Environment variable names that differ from the field names.
"""
from trueequity.config.settings import DataSourceSettings, DatabaseSettings, IngestionSettings


class TestEnvironmentNames:
    def test_database_url_and_echo(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///other.db")
        monkeypatch.setenv("DB_ECHO_SQL", "true")
        settings = DatabaseSettings()
        assert settings.db_url == "sqlite+aiosqlite:///other.db"
        assert settings.echo_sql is True

    def test_alpha_vantage_interval_and_user_agent(self, monkeypatch):
        monkeypatch.setenv("ALPHA_VANTAGE_MIN_INTERVAL", "1.5")
        monkeypatch.setenv("HTTP_USER_AGENT", "trueequity-test")
        settings = DataSourceSettings()
        assert settings.alpha_vantage_min_interval_seconds == 1.5
        assert settings.user_agent == "trueequity-test"

    def test_defaults(self, monkeypatch):
        for name in ("DATABASE_URL", "DB_ECHO_SQL", "ALPHA_VANTAGE_MIN_INTERVAL"):
            monkeypatch.delenv(name, raising=False)
        assert DatabaseSettings().db_url == "sqlite+aiosqlite:///trueequity.db"
        assert DataSourceSettings().alpha_vantage_min_interval_seconds == 12.0

    def test_keyword_construction_still_works(self):
        assert DatabaseSettings(db_url="sqlite+aiosqlite://").db_url == "sqlite+aiosqlite://"
        assert DataSourceSettings(alpha_vantage_min_interval_seconds=0).alpha_vantage_min_interval_seconds == 0
        assert IngestionSettings(step_pause_seconds=0).step_pause_seconds == 0
