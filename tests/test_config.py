"""
StatusPulse Gate - Configuration Tests
"""

import pytest

from config import DEFAULT_CRON_URL, ConfigurationError, Settings

ENV_VARS = [
    "SUPABASE_URL", "SUPABASE_KEY", "SUPABASE_SERVICE_KEY", "CRON_SECRET", "CRON_URL",
    "CRON_INTERVAL", "SESSION_COOKIE_SECURE", "ACCESS_TOKEN_COOKIE", "REFRESH_TOKEN_COOKIE",
    "LOG_LEVEL", "PORT", "QSTASH_CURRENT_SIGNING_KEY", "QSTASH_NEXT_SIGNING_KEY",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestFromEnv:
    """Tests for loading settings."""

    def test_defaults(self):
        settings = Settings.from_env(dotenv=False)
        assert settings.cron_url == DEFAULT_CRON_URL
        assert settings.cron_interval == 30
        assert settings.session_cookie_secure is True
        assert settings.access_token_cookie == "sb-access-token"
        assert settings.refresh_token_cookie == "sb-refresh-token"
        assert settings.log_level == "INFO"
        assert settings.port == 3001

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("SUPABASE_URL", "https://p.supabase.co")
        monkeypatch.setenv("SUPABASE_KEY", "anon")
        monkeypatch.setenv("CRON_SECRET", "s3cret")
        monkeypatch.setenv("CRON_INTERVAL", "60")
        monkeypatch.setenv("SESSION_COOKIE_SECURE", "false")
        monkeypatch.setenv("LOG_LEVEL", "debug")

        settings = Settings.from_env(dotenv=False)

        assert settings.supabase_url == "https://p.supabase.co"
        assert settings.cron_secret == "s3cret"
        assert settings.cron_interval == 60
        assert settings.session_cookie_secure is False
        assert settings.log_level == "DEBUG"

    def test_qstash_signing_keys(self, monkeypatch):
        monkeypatch.setenv("QSTASH_CURRENT_SIGNING_KEY", "sig_current")
        monkeypatch.setenv("QSTASH_NEXT_SIGNING_KEY", "sig_next")

        settings = Settings.from_env(dotenv=False)

        assert settings.qstash_current_signing_key == "sig_current"
        assert settings.qstash_next_signing_key == "sig_next"


class TestRequireSupabase:
    """Tests for the Supabase configuration check."""

    def test_missing(self):
        with pytest.raises(ConfigurationError):
            Settings(supabase_url="https://p.supabase.co").require_supabase()

    def test_present(self):
        Settings(supabase_url="https://p.supabase.co", supabase_key="anon").require_supabase()
