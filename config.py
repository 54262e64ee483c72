"""
StatusPulse Gate - Configuration
Settings are read from the environment (and a local .env file).
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv


DEFAULT_CRON_URL = "http://localhost:3001/api/cron/check-monitors"


class ConfigurationError(RuntimeError):
    """Raised when a required setting is missing."""


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_key: str = ""
    cron_secret: str = ""
    qstash_current_signing_key: str = ""
    qstash_next_signing_key: str = ""
    cron_url: str = DEFAULT_CRON_URL
    cron_interval: int = 30
    session_cookie_secure: bool = True
    access_token_cookie: str = "sb-access-token"
    refresh_token_cookie: str = "sb-refresh-token"
    log_level: str = "INFO"
    port: int = 3001

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "Settings":
        """Build settings from environment variables."""
        if dotenv:
            load_dotenv()

        return cls(
            supabase_url=os.getenv("SUPABASE_URL", ""),
            supabase_key=os.getenv("SUPABASE_KEY", ""),
            supabase_service_key=os.getenv("SUPABASE_SERVICE_KEY", ""),
            cron_secret=os.getenv("CRON_SECRET", ""),
            qstash_current_signing_key=os.getenv("QSTASH_CURRENT_SIGNING_KEY", ""),
            qstash_next_signing_key=os.getenv("QSTASH_NEXT_SIGNING_KEY", ""),
            cron_url=os.getenv("CRON_URL", DEFAULT_CRON_URL),
            cron_interval=int(os.getenv("CRON_INTERVAL", "30")),
            session_cookie_secure=_env_bool("SESSION_COOKIE_SECURE", "true"),
            access_token_cookie=os.getenv("ACCESS_TOKEN_COOKIE", "sb-access-token"),
            refresh_token_cookie=os.getenv("REFRESH_TOKEN_COOKIE", "sb-refresh-token"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            port=int(os.getenv("PORT", "3001")),
        )

    def require_supabase(self):
        """Fail fast when the Supabase project is not configured."""
        if not self.supabase_url or not self.supabase_key:
            raise ConfigurationError("Set SUPABASE_URL and SUPABASE_KEY in .env")
