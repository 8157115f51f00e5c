"""
Configuration helpers for the portfolio backend.

Routers and services read settings through get_settings() instead of
fetching os.environ directly. Tests call get_settings.cache_clear() after
changing the environment.
"""

from dataclasses import dataclass
from functools import lru_cache
import os


@dataclass(frozen=True)
class Settings:
    """Typed view of environment variables."""

    app_env: str
    database_url: str
    public_base_url: str
    service_url: str
    smtp_host: str
    smtp_port: int
    smtp_user: str
    smtp_password: str
    smtp_from: str
    password_reset_ttl: int
    session_ttl_seconds: int
    log_level: str


@lru_cache
def get_settings() -> Settings:
    """Read the current environment and build a Settings instance."""
    def _int(value: str, default: int = 0) -> int:
        try:
            return int(value)
        except (TypeError, ValueError):
            return default

    return Settings(
        app_env=(os.getenv("APP_ENV") or "dev").lower(),
        database_url=os.getenv("DATABASE_URL", "sqlite:///./portfolio.db"),
        public_base_url=os.getenv("PUBLIC_BASE_URL", "http://localhost:5001").rstrip("/"),
        service_url=os.getenv("SERVICE_URL", "http://localhost:3000").rstrip("/"),
        smtp_host=os.getenv("SMTP_HOST", ""),
        smtp_port=_int(os.getenv("SMTP_PORT", "465"), 465),
        smtp_user=os.getenv("SMTP_USER", ""),
        smtp_password=os.getenv("SMTP_PASSWORD", ""),
        smtp_from=os.getenv("SMTP_FROM", os.getenv("SMTP_USER", "")),
        password_reset_ttl=_int(os.getenv("PASSWORD_RESET_TTL", "3600"), 3600),
        session_ttl_seconds=_int(os.getenv("SESSION_TTL_SECONDS", "86400"), 86400),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
    )
