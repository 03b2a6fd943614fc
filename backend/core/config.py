"""Application settings loaded from the environment."""

from __future__ import annotations

import re
from datetime import timedelta
from typing import Any

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_JWT_SECRET = "local-development-secret-change-me"
_DURATION_PATTERN = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$")
_DURATION_UNITS = {
    "": 1,
    "s": 1,
    "m": 60,
    "h": 60 * 60,
    "d": 24 * 60 * 60,
}


def parse_duration(value: Any) -> timedelta:
    """Parse ``30s``/``15m``/``24h``/``7d`` (or bare seconds) into a timedelta."""
    if isinstance(value, timedelta):
        return value
    if isinstance(value, (int, float)):
        seconds = int(value)
    else:
        match = _DURATION_PATTERN.match(str(value))
        if match is None:
            raise ValueError(f"Invalid duration: {value!r}")
        amount, unit = match.groups()
        seconds = int(amount) * _DURATION_UNITS[unit]
    if seconds <= 0:
        raise ValueError("Duration must be positive")
    return timedelta(seconds=seconds)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_env: str = "local"
    log_level: str = "INFO"

    database_url: str = "sqlite+aiosqlite:///./auth.db"
    db_timeout_seconds: float = 10.0

    jwt_secret: str = DEFAULT_JWT_SECRET
    jwt_algorithm: str = "HS256"
    access_token_expiry: timedelta = timedelta(minutes=15)
    access_token_expiry_remember: timedelta = timedelta(hours=24)
    refresh_token_expiry: timedelta = timedelta(days=7)
    refresh_token_expiry_remember: timedelta = timedelta(days=30)

    otp_expire_minutes: int = 10
    otp_max_attempts: int = 5
    verification_grant_ttl_minutes: int = 30
    email_change_session_ttl_minutes: int = 30
    password_reset_revokes_sessions: bool = True

    token_cleanup_enabled: bool = True
    token_cleanup_interval_seconds: int = 3600

    allow_insecure_http_cookies: bool = False

    redis_url: str = "redis://localhost:6379/0"
    rate_limit_requests: int = 100
    rate_limit_window_seconds: int = 60
    rate_limit_trusted_proxies: list[str] = []
    rate_limit_ip_headers: list[str] = ["x-forwarded-for", "x-real-ip"]

    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_user: str | None = None
    smtp_password: str | None = None
    smtp_use_tls: bool = True
    smtp_from_email: str | None = None
    smtp_from_name: str = "LANMIC Admin"

    @field_validator(
        "access_token_expiry",
        "access_token_expiry_remember",
        "refresh_token_expiry",
        "refresh_token_expiry_remember",
        mode="before",
    )
    @classmethod
    def _parse_expiry(cls, value: Any) -> timedelta:
        return parse_duration(value)

    @model_validator(mode="after")
    def _require_real_secret_outside_local(self) -> "Settings":
        if self.is_production and self.jwt_secret == DEFAULT_JWT_SECRET:
            raise ValueError("JWT_SECRET must be set in production")
        return self

    @property
    def is_production(self) -> bool:
        return self.app_env.strip().lower() == "production"

    def access_token_ttl(self, remember_me: bool) -> timedelta:
        return self.access_token_expiry_remember if remember_me else self.access_token_expiry

    def refresh_token_ttl(self, remember_me: bool) -> timedelta:
        return self.refresh_token_expiry_remember if remember_me else self.refresh_token_expiry


settings = Settings()
