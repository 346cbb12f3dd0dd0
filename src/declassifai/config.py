"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Client settings loaded from environment variables."""

    registry_base_url: str
    supabase_url: str
    supabase_anon_key: str
    request_timeout_seconds: float = 30.0
    transfer_timeout_seconds: float = 300.0
    poll_interval_seconds: float = 3.0
    poll_max_attempts: int = 40
    layout_interval_seconds: float = 1.0
    relay_close_delay_seconds: float = 0.6
    relay_target_origin: str | None = None
    embed_allowed_origins: str | None = None
    health_check_interval_seconds: float = 30.0
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def parse_allowed_origins(raw: str | None) -> tuple[str, ...]:
    """Parse the comma-separated list of origins allowed to embed the app."""
    if raw is None:
        return ()
    origins: list[str] = []
    for chunk in raw.split(","):
        value = chunk.strip().rstrip("/")
        if not value or value == "*":
            continue
        if value not in origins:
            origins.append(value)
    return tuple(origins)
