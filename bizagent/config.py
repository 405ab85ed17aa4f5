"""
Application configuration using pydantic-settings.
All config is validated at startup - fail fast if anything is missing.
"""
from pydantic_settings import BaseSettings
from pydantic import Field
from functools import lru_cache
from typing import Literal


class Settings(BaseSettings):
    # Application
    app_env: str = "development"
    app_host: str = "0.0.0.0"
    app_port: int = 3001
    app_base_url: str = "http://localhost:3001"
    log_level: str = "INFO"
    log_json: bool = True

    # Database
    database_url: str = "postgresql+asyncpg://localhost:5432/bizagent"
    database_pool_size: int = 10
    database_max_overflow: int = 5

    # Redis (booking locks, worker heartbeats)
    redis_url: str = "redis://localhost:6379/0"
    redis_socket_timeout_seconds: float = 2.0

    # Sentry
    sentry_dsn: str = ""

    # Google Calendar (OAuth2 refresh-token flow)
    google_calendar_id: str = "primary"
    google_client_id: str = ""
    google_client_secret: str = ""
    google_refresh_token: str = ""

    # Calendar behaviour
    calendar_timezone: str = "Europe/Bratislava"
    calendar_organizer_email: str = ""
    calendar_slot_times: list[str] = Field(
        default_factory=lambda: ["10:00", "11:00", "13:00", "14:00", "15:00"]
    )
    calendar_sync_horizon_days: int = 28
    calendar_view_authority: Literal["store", "remote"] = "store"
    calendar_cancellation_policy: Literal["delete", "keep"] = "delete"
    calendar_throttle_policy: Literal["fixed", "token_bucket", "none"] = "fixed"
    calendar_rate_limit_seconds: float = 1.0
    calendar_burst: int = 5
    calendar_mock_failure_rate: float = 0.0

    # Slot inventory
    slot_capacity_floor: int = 25
    slot_capacity_lead_days: int = 14
    slot_generation_batch_size: int = 100
    slot_generation_max_weeks: int = 20

    # Booking lock (per slot date and time)
    slot_lock_ttl_seconds: int = 30
    slot_lock_wait_seconds: float = 5.0

    # Maintenance worker (off by default; runs sync + capacity check once per interval)
    slot_maintenance_enabled: bool = False
    slot_maintenance_interval_seconds: int = 86400

    @property
    def google_calendar_configured(self) -> bool:
        return bool(
            self.google_client_id and self.google_client_secret and self.google_refresh_token
        )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
