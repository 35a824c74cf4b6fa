"""
Client configuration settings.

All configuration is loaded from environment variables with sensible defaults.
"""
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Sync core settings loaded from environment variables."""

    # Application
    app_name: str = "KPT Connect"
    debug: bool = False
    user_agent: str = "KPTConnectSync/1.0"

    # Backend API (supplied by the hosting environment)
    api_base_url: str = "http://localhost:3001/api"
    api_timeout: float = 15.0  # seconds

    # Notification list
    per_page: int = 20
    new_notification_window_minutes: int = 5
    notification_stats_days: int = 30

    # Polling defaults
    poll_interval: float = 30.0  # seconds
    poll_auto_stop: bool = True
    poll_max_duration: float = 60.0  # minutes
    min_poll_interval: float = 1.0  # seconds, floor for PollingConfig.interval
    in_flight_timeout: float = 30.0  # seconds before a hung tick is abandoned

    @field_validator("api_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize the base URL so paths can be appended directly."""
        return v.rstrip("/")

    class Config:
        env_prefix = "KPT_SYNC_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
