from functools import lru_cache
from typing import ClassVar

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    datadog_api_key: str
    datadog_app_key: str
    datadog_site: str = "datadoghq.com"  # API host becomes https://api.{site}

    # Time range / page sizing
    default_time_range_hours: int = 24
    default_limit: int = 25  # search page size when no limit given
    max_results: int = 100  # hard cap for search page size
    events_page_size: int = 1000  # page size for aggregate/top/timeseries/incidents
    request_timeout_seconds: float = 15.0

    # Rejects event creation when set
    read_only: bool = False

    log_level: str = "INFO"

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Lazily load and cache settings. Fails at first call, not at import time."""
    return Settings()  # type: ignore[call-arg]  # pyright: ignore[reportCallIssue]  # fields loaded from env
