"""Service configuration pulled from environment variables via pydantic."""
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from utils.logging_utils import get_tagged_logger
logger = get_tagged_logger(__name__, tag="config")


class Settings(BaseSettings):
    """Environment-driven configuration for the waterbender dashboard service."""
    model_config = SettingsConfigDict(env_prefix="WATERBENDER_", extra="ignore")

    data_source: str = "senselog"  # options: senselog, postgres
    api_base_url: str = "https://opr-poins-mobile-01-kpd.azurewebsites.net/api"
    database_url: str = "sqlite:///./senselog.db"
    request_timeout_seconds: float = 30.0
    forecast_timeout_seconds: float = 15.0
    forecast_hours: int = 48

    # cache horizons per dataset
    latest_ttl_seconds: int = 60
    average_ttl_seconds: int = 300
    daily_ttl_seconds: int = 300
    monthly_ttl_seconds: int = 3600
    forecast_ttl_seconds: int = 300
    discard_stale_settlements: bool = True

    api_key: str | None = None
    session_redis_url: str | None = None
    session_ttl_seconds: int = 3600

    min_year: int = 2020
    max_range_days: int = 365
    log_level: str = "INFO"

    @field_validator("api_base_url", mode="after")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize base URLs to avoid double slashes."""
        return str(v).rstrip("/")

    @field_validator("data_source", mode="after")
    @classmethod
    def lower_source(cls, v: str) -> str:
        """Backend names are matched case-insensitively."""
        return str(v).strip().lower()


settings = Settings()


if __name__ == "__main__":
    logger.setLevel("DEBUG")
    logger.info(f"Loaded settings: {settings.model_dump_json(indent=4)}")
