"""Client configuration."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class ClientSettings(BaseSettings):
    """Client settings loaded from KEYGATE_CLIENT_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="KEYGATE_CLIENT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    API_BASE_URL: str = "http://localhost:8000/api/v1"
    STATE_DIR: str = "~/.keygate"
    REVALIDATION_INTERVAL_SECONDS: float = 300.0
    REQUEST_TIMEOUT_SECONDS: float = 10.0


@lru_cache
def get_client_settings() -> ClientSettings:
    """Get cached client settings instance."""
    return ClientSettings()
