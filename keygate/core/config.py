"""Application configuration management."""

import json
from functools import lru_cache
from typing import Any
from urllib.parse import urlsplit

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LOCAL_HOSTS = ("localhost", "127.0.0.1")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "KeyGate"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"  # Must explicitly set to "production" in prod deployments

    # API
    API_V1_PREFIX: str = "/api/v1"

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./keygate.db"

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        if v and not (v.startswith("postgresql") or v.startswith("sqlite")):
            raise ValueError("DATABASE_URL must be a PostgreSQL or SQLite connection string")
        return v

    # Token lifecycle
    TOKEN_TTL_HOURS: int = 24

    # Callback (where the gate sends the browser back to)
    PUBLIC_BASE_URL: str = "http://localhost:5173"
    CALLBACK_PATH: str = "/verify-key"
    CALLBACK_ALLOWED_HOSTS: list[str] = ["localhost", "127.0.0.1"]

    # External redirect gate
    GATE_PROVIDER: str = "mock"  # mock | vplink
    GATE_API_URL: str = "https://vplink.in/api"
    GATE_API_KEY: str = ""
    GATE_TIMEOUT_SECONDS: float = 10.0
    MOCK_GATE_BASE_URL: str = "http://localhost:8000/mock-gate"

    # Operator actions (revocation, stats). Empty disables the operator API.
    OPERATOR_API_KEY: str = ""

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_ISSUE: str = "10/minute"
    RATE_LIMIT_VALIDATE: str = "60/minute"

    # Logging
    LOG_DIR: str = "/var/log/keygate"
    LOG_LEVEL: str = "INFO"

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    @field_validator("CORS_ORIGINS", "CALLBACK_ALLOWED_HOSTS", mode="before")
    @classmethod
    def parse_list(cls, v: Any) -> list[str]:
        """Parse list settings from JSON string or comma-separated values."""
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @field_validator("CALLBACK_PATH")
    @classmethod
    def validate_callback_path(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError("CALLBACK_PATH must start with '/'")
        return v

    @field_validator("GATE_PROVIDER")
    @classmethod
    def validate_gate_provider(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ("mock", "vplink"):
            raise ValueError("GATE_PROVIDER must be 'mock' or 'vplink'")
        return v

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Refuse configurations that would weaken the redirect flow in production."""
        if self.ENVIRONMENT == "production":
            if self.GATE_PROVIDER == "mock":
                raise ValueError("GATE_PROVIDER=mock is not allowed in production")
            if not self.GATE_API_KEY:
                raise ValueError("GATE_API_KEY must be set in production")
            parts = urlsplit(self.PUBLIC_BASE_URL)
            if parts.scheme != "https" and parts.hostname not in LOCAL_HOSTS:
                raise ValueError("PUBLIC_BASE_URL must use HTTPS in production")
        return self

    @property
    def default_callback_url(self) -> str:
        return self.PUBLIC_BASE_URL.rstrip("/") + self.CALLBACK_PATH


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
